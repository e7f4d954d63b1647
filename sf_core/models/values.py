"""
领域值对象
在进入服务层之前完成校验，构造成功即代表取值合法
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from sf_core.utils.errors import BadRequestError, InvalidAddressError

# 收货地址必填字段
ADDRESS_FIELDS = ("street", "city", "state", "zip_code", "country")

MONEY_QUANT = Decimal("0.01")

# 库存、数量列均为 32 位整数
MAX_STOCK_QTY = 2 ** 31 - 1


class Money(Decimal):
    """非负金额，保留两位小数"""

    def __new__(cls, value: Any = "0"):
        if isinstance(value, float):
            value = str(value)
        try:
            amount = Decimal(value)
        except (InvalidOperation, TypeError, ValueError):
            raise BadRequestError(code="INVALID_AMOUNT", detail=f"Invalid amount: {value!r}")

        if not amount.is_finite() or amount < 0:
            raise BadRequestError(code="INVALID_AMOUNT", detail=f"Amount must be a non-negative number: {value!r}")

        return super().__new__(cls, amount.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP))

    @classmethod
    def sum(cls, amounts) -> "Money":
        return cls(sum((Decimal(a) for a in amounts), Decimal("0")))


class Quantity(int):
    """正整数数量（1 ~ MAX_STOCK_QTY）"""

    def __new__(cls, value: Any):
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise BadRequestError(code="INVALID_QUANTITY", detail=f"Quantity must be an integer: {value!r}")
        try:
            number = int(value)
        except ValueError:
            raise BadRequestError(code="INVALID_QUANTITY", detail=f"Quantity must be an integer: {value!r}")

        if number < 1:
            raise BadRequestError(code="INVALID_QUANTITY", detail=f"Quantity must be at least 1, got {number}")
        if number > MAX_STOCK_QTY:
            raise BadRequestError(code="INVALID_QUANTITY", detail=f"Quantity must not exceed {MAX_STOCK_QTY}, got {number}")

        return super().__new__(cls, number)


class Address(BaseModel):
    """收货地址快照"""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    street: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=1, max_length=100)
    zip_code: str = Field(min_length=1, max_length=20)
    country: str = Field(min_length=1, max_length=100)

    @classmethod
    def parse(cls, data: Any) -> "Address":
        """从请求数据构造地址，缺字段时抛出 InvalidAddressError"""
        if not isinstance(data, dict):
            raise InvalidAddressError(list(ADDRESS_FIELDS))

        values: Dict[str, Any] = {
            "street": data.get("street"),
            "city": data.get("city"),
            "state": data.get("state"),
            "zip_code": data.get("zip_code", data.get("zipCode")),
            "country": data.get("country"),
        }

        missing: List[str] = [
            name for name in ADDRESS_FIELDS
            if not isinstance(values[name], str) or not values[name].strip()
        ]
        if missing:
            raise InvalidAddressError(missing)

        try:
            return cls(**values)
        except PydanticValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
            raise BadRequestError(
                code="INVALID_ADDRESS",
                detail=f"Invalid address fields: {', '.join(fields)}",
                invalid_fields=fields
            )

    def to_columns(self) -> Dict[str, str]:
        """映射为 Order 表的地址列"""
        return {f"address_{name}": getattr(self, name) for name in ADDRESS_FIELDS}
