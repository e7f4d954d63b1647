"""
ShopFlow 错误处理系统
遵循 RFC7807 Problem Details 标准
"""
import functools
from typing import List, Optional
from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field


class ProblemDetail(BaseModel):
    """RFC7807 Problem Details 模型"""
    model_config = ConfigDict(
        extra="allow",  # 业务错误附加字段（如 available/requested）
        json_schema_extra={
            "example": {
                "type": "about:blank",
                "title": "Bad Request",
                "status": 400,
                "detail": "Insufficient stock for SKU TSHIRT-001: available 2, requested 3",
                "code": "INSUFFICIENT_STOCK",
                "available": 2,
                "requested": 3
            }
        }
    )

    type: str = Field(default="about:blank")
    title: str
    status: int
    detail: Optional[str] = None
    instance: Optional[str] = None
    code: Optional[str] = None  # 业务错误码


class ShopFlowException(Exception):
    """ShopFlow 基础异常类"""

    def __init__(
        self,
        status: int,
        code: str,
        title: str,
        detail: Optional[str] = None,
        **kwargs
    ):
        self.status = status
        self.code = code
        self.title = title
        self.detail = detail
        self.extra = kwargs
        super().__init__(detail or title)

    def to_problem_detail(self, instance: Optional[str] = None) -> ProblemDetail:
        """转换为 Problem Details 格式"""
        return ProblemDetail(
            type="about:blank",
            title=self.title,
            status=self.status,
            detail=self.detail,
            instance=instance,
            code=self.code,
            **self.extra
        )

    def to_response(self, request: Optional[Request] = None) -> JSONResponse:
        """转换为 JSON 响应"""
        instance = str(request.url) if request else None
        problem = self.to_problem_detail(instance)

        return JSONResponse(
            status_code=self.status,
            content={
                "ok": False,
                "error": problem.model_dump(exclude_none=True)
            }
        )


# 预定义错误类
class BadRequestError(ShopFlowException):
    """400 错误请求"""
    def __init__(self, code: str, detail: str, **kwargs):
        super().__init__(
            status=400,
            code=code,
            title="Bad Request",
            detail=detail,
            **kwargs
        )


class UnauthorizedError(ShopFlowException):
    """401 未授权"""
    def __init__(self, code: str = "UNAUTHORIZED", detail: str = "Authentication required"):
        super().__init__(
            status=401,
            code=code,
            title="Unauthorized",
            detail=detail
        )


class ForbiddenError(ShopFlowException):
    """403 禁止访问"""
    def __init__(self, code: str = "FORBIDDEN", detail: str = "Access denied"):
        super().__init__(
            status=403,
            code=code,
            title="Forbidden",
            detail=detail
        )


class NotFoundError(ShopFlowException):
    """404 未找到"""
    def __init__(self, code: str, resource: str):
        super().__init__(
            status=404,
            code=code,
            title="Not Found",
            detail=f"{resource} not found"
        )


class ConflictError(ShopFlowException):
    """409 冲突"""
    def __init__(self, code: str, detail: str):
        super().__init__(
            status=409,
            code=code,
            title="Conflict",
            detail=detail
        )


class ValidationError(ShopFlowException):
    """422 验证失败"""
    def __init__(self, code: str, detail: str):
        super().__init__(
            status=422,
            code=code,
            title="Validation Failed",
            detail=detail
        )


class InternalServerError(ShopFlowException):
    """500 内部错误"""
    def __init__(self, code: str = "INTERNAL_ERROR", detail: str = "An internal error occurred"):
        super().__init__(
            status=500,
            code=code,
            title="Internal Server Error",
            detail=detail
        )


# ========== 业务错误 ==========

class InsufficientStockError(BadRequestError):
    """库存不足"""
    def __init__(self, product_id: int, available: int, requested: int, sku: Optional[str] = None):
        label = f"SKU {sku}" if sku else f"product {product_id}"
        super().__init__(
            code="INSUFFICIENT_STOCK",
            detail=f"Insufficient stock for {label}: available {available}, requested {requested}",
            product_id=product_id,
            available=available,
            requested=requested
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class ProductUnavailableError(BadRequestError):
    """商品不存在或已下架"""
    def __init__(self, product_id: int):
        super().__init__(
            code="PRODUCT_UNAVAILABLE",
            detail=f"Product {product_id} is not available",
            product_id=product_id
        )
        self.product_id = product_id


class CartItemNotFoundError(NotFoundError):
    """购物车中没有该商品"""
    def __init__(self, product_id: int):
        super().__init__(code="CART_ITEM_NOT_FOUND", resource=f"Cart item for product {product_id}")
        self.product_id = product_id


class EmptyCartError(BadRequestError):
    """购物车为空"""
    def __init__(self):
        super().__init__(code="CART_EMPTY", detail="Cart is empty")


class CartInvalidError(BadRequestError):
    """购物车未通过结算校验"""
    def __init__(self, errors: List[str]):
        super().__init__(
            code="CART_INVALID",
            detail="Cart is not valid for checkout",
            errors=errors
        )
        self.errors = errors


class InvalidAddressError(BadRequestError):
    """收货地址缺少必填字段"""
    def __init__(self, missing_fields: List[str]):
        super().__init__(
            code="INVALID_ADDRESS",
            detail=f"Missing required address fields: {', '.join(missing_fields)}",
            missing_fields=missing_fields
        )
        self.missing_fields = missing_fields


class InvalidTransitionError(BadRequestError):
    """非法的订单状态流转"""
    def __init__(self, from_status: str, to_status: str):
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            detail=f"Cannot change order status from {from_status} to {to_status}",
            from_status=from_status,
            to_status=to_status
        )


class OrderNotCancellableError(BadRequestError):
    """订单当前状态不允许用户取消"""
    def __init__(self, status: str):
        super().__init__(
            code="ORDER_NOT_CANCELLABLE",
            detail=f"Order in status {status} cannot be cancelled",
            current_status=status
        )


class OrderStatusConflictError(ConflictError):
    """订单状态已被并发修改"""
    def __init__(self, order_id: int):
        super().__init__(
            code="ORDER_STATUS_CONFLICT",
            detail=f"Order {order_id} was modified concurrently, please retry"
        )



# 错误处理装饰器
def handle_errors(logger=None):
    """路由错误处理装饰器：业务异常原样抛出，其余异常记录后转为 500"""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except ShopFlowException:
                raise
            except Exception:
                if logger:
                    logger.error(f"Unexpected error in {func.__name__}", exc_info=True)
                raise InternalServerError(
                    code="UNEXPECTED_ERROR",
                    detail="An unexpected error occurred"
                )
        return wrapper
    return decorator
