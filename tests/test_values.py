"""
值对象测试：Money / Quantity / Address
"""
from decimal import Decimal

import pytest

from sf_core.models.values import MAX_STOCK_QTY, Address, Money, Quantity
from sf_core.utils.errors import BadRequestError, InvalidAddressError


class TestMoney:

    def test_quantizes_to_cents(self):
        assert Money("19.995") == Decimal("20.00")
        assert str(Money(3)) == "3.00"
        assert str(Money(0.1)) == "0.10"

    @pytest.mark.parametrize("value", ["-1", "abc", None, "NaN"])
    def test_rejects_invalid_amounts(self, value):
        with pytest.raises(BadRequestError) as exc_info:
            Money(value)
        assert exc_info.value.code == "INVALID_AMOUNT"

    def test_sum(self):
        assert Money.sum([Decimal("1.10"), Decimal("2.205")]) == Decimal("3.31")
        assert Money.sum([]) == Decimal("0.00")


class TestQuantity:

    def test_accepts_positive_integers(self):
        assert Quantity(3) == 3
        assert Quantity("2") == 2
        assert Quantity(MAX_STOCK_QTY) == MAX_STOCK_QTY

    @pytest.mark.parametrize("value", [0, -5, True, 1.5, "x", None, 2 ** 31])
    def test_rejects_non_positive_or_non_integer(self, value):
        with pytest.raises(BadRequestError) as exc_info:
            Quantity(value)
        assert exc_info.value.code == "INVALID_QUANTITY"


class TestAddress:

    def test_parse_accepts_camel_case_zip(self, address):
        parsed = Address.parse(address)
        assert parsed.zip_code == "94105"
        assert parsed.to_columns()["address_zip_code"] == "94105"

    def test_missing_fields_are_reported(self):
        with pytest.raises(InvalidAddressError) as exc_info:
            Address.parse({"street": "1 Main St", "city": "  ", "country": "US"})
        assert exc_info.value.missing_fields == ["city", "state", "zip_code"]
        assert exc_info.value.status == 400

    def test_non_dict_address(self):
        with pytest.raises(InvalidAddressError):
            Address.parse(None)

    def test_overlong_field(self, address):
        address["zipCode"] = "9" * 50
        with pytest.raises(BadRequestError) as exc_info:
            Address.parse(address)
        assert exc_info.value.code == "INVALID_ADDRESS"
        assert exc_info.value.extra["invalid_fields"] == ["zip_code"]
