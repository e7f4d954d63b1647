"""
商品目录与库存变动测试
"""
import asyncio

import pytest

from sf_core.models.values import MAX_STOCK_QTY
from sf_core.services import InventoryLedger, ProductCatalogService
from sf_core.utils.errors import (
    BadRequestError, ConflictError, InsufficientStockError,
    NotFoundError, ProductUnavailableError
)


@pytest.fixture
def catalog(db_manager):
    return ProductCatalogService()


@pytest.fixture
def ledger(db_manager):
    return InventoryLedger()


async def test_create_product_writes_initial_restock(make_product, ledger):
    product = await make_product(stock_qty=7, sku="tee-black")

    assert product["sku"] == "TEE-BLACK"
    assert product["stock_qty"] == 7
    assert product["price"] == "19.99"

    history = await ledger.get_inventory_history(product["id"])
    assert len(history["transactions"]) == 1
    entry = history["transactions"][0]
    assert entry["transaction_type"] == "restock"
    assert entry["qty_change"] == 7
    assert entry["stock_after"] == 7
    assert entry["note"] == "Initial stock"


async def test_create_product_without_stock_has_no_ledger_entry(make_product, ledger):
    product = await make_product(stock_qty=0)

    history = await ledger.get_inventory_history(product["id"])
    assert history["transactions"] == []
    assert history["pagination"]["total"] == 0


async def test_duplicate_sku_is_rejected_case_insensitively(make_product):
    await make_product(sku="MUG-1")

    with pytest.raises(ConflictError) as exc_info:
        await make_product(sku="mug-1")
    assert exc_info.value.code == "SKU_ALREADY_EXISTS"


async def test_restock_and_sale_update_stock(catalog, make_product, ledger):
    product = await make_product(stock_qty=5)

    updated = await catalog.update_stock(product["id"], 10, "restock", "Supplier delivery")
    assert updated["stock_qty"] == 15

    updated = await catalog.update_stock(product["id"], -4, "sale")
    assert updated["stock_qty"] == 11

    history = await ledger.get_inventory_history(product["id"])
    assert [t["qty_change"] for t in history["transactions"]] == [-4, 10, 5]
    assert [t["stock_after"] for t in history["transactions"]] == [11, 15, 5]


async def test_decrement_below_zero_is_rejected_without_side_effects(catalog, make_product, ledger):
    product = await make_product(stock_qty=2)

    with pytest.raises(InsufficientStockError) as exc_info:
        await catalog.update_stock(product["id"], -3, "adjustment")
    assert exc_info.value.available == 2
    assert exc_info.value.requested == 3

    assert (await catalog.get_product(product["id"]))["stock_qty"] == 2
    history = await ledger.get_inventory_history(product["id"])
    assert len(history["transactions"]) == 1


async def test_update_stock_unknown_product(catalog):
    with pytest.raises(NotFoundError) as exc_info:
        await catalog.update_stock(999, 1, "restock")
    assert exc_info.value.code == "PRODUCT_NOT_FOUND"


@pytest.mark.parametrize("qty_change", [0, True, 1.5, "3"])
async def test_update_stock_rejects_invalid_change(catalog, make_product, qty_change):
    product = await make_product()
    with pytest.raises(BadRequestError) as exc_info:
        await catalog.update_stock(product["id"], qty_change, "restock")
    assert exc_info.value.code == "INVALID_QTY_CHANGE"


@pytest.mark.parametrize("qty_change", [2 ** 63, -(2 ** 63), MAX_STOCK_QTY + 1])
async def test_update_stock_rejects_out_of_range_change(catalog, make_product, ledger, qty_change):
    product = await make_product(stock_qty=5)
    with pytest.raises(BadRequestError) as exc_info:
        await catalog.update_stock(product["id"], qty_change, "restock")
    assert exc_info.value.code == "INVALID_QTY_CHANGE"
    assert exc_info.value.status == 400

    assert (await catalog.get_product(product["id"]))["stock_qty"] == 5
    assert len((await ledger.get_inventory_history(product["id"]))["transactions"]) == 1


async def test_restock_past_column_limit_is_rejected(catalog, make_product, ledger):
    product = await make_product(stock_qty=MAX_STOCK_QTY - 1)

    result = await catalog.update_stock(product["id"], 1, "restock")
    assert result["stock_qty"] == MAX_STOCK_QTY

    with pytest.raises(BadRequestError) as exc_info:
        await catalog.update_stock(product["id"], 1, "restock")
    assert exc_info.value.code == "STOCK_LIMIT_EXCEEDED"

    assert (await catalog.get_product(product["id"]))["stock_qty"] == MAX_STOCK_QTY
    report = await ledger.reconcile_product(product["id"])
    assert report["consistent"] is True


@pytest.mark.parametrize("stock_qty", [2 ** 63, MAX_STOCK_QTY + 1, -1])
async def test_create_product_rejects_out_of_range_stock(catalog, stock_qty):
    with pytest.raises(BadRequestError) as exc_info:
        await catalog.create_product({"sku": "big-1", "name": "Big", "price": "1.00", "stock_qty": stock_qty})
    assert exc_info.value.code == "INVALID_STOCK_QTY"

    listing = await catalog.list_products(is_active=None)
    assert listing["items"] == []


async def test_update_stock_rejects_unknown_type(catalog, make_product):
    product = await make_product()
    with pytest.raises(BadRequestError) as exc_info:
        await catalog.update_stock(product["id"], 1, "gift")
    assert exc_info.value.code == "INVALID_TRANSACTION_TYPE"


async def test_concurrent_decrements_never_oversell(catalog, make_product, ledger):
    """并发扣减：库存为 5，10 个请求各扣 1，恰好 5 个成功"""
    product = await make_product(stock_qty=5)

    results = await asyncio.gather(
        *[catalog.update_stock(product["id"], -1, "sale") for _ in range(10)],
        return_exceptions=True
    )

    succeeded = [r for r in results if isinstance(r, dict)]
    failed = [r for r in results if isinstance(r, InsufficientStockError)]
    assert len(succeeded) == 5
    assert len(failed) == 5
    assert (await catalog.get_product(product["id"]))["stock_qty"] == 0

    report = await ledger.reconcile_product(product["id"])
    assert report["consistent"] is True
    assert report["ledger_total"] == 0


class TestCheckStock:

    async def test_available(self, catalog, make_product):
        product = await make_product(stock_qty=3)
        result = await catalog.check_stock(product["id"], 3)
        assert result == {
            "product_id": product["id"],
            "sku": product["sku"],
            "available": True,
            "stock_qty": 3,
            "requested": 3,
        }

    async def test_insufficient(self, catalog, make_product):
        product = await make_product(stock_qty=3)
        with pytest.raises(InsufficientStockError):
            await catalog.check_stock(product["id"], 4)

    async def test_inactive(self, catalog, make_product):
        product = await make_product(is_active=False)
        with pytest.raises(ProductUnavailableError):
            await catalog.check_stock(product["id"], 1)

    async def test_missing(self, catalog):
        with pytest.raises(NotFoundError):
            await catalog.check_stock(12345, 1)

    async def test_non_positive_quantity(self, catalog, make_product):
        product = await make_product()
        with pytest.raises(BadRequestError) as exc_info:
            await catalog.check_stock(product["id"], 0)
        assert exc_info.value.code == "INVALID_QUANTITY"


class TestProductMaintenance:

    async def test_update_product_fields(self, catalog, make_product):
        product = await make_product(price="10.00")
        updated = await catalog.update_product(product["id"], {"price": "12.5", "name": "  Renamed  "})
        assert updated["price"] == "12.50"
        assert updated["name"] == "Renamed"

    async def test_stock_is_not_editable(self, catalog, make_product):
        product = await make_product()
        with pytest.raises(BadRequestError) as exc_info:
            await catalog.update_product(product["id"], {"stock_qty": 100})
        assert exc_info.value.code == "STOCK_NOT_EDITABLE"

    async def test_empty_update(self, catalog, make_product):
        product = await make_product()
        with pytest.raises(BadRequestError) as exc_info:
            await catalog.update_product(product["id"], {})
        assert exc_info.value.code == "NO_FIELDS_TO_UPDATE"

    async def test_deactivate_hides_from_listing(self, catalog, make_product):
        keep = await make_product()
        gone = await make_product()

        result = await catalog.deactivate_product(gone["id"])
        assert result["is_active"] is False

        listing = await catalog.list_products()
        assert [p["id"] for p in listing["items"]] == [keep["id"]]

    async def test_list_products_filters_and_pagination(self, catalog, make_product):
        await make_product(name="Blue Mug", price="8.00")
        await make_product(name="Red Mug", price="15.00")
        await make_product(name="Poster", price="30.00")

        mugs = await catalog.list_products(search="mug")
        assert {p["name"] for p in mugs["items"]} == {"Blue Mug", "Red Mug"}

        mid = await catalog.list_products(min_price="10", max_price="20")
        assert [p["name"] for p in mid["items"]] == ["Red Mug"]

        page = await catalog.list_products(page=2, limit=2)
        assert len(page["items"]) == 1
        assert page["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}
