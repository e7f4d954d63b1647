"""
下单（结算）流程测试
"""
import asyncio

import pytest

from sf_core.services import (
    CartService, CheckoutCoordinator, InventoryLedger,
    OrderLifecycleManager, OrdersService, ProductCatalogService
)
from sf_core.utils.errors import (
    CartInvalidError, EmptyCartError, InsufficientStockError, InvalidAddressError
)


@pytest.fixture
def carts(db_manager):
    return CartService()


@pytest.fixture
def checkout(db_manager):
    return CheckoutCoordinator()


@pytest.fixture
def catalog(db_manager):
    return ProductCatalogService()


@pytest.fixture
def ledger(db_manager):
    return InventoryLedger()


async def test_checkout_then_cancel_restores_stock(
    carts, checkout, catalog, ledger, customer, make_product, address
):
    """库存 5 → 全部下单 → 取消后恢复为 5"""
    product = await make_product(stock_qty=5, price="19.99")
    await carts.add_item(customer.id, product["id"], 5)

    order = await checkout.create_order(customer.id, address)

    assert order["status"] == "pending"
    assert order["total_amount"] == "99.95"
    assert order["user"]["username"] == "alice"
    assert order["address"]["zip_code"] == "94105"
    assert order["items"][0]["quantity"] == 5
    assert order["items"][0]["product_sku"] == product["sku"]
    assert (await catalog.get_product(product["id"]))["stock_qty"] == 0
    assert (await carts.get_cart(customer.id))["items"] == []

    sales = await ledger.get_inventory_history(product["id"], tx_type="sale")
    assert len(sales["transactions"]) == 1
    assert sales["transactions"][0]["qty_change"] == -5
    assert sales["transactions"][0]["order_id"] == order["id"]

    cancelled = await OrderLifecycleManager().cancel_order(order["id"], customer.id)
    assert cancelled["status"] == "cancelled"
    assert (await catalog.get_product(product["id"]))["stock_qty"] == 5

    returns = await ledger.get_inventory_history(product["id"], tx_type="return")
    assert [t["qty_change"] for t in returns["transactions"]] == [5]
    assert (await ledger.reconcile_product(product["id"]))["consistent"] is True


async def test_concurrent_checkouts_for_last_unit(
    carts, catalog, ledger, customer, other_customer, make_product, address
):
    """两个用户同时购买最后一件：恰好一个成功"""
    product = await make_product(stock_qty=1)
    await carts.add_item(customer.id, product["id"], 1)
    await carts.add_item(other_customer.id, product["id"], 1)

    results = await asyncio.gather(
        CheckoutCoordinator().create_order(customer.id, address),
        CheckoutCoordinator().create_order(other_customer.id, address),
        return_exceptions=True
    )

    orders = [r for r in results if isinstance(r, dict)]
    failures = [r for r in results if isinstance(r, InsufficientStockError)]
    assert len(orders) == 1
    assert len(failures) == 1
    assert failures[0].available == 0

    assert (await catalog.get_product(product["id"]))["stock_qty"] == 0
    report = await ledger.reconcile_product(product["id"])
    assert report["consistent"] is True
    assert report["ledger_total"] == 0


async def test_order_snapshot_ignores_later_price_changes(
    carts, checkout, catalog, customer, make_product, address
):
    first = await make_product(price="10.00")
    second = await make_product(price="2.50")
    await carts.add_item(customer.id, first["id"], 2)
    await carts.add_item(customer.id, second["id"], 3)

    # 加入购物车后调价：订单使用购物车中的价格快照
    await catalog.update_product(first["id"], {"price": "12.00"})

    order = await checkout.create_order(customer.id, address)
    assert order["total_amount"] == "27.50"
    assert sum(float(item["total_price"]) for item in order["items"]) == 27.5
    by_product = {item["product_id"]: item for item in order["items"]}
    assert by_product[first["id"]]["unit_price"] == "10.00"

    await catalog.update_product(second["id"], {"price": "100.00", "name": "Renamed"})
    stored = await OrdersService().get_order(order["id"], customer.id)
    assert stored["total_amount"] == "27.50"
    assert {item["product_name"] for item in stored["items"]} == {first["name"], second["name"]}


async def test_invalid_address_leaves_everything_untouched(
    carts, checkout, catalog, customer, make_product
):
    product = await make_product(stock_qty=3)
    await carts.add_item(customer.id, product["id"], 1)

    with pytest.raises(InvalidAddressError) as exc_info:
        await checkout.create_order(customer.id, {"street": "1 Main St", "country": "US"})
    assert exc_info.value.missing_fields == ["city", "state", "zip_code"]

    assert (await catalog.get_product(product["id"]))["stock_qty"] == 3
    assert (await carts.get_cart(customer.id))["line_count"] == 1


async def test_empty_cart(checkout, carts, customer, address):
    with pytest.raises(EmptyCartError):
        await checkout.create_order(customer.id, address)

    await carts.get_cart(customer.id)
    with pytest.raises(EmptyCartError):
        await checkout.create_order(customer.id, address)


async def test_inactive_product_makes_cart_invalid(
    carts, checkout, catalog, customer, make_product, address
):
    product = await make_product()
    await carts.add_item(customer.id, product["id"], 1)
    await catalog.deactivate_product(product["id"])

    with pytest.raises(CartInvalidError) as exc_info:
        await checkout.create_order(customer.id, address)
    assert exc_info.value.errors == [f"Product {product['id']} is not available"]


async def test_failed_decrement_rolls_back_whole_order(
    carts, checkout, catalog, ledger, customer, make_product, address, monkeypatch
):
    """扣减第二个商品失败时，订单、第一笔扣减与清空购物车全部回滚"""
    first = await make_product(stock_qty=5)
    second = await make_product(stock_qty=5)
    await carts.add_item(customer.id, first["id"], 2)
    await carts.add_item(customer.id, second["id"], 3)

    original = checkout.catalog.apply_stock_change

    async def failing_apply(session, product_id, qty_change, tx_type, note=None, order_id=None):
        if product_id == second["id"]:
            raise InsufficientStockError(product_id=product_id, available=0, requested=-qty_change)
        return await original(session, product_id, qty_change, tx_type, note=note, order_id=order_id)

    monkeypatch.setattr(checkout.catalog, "apply_stock_change", failing_apply)

    with pytest.raises(InsufficientStockError):
        await checkout.create_order(customer.id, address)

    assert (await catalog.get_product(first["id"]))["stock_qty"] == 5
    assert (await ledger.get_inventory_history(first["id"], tx_type="sale"))["transactions"] == []
    assert (await carts.get_cart(customer.id))["line_count"] == 2
    assert (await OrdersService().list_user_orders(customer.id))["orders"] == []
