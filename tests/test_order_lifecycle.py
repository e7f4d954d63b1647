"""
订单状态流转与取消测试
"""
import asyncio

import pytest

from sf_core.services import InventoryLedger, OrderLifecycleManager, ProductCatalogService
from sf_core.utils.errors import (
    BadRequestError, ForbiddenError, InvalidTransitionError, NotFoundError,
    OrderNotCancellableError, ShopFlowException
)


@pytest.fixture
def lifecycle(db_manager):
    return OrderLifecycleManager()


@pytest.fixture
def catalog(db_manager):
    return ProductCatalogService()


async def test_happy_path_to_delivered(lifecycle, admin, customer, make_product, place_order):
    product = await make_product()
    order = await place_order(customer, (product, 1))

    for status in ("confirmed", "processing", "shipped", "delivered"):
        order = await lifecycle.update_status(order["id"], status, actor_id=admin.id)
        assert order["status"] == status

    assert order["can_be_cancelled"] is False
    for status in ("cancelled", "shipped", "pending"):
        with pytest.raises(InvalidTransitionError):
            await lifecycle.update_status(order["id"], status, actor_id=admin.id)


async def test_pending_cannot_jump_to_delivered(lifecycle, admin, customer, make_product, place_order):
    product = await make_product()
    order = await place_order(customer, (product, 1))

    with pytest.raises(InvalidTransitionError) as exc_info:
        await lifecycle.update_status(order["id"], "delivered", actor_id=admin.id)
    assert exc_info.value.extra == {"from_status": "pending", "to_status": "delivered"}


async def test_unknown_status_and_missing_order(lifecycle, admin, customer, make_product, place_order):
    product = await make_product()
    order = await place_order(customer, (product, 1))

    with pytest.raises(BadRequestError) as exc_info:
        await lifecycle.update_status(order["id"], "lost", actor_id=admin.id)
    assert exc_info.value.code == "INVALID_ORDER_STATUS"

    with pytest.raises(NotFoundError):
        await lifecycle.update_status(987654, "confirmed", actor_id=admin.id)


async def test_admin_cancel_from_processing_returns_stock(
    lifecycle, catalog, admin, customer, make_product, place_order
):
    first = await make_product(stock_qty=4)
    second = await make_product(stock_qty=9)
    order = await place_order(customer, (first, 4), (second, 2))

    await lifecycle.update_status(order["id"], "confirmed", actor_id=admin.id)
    await lifecycle.update_status(order["id"], "processing", actor_id=admin.id)
    cancelled = await lifecycle.update_status(order["id"], "cancelled", actor_id=admin.id)

    assert cancelled["status"] == "cancelled"
    assert (await catalog.get_product(first["id"]))["stock_qty"] == 4
    assert (await catalog.get_product(second["id"]))["stock_qty"] == 9

    ledger = InventoryLedger()
    returns = await ledger.get_inventory_history(second["id"], tx_type="return")
    assert returns["transactions"][0]["qty_change"] == 2
    assert returns["transactions"][0]["order_id"] == order["id"]
    assert (await ledger.reconcile_all())["drifted"] == 0

    with pytest.raises(InvalidTransitionError):
        await lifecycle.update_status(order["id"], "pending", actor_id=admin.id)


async def test_self_service_cancel_window(lifecycle, admin, customer, make_product, place_order):
    """用户只能在 pending/confirmed 时取消，processing 只能由管理员取消"""
    product = await make_product()
    order = await place_order(customer, (product, 1))
    await lifecycle.update_status(order["id"], "confirmed", actor_id=admin.id)

    confirmed = await place_order(customer, (product, 1))
    await lifecycle.update_status(confirmed["id"], "confirmed", actor_id=admin.id)
    assert (await lifecycle.cancel_order(confirmed["id"], customer.id))["status"] == "cancelled"

    await lifecycle.update_status(order["id"], "processing", actor_id=admin.id)
    with pytest.raises(OrderNotCancellableError) as exc_info:
        await lifecycle.cancel_order(order["id"], customer.id)
    assert exc_info.value.extra["current_status"] == "processing"


async def test_cancel_requires_owner_or_admin(
    lifecycle, admin, customer, other_customer, make_product, place_order
):
    product = await make_product()
    order = await place_order(customer, (product, 1))

    with pytest.raises(ForbiddenError):
        await lifecycle.cancel_order(order["id"], other_customer.id)

    cancelled = await lifecycle.cancel_order(order["id"], admin.id, is_admin=True)
    assert cancelled["status"] == "cancelled"


async def test_second_cancel_is_rejected(lifecycle, catalog, customer, make_product, place_order):
    product = await make_product(stock_qty=3)
    order = await place_order(customer, (product, 2))

    await lifecycle.cancel_order(order["id"], customer.id)
    with pytest.raises(OrderNotCancellableError):
        await lifecycle.cancel_order(order["id"], customer.id)

    assert (await catalog.get_product(product["id"]))["stock_qty"] == 3


async def test_concurrent_cancels_return_stock_once(catalog, customer, make_product, place_order):
    product = await make_product(stock_qty=3)
    order = await place_order(customer, (product, 3))

    results = await asyncio.gather(
        OrderLifecycleManager().cancel_order(order["id"], customer.id),
        OrderLifecycleManager().cancel_order(order["id"], customer.id),
        return_exceptions=True
    )

    assert len([r for r in results if isinstance(r, dict)]) == 1
    assert len([r for r in results if isinstance(r, ShopFlowException)]) == 1
    assert (await catalog.get_product(product["id"]))["stock_qty"] == 3
    assert (await InventoryLedger().reconcile_product(product["id"]))["consistent"] is True
