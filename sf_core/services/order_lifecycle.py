"""
订单生命周期服务
状态流转与取消；进入 cancelled 时为每个订单行写入 return 流水并回补库存
"""
from typing import Dict, Any, Optional

from sqlalchemy import update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession

from sf_core.models import Order, OrderStatus, InventoryTxType
from sf_core.models.base import utcnow
from sf_core.utils.errors import (
    ForbiddenError, NotFoundError, InvalidTransitionError,
    OrderNotCancellableError, OrderStatusConflictError
)
from .base import BaseService
from .catalog import ProductCatalogService
from .orders import load_order, parse_status, serialize_order


class OrderLifecycleManager(BaseService):
    """订单状态管理"""

    def __init__(self):
        super().__init__()
        self.catalog = ProductCatalogService()

    async def update_status(self, order_id: int, new_status: Any, actor_id: Optional[int] = None) -> Dict[str, Any]:
        """管理员修改订单状态，必须符合状态流转表"""
        new_status = parse_status(new_status)
        return await self.execute_with_transaction(self._update_status_tx, order_id, new_status, actor_id)

    async def _update_status_tx(self, session: AsyncSession, order_id: int, new_status: str, actor_id) -> Dict[str, Any]:
        order = await self._get_order(session, order_id)
        if not order.can_transition_to(new_status):
            raise InvalidTransitionError(order.status, new_status)

        await self._transition(session, order, new_status, actor_id)
        return serialize_order(await load_order(session, order_id))

    async def cancel_order(self, order_id: int, user_id: int, is_admin: bool = False) -> Dict[str, Any]:
        """用户取消订单：仅限本人（或管理员），且订单尚未进入履约"""
        return await self.execute_with_transaction(self._cancel_order_tx, order_id, user_id, is_admin)

    async def _cancel_order_tx(self, session: AsyncSession, order_id: int, user_id: int, is_admin: bool) -> Dict[str, Any]:
        order = await self._get_order(session, order_id)
        if order.user_id != user_id and not is_admin:
            raise ForbiddenError(code="ORDER_ACCESS_DENIED", detail="You cannot cancel this order")
        if not order.can_be_cancelled():
            raise OrderNotCancellableError(order.status)

        await self._transition(session, order, OrderStatus.CANCELLED.value, user_id)
        return serialize_order(await load_order(session, order_id))

    async def _get_order(self, session: AsyncSession, order_id: int) -> Order:
        order = await load_order(session, order_id)
        if not order:
            raise NotFoundError(code="ORDER_NOT_FOUND", resource=f"Order {order_id}")
        return order

    async def _transition(self, session: AsyncSession, order: Order, new_status: str, actor_id) -> None:
        """以当前状态为条件更新，保证并发取消只会回补一次库存"""
        previous = order.status
        result = await session.execute(
            sql_update(Order)
            .where(Order.id == order.id)
            .where(Order.status == previous)
            .values(status=new_status, updated_at=utcnow())
        )
        if result.rowcount != 1:
            self.logger.warning("Order status changed concurrently", order_id=order.id, expected=previous)
            raise OrderStatusConflictError(order.id)

        if new_status == OrderStatus.CANCELLED.value:
            for item in sorted(order.items, key=lambda i: i.product_id):
                await self.catalog.apply_stock_change(
                    session,
                    item.product_id,
                    item.quantity,
                    InventoryTxType.RETURN,
                    note=f"Cancellation - order #{order.id}",
                    order_id=order.id
                )

        self.logger.info(
            "Order status changed",
            order_id=order.id,
            from_status=previous,
            to_status=new_status,
            actor_id=actor_id
        )
