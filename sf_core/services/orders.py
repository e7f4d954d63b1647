"""
订单查询服务
订单详情、用户订单、全部订单、订单摘要与统计
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sf_core.models import Order, OrderStatus
from sf_core.models.values import Money
from sf_core.utils.errors import BadRequestError, ForbiddenError, NotFoundError
from .base import BaseService, RepositoryMixin

# 订单加载选项：订单行 + 下单用户
ORDER_LOAD_OPTIONS = (selectinload(Order.items), selectinload(Order.user))


def parse_status(value: Any) -> str:
    """校验订单状态取值"""
    try:
        return OrderStatus(value).value
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise BadRequestError(
            code="INVALID_ORDER_STATUS",
            detail=f"Invalid order status: {value!r} (allowed: {allowed})"
        )


def serialize_order(order: Order, include_user: bool = True) -> Dict[str, Any]:
    """订单响应格式"""
    data = {
        "id": order.id,
        "user_id": order.user_id,
        "status": order.status,
        "total_amount": str(Money(order.total_amount)),
        "address": order.address,
        "items": [
            {
                "id": item.id,
                "product_id": item.product_id,
                "product_name": item.product_name,
                "product_sku": item.product_sku,
                "quantity": item.quantity,
                "unit_price": str(Money(item.unit_price)),
                "total_price": str(Money(item.total_price)),
            }
            for item in order.items
        ],
        "can_be_cancelled": order.can_be_cancelled(),
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "updated_at": order.updated_at.isoformat() if order.updated_at else None,
    }
    if include_user:
        data["user"] = order.user.to_public_dict() if order.user else None
    return data


async def load_order(session: AsyncSession, order_id: int) -> Optional[Order]:
    """加载订单（含订单行和用户），刷新会话中的已有对象"""
    stmt = (
        select(Order)
        .where(Order.id == order_id)
        .options(*ORDER_LOAD_OPTIONS)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


class OrdersService(BaseService, RepositoryMixin):
    """订单查询服务"""

    async def get_order(self, order_id: int, user_id: int, is_admin: bool = False) -> Dict[str, Any]:
        """获取订单；非本人且非管理员时拒绝访问"""
        order = await self.execute_with_session(self._get_visible_order, order_id, user_id, is_admin)
        return serialize_order(order)

    async def _get_visible_order(self, session: AsyncSession, order_id: int, user_id: int, is_admin: bool) -> Order:
        order = await load_order(session, order_id)
        if not order:
            raise NotFoundError(code="ORDER_NOT_FOUND", resource=f"Order {order_id}")
        if order.user_id != user_id and not is_admin:
            raise ForbiddenError(code="ORDER_ACCESS_DENIED", detail="You do not have access to this order")
        return order

    async def get_order_summary(self, order_id: int, user_id: int, is_admin: bool = False) -> Dict[str, Any]:
        """订单摘要"""
        order = await self.execute_with_session(self._get_visible_order, order_id, user_id, is_admin)
        return {
            "order_id": order.id,
            "user": order.user.to_public_dict() if order.user else None,
            "status": order.status,
            "total_amount": str(Money(order.total_amount)),
            "item_count": len(order.items),
            "total_quantity": order.total_quantity,
            "address": order.address,
            "created_at": order.created_at.isoformat(),
            "updated_at": order.updated_at.isoformat(),
            "items": serialize_order(order, include_user=False)["items"],
        }

    async def list_user_orders(
        self,
        user_id: int,
        status: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """当前用户的订单（最新在前）"""
        stmt = select(Order).where(Order.user_id == user_id)
        if status:
            stmt = stmt.where(Order.status == parse_status(status))
        return await self._list(stmt, page, limit)

    async def list_all_orders(
        self,
        status: Optional[str] = None,
        user_id: Optional[int] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """全部订单（管理员）"""
        stmt = select(Order)
        if status:
            stmt = stmt.where(Order.status == parse_status(status))
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        return await self._list(stmt, page, limit)

    async def _list(self, stmt, page: Optional[int], limit: Optional[int]) -> Dict[str, Any]:
        paging = self.make_page(page, limit)
        stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc())

        result = await self.execute_with_session(self.paginate, stmt, paging, ORDER_LOAD_OPTIONS)
        return {
            "orders": [serialize_order(order) for order in result["items"]],
            "pagination": result["pagination"],
        }

    async def get_order_stats(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        status: Optional[str] = None
    ) -> Dict[str, Any]:
        """订单统计（管理员）"""
        if status:
            status = parse_status(status)
        return await self.execute_with_session(self._stats_query, start_date, end_date, status)

    async def _stats_query(self, session: AsyncSession, start_date, end_date, status) -> Dict[str, Any]:
        conditions = []
        if start_date:
            conditions.append(Order.created_at >= start_date)
        if end_date:
            conditions.append(Order.created_at <= end_date)
        if status:
            conditions.append(Order.status == status)

        totals = (await session.execute(
            select(func.count(Order.id), func.coalesce(func.sum(Order.total_amount), 0)).where(*conditions)
        )).one()
        by_status = (await session.execute(
            select(Order.status, func.count(Order.id)).where(*conditions).group_by(Order.status)
        )).all()

        total_orders = int(totals[0])
        total_amount = Money(Decimal(str(totals[1])))
        average = Money(total_amount / total_orders) if total_orders else Money(0)

        return {
            "total_orders": total_orders,
            "total_amount": str(total_amount),
            "orders_by_status": {row[0]: int(row[1]) for row in by_status},
            "average_order_value": str(average),
        }
