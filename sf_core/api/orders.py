"""
订单 API 路由
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from sf_core.models import User
from sf_core.services import OrdersService, CheckoutCoordinator, OrderLifecycleManager
from sf_core.utils.logger import get_logger
from sf_core.utils.errors import handle_errors, ValidationError
from .auth import get_current_user, require_admin
from .models import ApiResponse, CreateOrderRequest, UpdateOrderStatusRequest

router = APIRouter(prefix="/orders")
logger = get_logger(__name__)


async def get_orders_service() -> OrdersService:
    """依赖注入：获取订单查询服务"""
    return OrdersService()


async def get_checkout_coordinator() -> CheckoutCoordinator:
    return CheckoutCoordinator()


async def get_lifecycle_manager() -> OrderLifecycleManager:
    return OrderLifecycleManager()


def _parse_date(value: Optional[str], field: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(
            code=f"INVALID_{field.upper()}",
            detail=f"Invalid {field} format, expected ISO8601"
        )


@router.post("", status_code=201)
@handle_errors(logger)
async def create_order(
    body: Optional[CreateOrderRequest] = None,
    current_user: User = Depends(get_current_user),
    checkout: CheckoutCoordinator = Depends(get_checkout_coordinator)
):
    """从购物车下单"""
    order = await checkout.create_order(current_user.id, body.address if body else None)
    return ApiResponse.success(order)


# 静态路径必须在 /{order_id} 之前注册

@router.get("/my")
@handle_errors(logger)
async def get_my_orders(
    status: Optional[str] = Query(None, description="订单状态"),
    page: int = Query(1, ge=1, description="页码"),
    limit: Optional[int] = Query(None, ge=1, description="每页数量"),
    current_user: User = Depends(get_current_user),
    orders_service: OrdersService = Depends(get_orders_service)
):
    """当前用户的订单"""
    result = await orders_service.list_user_orders(current_user.id, status=status, page=page, limit=limit)
    return ApiResponse.success(result["orders"], metadata={"pagination": result["pagination"]})


@router.get("/admin/all")
@handle_errors(logger)
async def get_all_orders(
    status: Optional[str] = Query(None, description="订单状态"),
    user_id: Optional[int] = Query(None, description="用户ID"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    admin: User = Depends(require_admin),
    orders_service: OrdersService = Depends(get_orders_service)
):
    """全部订单（管理员）"""
    result = await orders_service.list_all_orders(status=status, user_id=user_id, page=page, limit=limit)
    return ApiResponse.success(result["orders"], metadata={"pagination": result["pagination"]})


@router.get("/admin/stats")
@handle_errors(logger)
async def get_order_stats(
    start_date: Optional[str] = Query(None, description="开始时间 (ISO8601)"),
    end_date: Optional[str] = Query(None, description="结束时间 (ISO8601)"),
    status: Optional[str] = Query(None, description="订单状态"),
    admin: User = Depends(require_admin),
    orders_service: OrdersService = Depends(get_orders_service)
):
    """订单统计（管理员）"""
    stats = await orders_service.get_order_stats(
        start_date=_parse_date(start_date, "start_date"),
        end_date=_parse_date(end_date, "end_date"),
        status=status
    )
    return ApiResponse.success(stats)


@router.get("/{order_id}")
@handle_errors(logger)
async def get_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    orders_service: OrdersService = Depends(get_orders_service)
):
    """订单详情（本人或管理员）"""
    order = await orders_service.get_order(order_id, current_user.id, is_admin=current_user.is_admin)
    return ApiResponse.success(order)


@router.get("/{order_id}/summary")
@handle_errors(logger)
async def get_order_summary(
    order_id: int,
    current_user: User = Depends(get_current_user),
    orders_service: OrdersService = Depends(get_orders_service)
):
    summary = await orders_service.get_order_summary(order_id, current_user.id, is_admin=current_user.is_admin)
    return ApiResponse.success(summary)


@router.patch("/{order_id}/status")
@handle_errors(logger)
async def update_order_status(
    order_id: int,
    body: UpdateOrderStatusRequest,
    admin: User = Depends(require_admin),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle_manager)
):
    """修改订单状态（管理员）"""
    order = await lifecycle.update_status(order_id, body.status, actor_id=admin.id)
    return ApiResponse.success(order)


@router.patch("/{order_id}/cancel")
@handle_errors(logger)
async def cancel_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    lifecycle: OrderLifecycleManager = Depends(get_lifecycle_manager)
):
    """取消订单并回补库存"""
    order = await lifecycle.cancel_order(order_id, current_user.id, is_admin=current_user.is_admin)
    return ApiResponse.success(order)
