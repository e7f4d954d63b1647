"""
购物车 API 路由
"""
from fastapi import APIRouter, Depends

from sf_core.models import User
from sf_core.services import CartService
from sf_core.utils.logger import get_logger
from sf_core.utils.errors import handle_errors
from .auth import get_current_user
from .models import ApiResponse, AddCartItemRequest, UpdateCartItemRequest

router = APIRouter(prefix="/cart")
logger = get_logger(__name__)


async def get_cart_service() -> CartService:
    """依赖注入：获取购物车服务"""
    return CartService()


@router.get("")
@handle_errors(logger)
async def get_cart(
    current_user: User = Depends(get_current_user),
    cart_service: CartService = Depends(get_cart_service)
):
    """查看购物车（会移除不可售的商品行）"""
    return ApiResponse.success(await cart_service.get_cart(current_user.id))


@router.get("/total")
@handle_errors(logger)
async def get_cart_total(
    current_user: User = Depends(get_current_user),
    cart_service: CartService = Depends(get_cart_service)
):
    return ApiResponse.success(await cart_service.compute_total(current_user.id))


@router.get("/checkout")
@handle_errors(logger)
async def get_checkout_preview(
    current_user: User = Depends(get_current_user),
    cart_service: CartService = Depends(get_cart_service)
):
    """结算预览"""
    return ApiResponse.success(await cart_service.get_cart_for_checkout(current_user.id))


@router.post("/items")
@handle_errors(logger)
async def add_cart_item(
    body: AddCartItemRequest,
    current_user: User = Depends(get_current_user),
    cart_service: CartService = Depends(get_cart_service)
):
    """加入购物车"""
    cart = await cart_service.add_item(current_user.id, body.product_id, body.quantity)
    return ApiResponse.success(cart)


@router.put("/items/{product_id}")
@handle_errors(logger)
async def update_cart_item(
    product_id: int,
    body: UpdateCartItemRequest,
    current_user: User = Depends(get_current_user),
    cart_service: CartService = Depends(get_cart_service)
):
    """修改数量；数量 <= 0 时移除该行"""
    cart = await cart_service.update_item(current_user.id, product_id, body.quantity)
    return ApiResponse.success(cart)


@router.delete("/items/{product_id}")
@handle_errors(logger)
async def remove_cart_item(
    product_id: int,
    current_user: User = Depends(get_current_user),
    cart_service: CartService = Depends(get_cart_service)
):
    cart = await cart_service.remove_item(current_user.id, product_id)
    return ApiResponse.success(cart)


@router.delete("/clear")
@handle_errors(logger)
async def clear_cart(
    current_user: User = Depends(get_current_user),
    cart_service: CartService = Depends(get_cart_service)
):
    """清空购物车"""
    return ApiResponse.success(await cart_service.clear_cart(current_user.id))
