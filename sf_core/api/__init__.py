"""
ShopFlow API 路由模块
"""
from fastapi import APIRouter

from .products import router as products_router
from .inventory import router as inventory_router
from .cart import router as cart_router
from .orders import router as orders_router

# 创建主路由器
api_router = APIRouter()

api_router.include_router(products_router, tags=["Products"])
api_router.include_router(inventory_router, tags=["Inventory"])
api_router.include_router(cart_router, tags=["Cart"])
api_router.include_router(orders_router, tags=["Orders"])

__all__ = ["api_router"]
