"""
ShopFlow 核心服务模块
"""
from .base import BaseService, RepositoryMixin
from .inventory import InventoryLedger
from .catalog import ProductCatalogService
from .cart import CartService
from .orders import OrdersService
from .checkout import CheckoutCoordinator
from .order_lifecycle import OrderLifecycleManager
from .auth_service import AuthService, get_auth_service

__all__ = [
    "BaseService",
    "RepositoryMixin",
    "InventoryLedger",
    "ProductCatalogService",
    "CartService",
    "OrdersService",
    "CheckoutCoordinator",
    "OrderLifecycleManager",
    "AuthService",
    "get_auth_service",
]
