"""
ShopFlow 数据模型包
"""
from .base import Base
from .enums import UserRole, OrderStatus, InventoryTxType
from .users import User
from .products import Product
from .inventory import InventoryTransaction
from .cart import Cart, CartItem
from .orders import Order, OrderItem, ORDER_STATUS_TRANSITIONS, SELF_CANCELLABLE_STATUSES

__all__ = [
    "Base",
    "UserRole",
    "OrderStatus",
    "InventoryTxType",
    "User",
    "Product",
    "InventoryTransaction",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "ORDER_STATUS_TRANSITIONS",
    "SELF_CANCELLABLE_STATUSES",
]
