"""
枚举类型定义
"""

from enum import Enum


class UserRole(str, Enum):
    """用户角色"""

    ADMIN = "admin"
    USER = "user"


class OrderStatus(str, Enum):
    """订单状态"""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"  # 终态
    CANCELLED = "cancelled"  # 终态


class InventoryTxType(str, Enum):
    """库存流水类型"""

    SALE = "sale"  # 下单出库
    RESTOCK = "restock"  # 补货入库
    ADJUSTMENT = "adjustment"  # 盘点调整
    RETURN = "return"  # 取消订单回补


def enum_values(enum_cls) -> str:
    """生成 CHECK 约束使用的取值列表：'a','b'"""
    return ",".join(f"'{member.value}'" for member in enum_cls)
