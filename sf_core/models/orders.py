"""
订单相关数据模型
订单行、收货地址和总金额均为下单时刻的快照，创建后不再修改
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Tuple

from sqlalchemy import (
    BigInteger, String, Integer, DateTime, Numeric, ForeignKey,
    CheckConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK, utcnow
from .enums import OrderStatus, enum_values
from .users import User


# 管理员状态流转表
ORDER_STATUS_TRANSITIONS: Dict[str, Tuple[str, ...]] = {
    OrderStatus.PENDING.value: (OrderStatus.CONFIRMED.value, OrderStatus.CANCELLED.value),
    OrderStatus.CONFIRMED.value: (OrderStatus.PROCESSING.value, OrderStatus.CANCELLED.value),
    OrderStatus.PROCESSING.value: (OrderStatus.SHIPPED.value, OrderStatus.CANCELLED.value),
    OrderStatus.SHIPPED.value: (OrderStatus.DELIVERED.value,),
    OrderStatus.DELIVERED.value: (),
    OrderStatus.CANCELLED.value: (),
}

# 用户自助取消只允许在履约开始之前，比管理员流转表更严格
SELF_CANCELLABLE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value)


class Order(Base):
    """订单表"""
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        comment="下单用户ID"
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=OrderStatus.PENDING.value,
        comment="订单状态"
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 4),
        nullable=False,
        comment="订单总金额（下单时计算）"
    )

    # 收货地址快照
    address_street: Mapped[str] = mapped_column(String(255), nullable=False, comment="街道地址")
    address_city: Mapped[str] = mapped_column(String(100), nullable=False, comment="城市")
    address_state: Mapped[str] = mapped_column(String(100), nullable=False, comment="州/省")
    address_zip_code: Mapped[str] = mapped_column(String(20), nullable=False, comment="邮编")
    address_country: Mapped[str] = mapped_column(String(100), nullable=False, comment="国家")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="创建时间"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="更新时间"
    )

    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id"
    )
    user: Mapped[User] = relationship(User)

    __table_args__ = (
        CheckConstraint(f"status IN ({enum_values(OrderStatus)})", name="ck_orders_status"),
        CheckConstraint("total_amount >= 0", name="ck_orders_total_amount_non_negative"),
        Index("idx_orders_user", "user_id", "created_at"),
        Index("idx_orders_status", "status"),
        Index("idx_orders_created", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, user_id={self.user_id}, status={self.status})>"

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in ORDER_STATUS_TRANSITIONS.get(self.status, ())

    def can_be_cancelled(self) -> bool:
        """用户自助取消检查"""
        return self.status in SELF_CANCELLABLE_STATUSES

    @property
    def address(self) -> Dict[str, str]:
        return {
            "street": self.address_street,
            "city": self.address_city,
            "state": self.address_state,
            "zip_code": self.address_zip_code,
            "country": self.address_country,
        }

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)


class OrderItem(Base):
    """订单行（商品快照）"""
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    order_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        comment="订单ID"
    )

    # 商品快照
    product_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        comment="商品ID"
    )
    product_name: Mapped[str] = mapped_column(String(200), nullable=False, comment="下单时商品名称")
    product_sku: Mapped[str] = mapped_column(String(64), nullable=False, comment="下单时商品SKU")

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, comment="数量")
    unit_price: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, comment="下单时单价")
    total_price: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, comment="行合计")

    order: Mapped[Order] = relationship(Order, back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_order_items_unit_price_non_negative"),
        CheckConstraint("total_price >= 0", name="ck_order_items_total_price_non_negative"),
        Index("idx_order_items_order", "order_id"),
        Index("idx_order_items_product", "product_id"),
    )
