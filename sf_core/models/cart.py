"""
购物车数据模型
每个用户一个购物车；同一商品在购物车内只占一行
"""
from datetime import datetime
from decimal import Decimal
from typing import List

from sqlalchemy import (
    BigInteger, Integer, DateTime, Numeric, ForeignKey,
    CheckConstraint, UniqueConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK, utcnow
from .products import Product


class Cart(Base):
    """购物车表"""
    __tablename__ = "carts"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, comment="购物车ID")

    user_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        comment="所属用户ID"
    )

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

    items: Mapped[List["CartItem"]] = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id"
    )

    def __repr__(self) -> str:
        return f"<Cart(id={self.id}, user_id={self.user_id}, lines={len(self.items)})>"

    def find_item(self, product_id: int):
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None


class CartItem(Base):
    """购物车行"""
    __tablename__ = "cart_items"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)

    cart_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("carts.id", ondelete="CASCADE"),
        nullable=False,
        comment="购物车ID"
    )
    product_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        comment="商品ID"
    )

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, comment="数量")

    # 加入/修改时锁定的单价，不随商品价格实时变化
    price: Mapped[Decimal] = mapped_column(
        Numeric(18, 4),
        nullable=False,
        comment="单价快照"
    )

    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="加入时间"
    )

    cart: Mapped[Cart] = relationship(Cart, back_populates="items")
    product: Mapped[Product] = relationship(Product, lazy="selectin")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),
        CheckConstraint("quantity >= 1", name="ck_cart_items_quantity_positive"),
        CheckConstraint("price >= 0", name="ck_cart_items_price_non_negative"),
        Index("idx_cart_items_product", "product_id"),
    )

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity
