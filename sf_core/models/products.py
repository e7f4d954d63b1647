"""
商品数据模型
stock_qty 是库存流水的冗余汇总，只能通过 ProductCatalogService.apply_stock_change 修改
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    String, Text, Integer, Boolean, DateTime, Numeric,
    CheckConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, utcnow
from .values import Money


class Product(Base):
    """商品表"""
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, comment="商品ID")

    sku: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        comment="商品SKU（大写，全局唯一）"
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False, comment="商品名称")
    description: Mapped[Optional[str]] = mapped_column(Text, comment="商品描述")

    price: Mapped[Decimal] = mapped_column(
        Numeric(18, 4),
        nullable=False,
        comment="当前售价"
    )
    stock_qty: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="可售库存数量"
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="是否上架"
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

    __table_args__ = (
        CheckConstraint("stock_qty >= 0", name="ck_products_stock_qty_non_negative"),
        CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        Index("idx_products_active", "is_active"),
        Index("idx_products_name", "name"),
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, sku={self.sku}, stock_qty={self.stock_qty})>"

    def is_in_stock(self) -> bool:
        return self.stock_qty > 0

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        # 金额统一两位小数输出
        if self.price is not None:
            data["price"] = str(Money(self.price))
        return data
