"""
库存流水数据模型
只追加、不修改：每次库存变动对应一条记录
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger, String, Integer, DateTime, ForeignKey,
    CheckConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK, utcnow
from .enums import InventoryTxType, enum_values
from .products import Product

# 备注最大长度
NOTE_MAX_LENGTH = 500


class InventoryTransaction(Base):
    """库存流水表（出库/入库/调整/回补）"""
    __tablename__ = "inventory_transactions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, comment="流水ID")

    product_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
        comment="商品ID"
    )

    # 正数 = 入库，负数 = 出库
    qty_change: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="库存变动数量"
    )

    transaction_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="类型：sale/restock/adjustment/return"
    )

    # 变动后的库存，便于审计时逐条核对
    stock_after: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="变动后库存"
    )

    order_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        nullable=True,
        comment="关联订单ID（销售/回补）"
    )

    note: Mapped[Optional[str]] = mapped_column(
        String(NOTE_MAX_LENGTH),
        nullable=True,
        comment="备注"
    )

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="发生时间"
    )

    product: Mapped[Product] = relationship(Product, lazy="raise")

    __table_args__ = (
        CheckConstraint(
            f"transaction_type IN ({enum_values(InventoryTxType)})",
            name="ck_inventory_transactions_type"
        ),
        CheckConstraint("qty_change <> 0", name="ck_inventory_transactions_non_zero"),
        Index("idx_inventory_tx_product", "product_id", "occurred_at"),
        Index("idx_inventory_tx_type", "transaction_type"),
        Index("idx_inventory_tx_order", "order_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction(id={self.id}, product_id={self.product_id}, "
            f"qty_change={self.qty_change}, type={self.transaction_type})>"
        )
