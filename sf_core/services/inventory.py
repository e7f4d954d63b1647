"""
库存流水服务
流水只追加不修改；商品上的 stock_qty 是流水的冗余汇总，可随时用流水核对
"""
from typing import Dict, List, Optional, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from sf_core.models import Product, InventoryTransaction, InventoryTxType
from sf_core.models.inventory import NOTE_MAX_LENGTH
from sf_core.utils.errors import BadRequestError, NotFoundError
from .base import BaseService, RepositoryMixin


def parse_tx_type(value: Any) -> InventoryTxType:
    """校验流水类型"""
    try:
        return InventoryTxType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in InventoryTxType)
        raise BadRequestError(
            code="INVALID_TRANSACTION_TYPE",
            detail=f"Invalid inventory transaction type: {value!r} (allowed: {allowed})"
        )


class InventoryLedger(BaseService, RepositoryMixin):
    """库存流水（台账）服务"""

    async def record(
        self,
        session: AsyncSession,
        product_id: int,
        qty_change: int,
        tx_type: Any,
        stock_after: int,
        note: Optional[str] = None,
        order_id: Optional[int] = None
    ) -> InventoryTransaction:
        """追加一条流水，必须与库存变动处于同一事务"""
        tx_type = parse_tx_type(tx_type)

        if note is not None:
            note = note.strip() or None
        if note and len(note) > NOTE_MAX_LENGTH:
            raise BadRequestError(
                code="NOTE_TOO_LONG",
                detail=f"Note cannot exceed {NOTE_MAX_LENGTH} characters"
            )

        entry = InventoryTransaction(
            product_id=product_id,
            qty_change=qty_change,
            transaction_type=tx_type.value,
            stock_after=stock_after,
            order_id=order_id,
            note=note
        )
        session.add(entry)
        await session.flush()
        return entry

    async def get_inventory_history(
        self,
        product_id: int,
        tx_type: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """查询商品库存流水（最新在前）"""
        if tx_type:
            tx_type = parse_tx_type(tx_type).value

        paging = self.make_page(page, limit, default_limit=self.settings.inventory_history_default_limit)
        return await self.execute_with_session(self._history_query, product_id, tx_type, paging)

    async def _history_query(self, session: AsyncSession, product_id: int, tx_type, paging) -> Dict[str, Any]:
        product = await self.get_by_id(session, Product, product_id)
        if not product:
            raise NotFoundError(code="PRODUCT_NOT_FOUND", resource=f"Product {product_id}")

        stmt = select(InventoryTransaction).where(InventoryTransaction.product_id == product_id)
        if tx_type:
            stmt = stmt.where(InventoryTransaction.transaction_type == tx_type)
        stmt = stmt.order_by(InventoryTransaction.occurred_at.desc(), InventoryTransaction.id.desc())

        result = await self.paginate(session, stmt, paging)
        return {
            "product": {"id": product.id, "sku": product.sku, "name": product.name},
            "transactions": [entry.to_dict() for entry in result["items"]],
            "pagination": result["pagination"],
        }

    async def ledger_total(self, session: AsyncSession, product_id: int) -> int:
        """流水变动量合计"""
        stmt = select(func.coalesce(func.sum(InventoryTransaction.qty_change), 0)).where(
            InventoryTransaction.product_id == product_id
        )
        return int((await session.execute(stmt)).scalar_one())

    async def reconcile_product(self, product_id: int) -> Dict[str, Any]:
        """核对单个商品：流水合计应等于当前库存"""
        return await self.execute_with_session(self._reconcile_product_query, product_id)

    async def _reconcile_product_query(self, session: AsyncSession, product_id: int) -> Dict[str, Any]:
        product = await self.get_by_id(session, Product, product_id)
        if not product:
            raise NotFoundError(code="PRODUCT_NOT_FOUND", resource=f"Product {product_id}")

        total = await self.ledger_total(session, product_id)
        return self._reconciliation(product.id, product.sku, product.stock_qty, total)

    async def reconcile_all(self) -> Dict[str, Any]:
        """核对全部商品，返回每个商品的结果以及漂移数量"""
        return await self.execute_with_session(self._reconcile_all_query)

    async def _reconcile_all_query(self, session: AsyncSession) -> Dict[str, Any]:
        totals = (
            select(
                InventoryTransaction.product_id.label("product_id"),
                func.sum(InventoryTransaction.qty_change).label("ledger_total")
            )
            .group_by(InventoryTransaction.product_id)
            .subquery()
        )
        stmt = (
            select(Product.id, Product.sku, Product.stock_qty, func.coalesce(totals.c.ledger_total, 0))
            .outerjoin(totals, totals.c.product_id == Product.id)
            .order_by(Product.id)
        )
        rows = (await session.execute(stmt)).all()

        products: List[Dict[str, Any]] = [
            self._reconciliation(row[0], row[1], row[2], int(row[3])) for row in rows
        ]
        drifted = [p for p in products if not p["consistent"]]
        if drifted:
            self.logger.warning(
                "Inventory ledger drift detected",
                drifted_products=[p["product_id"] for p in drifted]
            )

        return {
            "products": products,
            "checked": len(products),
            "drifted": len(drifted),
        }

    @staticmethod
    def _reconciliation(product_id: int, sku: str, stock_qty: int, ledger_total: int) -> Dict[str, Any]:
        drift = stock_qty - ledger_total
        return {
            "product_id": product_id,
            "sku": sku,
            "stock_qty": stock_qty,
            "ledger_total": ledger_total,
            "drift": drift,
            "consistent": drift == 0,
        }
