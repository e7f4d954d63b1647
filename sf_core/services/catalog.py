"""
商品目录服务
商品维护、库存变动与库存校验；apply_stock_change 是唯一允许修改 stock_qty 的入口
"""
from typing import Dict, Optional, Any

from sqlalchemy import BigInteger, cast, select, or_, update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession

from sf_core.models import Product, InventoryTxType
from sf_core.models.base import utcnow
from sf_core.models.values import MAX_STOCK_QTY, Money, Quantity
from sf_core.utils.errors import (
    BadRequestError, ConflictError, NotFoundError,
    InsufficientStockError, ProductUnavailableError
)
from .base import BaseService, RepositoryMixin
from .inventory import InventoryLedger, parse_tx_type

# 管理员可修改的商品字段（库存只能走 update_stock）
EDITABLE_FIELDS = ("name", "description", "price", "is_active")


class ProductCatalogService(BaseService, RepositoryMixin):
    """商品目录服务"""

    def __init__(self):
        super().__init__()
        self.ledger = InventoryLedger()

    # ========== 库存变动 ==========

    async def apply_stock_change(
        self,
        session: AsyncSession,
        product_id: int,
        qty_change: int,
        tx_type: Any,
        note: Optional[str] = None,
        order_id: Optional[int] = None
    ) -> int:
        """原子地调整库存并记录流水，返回变动后的库存

        UPDATE ... WHERE stock_qty + :change >= 0 保证并发下库存不会被扣成负数，
        流水与库存在同一事务内写入。条件按 64 位计算，变动后超过 MAX_STOCK_QTY 同样拒绝。
        """
        tx_type = parse_tx_type(tx_type)

        new_total = cast(Product.stock_qty, BigInteger) + qty_change
        stmt = (
            sql_update(Product)
            .where(Product.id == product_id)
            .where(new_total >= 0)
            .where(new_total <= MAX_STOCK_QTY)
            .values(stock_qty=Product.stock_qty + qty_change, updated_at=utcnow())
            .returning(Product.stock_qty)
        )
        result = await session.execute(stmt)
        new_stock = result.scalar_one_or_none()

        if new_stock is None:
            row = (await session.execute(
                select(Product.stock_qty, Product.sku).where(Product.id == product_id)
            )).first()
            if row is None:
                raise NotFoundError(code="PRODUCT_NOT_FOUND", resource=f"Product {product_id}")

            if row.stock_qty + qty_change > MAX_STOCK_QTY:
                raise BadRequestError(
                    code="STOCK_LIMIT_EXCEEDED",
                    detail=f"Stock for product {product_id} would exceed {MAX_STOCK_QTY}"
                )

            self.logger.info(
                "Stock change rejected",
                product_id=product_id,
                qty_change=qty_change,
                stock_qty=row.stock_qty
            )
            raise InsufficientStockError(
                product_id=product_id,
                available=row.stock_qty,
                requested=-qty_change,
                sku=row.sku
            )

        await self.ledger.record(
            session,
            product_id=product_id,
            qty_change=qty_change,
            tx_type=tx_type,
            stock_after=new_stock,
            note=note,
            order_id=order_id
        )

        self.logger.info(
            "Stock changed",
            product_id=product_id,
            qty_change=qty_change,
            transaction_type=tx_type.value,
            stock_qty=new_stock,
            order_id=order_id
        )
        if qty_change < 0 and new_stock <= self.settings.low_stock_threshold:
            self.logger.warning(
                "Stock below threshold",
                product_id=product_id,
                stock_qty=new_stock,
                threshold=self.settings.low_stock_threshold
            )

        return new_stock

    async def update_stock(
        self,
        product_id: int,
        qty_change: Any,
        tx_type: Any,
        note: Optional[str] = None
    ) -> Dict[str, Any]:
        """管理员调整库存（补货/盘点/销售）"""
        if (isinstance(qty_change, bool) or not isinstance(qty_change, int)
                or qty_change == 0 or abs(qty_change) > MAX_STOCK_QTY):
            raise BadRequestError(
                code="INVALID_QTY_CHANGE",
                detail=f"qty_change must be a non-zero integer within ±{MAX_STOCK_QTY}, got {qty_change!r}"
            )
        tx_type = parse_tx_type(tx_type)

        return await self.execute_with_transaction(
            self._update_stock_tx, product_id, qty_change, tx_type, note
        )

    async def _update_stock_tx(self, session: AsyncSession, product_id, qty_change, tx_type, note) -> Dict[str, Any]:
        await self.apply_stock_change(session, product_id, qty_change, tx_type, note=note)
        product = await self.get_by_id(session, Product, product_id)
        await session.refresh(product)
        return product.to_dict()

    async def check_stock(self, product_id: int, quantity: Any) -> Dict[str, Any]:
        """只读库存校验：不存在、已下架或库存不足时抛出异常"""
        quantity = Quantity(quantity)
        return await self.execute_with_session(self._check_stock_query, product_id, quantity)

    async def _check_stock_query(self, session: AsyncSession, product_id: int, quantity: int) -> Dict[str, Any]:
        product = await self.get_by_id(session, Product, product_id)
        if not product:
            raise NotFoundError(code="PRODUCT_NOT_FOUND", resource=f"Product {product_id}")
        if not product.is_active:
            raise ProductUnavailableError(product_id)
        if product.stock_qty < quantity:
            raise InsufficientStockError(
                product_id=product.id,
                available=product.stock_qty,
                requested=quantity,
                sku=product.sku
            )

        return {
            "product_id": product.id,
            "sku": product.sku,
            "available": True,
            "stock_qty": product.stock_qty,
            "requested": quantity,
        }

    # ========== 商品维护 ==========

    async def create_product(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """创建商品；初始库存大于 0 时写入一条补货流水"""
        values = self._validate_product_data(data, creating=True)
        initial_stock = data.get("stock_qty", 0)
        if (isinstance(initial_stock, bool) or not isinstance(initial_stock, int)
                or not 0 <= initial_stock <= MAX_STOCK_QTY):
            raise BadRequestError(
                code="INVALID_STOCK_QTY",
                detail=f"stock_qty must be an integer between 0 and {MAX_STOCK_QTY}, got {initial_stock!r}"
            )

        return await self.execute_with_transaction(self._create_product_tx, values, initial_stock)

    async def _create_product_tx(self, session: AsyncSession, values: Dict[str, Any], initial_stock: int) -> Dict[str, Any]:
        existing = await self.get_by_field(session, Product, "sku", values["sku"])
        if existing:
            raise ConflictError(
                code="SKU_ALREADY_EXISTS",
                detail=f"Product with SKU {values['sku']} already exists"
            )

        product = await self.create(session, Product, {**values, "stock_qty": 0})

        if initial_stock > 0:
            await self.apply_stock_change(
                session, product.id, initial_stock, InventoryTxType.RESTOCK, note="Initial stock"
            )
            await session.refresh(product)

        self.logger.info("Product created", product_id=product.id, sku=product.sku, stock_qty=product.stock_qty)
        return product.to_dict()

    async def get_product(self, product_id: int) -> Dict[str, Any]:
        return await self.execute_with_session(self._get_product_query, product_id)

    async def _get_product_query(self, session: AsyncSession, product_id: int) -> Dict[str, Any]:
        product = await self.get_by_id(session, Product, product_id)
        if not product:
            raise NotFoundError(code="PRODUCT_NOT_FOUND", resource=f"Product {product_id}")
        return product.to_dict()

    async def list_products(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        is_active: Optional[bool] = True,
        min_price: Optional[Any] = None,
        max_price: Optional[Any] = None,
        search: Optional[str] = None
    ) -> Dict[str, Any]:
        """商品列表（分页、价格区间、关键词）"""
        paging = self.make_page(page, limit)

        stmt = select(Product)
        if is_active is not None:
            stmt = stmt.where(Product.is_active == is_active)
        if min_price is not None:
            stmt = stmt.where(Product.price >= Money(min_price))
        if max_price is not None:
            stmt = stmt.where(Product.price <= Money(max_price))
        if search:
            pattern = f"%{search.strip()}%"
            stmt = stmt.where(or_(
                Product.name.ilike(pattern),
                Product.description.ilike(pattern),
                Product.sku.ilike(pattern)
            ))
        stmt = stmt.order_by(Product.created_at.desc(), Product.id.desc())

        result = await self.execute_with_session(self.paginate, stmt, paging)
        return {
            "items": [product.to_dict() for product in result["items"]],
            "pagination": result["pagination"],
        }

    async def update_product(self, product_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        """修改商品基本信息（不含库存）"""
        if "stock_qty" in data:
            raise BadRequestError(
                code="STOCK_NOT_EDITABLE",
                detail="stock_qty can only be changed through the stock endpoint"
            )
        values = self._validate_product_data(data, creating=False)
        if not values:
            raise BadRequestError(code="NO_FIELDS_TO_UPDATE", detail="No updatable fields supplied")

        return await self.execute_with_transaction(self._update_product_tx, product_id, values)

    async def _update_product_tx(self, session: AsyncSession, product_id: int, values: Dict[str, Any]) -> Dict[str, Any]:
        product = await self.get_by_id(session, Product, product_id)
        if not product:
            raise NotFoundError(code="PRODUCT_NOT_FOUND", resource=f"Product {product_id}")

        await self.update(session, product, values)
        await session.refresh(product)
        self.logger.info("Product updated", product_id=product.id, fields=sorted(values))
        return product.to_dict()

    async def deactivate_product(self, product_id: int) -> Dict[str, Any]:
        """下架商品（软删除）"""
        return await self.execute_with_transaction(self._update_product_tx, product_id, {"is_active": False})

    def _validate_product_data(self, data: Dict[str, Any], creating: bool) -> Dict[str, Any]:
        """校验商品字段"""
        values: Dict[str, Any] = {}

        if creating:
            sku = data.get("sku")
            if not isinstance(sku, str) or not sku.strip():
                raise BadRequestError(code="MISSING_SKU", detail="SKU is required")
            values["sku"] = sku.strip().upper()

            for field in ("name", "price"):
                if data.get(field) is None:
                    raise BadRequestError(code="MISSING_REQUIRED_FIELDS", detail=f"Missing required field: {field}")

        for field in EDITABLE_FIELDS:
            if field not in data or data[field] is None:
                continue
            value = data[field]

            if field == "name":
                if not isinstance(value, str) or not value.strip() or len(value.strip()) > 200:
                    raise BadRequestError(code="INVALID_NAME", detail="Name must be 1-200 characters")
                value = value.strip()
            elif field == "description":
                value = str(value).strip()
            elif field == "price":
                value = Money(value)
            elif field == "is_active":
                value = bool(value)

            values[field] = value

        return values
