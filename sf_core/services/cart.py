"""
购物车服务
每个用户一个购物车，按用户身份访问，从不暴露购物车ID
"""
from decimal import Decimal
from typing import Dict, List, Optional, Any, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from sf_core.models import Cart, CartItem, Product
from sf_core.models.base import utcnow
from sf_core.models.values import Money, Quantity
from sf_core.utils.errors import (
    ConflictError, InsufficientStockError, ProductUnavailableError, CartItemNotFoundError
)
from .base import BaseService, RepositoryMixin


class CartService(BaseService, RepositoryMixin):
    """购物车服务"""

    # ========== 查询 ==========

    async def get_cart(self, user_id: int) -> Dict[str, Any]:
        """获取购物车

        不存在时自动创建；同时会移除已下架或无库存的商品行并保存，
        因此查看购物车可能改变购物车内容。
        """
        return await self.execute_with_transaction(self._get_cart_tx, user_id)

    async def _get_cart_tx(self, session: AsyncSession, user_id: int) -> Dict[str, Any]:
        cart = await self.load_cart(session, user_id, create=True)
        await self._drop_unavailable_lines(session, cart)
        return self.serialize_cart(cart)

    async def compute_total(self, user_id: int) -> Dict[str, Any]:
        """购物车合计（基于行内价格快照，而非商品实时价格）"""
        cart = await self.get_cart(user_id)
        return {
            "total": cart["total"],
            "item_count": cart["item_count"],
            "line_count": cart["line_count"],
        }

    async def validate_for_checkout(self, user_id: int) -> Dict[str, Any]:
        """结算前校验：逐行对照商品当前状态，不修改购物车"""
        return await self.execute_with_session(self._validate_query, user_id)

    async def _validate_query(self, session: AsyncSession, user_id: int) -> Dict[str, Any]:
        cart = await self.load_cart(session, user_id, create=False)
        return self.validation_result(cart)

    async def get_cart_for_checkout(self, user_id: int) -> Dict[str, Any]:
        """结算预览：购物车、校验结果和汇总"""
        return await self.execute_with_transaction(self._checkout_preview_tx, user_id)

    async def _checkout_preview_tx(self, session: AsyncSession, user_id: int) -> Dict[str, Any]:
        cart = await self.load_cart(session, user_id, create=True)
        await self._drop_unavailable_lines(session, cart)
        validation = self.validation_result(cart)

        return {
            "cart": self.serialize_cart(cart),
            "validation": validation,
            "summary": {
                "total_items": len(validation["valid_lines"]),
                "total_quantity": sum(line["quantity"] for line in validation["valid_lines"]),
                "total_amount": validation["total"],
            },
        }

    # ========== 修改 ==========

    async def add_item(self, user_id: int, product_id: int, quantity: Any = 1) -> Dict[str, Any]:
        """加入商品；已存在则累加数量，并把价格同步为商品当前价格"""
        quantity = Quantity(quantity)
        return await self.execute_with_transaction(self._add_item_tx, user_id, product_id, quantity)

    async def _add_item_tx(self, session: AsyncSession, user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        product = await self.get_by_id(session, Product, product_id)
        if not product or not product.is_active:
            raise ProductUnavailableError(product_id)

        cart = await self.load_cart(session, user_id, create=True)
        line = cart.find_item(product_id)
        new_quantity = (line.quantity if line else 0) + quantity

        if product.stock_qty < new_quantity:
            raise InsufficientStockError(
                product_id=product.id,
                available=product.stock_qty,
                requested=new_quantity,
                sku=product.sku
            )

        if line:
            line.quantity = new_quantity
            line.price = product.price
        else:
            cart.items.append(CartItem(
                product_id=product.id,
                product=product,
                quantity=new_quantity,
                price=product.price
            ))
        cart.updated_at = utcnow()
        await self._flush(session, user_id)

        self.logger.info("Cart item added", user_id=user_id, product_id=product_id, quantity=new_quantity)
        await self._drop_unavailable_lines(session, cart)
        return self.serialize_cart(cart)

    async def update_item(self, user_id: int, product_id: int, quantity: Any) -> Dict[str, Any]:
        """修改行数量；数量 <= 0 等同于移除"""
        if isinstance(quantity, int) and not isinstance(quantity, bool) and quantity <= 0:
            return await self.remove_item(user_id, product_id)

        quantity = Quantity(quantity)
        return await self.execute_with_transaction(self._update_item_tx, user_id, product_id, quantity)

    async def _update_item_tx(self, session: AsyncSession, user_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        cart = await self.load_cart(session, user_id, create=True)
        line = cart.find_item(product_id)
        if not line:
            raise CartItemNotFoundError(product_id)

        product = await self.get_by_id(session, Product, product_id)
        if not product or not product.is_active:
            raise ProductUnavailableError(product_id)

        if product.stock_qty < quantity:
            raise InsufficientStockError(
                product_id=product.id,
                available=product.stock_qty,
                requested=quantity,
                sku=product.sku
            )

        line.quantity = quantity
        line.price = product.price
        cart.updated_at = utcnow()
        await self._flush(session, user_id)

        self.logger.info("Cart item updated", user_id=user_id, product_id=product_id, quantity=quantity)
        await self._drop_unavailable_lines(session, cart)
        return self.serialize_cart(cart)

    async def remove_item(self, user_id: int, product_id: int) -> Dict[str, Any]:
        """移除商品行"""
        return await self.execute_with_transaction(self._remove_item_tx, user_id, product_id)

    async def _remove_item_tx(self, session: AsyncSession, user_id: int, product_id: int) -> Dict[str, Any]:
        cart = await self.load_cart(session, user_id, create=True)
        line = cart.find_item(product_id)
        if not line:
            raise CartItemNotFoundError(product_id)

        cart.items.remove(line)
        cart.updated_at = utcnow()
        await self._flush(session, user_id)

        self.logger.info("Cart item removed", user_id=user_id, product_id=product_id)
        await self._drop_unavailable_lines(session, cart)
        return self.serialize_cart(cart)

    async def clear_cart(self, user_id: int) -> Dict[str, Any]:
        """清空购物车；购物车为空或不存在时什么也不做"""
        return await self.execute_with_transaction(self._clear_cart_tx, user_id)

    async def _clear_cart_tx(self, session: AsyncSession, user_id: int) -> Dict[str, Any]:
        cart = await self.load_cart(session, user_id, create=False)
        cleared = await self.clear_lines(session, cart) if cart else 0
        if cleared:
            self.logger.info("Cart cleared", user_id=user_id, lines=cleared)
        return {"cleared_lines": cleared}

    # ========== 供结算流程复用（调用方持有事务） ==========

    async def load_cart(self, session: AsyncSession, user_id: int, create: bool) -> Optional[Cart]:
        """加载购物车及其商品行；create=True 时不存在则创建"""
        stmt = (
            select(Cart)
            .where(Cart.user_id == user_id)
            .options(selectinload(Cart.items).selectinload(CartItem.product))
        )
        cart = (await session.execute(stmt)).scalar_one_or_none()

        if cart is None and create:
            cart = Cart(user_id=user_id, items=[])
            session.add(cart)
            await self._flush(session, user_id)
            self.logger.debug("Cart created", user_id=user_id)

        return cart

    async def clear_lines(self, session: AsyncSession, cart: Cart) -> int:
        count = len(cart.items)
        if count:
            cart.items.clear()
            cart.updated_at = utcnow()
            await session.flush()
        return count

    def evaluate_lines(self, cart: Optional[Cart]) -> Tuple[List[str], List[CartItem]]:
        """逐行校验，返回 (错误信息, 有效行)"""
        errors: List[str] = []
        valid: List[CartItem] = []
        if cart is None:
            return errors, valid

        for line in cart.items:
            product = line.product
            if product is None or not product.is_active:
                errors.append(f"Product {line.product_id} is not available")
                continue
            if product.stock_qty < line.quantity:
                errors.append(
                    f"Insufficient stock for {product.name} ({product.sku}): "
                    f"available {product.stock_qty}, requested {line.quantity}"
                )
                continue
            valid.append(line)

        return errors, valid

    def stock_shortfalls(self, cart: Optional[Cart]) -> List[CartItem]:
        """在售但库存不足的商品行"""
        if cart is None:
            return []
        return [
            line for line in cart.items
            if line.product is not None and line.product.is_active and line.product.stock_qty < line.quantity
        ]

    def validation_result(self, cart: Optional[Cart]) -> Dict[str, Any]:
        errors, valid = self.evaluate_lines(cart)
        return {
            "is_valid": not errors,
            "errors": errors,
            "valid_lines": [self._serialize_line(line) for line in valid],
            "total": str(Money.sum(line.line_total for line in valid)),
        }

    # ========== 内部方法 ==========

    async def _drop_unavailable_lines(self, session: AsyncSession, cart: Cart) -> None:
        """移除指向已下架或无库存商品的行（读时修复）"""
        stale = [
            line for line in cart.items
            if line.product is None or not line.product.is_active or not line.product.is_in_stock()
        ]
        if not stale:
            return

        for line in stale:
            cart.items.remove(line)
        cart.updated_at = utcnow()
        await session.flush()

        self.logger.info(
            "Removed unavailable cart lines",
            user_id=cart.user_id,
            product_ids=[line.product_id for line in stale]
        )

    async def _flush(self, session: AsyncSession, user_id: int) -> None:
        try:
            await session.flush()
        except IntegrityError:
            self.logger.warning("Concurrent cart modification", user_id=user_id)
            raise ConflictError(
                code="CART_CONCURRENT_UPDATE",
                detail="Cart was modified concurrently, please retry"
            )

    def _serialize_line(self, line: CartItem) -> Dict[str, Any]:
        product = line.product
        return {
            "product_id": line.product_id,
            "sku": product.sku if product else None,
            "name": product.name if product else None,
            "quantity": line.quantity,
            "price": str(Money(line.price)),
            "line_total": str(Money(line.line_total)),
        }

    def serialize_cart(self, cart: Cart) -> Dict[str, Any]:
        lines = [self._serialize_line(line) for line in cart.items]
        total: Decimal = Money.sum(line.line_total for line in cart.items)
        return {
            "id": cart.id,
            "user_id": cart.user_id,
            "items": lines,
            "total": str(total),
            "item_count": sum(line.quantity for line in cart.items),
            "line_count": len(cart.items),
            "updated_at": cart.updated_at.isoformat() if cart.updated_at else None,
        }
