"""
结算服务
把购物车转换为订单：订单与订单行、库存扣减与流水、清空购物车在同一个事务里完成，
任何一步失败（例如某个商品库存不足）整体回滚。
"""
from typing import Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession

from sf_core.models import Order, OrderItem, OrderStatus, InventoryTxType
from sf_core.models.values import Address, Money
from sf_core.utils.errors import CartInvalidError, EmptyCartError, InsufficientStockError
from .base import BaseService
from .cart import CartService
from .catalog import ProductCatalogService
from .orders import load_order, serialize_order


class CheckoutCoordinator(BaseService):
    """结算协调器"""

    def __init__(self):
        super().__init__()
        self.cart_service = CartService()
        self.catalog = ProductCatalogService()

    async def create_order(self, user_id: int, address_data: Any) -> Dict[str, Any]:
        """从购物车创建订单"""
        address = Address.parse(address_data)
        return await self.execute_with_transaction(self._create_order_tx, user_id, address)

    async def _create_order_tx(self, session: AsyncSession, user_id: int, address: Address) -> Dict[str, Any]:
        cart = await self.cart_service.load_cart(session, user_id, create=False)
        errors, lines = self.cart_service.evaluate_lines(cart)
        if errors:
            self.logger.info("Checkout rejected", user_id=user_id, errors=errors)
            shortfalls = self.cart_service.stock_shortfalls(cart)
            # 仅因库存不足失败时（包括被并发订单抢走最后库存）直接报告库存不足
            if len(shortfalls) == len(errors):
                line = shortfalls[0]
                raise InsufficientStockError(
                    product_id=line.product_id,
                    available=line.product.stock_qty,
                    requested=line.quantity,
                    sku=line.product.sku
                )
            raise CartInvalidError(errors)
        if not lines:
            raise EmptyCartError()

        # 订单行快照：名称、SKU、单价取下单时刻的值
        items = [
            OrderItem(
                product_id=line.product_id,
                product_name=line.product.name,
                product_sku=line.product.sku,
                quantity=line.quantity,
                unit_price=Money(line.price),
                total_price=Money(line.line_total)
            )
            for line in lines
        ]
        order = Order(
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            total_amount=Money.sum(item.total_price for item in items),
            items=items,
            **address.to_columns()
        )
        session.add(order)
        await session.flush()

        # 按商品ID顺序扣减，保证并发事务以相同顺序加行锁
        for item in sorted(items, key=lambda i: i.product_id):
            await self.catalog.apply_stock_change(
                session,
                item.product_id,
                -item.quantity,
                InventoryTxType.SALE,
                note=f"Sale - order #{order.id}",
                order_id=order.id
            )

        await self.cart_service.clear_lines(session, cart)

        order = await load_order(session, order.id)
        self.logger.info(
            "Order created",
            order_id=order.id,
            user_id=user_id,
            total_amount=str(order.total_amount),
            lines=len(order.items)
        )
        return serialize_order(order)
