"""Сервис для работы с заказами."""
import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.models.order import Order, OrderItem
from storefront.models.product import Product
from storefront.services.payment_types import PaymentStatus

logger = logging.getLogger(__name__)

# Статус платежа -> (order.status, order.payment_status)
_ORDER_STATUS_BY_PAYMENT = {
    PaymentStatus.PAID: ("paid", "paid"),
    PaymentStatus.FAILED: ("payment_failed", "failed"),
    PaymentStatus.EXPIRED: ("payment_expired", "expired"),
}


class OrderService:
    """Сервис для работы с заказами."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_order(
        self,
        items: list[dict],
        shipping: dict,
        shipping_cost: Decimal = Decimal("0"),
        payment_method: str | None = None,
        user_id: int | None = None,
        session_id: str | None = None,
    ) -> Order:
        """
        Создать заказ.

        Цены перечитываются из БД (клиенту не доверяем) и фиксируются в
        позициях заказа; дальше они не зависят от цены в каталоге.
        """
        if not items:
            raise ValueError("O pedido não contém itens")
        if shipping_cost < 0:
            raise ValueError("Valor de frete inválido")

        subtotal = Decimal("0")
        order_items = []

        for item in items:
            product_id = int(item["product_id"])
            quantity = int(item["quantity"])
            if quantity <= 0:
                raise ValueError(f"Quantidade inválida para o produto {product_id}")

            stmt = select(Product).where(Product.id == product_id, Product.is_active == True)  # noqa: E712
            result = await self.db.execute(stmt)
            product = result.scalar_one_or_none()

            if not product:
                raise ValueError(f"Produto {product_id} não encontrado ou inativo")

            if product.stock_quantity is not None and product.stock_quantity < quantity:
                raise ValueError(
                    f"Estoque insuficiente para '{product.name}'. "
                    f"Disponível: {product.stock_quantity}, solicitado: {quantity}"
                )

            subtotal += product.price * quantity
            order_items.append(
                OrderItem(
                    product_id=product.id,
                    name=product.name,
                    quantity=quantity,
                    price=product.price,
                )
            )

        order = Order(
            user_id=user_id,
            session_id=session_id,
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            total=subtotal + shipping_cost,
            shipping_address=shipping["address"],
            shipping_city=shipping["city"],
            shipping_state=shipping["state"],
            shipping_postal_code=shipping["postal_code"],
            shipping_country=shipping.get("country") or "Brasil",
            shipping_method=shipping.get("method"),
            payment_method=payment_method,
            items=order_items,
        )
        self.db.add(order)
        await self.db.commit()
        order = await self.get_order(order.id)

        logger.info(f"Order {order.id} created: total={order.total} ({len(order_items)} items)")
        return order

    async def get_order(self, order_id: int) -> Order | None:
        """Получить заказ с позициями и платежами."""
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def apply_payment_status(self, order_id: int, status: PaymentStatus) -> Order | None:
        """Отразить терминальный статус платежа в заказе."""
        mapped = _ORDER_STATUS_BY_PAYMENT.get(PaymentStatus(status))
        if mapped is None:
            return None

        order = await self.get_order(order_id)
        if not order:
            logger.warning(f"Order not found for payment.order_id: {order_id}")
            return None

        order.status, order.payment_status = mapped
        await self.db.commit()
        await self.db.refresh(order)
        logger.info(f"Order {order.id} status updated to: {order.status}")
        return order


def order_finalizer(session_factory: async_sessionmaker[AsyncSession]):
    """Колбэк для PaymentReconciler: обновляет заказ в отдельной сессии."""

    async def finalize(order_id: int, status: PaymentStatus) -> None:
        async with session_factory() as db:
            await OrderService(db).apply_payment_status(order_id, status)

    return finalize
