"""Оформление заказа: доставка -> заказ -> PIX -> подтверждение."""
import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Callable

from storefront.checkout.client import StorefrontClient
from storefront.checkout.session import CheckoutState, PixCheckoutSession
from storefront.services.payment_types import CustomerInfo, PaymentIntent, PaymentMethod

logger = logging.getLogger(__name__)


@dataclass
class ShippingSelection:
    """Выбранные адрес и способ доставки. Живут только в памяти."""

    address: str
    city: str
    state: str
    postal_code: str
    country: str = "Brasil"
    method: str | None = None
    cost: Decimal = Decimal("0")

    def to_payload(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("cost")
        data["postalCode"] = data.pop("postal_code")
        return data


class CheckoutOrchestrator:
    """Проводит покупателя от корзины до оплаченного заказа.

    После успешной оплаты корзина очищается на сервере, а выбор доставки
    сбрасывается; обратно из подтверждения вернуться нельзя.
    """

    def __init__(
        self,
        client: StorefrontClient,
        poll_interval: float = 5.0,
        tick_interval: float = 1.0,
        on_state_change: Callable[[CheckoutState], Any] | None = None,
        on_cancel: Callable[[], Any] | None = None,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.tick_interval = tick_interval
        self.on_state_change = on_state_change
        self.on_cancel = on_cancel

        self.shipping: ShippingSelection | None = None
        self.order: dict | None = None
        self.session: PixCheckoutSession | None = None
        self.confirmation: dict | None = None

    def select_shipping(self, selection: ShippingSelection) -> None:
        self.shipping = selection

    async def place_order(self, items: list[dict] | None = None) -> dict:
        """
        Создать заказ из переданных позиций или из текущей корзины.

        Raises:
            ValueError: Не выбрана доставка или корзина пуста
            GatewayError: Сервер отклонил заказ
        """
        if self.shipping is None:
            raise ValueError("Selecione o endereço de entrega")

        if items is None:
            cart = await self.client.get_cart()
            items = [
                {"productId": item["productId"], "quantity": item["quantity"]}
                for item in cart.get("items", [])
            ]
        if not items:
            raise ValueError("O carrinho está vazio")

        self.order = await self.client.create_order(
            items=items,
            shipping_address=self.shipping.to_payload(),
            shipping_cost=self.shipping.cost,
            payment_method=PaymentMethod.PIX,
        )
        logger.info(f"Order {self.order['id']} placed, total={self.order['total']}")
        return self.order

    async def checkout(
        self,
        items: list[dict] | None = None,
        customer_info: CustomerInfo | None = None,
    ) -> PixCheckoutSession:
        """Создать заказ и открыть по нему PIX-сессию."""
        order = await self.place_order(items)
        amount = Decimal(str(order["total"]))

        async def create_charge() -> PaymentIntent:
            return await self.client.create_pix_payment(amount, order["id"], customer_info)

        self.session = PixCheckoutSession(
            create_charge=create_charge,
            check_status=self.client.get_payment_status,
            on_paid=self._complete,
            on_cancel=self.on_cancel,
            on_state_change=self.on_state_change,
            poll_interval=self.poll_interval,
            tick_interval=self.tick_interval,
        )
        await self.session.start()
        return self.session

    async def _complete(self, intent: PaymentIntent) -> None:
        await self.client.clear_cart()
        self.shipping = None
        self.confirmation = {
            "orderId": self.order["id"],
            "paymentId": intent.external_id,
            "total": self.order["total"],
        }
        logger.info(f"Order {self.order['id']} paid with {intent.external_id}")
