"""Сервис для работы с платежами."""
import logging
from decimal import Decimal
from typing import Any

from storefront.models.payment import Payment
from storefront.services.abacatepay import AbacatePayGateway
from storefront.services.payment_reconciler import PaymentReconciler, StatusUpdate
from storefront.services.payment_store import PaymentRecordStore
from storefront.services.payment_types import (
    CardDetails,
    CustomerInfo,
    PaymentIntent,
    PaymentMethod,
    PixDetails,
)
from storefront.services.qr import render_qr_image

logger = logging.getLogger(__name__)


class PaymentService:
    """Создание платежей и приём статусов от провайдера.

    Собирается один раз в lifespan приложения из уже созданных шлюза,
    хранилища и сверщика.
    """

    def __init__(
        self,
        gateway: AbacatePayGateway,
        store: PaymentRecordStore,
        reconciler: PaymentReconciler,
    ):
        self.gateway = gateway
        self.store = store
        self.reconciler = reconciler

    async def create_payment(
        self,
        amount: Decimal,
        order_id: int,
        method: PaymentMethod | str,
        customer_info: CustomerInfo | None = None,
        card_details: CardDetails | None = None,
    ) -> PaymentIntent:
        """
        Создать платёж у провайдера и записать его у себя.

        Ошибки валидации, конфигурации и провайдера пробрасываются. Ошибка
        записи в БД после успешного ответа провайдера только логируется:
        платёж уже создан, и покупатель должен увидеть QR/boleto.
        """
        intent = await self.gateway.create_charge(
            amount=amount,
            order_id=order_id,
            method=method,
            customer_info=customer_info,
            card_details=card_details,
        )

        if isinstance(intent.details, PixDetails) and intent.details.qr_code_text and not intent.details.qr_code_image:
            intent.details.qr_code_image = render_qr_image(intent.details.qr_code_text)

        try:
            await self.store.create(order_id, intent, customer_info)
        except Exception as e:
            logger.error(
                f"Error saving payment {intent.external_id} for order {order_id} to database: {e}",
                exc_info=True,
            )

        return intent

    async def get_payment(self, external_payment_id: str) -> Payment | None:
        """Получить платёж; просроченный pending помечается expired локально."""
        payment = await self.store.get_by_external_id(external_payment_id)
        if payment is None:
            return None
        return await self.reconciler.expire_if_overdue(payment)

    async def process_webhook(self, event: dict[str, Any]) -> StatusUpdate | None:
        """Обработать webhook AbacatePay."""
        logger.info(f"Received AbacatePay webhook: {event.get('event') or event.get('status')}")
        return await self.reconciler.apply_webhook(event)
