"""Хранилище попыток оплаты."""
import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.core.timeutils import utcnow
from storefront.models.payment import Payment
from storefront.services.payment_reconciler import StatusUpdate, TransitionOutcome, decide
from storefront.services.payment_types import (
    BoletoDetails,
    CardPaymentDetails,
    CustomerInfo,
    PaymentIntent,
    PaymentStatus,
    PixDetails,
    StatusSource,
)

logger = logging.getLogger(__name__)

# Сколько раз перечитываем запись, если её изменили между чтением и записью
MAX_CAS_ATTEMPTS = 5


class PaymentRecordStore:
    """Бухгалтерия платежей в нашей БД.

    Статус меняется только через update_status: это compare-and-set по
    версии записи и текущему статусу, поэтому из двух почти одновременных
    webhook выигрывает первый, повторная доставка статус не меняет, а
    дописывания в webhook_data не теряются.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(
        self,
        order_id: int,
        intent: PaymentIntent,
        customer_info: CustomerInfo | None = None,
        provider: str = "abacatepay",
    ) -> Payment:
        """Сохранить платёж сразу после успешного ответа провайдера."""
        payment = Payment(
            order_id=order_id,
            payment_method=intent.method.value,
            payment_provider=provider,
            external_payment_id=intent.external_id,
            amount=intent.amount,
            currency="BRL",
            status=intent.status.value,
            status_source=StatusSource.PROVIDER.value,
            expires_at=intent.expires_at,
            customer_info=customer_info.model_dump(exclude_none=True) if customer_info else {},
            payment_metadata={"abacatePaymentData": intent.raw},
        )

        details = intent.details
        if isinstance(details, PixDetails):
            payment.pix_qr_code = details.qr_code_image
            payment.pix_qr_code_text = details.qr_code_text
        elif isinstance(details, BoletoDetails):
            payment.boleto_url = details.boleto_url
            payment.boleto_barcode = details.boleto_barcode
        elif isinstance(details, CardPaymentDetails):
            payment.card_last4 = details.card_last4
            payment.transaction_id = details.transaction_id

        now = utcnow()
        if intent.status is PaymentStatus.PAID:
            payment.paid_at = now
        elif intent.status is PaymentStatus.FAILED:
            payment.failed_at = now

        async with self.session_factory() as session:
            session.add(payment)
            await session.commit()
            await session.refresh(payment)

        logger.info(f"Payment record {payment.id} saved for order {order_id} ({intent.external_id})")
        return payment

    async def get_by_external_id(self, external_payment_id: str) -> Payment | None:
        """Получить платёж по ID провайдера."""
        async with self.session_factory() as session:
            return await self._select(session, external_payment_id)

    async def list_for_order(self, order_id: int) -> list[Payment]:
        """Все попытки оплаты заказа, от новых к старым."""
        async with self.session_factory() as session:
            stmt = (
                select(Payment)
                .where(Payment.order_id == order_id)
                .order_by(Payment.created_at.desc(), Payment.id.desc())
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def update_status(
        self,
        external_payment_id: str,
        new_status: PaymentStatus | str,
        webhook_payload: dict[str, Any] | None = None,
        source: StatusSource = StatusSource.PROVIDER,
        failure_reason: str | None = None,
    ) -> StatusUpdate | None:
        """
        Применить статус к платежу.

        Returns:
            StatusUpdate с итогом перехода или None, если платёж не найден.
            Уже терминальная запись возвращается без изменений статуса;
            webhook_payload при этом всё равно дописывается в webhook_data.
        """
        new_status = PaymentStatus(new_status)
        source = StatusSource(source)

        async with self.session_factory() as session:
            for _ in range(MAX_CAS_ATTEMPTS):
                payment = await self._select(session, external_payment_id)
                if payment is None:
                    return None

                current = PaymentStatus(payment.status)
                current_source = StatusSource(payment.status_source)
                outcome = decide(current, current_source, new_status, source)

                now = utcnow()
                values: dict[str, Any] = {"updated_at": now, "version": Payment.version + 1}
                if webhook_payload is not None:
                    values["webhook_data"] = [*(payment.webhook_data or []), webhook_payload]

                if outcome is TransitionOutcome.APPLIED:
                    values["status"] = new_status.value
                    values["status_source"] = source.value
                    if new_status is PaymentStatus.PAID and payment.paid_at is None:
                        values["paid_at"] = now
                    if new_status is PaymentStatus.FAILED and payment.failed_at is None:
                        values["failed_at"] = now
                        values["failure_reason"] = failure_reason or "Payment failed"
                elif webhook_payload is None:
                    # Писать нечего
                    return StatusUpdate(payment, outcome, current)

                stmt = (
                    update(Payment)
                    .where(
                        Payment.id == payment.id,
                        Payment.version == payment.version,
                        Payment.status == current.value,
                        Payment.status_source == current_source.value,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(stmt)
                if result.rowcount == 1:
                    await session.commit()
                    await session.refresh(payment)
                    return StatusUpdate(payment, outcome, current)

                # Запись успели изменить: перечитываем и решаем заново
                await session.rollback()
                logger.info(f"Concurrent update on payment {external_payment_id}, retrying")

        raise RuntimeError(f"Could not update payment {external_payment_id}: too many concurrent writes")

    @staticmethod
    async def _select(session: AsyncSession, external_payment_id: str) -> Payment | None:
        stmt = (
            select(Payment)
            .where(Payment.external_payment_id == external_payment_id)
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
