"""Сверка статусов платежей (машина состояний).

pending -> paid | failed | expired. Терминальные статусы не меняются, за
одним исключением: expired, выведенный локально по истечении expires_at,
перекрывается любым статусом от провайдера.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from storefront.core.exceptions import ReconciliationAnomaly
from storefront.core.timeutils import as_utc, utcnow
from storefront.models.payment import Payment
from storefront.services.payment_types import PaymentStatus, StatusSource

logger = logging.getLogger(__name__)


class TransitionOutcome(str, Enum):
    APPLIED = "applied"
    NOOP = "noop"
    REJECTED = "rejected"


def decide(
    current: PaymentStatus,
    current_source: StatusSource,
    new: PaymentStatus,
    source: StatusSource,
) -> TransitionOutcome:
    """Решить, применять ли переход current -> new.

    Чистая функция: её используют и хранилище на сервере, и сессия оплаты
    на клиенте.
    """
    current = PaymentStatus(current)
    new = PaymentStatus(new)
    current_source = StatusSource(current_source)
    source = StatusSource(source)

    if new is PaymentStatus.PENDING:
        # Откат в pending невозможен
        return TransitionOutcome.NOOP

    if current is PaymentStatus.PENDING:
        return TransitionOutcome.APPLIED

    if current is PaymentStatus.EXPIRED and current_source is StatusSource.LOCAL:
        if source is StatusSource.PROVIDER:
            return TransitionOutcome.APPLIED
        return TransitionOutcome.NOOP

    if new is current or source is StatusSource.LOCAL:
        return TransitionOutcome.NOOP

    return TransitionOutcome.REJECTED


@dataclass
class StatusUpdate:
    """Результат применения статуса к записи."""

    payment: Payment
    outcome: TransitionOutcome
    previous_status: PaymentStatus

    @property
    def applied(self) -> bool:
        return self.outcome is TransitionOutcome.APPLIED


@dataclass
class WebhookUpdate:
    """Статус, извлечённый из webhook провайдера."""

    external_payment_id: str
    status: PaymentStatus
    failure_reason: str | None = None


_EVENT_STATUS = {
    "billing.paid": PaymentStatus.PAID,
    "billing.failed": PaymentStatus.FAILED,
    "billing.expired": PaymentStatus.EXPIRED,
}


def parse_webhook_event(event: dict[str, Any]) -> WebhookUpdate | None:
    """
    Извлечь id платежа и статус из webhook.

    Поддерживаются события AbacatePay ({"event": "billing.paid", "data": {...}})
    и плоская форма {"externalPaymentId": "...", "status": "paid"}.
    Возвращает None для событий, которые не меняют статус.
    """
    if not isinstance(event, dict):
        return None

    event_name = event.get("event")
    if event_name in _EVENT_STATUS:
        data = event.get("data") or {}
        payment_block = data.get("payment") if isinstance(data.get("payment"), dict) else {}
        pix_block = data.get("pixQrCode") if isinstance(data.get("pixQrCode"), dict) else {}
        external_id = pix_block.get("id") or payment_block.get("id") or data.get("id")
        if not external_id:
            logger.error(f"No payment ID found in '{event_name}' webhook data")
            return None
        return WebhookUpdate(
            external_payment_id=str(external_id),
            status=_EVENT_STATUS[event_name],
            failure_reason=payment_block.get("reason"),
        )

    external_id = event.get("externalPaymentId") or event.get("external_payment_id")
    raw_status = event.get("status")
    if external_id and raw_status:
        try:
            status = PaymentStatus(str(raw_status).lower())
        except ValueError:
            logger.warning(f"Unknown payment status in webhook: {raw_status}")
            return None
        return WebhookUpdate(
            external_payment_id=str(external_id),
            status=status,
            failure_reason=event.get("failureReason") or event.get("failure_reason"),
        )

    if event_name:
        logger.info(f"Unhandled webhook event: {event_name}")
    return None


OrderFinalizer = Callable[[int, PaymentStatus], Awaitable[None]]


class PaymentReconciler:
    """Единственная точка изменения статуса платежа."""

    def __init__(self, store, finalize_order: OrderFinalizer | None = None):
        self.store = store
        self.finalize_order = finalize_order

    async def apply_status(
        self,
        external_payment_id: str,
        status: PaymentStatus,
        payload: dict | None = None,
        source: StatusSource = StatusSource.PROVIDER,
        failure_reason: str | None = None,
    ) -> StatusUpdate | None:
        """Применить статус; None, если платёж не найден."""
        source = StatusSource(source)
        update = await self.store.update_status(
            external_payment_id,
            status,
            webhook_payload=payload,
            source=source,
            failure_reason=failure_reason,
        )
        if update is None:
            logger.warning(f"Payment not found for external_payment_id: {external_payment_id}")
            return None

        if update.outcome is TransitionOutcome.REJECTED:
            anomaly = ReconciliationAnomaly(
                external_payment_id, update.previous_status.value, PaymentStatus(status).value
            )
            logger.error(f"Reconciliation anomaly: {anomaly}")
        elif update.applied:
            logger.info(
                f"Payment {external_payment_id}: {update.previous_status.value} -> "
                f"{update.payment.status} ({source.value})"
            )
            # Локальный expired предварителен, заказ по нему не трогаем
            if source is StatusSource.PROVIDER and self.finalize_order:
                try:
                    await self.finalize_order(update.payment.order_id, PaymentStatus(update.payment.status))
                except Exception as e:
                    logger.error(
                        f"Error finalizing order {update.payment.order_id} after payment "
                        f"{external_payment_id}: {e}",
                        exc_info=True,
                    )
        else:
            logger.info(f"Payment {external_payment_id} already '{update.payment.status}', skipping")

        return update

    async def apply_webhook(self, event: dict[str, Any]) -> StatusUpdate | None:
        """Обработать webhook провайдера."""
        parsed = parse_webhook_event(event)
        if parsed is None:
            return None
        return await self.apply_status(
            parsed.external_payment_id,
            parsed.status,
            payload=event,
            source=StatusSource.PROVIDER,
            failure_reason=parsed.failure_reason,
        )

    async def expire_if_overdue(
        self, payment: Payment, now: datetime | None = None
    ) -> Payment:
        """Локально пометить просроченный pending-платёж как expired."""
        now = now or utcnow()
        expires_at = as_utc(payment.expires_at)
        if (
            payment.status != PaymentStatus.PENDING.value
            or expires_at is None
            or now < expires_at
            or not payment.external_payment_id
        ):
            return payment

        update = await self.apply_status(
            payment.external_payment_id,
            PaymentStatus.EXPIRED,
            source=StatusSource.LOCAL,
        )
        return update.payment if update else payment
