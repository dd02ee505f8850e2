"""Сессия оплаты PIX: QR-код, обратный отсчёт и опрос статуса.

Сессия владеет двумя задачами asyncio: countdown (тик раз в секунду до
expires_at) и poll (запрос статуса раз в poll_interval). Обе гарантированно
отменяются в stop() и при выходе из ``async with``.

Авторитетные переходы делает только poll. Countdown может лишь
предварительно пометить платёж expired; такой статус перекрывается любым
статусом от провайдера, поэтому после локального истечения poll ещё
некоторое время (expiry_grace) продолжает спрашивать статус.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from storefront.core.exceptions import PaymentError
from storefront.core.timeutils import as_utc, utcnow
from storefront.services.payment_reconciler import TransitionOutcome, decide
from storefront.services.payment_types import PaymentIntent, PaymentStatus, StatusSource
from storefront.services.qr import render_qr_image

logger = logging.getLogger(__name__)


class CheckoutState(str, Enum):
    IDLE = "idle"
    CREATING = "creating"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"
    ERROR = "error"
    CANCELLED = "cancelled"


_STATE_BY_STATUS = {
    PaymentStatus.PAID: CheckoutState.PAID,
    PaymentStatus.FAILED: CheckoutState.FAILED,
    PaymentStatus.EXPIRED: CheckoutState.EXPIRED,
}

# Из этих состояний можно начать новую попытку
_RETRYABLE = {CheckoutState.FAILED, CheckoutState.EXPIRED, CheckoutState.ERROR}


@dataclass
class TimeRemaining:
    minutes: int
    seconds: int
    expired: bool


def calculate_time_remaining(expires_at: datetime | None, now: datetime | None = None) -> TimeRemaining | None:
    """Сколько осталось до expires_at; None, если срок не задан."""
    if expires_at is None:
        return None
    now = now or utcnow()
    delta = (as_utc(expires_at) - as_utc(now)).total_seconds()
    if delta <= 0:
        return TimeRemaining(minutes=0, seconds=0, expired=True)
    total = int(delta)
    return TimeRemaining(minutes=total // 60, seconds=total % 60, expired=False)


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class PixCheckoutSession:
    """Одна PIX-оплата заказа с точки зрения покупателя.

    Args:
        create_charge: Создаёт новый платёж у сервера (каждый вызов - новая запись)
        check_status: Возвращает статус платежа по его ID, либо пару (статус,
            источник), если сервер сообщает, что expired он вывел сам
        on_paid: Колбэк успешной оплаты, получает PaymentIntent
        on_cancel: Колбэк отмены покупателем
        on_state_change: Колбэк смены состояния UI
        on_tick: Колбэк каждого тика обратного отсчёта, получает TimeRemaining
        poll_interval: Период опроса статуса, секунды
        tick_interval: Период обратного отсчёта, секунды
        expiry_grace: Сколько секунд опрашивать после локального истечения
            (по умолчанию poll_interval + 1)
        clock: Источник текущего времени (aware UTC)
    """

    def __init__(
        self,
        create_charge: Callable[[], Awaitable[PaymentIntent]],
        check_status: Callable[[str], Awaitable[PaymentStatus | tuple[PaymentStatus, StatusSource]]],
        on_paid: Callable[[PaymentIntent], Any] | None = None,
        on_cancel: Callable[[], Any] | None = None,
        on_state_change: Callable[[CheckoutState], Any] | None = None,
        on_tick: Callable[[TimeRemaining], Any] | None = None,
        poll_interval: float = 5.0,
        tick_interval: float = 1.0,
        expiry_grace: float | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.create_charge = create_charge
        self.check_status = check_status
        self.on_paid = on_paid
        self.on_cancel = on_cancel
        self.on_state_change = on_state_change
        self.on_tick = on_tick
        self.poll_interval = poll_interval
        self.tick_interval = tick_interval
        self.expiry_grace = expiry_grace if expiry_grace is not None else poll_interval + 1.0
        self.clock = clock

        self.state = CheckoutState.IDLE
        self.intent: PaymentIntent | None = None
        self.status: PaymentStatus | None = None
        self.status_source = StatusSource.PROVIDER
        self.qr_code_image: str | None = None
        self.time_remaining: TimeRemaining | None = None
        self.error: str | None = None
        self.poll_count = 0

        self._lock = asyncio.Lock()
        self._countdown_task: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None
        self._grace_deadline: float | None = None
        # Растёт при каждой остановке; создание платежа сверяется с ним после ответа
        self._generation = 0

    async def __aenter__(self) -> "PixCheckoutSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def start(self) -> PaymentIntent | None:
        """
        Создать платёж и запустить отсчёт и опрос.

        Работает только из IDLE. Пока платёж создаётся, ожидает оплаты или
        уже завершён, возвращает текущий платёж и не создаёт второй.
        Новую попытку после неудачи делает retry().
        """
        async with self._lock:
            if self.state is not CheckoutState.IDLE:
                return self.intent
            return await self._create()

    async def retry(self) -> PaymentIntent | None:
        """Новая попытка после failed/expired/error: новый платёж, старый не трогаем."""
        async with self._lock:
            if self.state not in _RETRYABLE:
                return self.intent
            return await self._create()

    async def _create(self) -> PaymentIntent | None:
        await self.stop()
        generation = self._generation
        self.intent = None
        self.error = None
        self.qr_code_image = None
        self.time_remaining = None
        self._grace_deadline = None
        await self._set_state(CheckoutState.CREATING)

        try:
            intent = await self.create_charge()
        except PaymentError as e:
            if generation != self._generation:
                logger.info(f"PIX charge creation failed after session was stopped: {e.message}")
                return None
            logger.warning(f"PIX charge creation failed: {e.message}")
            self.error = e.message
            await self._set_state(CheckoutState.ERROR)
            return None

        if generation != self._generation:
            # Сессию остановили, пока создавался платёж: таймеры не запускаем
            logger.info(f"PIX charge {intent.external_id} created after session was stopped, ignoring")
            if self.state is CheckoutState.CREATING:
                await self._set_state(CheckoutState.IDLE)
            return None

        self.intent = intent
        self.status = PaymentStatus(intent.status)
        self.status_source = StatusSource.PROVIDER
        self.qr_code_image = intent.details.qr_code_image or render_qr_image(intent.details.qr_code_text)
        self.time_remaining = calculate_time_remaining(intent.expires_at, self.clock())

        if self.status.is_terminal:
            await self._enter_terminal(self.status, StatusSource.PROVIDER)
            return intent

        await self._set_state(CheckoutState.AWAITING_PAYMENT)
        if intent.expires_at is not None:
            self._countdown_task = asyncio.create_task(self._countdown_loop())
        self._poll_task = asyncio.create_task(self._poll_loop())
        return intent

    async def cancel(self) -> None:
        """Отмена покупателем. Провайдеру ничего не отправляем: PIX истечёт сам."""
        await self.stop()
        await self._set_state(CheckoutState.CANCELLED)
        if self.on_cancel:
            await _maybe_await(self.on_cancel())

    async def stop(self) -> None:
        """Остановить оба таймера и дождаться их завершения."""
        self._generation += 1
        current = asyncio.current_task()
        tasks = [t for t in (self._countdown_task, self._poll_task) if t is not None and t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._countdown_task = None
        self._poll_task = None

    async def wait(self) -> CheckoutState:
        """Дождаться, пока сессия перестанет опрашивать статус."""
        tasks = [t for t in (self._countdown_task, self._poll_task) if t is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return self.state

    async def _set_state(self, state: CheckoutState) -> None:
        if state is self.state:
            return
        self.state = state
        if self.on_state_change:
            await _maybe_await(self.on_state_change(state))

    async def _countdown_loop(self) -> None:
        while True:
            remaining = calculate_time_remaining(self.intent.expires_at, self.clock())
            self.time_remaining = remaining
            if self.on_tick:
                await _maybe_await(self.on_tick(remaining))
            if remaining.expired:
                await self._apply_status(PaymentStatus.EXPIRED, StatusSource.LOCAL)
                return
            await asyncio.sleep(self.tick_interval)

    async def _poll_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(self.poll_interval)
            self.poll_count += 1
            try:
                result = await self.check_status(self.intent.external_id)
            except PaymentError as e:
                # Покупателю не показываем: это просто ещё один pending
                logger.debug(f"Status poll for {self.intent.external_id} failed: {e.message}")
                result = None

            if result is not None:
                # Сервер может сам пометить платёж expired: такой статус локальный
                status, source = result if isinstance(result, tuple) else (result, StatusSource.PROVIDER)
                await self._apply_status(PaymentStatus(status), StatusSource(source))

            if self.status.is_terminal and self.status_source is StatusSource.PROVIDER:
                return
            if self._grace_deadline is not None and loop.time() >= self._grace_deadline:
                logger.info(f"Payment {self.intent.external_id} expired locally, polling stopped")
                return

    async def _apply_status(self, status: PaymentStatus, source: StatusSource) -> None:
        outcome = decide(self.status, self.status_source, status, source)
        if outcome is TransitionOutcome.REJECTED:
            logger.warning(
                f"Ignoring status '{status.value}' for payment {self.intent.external_id}: "
                f"already '{self.status.value}'"
            )
            return
        if outcome is TransitionOutcome.APPLIED:
            await self._enter_terminal(status, source)

    async def _enter_terminal(self, status: PaymentStatus, source: StatusSource) -> None:
        self.status = status
        self.status_source = source

        if source is StatusSource.LOCAL:
            # Предварительно: poll продолжает работать до конца окна ожидания
            self._grace_deadline = asyncio.get_running_loop().time() + self.expiry_grace
        else:
            self._grace_deadline = None
            await self._cancel_countdown()

        await self._set_state(_STATE_BY_STATUS[status])

        if status is PaymentStatus.PAID and self.on_paid:
            try:
                await _maybe_await(self.on_paid(self.intent))
            except Exception as e:
                logger.error(f"Success callback failed for payment {self.intent.external_id}: {e}", exc_info=True)

    async def _cancel_countdown(self) -> None:
        task = self._countdown_task
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
