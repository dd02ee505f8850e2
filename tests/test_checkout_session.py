"""Tests for the PIX checkout session (countdown, polling, retry, cancel).

Intervals are shrunk to milliseconds; the server is a fake that counts
charges and status checks.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from storefront.checkout.session import (
    CheckoutState,
    PixCheckoutSession,
    calculate_time_remaining,
)
from storefront.core.exceptions import GatewayError
from storefront.core.timeutils import utcnow
from storefront.services.payment_types import PaymentIntent, PaymentMethod, PaymentStatus, PixDetails, StatusSource

S = CheckoutState


class FakeServer:
    """Creates charges ch_1, ch_2, ... and answers status checks from a script."""

    def __init__(self, statuses=(), expires_in=timedelta(minutes=15), initial_status="pending"):
        self.statuses = list(statuses)
        self.expires_in = expires_in
        self.initial_status = initial_status
        self.charges = 0
        self.status_calls = 0
        self.create_error: Exception | None = None

    async def create_charge(self) -> PaymentIntent:
        if self.create_error is not None:
            error, self.create_error = self.create_error, None
            raise error
        self.charges += 1
        return PaymentIntent(
            external_id=f"ch_{self.charges}",
            amount=Decimal("50.00"),
            method=PaymentMethod.PIX,
            status=self.initial_status,
            expires_at=utcnow() + self.expires_in if self.expires_in is not None else None,
            details=PixDetails(qr_code_text="00020126580014br.gov.bcb.pix0136abc"),
        )

    async def check_status(self, payment_id: str):
        self.status_calls += 1
        if not self.statuses:
            return PaymentStatus.PENDING
        result = self.statuses.pop(0)
        if callable(result):
            result = result()
        if isinstance(result, Exception):
            raise result
        return result


def make_session(server: FakeServer, **kwargs) -> PixCheckoutSession:
    kwargs.setdefault("poll_interval", 0.01)
    kwargs.setdefault("tick_interval", 0.01)
    return PixCheckoutSession(server.create_charge, server.check_status, **kwargs)


# ══════════════════════════════════════════════
#  TIME REMAINING
# ══════════════════════════════════════════════


def test_time_remaining_minutes_and_seconds():
    now = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    remaining = calculate_time_remaining(now + timedelta(seconds=125), now)

    assert (remaining.minutes, remaining.seconds, remaining.expired) == (2, 5, False)


def test_time_remaining_past_deadline_is_expired():
    now = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    remaining = calculate_time_remaining(now, now)

    assert (remaining.minutes, remaining.seconds, remaining.expired) == (0, 0, True)


def test_time_remaining_treats_naive_as_utc():
    now = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    remaining = calculate_time_remaining(datetime(2026, 1, 1, 12, 1, 0), now)

    assert (remaining.minutes, remaining.seconds) == (1, 0)


def test_time_remaining_without_deadline():
    assert calculate_time_remaining(None) is None


# ══════════════════════════════════════════════
#  POLLING
# ══════════════════════════════════════════════


async def test_polling_stops_after_paid():
    server = FakeServer(statuses=["pending", "pending", "paid"])
    paid = []
    session = make_session(server, on_paid=paid.append)

    await session.start()
    state = await session.wait()
    await asyncio.sleep(0.05)

    assert state is S.PAID
    assert server.status_calls == 3
    assert session.poll_count == 3
    assert [intent.external_id for intent in paid] == ["ch_1"]


async def test_start_renders_qr_from_payload():
    server = FakeServer()
    async with make_session(server) as session:
        await session.start()

        assert session.state is S.AWAITING_PAYMENT
        assert session.qr_code_image.startswith("data:image/png;base64,")
        assert session.time_remaining.minutes in (14, 15)


async def test_poll_errors_are_swallowed():
    server = FakeServer(statuses=[GatewayError(), GatewayError(status_code=503), "paid"])
    session = make_session(server)

    await session.start()
    state = await session.wait()

    assert state is S.PAID
    assert server.status_calls == 3
    assert session.error is None


async def test_provider_failure_stops_polling():
    server = FakeServer(statuses=["failed"])
    paid = []
    session = make_session(server, on_paid=paid.append)

    await session.start()
    state = await session.wait()

    assert state is S.FAILED
    assert server.status_calls == 1
    assert paid == []


async def test_charge_already_paid_on_creation():
    server = FakeServer(initial_status="paid")
    paid = []
    session = make_session(server, on_paid=paid.append)

    await session.start()

    assert session.state is S.PAID
    assert len(paid) == 1
    assert await session.wait() is S.PAID
    assert server.status_calls == 0


# ══════════════════════════════════════════════
#  EXPIRY
# ══════════════════════════════════════════════


async def test_late_paid_overrides_local_expiry():
    server = FakeServer(expires_in=timedelta(milliseconds=150))
    states = []
    session = make_session(server, poll_interval=0.1, on_state_change=states.append)
    server.statuses = [
        lambda: PaymentStatus.PAID if session.state is S.EXPIRED else PaymentStatus.PENDING
        for _ in range(10)
    ]

    await session.start()
    state = await session.wait()

    assert state is S.PAID
    assert states == [S.CREATING, S.AWAITING_PAYMENT, S.EXPIRED, S.PAID]
    assert session.time_remaining.expired


async def test_local_expiry_stops_polling_after_grace_window():
    server = FakeServer(expires_in=timedelta(milliseconds=30))
    session = make_session(server, poll_interval=0.02, expiry_grace=0.1)

    await session.start()
    state = await session.wait()
    calls = server.status_calls
    await asyncio.sleep(0.1)

    assert state is S.EXPIRED
    assert session.status_source.value == "local"
    assert server.status_calls == calls
    assert 2 <= calls <= 10


async def test_countdown_reports_ticks():
    server = FakeServer(expires_in=timedelta(milliseconds=50))
    ticks = []
    session = make_session(server, on_tick=ticks.append, expiry_grace=0)

    await session.start()
    await session.wait()

    assert len(ticks) >= 2
    assert ticks[-1].expired
    assert not ticks[0].expired


# ══════════════════════════════════════════════
#  START / RETRY / CANCEL
# ══════════════════════════════════════════════


async def test_concurrent_start_creates_one_charge():
    server = FakeServer()
    async with make_session(server, poll_interval=10) as session:
        first, second = await asyncio.gather(session.start(), session.start())

        assert server.charges == 1
        assert first.external_id == second.external_id == "ch_1"


async def test_creation_failure_enters_error_state_and_can_retry():
    server = FakeServer()
    server.create_error = GatewayError("Erro na comunicação com o provedor de pagamento")
    async with make_session(server, poll_interval=10) as session:
        assert await session.start() is None
        assert session.state is S.ERROR
        assert session.error == "Erro na comunicação com o provedor de pagamento"

        intent = await session.retry()

        assert intent.external_id == "ch_1"
        assert session.state is S.AWAITING_PAYMENT
        assert session.error is None


async def test_retry_after_failure_creates_new_charge():
    server = FakeServer(statuses=["failed"])
    async with make_session(server) as session:
        await session.start()
        await session.wait()
        assert session.state is S.FAILED

        intent = await session.retry()

        assert server.charges == 2
        assert intent.external_id == "ch_2"
        assert session.state is S.AWAITING_PAYMENT
        assert session.status is PaymentStatus.PENDING


async def test_retry_while_awaiting_payment_is_ignored():
    server = FakeServer()
    async with make_session(server, poll_interval=10) as session:
        await session.start()
        intent = await session.retry()

        assert server.charges == 1
        assert intent.external_id == "ch_1"


async def test_cancel_stops_timers_and_calls_back():
    server = FakeServer()
    cancelled = []
    session = make_session(server, on_cancel=lambda: cancelled.append(True))

    await session.start()
    await asyncio.sleep(0.03)
    await session.cancel()
    calls = server.status_calls
    await asyncio.sleep(0.05)

    assert session.state is S.CANCELLED
    assert cancelled == [True]
    assert server.status_calls == calls
    assert server.charges == 1


async def test_leaving_context_cancels_tasks():
    server = FakeServer()
    async with make_session(server) as session:
        await session.start()
        poll_task = session._poll_task
        countdown_task = session._countdown_task

    assert poll_task.cancelled()
    assert countdown_task.cancelled()


async def test_async_callbacks_are_awaited():
    server = FakeServer(statuses=["paid"])
    paid = []

    async def on_paid(intent):
        await asyncio.sleep(0)
        paid.append(intent.external_id)

    session = make_session(server, on_paid=on_paid)
    await session.start()
    await session.wait()

    assert paid == ["ch_1"]


async def test_start_after_paid_does_not_charge_again():
    server = FakeServer(statuses=["paid"])
    session = make_session(server)

    await session.start()
    await session.wait()
    intent = await session.start()

    assert session.state is S.PAID
    assert server.charges == 1
    assert intent.external_id == "ch_1"


async def test_start_after_cancel_does_not_charge():
    server = FakeServer()
    session = make_session(server)

    await session.cancel()
    assert await session.start() is None

    assert session.state is S.CANCELLED
    assert server.charges == 0


class BlockingServer(FakeServer):
    """Holds create_charge until release() so the session can be stopped mid-creation."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.entered = asyncio.Event()
        self.released = asyncio.Event()

    async def create_charge(self) -> PaymentIntent:
        self.entered.set()
        await self.released.wait()
        return await super().create_charge()

    def release(self):
        self.released.set()


async def test_cancel_during_creation_starts_no_timers():
    server = BlockingServer()
    session = make_session(server)

    starting = asyncio.create_task(session.start())
    await server.entered.wait()
    await session.cancel()
    server.release()
    result = await starting
    await asyncio.sleep(0.05)

    assert result is None
    assert session.state is S.CANCELLED
    assert session._poll_task is None
    assert session._countdown_task is None
    assert server.status_calls == 0


async def test_leaving_context_during_creation_starts_no_timers():
    server = BlockingServer()

    async with make_session(server) as session:
        starting = asyncio.create_task(session.start())
        await server.entered.wait()
    server.release()
    await starting
    await asyncio.sleep(0.05)

    assert session.state is S.IDLE
    assert session._poll_task is None
    assert server.status_calls == 0


async def test_local_status_from_server_keeps_polling():
    server = FakeServer()
    session = make_session(server, poll_interval=0.02, expiry_grace=1)
    server.statuses = [
        (PaymentStatus.EXPIRED, StatusSource.LOCAL),
        (PaymentStatus.PAID, StatusSource.PROVIDER),
    ]

    await session.start()
    state = await session.wait()

    assert state is S.PAID
    assert server.status_calls == 2
