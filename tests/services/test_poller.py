import asyncio

import pytest
from storefront.checkout.models.payment import PaymentStatus, PaymentStatusSnapshot
from storefront.checkout.payment.base import (
    GatewayTransportError,
    ResponseShapeError,
    StatusFetched,
    TicketLost,
)
from storefront.checkout.payment.mock import MockPaymentGateway
from storefront.checkout.services.poller import (
    CancellationToken,
    PaymentStatusPoller,
    PollStop,
    get_backoff_delay,
)


def snapshot(status, **kwargs):
    return PaymentStatusSnapshot(status=status, **kwargs)


def test_backoff_schedule():
    delays = [get_backoff_delay(n) for n in range(6)]
    assert delays == [3.0, 6.0, 12.0, 15.0, 15.0, 15.0]


def test_backoff_monotonic_and_capped():
    delays = [get_backoff_delay(n, 0.5, 7.0) for n in range(100)]
    assert delays == sorted(delays)
    assert max(delays) == 7.0
    assert delays[0] == 0.5


def test_empty_tracking_id():
    with pytest.raises(ValueError):
        PaymentStatusPoller(MockPaymentGateway(), "")


@pytest.mark.asyncio
async def test_poll_until_succeeded(token):
    gateway = MockPaymentGateway(
        statuses={
            "t1": [
                snapshot("queued"),
                snapshot("PROCESSING"),
                snapshot("SUCCEEDED", reference_id="INV-001"),
            ]
        }
    )
    seen = []
    poller = PaymentStatusPoller(gateway, "t1", seen.append)
    res = await poller.run(token)

    assert res.reason == PollStop.terminal
    assert res.snapshot.reference_id == "INV-001"
    assert [s.status for s in seen] == ["queued", "PROCESSING", "SUCCEEDED"]
    assert token.delays == [3.0, 6.0]
    assert poller.polls == 3


@pytest.mark.parametrize(
    "status",
    [
        PaymentStatus.succeeded,
        PaymentStatus.failed,
        PaymentStatus.canceled,
        PaymentStatus.expired,
        PaymentStatus.invalid,
    ],
)
@pytest.mark.asyncio
async def test_terminal_statuses_stop_polling(token, status):
    gateway = MockPaymentGateway(statuses={"t1": [snapshot(status.value)]})
    res = await PaymentStatusPoller(gateway, "t1").run(token)
    assert res.reason == PollStop.terminal
    assert gateway.status_requests == ["t1"]
    assert token.delays == []


@pytest.mark.asyncio
async def test_manual_review(token):
    gateway = MockPaymentGateway(
        statuses={"t1": [snapshot("PROCESSING"), snapshot("MANUAL_REVIEW")]}
    )
    res = await PaymentStatusPoller(gateway, "t1").run(token)
    assert res.reason == PollStop.manual_review
    assert len(gateway.status_requests) == 2


@pytest.mark.parametrize("status_code", [400, 404])
@pytest.mark.asyncio
async def test_ticket_lost(token, status_code):
    seen = []
    gateway = MockPaymentGateway(statuses={"t1": [TicketLost(status_code)]})
    res = await PaymentStatusPoller(gateway, "t1", seen.append).run(token)
    assert res.reason == PollStop.ticket_lost
    assert res.snapshot is None
    assert seen == []


@pytest.mark.asyncio
async def test_transient_errors_retried(token):
    gateway = MockPaymentGateway(
        statuses={
            "t1": [
                GatewayTransportError("down"),
                GatewayTransportError("down"),
                snapshot("REQUIRES_ACTION"),
                snapshot("SOMETHING_NEW"),
                snapshot("SUCCEEDED"),
            ]
        }
    )
    seen = []
    res = await PaymentStatusPoller(gateway, "t1", seen.append).run(token)
    assert res.reason == PollStop.terminal
    assert [s.status for s in seen] == ["REQUIRES_ACTION", "SOMETHING_NEW", "SUCCEEDED"]
    assert token.delays == [3.0, 6.0, 12.0, 15.0]


@pytest.mark.asyncio
async def test_response_shape_error_propagates(token):
    gateway = MockPaymentGateway(statuses={"t1": [ResponseShapeError("bad")]})
    with pytest.raises(ResponseShapeError):
        await PaymentStatusPoller(gateway, "t1").run(token)


@pytest.mark.asyncio
async def test_cancelled_before_start(token):
    gateway = MockPaymentGateway()
    token.cancel()
    res = await PaymentStatusPoller(gateway, "t1").run(token)
    assert res.reason == PollStop.cancelled
    assert gateway.status_requests == []


@pytest.mark.asyncio
async def test_cancel_releases_delay():
    gateway = MockPaymentGateway()
    token = CancellationToken()
    poller = PaymentStatusPoller(gateway, "t1", base_delay=60, max_delay=60)
    task = asyncio.create_task(poller.run(token))
    await asyncio.sleep(0.01)

    token.cancel()
    res = await asyncio.wait_for(task, 1)
    assert res.reason == PollStop.cancelled
    assert gateway.status_requests == ["t1"]


class SlowGateway(MockPaymentGateway):
    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def get_payment_status(self, tracking_id):
        self.started.set()
        await self.release.wait()
        return StatusFetched(snapshot("SUCCEEDED", reference_id="INV-LATE"))


@pytest.mark.asyncio
async def test_response_after_cancel_discarded():
    gateway = SlowGateway()
    token = CancellationToken()
    seen = []
    poller = PaymentStatusPoller(gateway, "t1", seen.append)
    task = asyncio.create_task(poller.run(token))

    await gateway.started.wait()
    token.cancel()
    gateway.release.set()

    res = await task
    assert res.reason == PollStop.cancelled
    assert res.snapshot is None
    assert seen == []


@pytest.mark.asyncio
async def test_refuses_concurrent_run():
    gateway = SlowGateway()
    token = CancellationToken()
    poller = PaymentStatusPoller(gateway, "t1")
    task = asyncio.create_task(poller.run(token))
    await gateway.started.wait()

    with pytest.raises(RuntimeError):
        await poller.run(token)

    token.cancel()
    gateway.release.set()
    await task


@pytest.mark.asyncio
async def test_new_poller_restarts_backoff(token):
    gateway = MockPaymentGateway(
        statuses={
            "t1": [snapshot("queued"), snapshot("queued"), snapshot("FAILED")],
            "t2": [snapshot("queued"), snapshot("SUCCEEDED")],
        }
    )
    await PaymentStatusPoller(gateway, "t1").run(token)
    assert token.delays == [3.0, 6.0]

    token.delays.clear()
    await PaymentStatusPoller(gateway, "t2").run(token)
    assert token.delays == [3.0]
