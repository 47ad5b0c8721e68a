"""Payment status polling."""
import asyncio
from collections.abc import Callable
from enum import Enum
from typing import Optional

from attrs import frozen
from loguru import logger
from storefront.checkout.models.payment import PaymentStatus, PaymentStatusSnapshot
from storefront.checkout.payment.base import (
    GatewayTransportError,
    PaymentGateway,
    TicketLost,
)

DEFAULT_BASE_DELAY = 3.0
"""Seconds to wait before the first re-poll."""

DEFAULT_MAX_DELAY = 15.0
"""The longest wait between polls, in seconds."""

SnapshotCallback = Callable[[PaymentStatusSnapshot], None]


class CancellationToken:
    """Cancels a poll loop and releases its pending delay."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        """Request cancellation. Idempotent."""
        self._event.set()

    async def sleep(self, delay: float) -> bool:
        """Wait for ``delay`` seconds or until cancelled.

        Returns:
            True if the full delay elapsed, False if cancelled.
        """
        if self.cancelled:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return True
        return False


class PollStop(str, Enum):
    """Why a poll loop stopped."""

    terminal = "terminal"
    """A terminal status was reached."""

    manual_review = "manual_review"
    """The payment is held for manual review."""

    ticket_lost = "ticket_lost"
    """The tracking ticket is invalid or expired."""

    cancelled = "cancelled"
    """The loop was cancelled."""


@frozen
class PollResult:
    """The result of a poll loop."""

    reason: PollStop
    snapshot: Optional[PaymentStatusSnapshot] = None
    """The last snapshot, for ``terminal`` and ``manual_review``."""


def get_backoff_delay(
    n: int,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
) -> float:
    """Get the delay before re-poll ``n`` (0-indexed)."""
    # cap the exponent so long sessions do not build huge floats
    if n >= 32:
        return max_delay
    return min(base_delay * 2**n, max_delay)


class PaymentStatusPoller:
    """Polls the status of one tracking ticket until it settles.

    Polling is sequential: the next fetch is only scheduled after the previous
    response has been handled. There is no retry limit; transport failures are
    retried on the backoff schedule until the loop stops or is cancelled.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        tracking_id: str,
        on_snapshot: Optional[SnapshotCallback] = None,
        *,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
    ):
        if not tracking_id:
            raise ValueError("A tracking ID is required")

        self.gateway = gateway
        self.tracking_id = tracking_id
        self.on_snapshot = on_snapshot
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.polls = 0
        self._running = False

    def __repr__(self):
        return f"<PaymentStatusPoller tracking_id={self.tracking_id}>"

    async def run(self, token: CancellationToken) -> PollResult:
        """Poll until the payment settles or ``token`` is cancelled.

        Raises:
            ResponseShapeError: If a status response cannot be understood.
        """
        if self._running:
            raise RuntimeError(f"{self} is already running")

        self._running = True
        try:
            return await self._run(token)
        finally:
            self._running = False

    async def _run(self, token: CancellationToken) -> PollResult:
        n = 0
        while not token.cancelled:
            self.polls += 1
            try:
                result = await self.gateway.get_payment_status(self.tracking_id)
            except GatewayTransportError as e:
                if token.cancelled:
                    break
                logger.debug(f"{self}: status check failed, will retry: {e}")
                result = None

            # a response arriving after cancellation is discarded
            if token.cancelled:
                break

            if isinstance(result, TicketLost):
                logger.info(f"{self}: ticket lost ({result.status_code})")
                return PollResult(PollStop.ticket_lost)
            elif result is not None:
                snapshot = result.snapshot
                if self.on_snapshot is not None:
                    self.on_snapshot(snapshot)

                status = snapshot.get_status()
                if status == PaymentStatus.manual_review:
                    return PollResult(PollStop.manual_review, snapshot)
                elif status is not None and status.is_terminal:
                    return PollResult(PollStop.terminal, snapshot)

            delay = get_backoff_delay(n, self.base_delay, self.max_delay)
            n += 1
            if not await token.sleep(delay):
                break

        return PollResult(PollStop.cancelled)
