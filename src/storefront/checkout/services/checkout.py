"""Checkout state machine module."""
import asyncio
import uuid
from collections.abc import Callable, Mapping
from enum import Enum
from functools import partial
from typing import Any, Optional, Union

import attrs
from attrs import frozen
from loguru import logger
from storefront.checkout.classifier import build_error_objects
from storefront.checkout.instructions import resolve_instructions
from storefront.checkout.log import AuditLogType, audit_log
from storefront.checkout.models.checkout import (
    CheckoutOutcome,
    CheckoutSession,
    CheckoutStep,
    CustomerInfo,
    FieldErrorSet,
)
from storefront.checkout.models.config import PollingConfig
from storefront.checkout.models.instructions import InstructionConfig
from storefront.checkout.models.payment import (
    PaymentAttempt,
    PaymentStatus,
    PaymentStatusSnapshot,
)
from storefront.checkout.payment.base import (
    CancelPaymentRequest,
    CartTokenError,
    CheckoutCancelError,
    CheckoutStateError,
    CreateInvoiceRequest,
    GatewayTransportError,
    InvoiceCreated,
    InvoiceRejected,
    PaymentGateway,
    PaymentServiceError,
    ResponseShapeError,
)
from storefront.checkout.services.cart import CartProvider, CartTokenCache
from storefront.checkout.services.poller import (
    CancellationToken,
    PaymentStatusPoller,
    PollResult,
    PollStop,
)
from storefront.checkout.util import update_nested

METHODS_LOAD_FAILED = "Gagal memuat metode pembayaran. Silakan coba lagi."
CART_LOAD_FAILED = "Gagal memuat keranjang. Silakan refresh halaman."
CART_TOKEN_MISSING = "Keranjang tidak ditemukan. Silakan refresh halaman."
PAYMENT_FAILED = "Pembayaran gagal. Silakan coba lagi."
PAYMENT_ERROR = "Terjadi kesalahan saat memproses pembayaran. Silakan coba lagi."
TICKET_LOST = "Sesi pembayaran tidak ditemukan atau sudah kedaluwarsa."
MANUAL_REVIEW = "Pembayaran sedang ditinjau. Kami akan mengabari Anda."
CANCEL_FAILED = "Pembayaran tidak dapat dibatalkan."


class CheckoutEventType(str, Enum):
    """Checkout event types."""

    transition = "transition"
    """The step changed."""

    update = "update"
    """Session data changed without a step change."""

    snapshot = "snapshot"
    """A payment status snapshot was applied."""

    notification = "notification"
    """A one-time message for the customer."""


@frozen
class CheckoutEvent:
    """An event published to checkout listeners."""

    type: CheckoutEventType
    session: CheckoutSession
    step: CheckoutStep
    message: Optional[str] = None


Listener = Callable[[CheckoutEvent], Any]

_RESETTABLE_STEPS = (CheckoutStep.payment, CheckoutStep.processing)

_OUTCOMES = {
    PaymentStatus.succeeded: CheckoutOutcome.succeeded,
    PaymentStatus.canceled: CheckoutOutcome.canceled,
    PaymentStatus.expired: CheckoutOutcome.expired,
}

_OUTCOME_AUDIT_TYPES = {
    CheckoutOutcome.succeeded: AuditLogType.payment_succeeded,
    CheckoutOutcome.canceled: AuditLogType.payment_canceled,
    CheckoutOutcome.failed: AuditLogType.payment_failed,
    CheckoutOutcome.expired: AuditLogType.payment_failed,
}


class CheckoutStateMachine:
    """Drives one checkout from loading to a finished payment.

    At most one payment attempt is active at a time. Starting a new attempt,
    resetting, canceling or closing stops the poller of the previous one, and
    snapshots from a stale attempt are ignored.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        cart_provider: CartProvider,
        token_cache: CartTokenCache,
        instruction_config: Optional[InstructionConfig] = None,
        *,
        polling: PollingConfig = PollingConfig(),
        authenticated: bool = False,
        initial_outcome: Union[CheckoutOutcome, str, None] = None,
        initial_reference_id: Optional[str] = None,
        id: Optional[str] = None,
    ):
        self.gateway = gateway
        self.cart_provider = cart_provider
        self.token_cache = token_cache
        self.instruction_config = instruction_config
        self.polling = polling
        self.authenticated = authenticated
        self.id = id or uuid.uuid4().hex

        if isinstance(initial_outcome, str):
            try:
                initial_outcome = CheckoutOutcome.parse(initial_outcome)
            except ValueError:
                logger.warning(f"Ignoring unknown checkout outcome: {initial_outcome}")
                initial_outcome = None
        self.initial_outcome = initial_outcome
        self.initial_reference_id = initial_reference_id

        self.session = CheckoutSession()
        self._listeners: list[Listener] = []
        self._poll_task: Optional[asyncio.Task] = None
        self._poll_token: Optional[CancellationToken] = None
        self._closed = False

    def __repr__(self):
        return f"<CheckoutStateMachine id={self.id} step={self.session.step.value}>"

    @property
    def step(self) -> CheckoutStep:
        """The current step."""
        return self.session.step

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_polling(self) -> bool:
        """Whether a poller is running."""
        return self._poll_task is not None and not self._poll_task.done()

    async def __aenter__(self) -> "CheckoutStateMachine":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for :class:`CheckoutEvent`.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def start(self):
        """Load the cart and payment methods and move to ``info``.

        When constructed with a finished outcome (a return from a gateway redirect),
        go straight to ``success`` without any network call.
        """
        self._require_step(CheckoutStep.loading)

        if self.initial_outcome is not None and self.initial_reference_id:
            self.session.outcome = self.initial_outcome
            self.session.reference_id = self.initial_reference_id
            self._audit(
                _OUTCOME_AUDIT_TYPES[self.initial_outcome],
                "Returned from gateway, reference {}, outcome {}",
                self.initial_reference_id,
                self.initial_outcome.value,
            )
            self._transition(CheckoutStep.success)
            return

        cart_res, methods_res = await asyncio.gather(
            self.cart_provider.get_cart(),
            self.gateway.get_payment_methods(),
            return_exceptions=True,
        )
        if self._closed:
            return

        messages = []
        if isinstance(methods_res, PaymentServiceError):
            logger.opt(exception=methods_res).warning(
                f"{self}: failed to load payment methods"
            )
            messages.append(METHODS_LOAD_FAILED)
        elif isinstance(methods_res, BaseException):
            raise methods_res
        else:
            self.session.payment_methods = methods_res
            self._select_default_channel()

        if isinstance(cart_res, PaymentServiceError):
            logger.opt(exception=cart_res).warning(f"{self}: failed to load cart")
            messages.append(CART_LOAD_FAILED)
        elif isinstance(cart_res, BaseException):
            raise cart_res
        else:
            self.session.cart = cart_res
            if cart_res.code:
                self.session.coupon_code = cart_res.code

        self.session.message = " ".join(messages) if messages else None
        self._audit(AuditLogType.checkout_start, "Checkout started")
        self._transition(CheckoutStep.info)

    def select_channel(self, method: Optional[str], channel_code: str):
        """Select a payment channel.

        Changing the channel clears its properties and channel errors.
        """
        self._require_step(CheckoutStep.info, CheckoutStep.payment)
        session = self.session
        if channel_code != session.selected_channel_code:
            session.channel_properties = {}
            session.field_errors = attrs.evolve(
                session.field_errors, channel={}, has_channel_errors=False
            )
        session.selected_method = method
        session.selected_channel_code = channel_code
        self._publish(CheckoutEventType.update)

    def set_channel_property(self, path: str, value: Any):
        """Set a channel property by dotted path, e.g. ``card.number``."""
        self._require_step(CheckoutStep.info, CheckoutStep.payment)
        self.session.channel_properties = update_nested(
            self.session.channel_properties, path, value
        )
        self._publish(CheckoutEventType.update)

    def set_coupon_code(self, code: Optional[str]):
        """Set or clear the coupon code."""
        self._require_step(CheckoutStep.info, CheckoutStep.payment)
        code = code.strip() if code else ""
        self.session.coupon_code = code or None
        self._publish(CheckoutEventType.update)

    def submit_customer_info(self, info: CustomerInfo):
        """Store the customer info and move to ``payment``."""
        self._require_step(CheckoutStep.info, CheckoutStep.payment)
        self.session.customer_info = info
        self.session.field_errors = attrs.evolve(
            self.session.field_errors, customer={}, has_customer_errors=False
        )
        self._transition(CheckoutStep.payment)

    async def submit_payment(self):
        """Create an invoice for the selected channel and start polling its status.

        Raises:
            CheckoutStateError: If not in the ``payment`` step or no channel is
                selected.
        """
        self._require_step(CheckoutStep.payment)
        session = self.session
        if not session.selected_channel_code:
            raise CheckoutStateError("No payment channel selected")

        await self._stop_polling()
        self._clear_attempt()
        self._transition(CheckoutStep.loading_pay)

        try:
            cart_token = await self.token_cache.ensure_token()
        except CartTokenError:
            logger.warning(f"{self}: no cart token, invoice not created")
            self._fail(CART_TOKEN_MISSING)
            return

        if self._closed:
            return

        request = CreateInvoiceRequest(
            cart_token=cart_token,
            channel_code=session.selected_channel_code,
            payment_method=session.selected_method,
            channel_properties=dict(session.channel_properties),
            coupon_code=session.coupon_code,
            customer=None if self.authenticated else session.customer_info,
        )

        self._audit(
            AuditLogType.payment_submit,
            "Creating invoice, channel {}",
            request.channel_code,
        )

        try:
            result = await self.gateway.create_invoice(request)
        except GatewayTransportError as e:
            if not self._closed:
                logger.warning(f"{self}: invoice request failed: {e}")
                self._fail(PAYMENT_ERROR)
            return
        except ResponseShapeError:
            if not self._closed:
                logger.opt(exception=True).error(f"{self}: invalid invoice response")
                self._fail(PAYMENT_ERROR)
            return

        if self._closed:
            return

        if isinstance(result, InvoiceRejected):
            self._apply_errors(result.errors)
        elif isinstance(result, InvoiceCreated):
            attempt = PaymentAttempt(tracking_id=result.tracking_id)
            session.attempt = attempt
            self._transition(CheckoutStep.processing)
            self._start_polling(attempt)
        else:
            self._fail(result.message or PAYMENT_FAILED)

    async def cancel_payment(self) -> Optional[bool]:
        """Cancel the current payment.

        Returns:
            True if canceled, False if the gateway refused, or None if there is
                nothing to cancel.
        """
        attempt = self.session.attempt
        if (
            self._closed
            or self.session.step != CheckoutStep.processing
            or attempt is None
            or not attempt.reference_id
            or not attempt.cancellation_token
        ):
            return None

        request = CancelPaymentRequest(
            reference_id=attempt.reference_id,
            cancellation_token=attempt.cancellation_token,
        )
        try:
            await self.gateway.cancel_payment(request)
        except (CheckoutCancelError, GatewayTransportError) as e:
            logger.warning(f"{self}: cancel failed: {e}")
            if self._is_current(attempt):
                self._notify(CANCEL_FAILED)
            return False

        if (
            not self._is_current(attempt)
            or self.session.step != CheckoutStep.processing
        ):
            # the attempt already settled or was replaced
            return True

        await self._stop_polling()
        self._finish(CheckoutOutcome.canceled, attempt.reference_id)
        return True

    async def reset_for_new_payment(self):
        """Discard the current attempt and return to ``payment``.

        Raises:
            CheckoutStateError: If the checkout succeeded or the step does not
                allow a new payment.
        """
        session = self.session
        if session.step == CheckoutStep.success:
            if session.outcome == CheckoutOutcome.succeeded:
                raise CheckoutStateError("The payment already succeeded")
        else:
            self._require_step(*_RESETTABLE_STEPS)

        await self._stop_polling()
        self._clear_attempt()
        session.outcome = None
        session.reference_id = None
        self._transition(CheckoutStep.payment)

    async def wait(self):
        """Wait for the current poller, if any, to stop."""
        task = self._poll_task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def close(self):
        """Stop polling and drop all listeners."""
        if self._closed:
            return
        self._closed = True
        await self._stop_polling()
        self._listeners.clear()

    def _require_step(self, *steps: CheckoutStep):
        if self._closed:
            raise CheckoutStateError(f"{self} is closed")
        if self.session.step not in steps:
            raise CheckoutStateError(
                f"Not allowed in step {self.session.step.value}"
            )

    def _select_default_channel(self):
        # only the first category is considered
        first = next(iter(self.session.payment_methods.items()), None)
        if first is not None and first[1]:
            self.session.selected_method = first[0]
            self.session.selected_channel_code = first[1][0].code

    def _clear_attempt(self):
        session = self.session
        session.attempt = None
        session.field_errors = FieldErrorSet()
        session.instructions = None
        session.message = None

    def _start_polling(self, attempt: PaymentAttempt):
        token = CancellationToken()
        poller = PaymentStatusPoller(
            self.gateway,
            attempt.tracking_id,
            partial(self._on_snapshot, attempt, token),
            base_delay=self.polling.base_delay,
            max_delay=self.polling.max_delay,
        )
        self._poll_token = token
        self._poll_task = asyncio.create_task(self._poll(attempt, poller, token))

    async def _stop_polling(self):
        token, task = self._poll_token, self._poll_task
        self._poll_token = None
        self._poll_task = None
        if token is not None:
            token.cancel()
        if task is not None and task is not asyncio.current_task():
            # also interrupts a status request in flight
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    def _is_current(self, attempt: PaymentAttempt) -> bool:
        return not self._closed and self.session.attempt is attempt

    async def _poll(
        self,
        attempt: PaymentAttempt,
        poller: PaymentStatusPoller,
        token: CancellationToken,
    ):
        try:
            result = await poller.run(token)
        except ResponseShapeError:
            logger.opt(exception=True).error(f"{self}: invalid status response")
            if self._is_current(attempt) and not token.cancelled:
                self._fail(PAYMENT_ERROR)
            return

        if token.cancelled or not self._is_current(attempt):
            return

        self._handle_poll_result(attempt, result)

    def _on_snapshot(
        self,
        attempt: PaymentAttempt,
        token: CancellationToken,
        snapshot: PaymentStatusSnapshot,
    ):
        if token.cancelled or not self._is_current(attempt):
            return

        attempt.apply_snapshot(snapshot)
        if attempt.reference_id:
            self.session.reference_id = attempt.reference_id

        status = snapshot.get_status()
        if status == PaymentStatus.requires_action or snapshot.actions:
            self.session.instructions = resolve_instructions(
                self.instruction_config,
                self.session.selected_channel_code or "",
                snapshot.actions,
            )

        self._publish(CheckoutEventType.snapshot)

    def _handle_poll_result(self, attempt: PaymentAttempt, result: PollResult):
        if result.reason == PollStop.ticket_lost:
            logger.info(f"{self}: tracking ticket lost")
            self._fail(TICKET_LOST)
            return
        elif result.reason == PollStop.manual_review:
            self._audit(
                AuditLogType.payment_manual_review,
                "Payment {} held for manual review",
                attempt.reference_id,
            )
            self._notify(MANUAL_REVIEW)
            return

        snapshot = result.snapshot
        status = snapshot.get_status() if snapshot is not None else None
        if status in _OUTCOMES:
            self._finish(_OUTCOMES[status], attempt.reference_id)
            return

        message = snapshot.message if snapshot is not None else None
        self._audit(
            AuditLogType.payment_failed,
            "Payment {} failed: {}",
            attempt.reference_id,
            message,
        )
        if snapshot is not None and snapshot.errors:
            self._apply_errors(snapshot.errors, message)
        else:
            self._fail(message or PAYMENT_FAILED)

    def _apply_errors(self, errors: Mapping[str, Any], message: Optional[str] = None):
        field_errors = build_error_objects(errors)
        self.session.field_errors = field_errors
        self.session.attempt = None
        self.session.instructions = None
        self.session.message = message
        if field_errors.has_customer_errors:
            self._transition(CheckoutStep.info)
        else:
            self._transition(CheckoutStep.payment)

    def _fail(self, message: str):
        self.session.attempt = None
        self.session.instructions = None
        self.session.message = message
        self._transition(CheckoutStep.payment)

    def _finish(self, outcome: CheckoutOutcome, reference_id: Optional[str]):
        session = self.session
        session.outcome = outcome
        if reference_id:
            session.reference_id = reference_id
        session.instructions = None
        self._audit(
            _OUTCOME_AUDIT_TYPES[outcome],
            "Payment {} finished: {}",
            session.reference_id,
            outcome.value,
        )
        self._transition(CheckoutStep.success)

    def _transition(self, step: CheckoutStep):
        prev = self.session.step
        self.session.step = step
        logger.debug(f"{self}: {prev.value} -> {step.value}")
        self._publish(CheckoutEventType.transition)

    def _notify(self, message: str):
        self._publish(CheckoutEventType.notification, message)

    def _publish(self, type: CheckoutEventType, message: Optional[str] = None):
        event = CheckoutEvent(type, self.session, self.session.step, message)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.opt(exception=True).error(
                    f"{self}: listener {listener!r} raised"
                )

    def _audit(self, type: AuditLogType, message: str, *args: Any):
        audit_log.bind(type=type, session=self.id).info(message, *args)
