"""Payment models."""
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from attrs import define, field, frozen

DEFAULT_PAYMENT_TIMEOUT = timedelta(hours=1)
"""How long a transaction stays payable when the gateway omits an expiry date."""


class PaymentStatus(str, Enum):
    """Status of a payment as reported by the status endpoint."""

    queued = "queued"
    """The attempt is queued and has no invoice yet."""

    processing = "PROCESSING"
    """The gateway is processing the payment."""

    requires_action = "REQUIRES_ACTION"
    """The customer must act (pay the VA, scan the QR, follow a link)."""

    manual_review = "MANUAL_REVIEW"
    """The payment is held for manual review."""

    succeeded = "SUCCEEDED"
    failed = "FAILED"
    canceled = "CANCELED"
    expired = "EXPIRED"

    invalid = "INVALID"
    """The gateway rejected the submitted data."""

    @property
    def is_terminal(self) -> bool:
        """Whether no further change is expected without a new attempt."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        PaymentStatus.succeeded,
        PaymentStatus.failed,
        PaymentStatus.canceled,
        PaymentStatus.expired,
        PaymentStatus.invalid,
    }
)
"""Statuses after which polling stops."""


class ActionType(str, Enum):
    """Gateway action types."""

    present_to_customer = "PRESENT_TO_CUSTOMER"
    redirect_customer = "REDIRECT_CUSTOMER"
    redirect = "REDIRECT"


class ActionDescriptor(str, Enum):
    """Gateway action descriptors."""

    virtual_account_number = "VIRTUAL_ACCOUNT_NUMBER"
    payment_code = "PAYMENT_CODE"
    qr_string = "QR_STRING"
    web_url = "WEB_URL"
    deeplink_url = "DEEPLINK_URL"


REDIRECT_ACTION_TYPES = frozenset(
    {ActionType.redirect_customer.value, ActionType.redirect.value}
)
REDIRECT_ACTION_DESCRIPTORS = frozenset(
    {ActionDescriptor.web_url.value, ActionDescriptor.deeplink_url.value}
)


@frozen(kw_only=True)
class TransactionAction:
    """An instruction primitive provided by the gateway."""

    type: str
    descriptor: Optional[str] = None
    value: Optional[str] = None
    url: Optional[str] = None

    @property
    def is_redirect(self) -> bool:
        """Whether this action sends the customer to a URL."""
        return (
            self.type in REDIRECT_ACTION_TYPES
            and self.descriptor in REDIRECT_ACTION_DESCRIPTORS
        )


@frozen(kw_only=True)
class Transaction:
    """Gateway transaction details attached to a status snapshot."""

    actions: Sequence[TransactionAction] = ()
    payment_method: Optional[str] = None
    cancellation_token: Optional[str] = field(default=None, repr=False)
    amount: Optional[int] = None
    created_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None

    def get_expires_at(self) -> Optional[datetime]:
        """Get when the transaction stops accepting payment."""
        if self.expired_at is not None:
            return self.expired_at
        elif self.created_at is not None:
            return self.created_at + DEFAULT_PAYMENT_TIMEOUT
        else:
            return None

    def get_redirect_url(self) -> Optional[str]:
        """Get the URL of the first redirect action, if any."""
        for action in self.actions:
            if action.is_redirect and action.value:
                return action.value
        return None


@frozen(kw_only=True)
class PaymentStatusSnapshot:
    """The status of a payment at one point in time."""

    status: str
    """The raw status string."""

    reference_id: Optional[str] = None
    """The durable reference ID, once the gateway has recorded the payment."""

    transaction: Optional[Transaction] = None
    """The transaction details."""

    message: Optional[str] = None
    """A message from the gateway."""

    errors: Optional[Mapping[str, Any]] = None
    """Field validation errors, for ``INVALID`` payments."""

    def get_status(self) -> Optional[PaymentStatus]:
        """Get the :class:`PaymentStatus`, or None if the status is unrecognized."""
        try:
            return PaymentStatus(self.status)
        except ValueError:
            return None

    @property
    def actions(self) -> Sequence[TransactionAction]:
        """The transaction actions, or an empty sequence."""
        return self.transaction.actions if self.transaction is not None else ()


@define
class PaymentAttempt:
    """A single submission of a payment.

    Holds a tracking ticket until the gateway durably records the payment, after
    which the reference ID supersedes it.
    """

    tracking_id: Optional[str] = None
    reference_id: Optional[str] = None
    snapshot: Optional[PaymentStatusSnapshot] = None

    def __attrs_post_init__(self):
        if (self.tracking_id is None) == (self.reference_id is None):
            raise ValueError("Exactly one of tracking_id or reference_id is required")

    @property
    def status(self) -> Optional[PaymentStatus]:
        """The status of the latest snapshot."""
        return self.snapshot.get_status() if self.snapshot is not None else None

    @property
    def cancellation_token(self) -> Optional[str]:
        """The cancellation token of the latest snapshot's transaction."""
        if self.snapshot is None or self.snapshot.transaction is None:
            return None
        return self.snapshot.transaction.cancellation_token

    def apply_snapshot(self, snapshot: PaymentStatusSnapshot):
        """Replace the latest snapshot.

        Adopts the snapshot's reference ID, discarding the tracking ticket.
        """
        self.snapshot = snapshot
        if snapshot.reference_id:
            self.reference_id = snapshot.reference_id
            self.tracking_id = None


class FeeType(str, Enum):
    """How a channel fee is calculated."""

    fixed = "fixed"
    percentage = "percentage"


@frozen(kw_only=True)
class PaymentChannel:
    """A payment channel offered by the payment methods endpoint."""

    code: str
    name: str
    fee_type: str = FeeType.fixed.value
    fee_value: float = 0
    uuid: Optional[str] = None
    logo: Optional[str] = None

    def get_fee(self, total: int) -> int:
        """Get the fee charged for paying ``total`` with this channel."""
        if self.fee_type == FeeType.percentage:
            return int(round(total * self.fee_value / 100))
        else:
            return int(round(self.fee_value))


PaymentMethods = Mapping[str, Sequence[PaymentChannel]]
"""Channels grouped by category."""
