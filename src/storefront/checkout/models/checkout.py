"""Checkout session models."""
from collections.abc import Sequence
from enum import Enum
from typing import Any, Optional

from attrs import Factory, define, frozen
from storefront.checkout.models.cart import CartData, CartItem
from storefront.checkout.models.instructions import ResolvedInstructions
from storefront.checkout.models.payment import (
    PaymentAttempt,
    PaymentChannel,
    PaymentMethods,
)


class CheckoutStep(str, Enum):
    """Step of the checkout flow."""

    loading = "loading"
    """Loading the cart and payment methods."""

    info = "info"
    """Entering customer info."""

    payment = "payment"
    """Choosing a payment channel."""

    loading_pay = "loadingPay"
    """Submitting the payment."""

    processing = "processing"
    """Waiting for the payment to complete."""

    success = "success"
    """The checkout is finished, see :class:`CheckoutOutcome`."""

    @property
    def is_busy(self) -> bool:
        """Whether the step accepts no user input."""
        return self in (CheckoutStep.loading, CheckoutStep.loading_pay)


class CheckoutOutcome(str, Enum):
    """How a finished checkout ended."""

    succeeded = "succeeded"
    canceled = "canceled"
    failed = "failed"
    expired = "expired"

    @classmethod
    def parse(cls, value: str) -> "CheckoutOutcome":
        """Parse an outcome, accepting the status names used in return URLs."""
        aliases = {
            "success": cls.succeeded,
            "cancel": cls.canceled,
            "cancelled": cls.canceled,
        }
        normalized = value.strip().lower()
        if normalized in aliases:
            return aliases[normalized]
        return cls(normalized)


class CustomerField(str, Enum):
    """Customer info fields."""

    name = "name"
    email = "email"
    phone = "phone"


@frozen
class CustomerInfo:
    """Customer contact info."""

    name: str = ""
    email: str = ""
    phone: str = ""


@frozen
class FieldErrorSet:
    """Validation errors split between the customer form and the channel form."""

    customer: dict[CustomerField, str] = Factory(dict)
    """Messages by customer field."""

    channel: dict[str, str] = Factory(dict)
    """Messages by the original (possibly dotted) field path."""

    has_customer_errors: bool = False
    has_channel_errors: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.has_customer_errors and not self.has_channel_errors


@define
class CheckoutSession:
    """State of one checkout, owned by the checkout state machine."""

    step: CheckoutStep = CheckoutStep.loading
    customer_info: CustomerInfo = CustomerInfo()
    payment_methods: PaymentMethods = Factory(dict)
    selected_method: Optional[str] = None
    selected_channel_code: Optional[str] = None
    channel_properties: dict[str, Any] = Factory(dict)
    coupon_code: Optional[str] = None
    cart: Optional[CartData] = None
    attempt: Optional[PaymentAttempt] = None
    outcome: Optional[CheckoutOutcome] = None
    reference_id: Optional[str] = None
    field_errors: FieldErrorSet = Factory(FieldErrorSet)
    instructions: Optional[ResolvedInstructions] = None
    message: Optional[str] = None
    """A banner message for the most recent failure."""

    @property
    def line_items(self) -> Sequence[CartItem]:
        return self.cart.items if self.cart is not None else ()

    @property
    def total(self) -> int:
        return self.cart.total if self.cart is not None else 0

    @property
    def discount(self) -> int:
        return self.cart.discount if self.cart is not None else 0

    @property
    def selected_channel(self) -> Optional[PaymentChannel]:
        """The selected :class:`PaymentChannel`, if it is in the catalog."""
        if self.selected_channel_code is None:
            return None

        # prefer the selected category, but channel codes are unique in practice
        categories = list(self.payment_methods.items())
        categories.sort(key=lambda item: item[0] != self.selected_method)
        for _, channels in categories:
            for channel in channels:
                if channel.code == self.selected_channel_code:
                    return channel
        return None

    @property
    def fee(self) -> int:
        """The fee of the selected channel."""
        channel = self.selected_channel
        return channel.get_fee(self.total) if channel is not None else 0

    @property
    def grand_total(self) -> int:
        """The total including the channel fee."""
        return self.total + self.fee
