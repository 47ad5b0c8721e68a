"""Base payment gateway classes."""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Optional, Union

from attrs import Factory, field, frozen
from storefront.checkout.models.checkout import CustomerInfo
from storefront.checkout.models.payment import PaymentMethods, PaymentStatusSnapshot


class PaymentServiceError(RuntimeError):
    """Raised when an operation with the payment gateway does not succeed."""

    pass


class GatewayTransportError(PaymentServiceError):
    """Raised when the gateway could not be reached or returned a non-JSON body."""

    pass


class ResponseShapeError(ValueError, PaymentServiceError):
    """Raised when a gateway response has an unrecognized shape."""

    pass


class CartTokenError(PaymentServiceError):
    """Raised when no cart token is available."""

    pass


class CheckoutStateError(PaymentServiceError):
    """Raised when an operation is not allowed in the current checkout step."""


class CheckoutCancelError(CheckoutStateError):
    """Raised when a payment could not be canceled."""

    pass


@frozen(kw_only=True)
class CreateInvoiceRequest:
    """Request to create an invoice for the cart."""

    cart_token: str = field(repr=False)
    """The cart token."""

    channel_code: str
    """The payment channel code."""

    payment_method: Optional[str] = None
    """The payment method category."""

    channel_properties: dict[str, Any] = Factory(dict)
    """Channel-specific inputs, like card details."""

    coupon_code: Optional[str] = None
    """The applied coupon code."""

    customer: Optional[CustomerInfo] = None
    """Customer info, when the customer is not signed in."""


@frozen(kw_only=True)
class CancelPaymentRequest:
    """Request to cancel a payment."""

    reference_id: str
    cancellation_token: str = field(repr=False)


@frozen
class InvoiceCreated:
    """The invoice request was queued."""

    tracking_id: str
    """The tracking ticket to poll."""


@frozen
class InvoiceRejected:
    """The invoice request failed validation."""

    errors: Mapping[str, Any]
    """Messages by field path."""


@frozen
class InvoiceFailed:
    """The invoice request was refused for another reason."""

    message: Optional[str] = None


InvoiceResult = Union[InvoiceCreated, InvoiceRejected, InvoiceFailed]


@frozen
class StatusFetched:
    """A status snapshot was fetched."""

    snapshot: PaymentStatusSnapshot


@frozen
class TicketLost:
    """The tracking ticket is invalid or expired."""

    status_code: int


StatusResult = Union[StatusFetched, TicketLost]


class PaymentGateway(ABC):
    """Payment gateway base class.

    Expected outcomes (validation failures, expired tickets) are returned as values.
    Methods raise :class:`GatewayTransportError` when the gateway cannot be reached and
    :class:`ResponseShapeError` when a response cannot be understood.
    """

    @abstractmethod
    async def get_payment_methods(self) -> PaymentMethods:
        """Get the available payment channels, by category."""
        ...

    @abstractmethod
    async def create_invoice(self, request: CreateInvoiceRequest) -> InvoiceResult:
        """Create an invoice.

        Args:
            request: A :class:`CreateInvoiceRequest` instance.

        Returns:
            An :class:`InvoiceCreated`, :class:`InvoiceRejected` or
                :class:`InvoiceFailed`.
        """
        ...

    @abstractmethod
    async def get_payment_status(self, tracking_id: str) -> StatusResult:
        """Get the current status of a payment.

        Args:
            tracking_id: The tracking ticket.

        Returns:
            A :class:`StatusFetched`, or :class:`TicketLost` if the ticket is gone.
        """
        ...

    @abstractmethod
    async def cancel_payment(self, request: CancelPaymentRequest):
        """Cancel a payment.

        Raises:
            CheckoutCancelError: if the payment could not be canceled.
        """
        ...
