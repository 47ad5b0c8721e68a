"""Validation error classification."""
from collections.abc import Mapping
from typing import Any, Literal

from storefront.checkout.models.checkout import CustomerField, FieldErrorSet

CUSTOMER_FIELD_ALIASES: Mapping[str, CustomerField] = {
    "name": CustomerField.name,
    "customer.name": CustomerField.name,
    "email": CustomerField.email,
    "customer.email": CustomerField.email,
    "phone": CustomerField.phone,
    "phone_number": CustomerField.phone,
    "customer.phone": CustomerField.phone,
    "customer.phone_number": CustomerField.phone,
}
"""Upstream field paths that belong to the customer info form."""

ErrorScope = Literal["customer", "channel"]


def classify_error_field(field: str) -> ErrorScope:
    """Get which form an upstream error field belongs to."""
    return "customer" if field in CUSTOMER_FIELD_ALIASES else "channel"


def _first_message(messages: Any) -> str:
    if isinstance(messages, (list, tuple)):
        return str(messages[0]) if messages else ""
    return str(messages)


def build_error_objects(errors: Mapping[str, Any]) -> FieldErrorSet:
    """Split an upstream validation payload into customer and channel errors.

    Only the first message of each field is kept. Channel errors keep their original
    field path so nested channel property inputs can be targeted.

    Args:
        errors: Messages, or lists of messages, by field path.

    Returns:
        A :class:`FieldErrorSet`.
    """
    customer: dict[CustomerField, str] = {}
    channel: dict[str, str] = {}

    for field, messages in errors.items():
        message = _first_message(messages)
        if classify_error_field(field) == "customer":
            customer.setdefault(CUSTOMER_FIELD_ALIASES[field], message)
        else:
            channel[field] = message

    return FieldErrorSet(
        customer=customer,
        channel=channel,
        has_customer_errors=len(customer) > 0,
        has_channel_errors=len(channel) > 0,
    )
