"""Config models."""
from pathlib import Path
from typing import Optional

from attrs import field, frozen, validators


@frozen
class EndpointConfig:
    """Upstream API paths, relative to the API base URL."""

    payment_methods: str = "api/v1/payment/methods"
    create_invoice: str = "api/v1/payment/invoice"
    payment_status: str = "api/v1/payment/status/{tracking_id}"
    cancel_payment: str = "api/v1/payment/cancel"
    cart: str = "api/v1/cart"
    cart_token: str = "api/cart/token/generate"


@frozen
class ApiConfig:
    base_url: str
    """The upstream commerce API base URL."""

    user_agent: str = "Storefront Checkout 0.1"
    """User agent."""

    endpoints: EndpointConfig = EndpointConfig()


def _validate_max_delay(instance, attribute, value):
    if value < instance.base_delay:
        raise ValueError("max_delay must not be less than base_delay")


@frozen
class PollingConfig:
    """Payment status polling settings, in seconds."""

    base_delay: float = field(default=3.0, validator=validators.gt(0))
    """The delay before the first re-poll."""

    max_delay: float = field(
        default=15.0, validator=[validators.gt(0), _validate_max_delay]
    )
    """The longest delay between polls."""


@frozen
class InstructionsConfig:
    """Where to load the payment instruction catalog from."""

    path: Optional[Path] = None
    url: Optional[str] = None


@frozen
class Config:
    """The main config class."""

    api: ApiConfig
    polling: PollingConfig = PollingConfig()
    instructions: InstructionsConfig = InstructionsConfig()
