"""Upstream commerce API payment gateway."""
from typing import Any, Optional

import httpx
from cattrs import BaseValidationError
from loguru import logger
from storefront.checkout.http_client import get_http_client
from storefront.checkout.models.config import EndpointConfig
from storefront.checkout.models.payment import (
    PaymentChannel,
    PaymentMethods,
    PaymentStatusSnapshot,
)
from storefront.checkout.payment.base import (
    CancelPaymentRequest,
    CheckoutCancelError,
    CreateInvoiceRequest,
    GatewayTransportError,
    InvoiceCreated,
    InvoiceFailed,
    InvoiceRejected,
    InvoiceResult,
    PaymentGateway,
    ResponseShapeError,
    StatusFetched,
    StatusResult,
    TicketLost,
)
from storefront.checkout.serialization import get_converter
from storefront.checkout.serialization.common import json_loads

TICKET_LOST_STATUSES = (400, 404)
"""Status codes meaning a tracking ticket is invalid or expired."""

JSON_HEADERS = {"Content-Type": "application/json"}

STRUCTURE_ERRORS = (
    BaseValidationError,
    AttributeError,
    KeyError,
    TypeError,
    ValueError,
)
"""Errors raised when structuring an unexpected payload."""


async def send_request(
    client: httpx.AsyncClient, method: str, url: str, **kwargs: Any
) -> httpx.Response:
    """Send a request.

    Raises:
        GatewayTransportError: If the request could not be sent.
    """
    try:
        return await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        raise GatewayTransportError(f"{method} {url} failed: {e}") from e


def parse_json(response: httpx.Response) -> Any:
    """Parse a JSON response body.

    Raises:
        GatewayTransportError: If the body is not JSON.
    """
    try:
        return json_loads(response.content)
    except ValueError as e:
        raise GatewayTransportError(
            f"Invalid JSON from {response.request.url} ({response.status_code})"
        ) from e


def get_success_data(doc: Any) -> Any:
    """Get the ``data`` of a ``{"status": "success", "data": ...}`` envelope.

    Raises:
        ResponseShapeError: If ``doc`` is not a success envelope.
    """
    if not isinstance(doc, dict) or doc.get("status") != "success" or "data" not in doc:
        raise ResponseShapeError(f"Unrecognized response: {doc!r}")
    return doc["data"]


class HTTPPaymentGateway(PaymentGateway):
    """Payment gateway that talks to the upstream commerce API."""

    def __init__(
        self,
        endpoints: EndpointConfig,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.endpoints = endpoints
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client if self._client is not None else get_http_client()

    async def get_payment_methods(self) -> PaymentMethods:
        res = await send_request(self.client, "GET", self.endpoints.payment_methods)
        if res.is_server_error:
            raise GatewayTransportError(
                f"Payment methods unavailable ({res.status_code})"
            )

        data = get_success_data(parse_json(res))
        try:
            return get_converter().structure(data, dict[str, list[PaymentChannel]])
        except STRUCTURE_ERRORS as e:
            raise ResponseShapeError("Invalid payment methods") from e

    async def create_invoice(self, request: CreateInvoiceRequest) -> InvoiceResult:
        res = await send_request(
            self.client,
            "POST",
            self.endpoints.create_invoice,
            content=get_converter().dumps(request),
            headers={**JSON_HEADERS, "X-Cart-Token": request.cart_token},
        )
        doc = parse_json(res)

        if (
            res.status_code == 422
            and isinstance(doc, dict)
            and isinstance(doc.get("errors"), dict)
        ):
            return InvoiceRejected(doc["errors"])

        if isinstance(doc, dict) and doc.get("status") == "success":
            data = doc.get("data")
            tracking_id = data.get("tracking_id") if isinstance(data, dict) else None
            if not isinstance(tracking_id, str) or not tracking_id:
                raise ResponseShapeError(f"No tracking ID in response: {doc!r}")
            return InvoiceCreated(tracking_id)

        message = doc.get("message") if isinstance(doc, dict) else None
        logger.warning(f"Invoice creation failed ({res.status_code}): {message}")
        return InvoiceFailed(message if isinstance(message, str) else None)

    async def get_payment_status(self, tracking_id: str) -> StatusResult:
        url = self.endpoints.payment_status.format(tracking_id=tracking_id)
        res = await send_request(self.client, "GET", url)
        if res.status_code in TICKET_LOST_STATUSES:
            return TicketLost(res.status_code)
        elif not res.is_success:
            raise GatewayTransportError(f"Status check failed ({res.status_code})")

        data = get_success_data(parse_json(res))
        try:
            snapshot = get_converter().structure(data, PaymentStatusSnapshot)
        except STRUCTURE_ERRORS as e:
            raise ResponseShapeError("Invalid payment status") from e
        return StatusFetched(snapshot)

    async def cancel_payment(self, request: CancelPaymentRequest):
        res = await send_request(
            self.client,
            "POST",
            self.endpoints.cancel_payment,
            content=get_converter().dumps(request),
            headers=JSON_HEADERS,
        )
        if res.is_server_error:
            raise GatewayTransportError(f"Cancel failed ({res.status_code})")

        doc = parse_json(res)
        if (
            not res.is_success
            or not isinstance(doc, dict)
            or doc.get("status") != "success"
        ):
            message = doc.get("message") if isinstance(doc, dict) else None
            raise CheckoutCancelError(message or "Payment could not be canceled")
