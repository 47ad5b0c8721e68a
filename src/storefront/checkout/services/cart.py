"""Cart collaborator module."""
import asyncio
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from loguru import logger
from storefront.checkout.http_client import get_http_client
from storefront.checkout.models.cart import CartData
from storefront.checkout.models.config import EndpointConfig
from storefront.checkout.payment.base import (
    CartTokenError,
    GatewayTransportError,
    ResponseShapeError,
)
from storefront.checkout.payment.http import (
    STRUCTURE_ERRORS,
    get_success_data,
    parse_json,
    send_request,
)
from storefront.checkout.serialization import get_converter


class CartProvider(ABC):
    """Cart service interface."""

    @abstractmethod
    async def get_cart(self) -> CartData:
        """Get the current cart contents."""
        ...

    @abstractmethod
    async def generate_token(self) -> Optional[str]:
        """Issue a guest/user cart token.

        Returns:
            The token, or None if one could not be issued.
        """
        ...


class HTTPCartProvider(CartProvider):
    """Cart service backed by the upstream commerce API."""

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

    async def get_cart(self) -> CartData:
        res = await send_request(self.client, "GET", self.endpoints.cart)
        data = get_success_data(parse_json(res))
        try:
            return get_converter().structure(data, CartData)
        except STRUCTURE_ERRORS as e:
            raise ResponseShapeError("Invalid cart") from e

    async def generate_token(self) -> Optional[str]:
        try:
            res = await send_request(self.client, "POST", self.endpoints.cart_token)
            if not res.is_success:
                return None
            doc = parse_json(res)
        except GatewayTransportError as e:
            logger.warning(f"Cart token request failed: {e}")
            return None

        data = doc.get("data") if isinstance(doc, dict) else None
        token = data.get("token") if isinstance(data, dict) else None
        return token if isinstance(token, str) else None


class CartTokenCache:
    """Caches the cart token and collapses concurrent requests for it."""

    def __init__(self, provider: CartProvider):
        self.provider = provider
        self._token: Optional[str] = None
        self._in_flight: Optional[asyncio.Future] = None

    @property
    def token(self) -> Optional[str]:
        """The cached token."""
        return self._token

    async def get_token(self, force: bool = False) -> Optional[str]:
        """Get the cart token.

        Args:
            force: Request a new token even if one is cached.

        Returns:
            The token, or None if one could not be issued.
        """
        if not force and self._token:
            return self._token

        if self._in_flight is None:
            self._in_flight = asyncio.ensure_future(self._request())
            self._in_flight.add_done_callback(self._clear_in_flight)

        return await asyncio.shield(self._in_flight)

    async def ensure_token(self) -> str:
        """Get a non-empty cart token, requesting a fresh one once if needed.

        Raises:
            CartTokenError: If no token is available.
        """
        token = await self.get_token()
        if token and token.strip():
            return token

        token = await self.get_token(force=True)
        if token and token.strip():
            return token

        raise CartTokenError("Cart token unavailable")

    def reset(self):
        """Forget the cached token."""
        self._token = None

    async def _request(self) -> Optional[str]:
        token = await self.provider.generate_token()
        if token and token.strip():
            self._token = token
        return self._token

    def _clear_in_flight(self, fut: asyncio.Future):
        if self._in_flight is fut:
            self._in_flight = None
