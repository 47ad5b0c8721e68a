"""HTTP client module."""
from contextvars import ContextVar
from http.cookiejar import Cookie, CookieJar
from typing import Optional

import httpx
from storefront.checkout.models.config import ApiConfig

http_client_context: ContextVar[Optional[httpx.AsyncClient]] = ContextVar(
    "http_client_context", default=None
)
"""The client context."""


class NullCookieJar(CookieJar):
    """``CookieJar`` that does not store cookies.

    The cart identity travels in the ``X-Cart-Token`` header instead.
    """

    def set_cookie(self, cookie: Cookie):
        # Do not set
        return


def setup_http_client(
    config: ApiConfig, transport: Optional[httpx.AsyncBaseTransport] = None
) -> httpx.AsyncClient:
    """Set up the http client for the upstream API.

    Args:
        config: The API config.
        transport: An alternate transport, used in tests.
    """
    client = httpx.AsyncClient(
        base_url=config.base_url,
        headers={
            "User-Agent": config.user_agent,
            "Accept": "application/json",
        },
        cookies=NullCookieJar(),
        transport=transport,
    )
    http_client_context.set(client)
    return client


def get_http_client() -> httpx.AsyncClient:
    """Get a :class:`httpx.AsyncClient`."""
    client = http_client_context.get()
    if not client:
        raise RuntimeError("HTTP client not configured")
    return client


async def shutdown_http_client():
    """Shut down the http client."""
    client = http_client_context.get()
    if client:
        await client.aclose()
        http_client_context.set(None)
