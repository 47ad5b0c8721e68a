import asyncio

import pytest
from storefront.checkout.payment.base import CartTokenError
from storefront.checkout.services.cart import CartTokenCache


@pytest.mark.asyncio
async def test_token_cached(token_cache: CartTokenCache, cart_provider):
    assert await token_cache.get_token() == "cart-token"
    assert await token_cache.get_token() == "cart-token"
    assert cart_provider.generate_token.await_count == 1


@pytest.mark.asyncio
async def test_force_refresh(token_cache: CartTokenCache, cart_provider):
    await token_cache.get_token()
    cart_provider.generate_token.return_value = "new-token"
    assert await token_cache.get_token(force=True) == "new-token"
    assert token_cache.token == "new-token"


@pytest.mark.asyncio
async def test_concurrent_requests_coalesced(cart_provider):
    release = asyncio.Event()

    async def generate():
        await release.wait()
        return "slow-token"

    cart_provider.generate_token.side_effect = generate
    cache = CartTokenCache(cart_provider)

    tasks = [asyncio.create_task(cache.get_token()) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()

    assert await asyncio.gather(*tasks) == ["slow-token"] * 3
    assert cart_provider.generate_token.await_count == 1


@pytest.mark.asyncio
async def test_ensure_token_retries_once(cart_provider):
    cart_provider.generate_token.side_effect = ["  ", "fresh"]
    cache = CartTokenCache(cart_provider)
    assert await cache.ensure_token() == "fresh"
    assert cart_provider.generate_token.await_count == 2


@pytest.mark.asyncio
async def test_ensure_token_fails(cart_provider):
    cart_provider.generate_token.return_value = None
    cache = CartTokenCache(cart_provider)
    with pytest.raises(CartTokenError):
        await cache.ensure_token()
    assert cart_provider.generate_token.await_count == 2


@pytest.mark.asyncio
async def test_failed_refresh_keeps_token(token_cache: CartTokenCache, cart_provider):
    await token_cache.get_token()
    cart_provider.generate_token.return_value = None
    assert await token_cache.get_token(force=True) == "cart-token"


@pytest.mark.asyncio
async def test_reset(token_cache: CartTokenCache, cart_provider):
    await token_cache.get_token()
    token_cache.reset()
    assert token_cache.token is None
    await token_cache.get_token()
    assert cart_provider.generate_token.await_count == 2
