from pathlib import Path
from unittest.mock import create_autospec

import pytest
from storefront.checkout.config import load_instruction_config
from storefront.checkout.models.cart import CartData, CartItem
from storefront.checkout.models.instructions import InstructionConfig
from storefront.checkout.payment.mock import MockPaymentGateway
from storefront.checkout.services.cart import CartProvider, CartTokenCache
from storefront.checkout.services.poller import CancellationToken

TEST_DATA = Path(__file__).parent / "test_data"


class RecordingToken(CancellationToken):
    """Token that records backoff delays instead of sleeping."""

    def __init__(self):
        super().__init__()
        self.delays: list[float] = []

    async def sleep(self, delay: float) -> bool:
        self.delays.append(delay)
        return not self.cancelled


@pytest.fixture
def instruction_config() -> InstructionConfig:
    return load_instruction_config(TEST_DATA / "instructions.yml")


@pytest.fixture
def example_cart() -> CartData:
    return CartData(
        items=(CartItem(name="Diamond 100", quantity=2, subtotal=30000),),
        total=30000,
        discount=0,
    )


@pytest.fixture
def cart_provider(example_cart: CartData):
    provider = create_autospec(CartProvider, instance=True)
    provider.get_cart.return_value = example_cart
    provider.generate_token.return_value = "cart-token"
    return provider


@pytest.fixture
def token_cache(cart_provider) -> CartTokenCache:
    return CartTokenCache(cart_provider)


@pytest.fixture
def gateway() -> MockPaymentGateway:
    return MockPaymentGateway()


@pytest.fixture
def token() -> RecordingToken:
    return RecordingToken()
