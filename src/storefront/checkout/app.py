"""Checkout application module."""
import argparse
import asyncio
from pathlib import Path
from typing import Optional, Union

import httpx
from attrs import frozen
from loguru import logger
from storefront.checkout.config import load_config
from storefront.checkout.http_client import (
    http_client_context,
    setup_http_client,
    shutdown_http_client,
)
from storefront.checkout.log import setup_logging
from storefront.checkout.models.checkout import (
    CheckoutOutcome,
    CheckoutSession,
    CheckoutStep,
    CustomerInfo,
)
from storefront.checkout.models.config import Config
from storefront.checkout.payment.base import PaymentGateway
from storefront.checkout.payment.http import HTTPPaymentGateway
from storefront.checkout.services.cart import (
    CartProvider,
    CartTokenCache,
    HTTPCartProvider,
)
from storefront.checkout.services.checkout import (
    CheckoutEvent,
    CheckoutEventType,
    CheckoutStateMachine,
)
from storefront.checkout.services.instructions import InstructionConfigSource
from storefront.checkout.util import get_now


class CheckoutApp:
    """Owns the resources shared by checkout sessions.

    The HTTP client, cart token cache and instruction catalog live here and are
    released by :meth:`close`.
    """

    def __init__(
        self,
        config: Config,
        *,
        gateway: Optional[PaymentGateway] = None,
        cart_provider: Optional[CartProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.http_client = setup_http_client(config.api, transport=transport)
        self.gateway = (
            gateway
            if gateway is not None
            else HTTPPaymentGateway(config.api.endpoints, self.http_client)
        )
        self.cart_provider = (
            cart_provider
            if cart_provider is not None
            else HTTPCartProvider(config.api.endpoints, self.http_client)
        )
        self.token_cache = CartTokenCache(self.cart_provider)
        self.instructions = InstructionConfigSource(
            config.instructions, self.http_client
        )

    async def __aenter__(self) -> "CheckoutApp":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def new_session(
        self,
        *,
        authenticated: bool = False,
        initial_outcome: Union[CheckoutOutcome, str, None] = None,
        initial_reference_id: Optional[str] = None,
    ) -> CheckoutStateMachine:
        """Create a checkout session.

        Args:
            authenticated: Whether the customer is signed in.
            initial_outcome: The outcome passed back by a gateway redirect.
            initial_reference_id: The reference ID passed back by a gateway
                redirect.
        """
        return CheckoutStateMachine(
            self.gateway,
            self.cart_provider,
            self.token_cache,
            await self.instructions.get(),
            polling=self.config.polling,
            authenticated=authenticated,
            initial_outcome=initial_outcome,
            initial_reference_id=initial_reference_id,
        )

    def reset(self):
        """Forget the cached cart token and instruction catalog."""
        self.token_cache.reset()
        self.instructions.reset()

    async def close(self):
        """Release shared resources."""
        if http_client_context.get() is self.http_client:
            await shutdown_http_client()
        else:
            await self.http_client.aclose()


@frozen
class CommandLineConfig:
    """Command line config settings."""

    config: Path
    debug: bool
    channel: Optional[str]
    name: str
    email: str
    phone: str
    coupon: Optional[str]


def parse_args() -> CommandLineConfig:
    """Parse the command line arguments."""
    parser = argparse.ArgumentParser(description="Pay for the current cart.")
    parser.add_argument(
        "--config",
        type=Path,
        help="the path to the config file",
        default=Path("config.yml"),
    )
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    parser.add_argument("--channel", type=str, help="the payment channel code")
    parser.add_argument("--name", type=str, default="", help="customer name")
    parser.add_argument("--email", type=str, default="", help="customer email")
    parser.add_argument("--phone", type=str, default="", help="customer phone")
    parser.add_argument("--coupon", type=str, help="a coupon code")

    args = parser.parse_args()
    return CommandLineConfig(
        config=args.config,
        debug=args.debug,
        channel=args.channel,
        name=args.name,
        email=args.email,
        phone=args.phone,
        coupon=args.coupon,
    )


def _print_cart(session: CheckoutSession):
    for item in session.line_items:
        print(f"  {item.quantity} x {item.name}: {item.subtotal}")
    if session.discount:
        print(f"  Diskon: -{session.discount}")
    if session.fee:
        print(f"  Biaya: {session.fee}")
    print(f"  Total: {session.grand_total}")


def _print_snapshot(session: CheckoutSession):
    snapshot = session.attempt.snapshot if session.attempt is not None else None
    if snapshot is None:
        return

    print(f"  {snapshot.status}")
    transaction = snapshot.transaction
    if transaction is not None:
        url = transaction.get_redirect_url()
        if url:
            print(f"  {url}")
        expires_at = transaction.get_expires_at()
        if expires_at is not None:
            minutes = int((expires_at - get_now()).total_seconds() // 60)
            print(f"  Sisa waktu: {max(minutes, 0)} menit")

    instructions = session.instructions
    if instructions is not None:
        print(f"  {instructions.title}")
        for section in instructions.sections:
            print(f"  {section.title}")
            for step in section.steps:
                print(f"    {step.step}. {step.text}")
        for note in instructions.notes:
            print(f"  * {note}")


def _print_event(event: CheckoutEvent):
    if event.type == CheckoutEventType.transition:
        print(f"[{event.step.value}]")
        if event.session.message:
            print(f"  {event.session.message}")
        if event.step == CheckoutStep.payment:
            _print_cart(event.session)
    elif event.type == CheckoutEventType.notification:
        print(f"  {event.message}")
    elif event.type == CheckoutEventType.snapshot:
        _print_snapshot(event.session)


async def checkout(cmd_config: CommandLineConfig) -> Optional[CheckoutOutcome]:
    """Run one checkout from the command line."""
    config = load_config(cmd_config.config)
    async with CheckoutApp(config) as app:
        async with await app.new_session() as machine:
            machine.subscribe(_print_event)
            await machine.start()

            session = machine.session
            if cmd_config.channel:
                method = next(
                    (
                        m
                        for m, channels in session.payment_methods.items()
                        if any(c.code == cmd_config.channel for c in channels)
                    ),
                    None,
                )
                machine.select_channel(method, cmd_config.channel)
            if cmd_config.coupon:
                machine.set_coupon_code(cmd_config.coupon)

            if not session.selected_channel_code:
                logger.error("No payment channel available")
                return None

            machine.submit_customer_info(
                CustomerInfo(cmd_config.name, cmd_config.email, cmd_config.phone)
            )
            await machine.submit_payment()
            await machine.wait()
            return session.outcome


def run():
    """Entry point for the console script."""
    args = parse_args()
    setup_logging(debug=args.debug)
    try:
        outcome = asyncio.run(checkout(args))
    except KeyboardInterrupt:
        return
    logger.info(f"Checkout finished: {outcome.value if outcome else 'incomplete'}")


if __name__ == "__main__":
    run()
