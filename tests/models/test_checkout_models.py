import pytest
from storefront.checkout.models.cart import CartData, CartItem
from storefront.checkout.models.checkout import (
    CheckoutOutcome,
    CheckoutSession,
    CheckoutStep,
)
from storefront.checkout.models.payment import PaymentChannel


@pytest.mark.parametrize(
    "value, expected",
    [
        ("success", CheckoutOutcome.succeeded),
        ("cancel", CheckoutOutcome.canceled),
        ("cancelled", CheckoutOutcome.canceled),
        ("failed", CheckoutOutcome.failed),
        (" EXPIRED ", CheckoutOutcome.expired),
    ],
)
def test_parse_outcome(value, expected):
    assert CheckoutOutcome.parse(value) == expected


def test_parse_outcome_invalid():
    with pytest.raises(ValueError):
        CheckoutOutcome.parse("paid")


def test_busy_steps():
    assert {s for s in CheckoutStep if s.is_busy} == {
        CheckoutStep.loading,
        CheckoutStep.loading_pay,
    }
    assert CheckoutStep.loading_pay.value == "loadingPay"


def test_session_totals():
    session = CheckoutSession(
        cart=CartData(
            items=(
                CartItem(name="A", quantity=2, subtotal=20000),
                CartItem(name="B", subtotal=13000),
            ),
            total=30000,
            discount=3000,
        ),
        payment_methods={
            "virtual_account": [
                PaymentChannel(code="BCA", name="BCA", fee_value=4000)
            ],
            "ewallet": [
                PaymentChannel(
                    code="OVO", name="OVO", fee_type="percentage", fee_value=1.5
                )
            ],
        },
    )
    assert session.cart.quantity == 3
    assert len(session.line_items) == 2
    assert session.discount == 3000
    assert session.fee == 0

    session.selected_method = "virtual_account"
    session.selected_channel_code = "BCA"
    assert session.fee == 4000
    assert session.grand_total == 34000

    session.selected_method = "ewallet"
    session.selected_channel_code = "OVO"
    assert session.grand_total == 30450


def test_empty_session():
    session = CheckoutSession()
    assert session.line_items == ()
    assert session.total == 0
    assert session.selected_channel is None


def test_session_defaults_not_shared():
    first = CheckoutSession()
    second = CheckoutSession()
    assert first.field_errors is not second.field_errors
    assert first.field_errors.customer is not second.field_errors.customer
    assert first.channel_properties is not second.channel_properties
