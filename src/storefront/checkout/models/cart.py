"""Cart models."""
from collections.abc import Sequence
from typing import Optional

from attrs import frozen


@frozen(kw_only=True)
class CartItem:
    """A line item in the cart."""

    name: str
    """The product name."""

    quantity: int = 1
    """The quantity."""

    subtotal: int = 0
    """The line total."""

    image: Optional[str] = None
    """The product image URL."""

    category: Optional[str] = None
    """The product type."""


@frozen(kw_only=True)
class CartData:
    """Cart contents as reported by the cart service."""

    items: Sequence[CartItem] = ()
    """The line items."""

    total: int = 0
    """The cart total, after discounts."""

    discount: int = 0
    """The amount saved by the applied coupon."""

    code: Optional[str] = None
    """The applied coupon code."""

    @property
    def quantity(self) -> int:
        """The total quantity of all items."""
        return sum(item.quantity for item in self.items)
