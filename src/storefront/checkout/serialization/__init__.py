"""Serialization package."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from storefront.checkout.serialization.common import CustomConverter


def get_config_converter() -> CustomConverter:
    """Get a :class:`Converter` for configuration documents."""
    from storefront.checkout.serialization.config import converter

    return converter


def get_converter() -> CustomConverter:
    """Get a :class:`Converter` suitable for validating upstream API data."""
    from storefront.checkout.serialization.data import converter

    return converter
