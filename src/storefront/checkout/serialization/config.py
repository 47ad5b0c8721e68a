"""Serialization used internally for configuration."""
from collections.abc import Sequence
from typing import Tuple, get_args, get_origin

from cattrs import Converter
from storefront.checkout.serialization.common import CustomConverter
from storefront.checkout.serialization.common import (
    configure_converter as configure_common,
)

converter = CustomConverter()
configure_common(converter)


# Sequence[T] is structured as tuple[T, ...]
def structure_sequence(c, v, t):
    args = get_args(t)
    if isinstance(v, (str, bytes)):
        raise TypeError(f"Invalid sequence: {v!r}")
    return c.structure(v, Tuple[args[0], ...])


def configure_converter(c: Converter):
    c.register_structure_hook_func(
        lambda cls: get_origin(cls) is Sequence,
        lambda v, t: structure_sequence(c, v, t),
    )


configure_converter(converter)
