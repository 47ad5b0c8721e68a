"""Converter for working with upstream API data."""
from collections.abc import Sequence
from enum import Enum
from typing import Tuple, Union, get_args, get_origin

from attr import resolve_types
from attrs import fields
from cattrs import Converter
from cattrs.gen import make_dict_structure_fn, make_dict_unstructure_fn, override
from storefront.checkout.models.cart import CartData
from storefront.checkout.models.checkout import CustomerInfo
from storefront.checkout.models.payment import Transaction
from storefront.checkout.serialization.common import CustomConverter
from storefront.checkout.serialization.common import (
    configure_converter as configure_common,
)

converter = CustomConverter()
configure_common(converter)


# Sequence[T] is structured as tuple[T, ...]
def structure_sequence(c, v, t):
    args = get_args(t)
    if isinstance(v, (str, bytes)) or not isinstance(v, (list, tuple)):
        raise TypeError(f"Invalid sequence: {v!r}")
    return c.structure(v, Tuple[args[0], ...])


def structure_without_cast(v, t):
    """Structure a type without attempting to cast the value."""
    if isinstance(v, t) and not (t is int and isinstance(v, bool)):
        return v
    elif (
        t is not bool
        and issubclass(t, (int, float))
        and isinstance(v, (int, float))
        and not isinstance(v, bool)
        or issubclass(t, Enum)
        and isinstance(v, (int, str))
    ):
        return t(v)
    else:
        raise TypeError(f"Invalid type: {v!r}")


def make_structure_transaction(c):
    """Make a :class:`Transaction` structure function reading null actions as empty."""
    structure_fn = make_dict_structure_fn(Transaction, c)

    def structure(v, t):
        if isinstance(v, dict) and "actions" in v and v["actions"] is None:
            v = {k: val for k, val in v.items() if k != "actions"}
        return structure_fn(v, t)

    return structure


def _is_nullable(t):
    origin = get_origin(t)
    args = get_args(t)
    return origin is Union and type(None) in args


def make_unstructure_dict_omitting_none(c, t):
    """Make an unstructure function that omits None."""

    # Resolve types because some field types might just be strings
    resolve_types(t)

    nullable_fields = [f.name for f in fields(t) if _is_nullable(f.type)]

    unstructure_fn = make_dict_unstructure_fn(t, c)

    def unstructure(v):
        dict_ = unstructure_fn(v)
        for field in nullable_fields:
            if field in dict_ and dict_[field] is None:
                del dict_[field]
        return dict_

    return unstructure


def configure_converter(c: Converter):
    for t in (float, int, bool, str):
        c.register_structure_hook(t, structure_without_cast)

    c.register_structure_hook_factory(
        lambda cls: get_origin(cls) is Sequence,
        lambda cls: lambda v, t: structure_sequence(c, v, t),
    )

    # unstructure attrs classes omitting None
    c.register_unstructure_hook_factory(
        lambda cls: hasattr(cls, "__attrs_attrs__"),
        lambda cls: make_unstructure_dict_omitting_none(c, cls),
    )

    # The API calls the phone field phone_number
    c.register_unstructure_hook(
        CustomerInfo,
        make_dict_unstructure_fn(
            CustomerInfo, c, phone=override(rename="phone_number")
        ),
    )

    # The API calls the cart discount save_amount
    c.register_structure_hook(
        CartData,
        make_dict_structure_fn(CartData, c, discount=override(rename="save_amount")),
    )

    # Actions are null until the gateway issues them
    c.register_structure_hook(Transaction, make_structure_transaction(c))


configure_converter(converter)
