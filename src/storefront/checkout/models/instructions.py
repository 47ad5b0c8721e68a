"""Payment instruction catalog models."""
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from attrs import Factory, frozen


@frozen
class InstructionStep:
    """A numbered instruction step.

    ``text`` may contain ``{{placeholder}}`` tokens.
    """

    step: int
    text: str


@frozen(kw_only=True)
class CatalogEntry:
    """A bank, e-wallet, outlet or provider in the instruction catalog."""

    id: str
    """The channel code."""

    name: str = ""
    """The display name."""

    channels: Sequence[str] = ()
    """Supported sub-channels, like ``ATM`` or ``MBANKING``."""

    overrides: Mapping[str, Mapping[str, Any]] = Factory(dict)
    """Per-section settings, like menu paths and hints."""

    def get_override(self, section: str, key: str) -> Any:
        """Get an override value, or None."""
        return self.overrides.get(section, {}).get(key)

    def matches(self, code: str) -> bool:
        """Whether this entry is for the normalized channel ``code``."""
        return self.id.strip().upper() == code


@frozen(kw_only=True)
class InstructionMeta:
    """Catalog metadata."""

    estimated_invoice_update_minutes: int = 5
    placeholders: Mapping[str, str] = Factory(dict)
    """Default placeholder values."""


@frozen(kw_only=True)
class InstructionConfig:
    """The static payment instruction catalog."""

    provider: str = ""
    meta: InstructionMeta = Factory(InstructionMeta)
    templates: Mapping[str, Sequence[InstructionStep]] = Factory(dict)
    mappings: Mapping[str, Any] = Factory(dict)
    expiry_policies: Mapping[str, int] = Factory(dict)
    common_tips: Sequence[str] = ()
    banks: Sequence[CatalogEntry] = ()
    ewallets: Sequence[CatalogEntry] = ()
    qris: Optional[CatalogEntry] = None
    retail_outlets: Sequence[CatalogEntry] = ()
    direct_debit: Sequence[CatalogEntry] = ()
    paylater_providers: Sequence[CatalogEntry] = ()
    card: Optional[CatalogEntry] = None


@frozen
class ResolvedSection:
    """A titled list of steps for one way of paying."""

    key: str
    title: str
    steps: Sequence[InstructionStep]


@frozen
class ResolvedInstructions:
    """Instructions for paying with a channel."""

    title: str
    sections: Sequence[ResolvedSection]
    notes: Sequence[str] = ()
