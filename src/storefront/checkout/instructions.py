"""Payment instruction resolution.

Turns a channel code and the gateway's actions into numbered, human-readable steps
using the templates in an :class:`InstructionConfig`.
"""
import html
import re
from collections.abc import Mapping, Sequence
from typing import Optional

from storefront.checkout.models.instructions import (
    CatalogEntry,
    InstructionConfig,
    InstructionStep,
    ResolvedInstructions,
    ResolvedSection,
)
from storefront.checkout.models.payment import (
    ActionDescriptor,
    ActionType,
    TransactionAction,
)
from storefront.checkout.util import is_link

CARD_SECTION_TITLE = "Kartu Kredit/Debit"

REDIRECT_LINK_TEXT = "Buka Link"

VA_SECTIONS = (
    ("ATM", "ATM"),
    ("IBANKING", "Internet Banking"),
    ("MBANKING", "Mobile Banking"),
)
"""Virtual account sub-channels and their section titles, in display order."""

_placeholder_re = re.compile(r"\{\{(\w+)\}\}")

Placeholders = Mapping[str, str]


def resolve_instructions(
    config: Optional[InstructionConfig],
    channel_code: Optional[str],
    actions: Sequence[TransactionAction] = (),
) -> Optional[ResolvedInstructions]:
    """Resolve the payment instructions for a channel.

    Categories are checked in order: banks, e-wallets, QRIS, retail outlets, direct
    debit, paylater, card.

    Args:
        config: The instruction catalog.
        channel_code: The selected channel code. Case-insensitive.
        actions: The gateway's actions for the transaction.

    Returns:
        The :class:`ResolvedInstructions`, or None if the channel is not in the
        catalog.
    """
    if config is None or not channel_code or not channel_code.strip():
        return None

    code = channel_code.strip().upper()

    va = _find_action(
        actions, ActionType.present_to_customer, ActionDescriptor.virtual_account_number
    )
    payment_code = _find_action(
        actions, ActionType.present_to_customer, ActionDescriptor.payment_code
    )
    qr = _find_action(
        actions, ActionType.present_to_customer, ActionDescriptor.qr_string
    )
    redirect = _get_redirect_value(actions)
    expiry = config.expiry_policies

    bank = _find_entry(config.banks, code)
    if bank is not None:
        placeholders = _build_placeholders(
            config,
            bank.name,
            va=va,
            pc=payment_code,
            qr=qr,
            rd=redirect,
            atm=_str_override(bank, "ATM", "atm_menu_path"),
            ib=_str_override(bank, "IBANKING", "ib_menu_path"),
            mb=_str_override(bank, "MBANKING", "mb_menu_path"),
        )
        notes = _notes(
            _expiry_note("Masa berlaku kode VA: {} menit.", expiry.get("VA_minutes")),
            bank.get_override("IBANKING", "extra"),
            bank.get_override("MBANKING", "app_hint"),
        )
        sections = tuple(
            ResolvedSection(key, title, _apply_template(config, key, placeholders))
            for key, title in VA_SECTIONS
            if key in bank.channels
        )
        return ResolvedInstructions(bank.name, sections, notes)

    ewallet = _find_entry(config.ewallets, code)
    if ewallet is not None:
        placeholders = _build_placeholders(config, ewallet.name, rd=redirect)
        notes = _notes(
            _expiry_note(
                "Selesaikan pembayaran dalam {} menit.", expiry.get("EWALLET_minutes")
            ),
            ewallet.get_override("EWALLET", "hint"),
        )
        return _single_section(config, ewallet.name, "EWALLET", placeholders, notes)

    if config.qris is not None and config.qris.matches(code):
        placeholders = _build_placeholders(config, "QRIS", qr=qr)
        notes = _notes(
            _expiry_note("QR kedaluwarsa dalam {} menit.", expiry.get("QRIS_minutes")),
            config.qris.get_override("QRIS", "tips"),
        )
        return _single_section(config, "QRIS", "QRIS", placeholders, notes)

    outlet = _find_entry(config.retail_outlets, code)
    if outlet is not None:
        placeholders = _build_placeholders(config, outlet.name, pc=payment_code)
        notes = _notes(
            _expiry_note(
                "Pembayaran harus dilakukan sebelum {} hari.",
                expiry.get("RETAIL_OUTLET_days"),
            ),
            outlet.get_override("RETAIL_OUTLET", "cash_only_hint"),
        )
        return _single_section(
            config, outlet.name, "RETAIL_OUTLET", placeholders, notes
        )

    direct_debit = _find_entry(config.direct_debit, code)
    if direct_debit is not None:
        placeholders = _build_placeholders(config, direct_debit.name, rd=redirect)
        notes = _notes(
            _expiry_note(
                "Selesaikan otorisasi dalam {} menit.",
                expiry.get("DIRECT_DEBIT_minutes"),
            ),
            direct_debit.get_override("DIRECT_DEBIT", "banks_hint"),
        )
        return _single_section(
            config, direct_debit.name, "DIRECT_DEBIT", placeholders, notes
        )

    paylater = _find_entry(config.paylater_providers, code)
    if paylater is not None:
        placeholders = _build_placeholders(config, paylater.name, rd=redirect)
        notes = _notes(
            _expiry_note(
                "Selesaikan proses paylater dalam {} menit.",
                expiry.get("PAYLATER_minutes"),
            ),
            paylater.get_override("PAYLATER", "installment_hint"),
        )
        return _single_section(config, paylater.name, "PAYLATER", placeholders, notes)

    card = config.card
    if card is not None and card.matches(code):
        placeholders = _build_placeholders(config, card.name, rd=redirect)
        networks = card.get_override("CARD", "supported_networks")
        if isinstance(networks, str):
            networks = [networks]
        notes = _notes(
            _expiry_note(
                "Selesaikan otentikasi dalam {} menit.", expiry.get("CARD_minutes")
            ),
            card.get_override("CARD", "tips"),
            f"Jaringan didukung: {', '.join(networks)}." if networks else None,
        )
        return _single_section(
            config,
            card.name,
            "CARD",
            placeholders,
            notes,
            section_title=CARD_SECTION_TITLE,
        )

    return None


def render_template(text: str, placeholders: Placeholders) -> str:
    """Replace ``{{token}}`` markers with placeholder values.

    Unknown tokens are left in place.
    """
    return _placeholder_re.sub(
        lambda m: placeholders.get(m.group(1), m.group(0)), text
    )


def wrap_link(value: str) -> str:
    """Wrap a URL in a minimal HTML link, or return a non-URL value unchanged."""
    if not value or not is_link(value):
        return value
    href = html.escape(value, quote=True)
    return f'<a href="{href}" target="_blank" rel="noreferrer">{REDIRECT_LINK_TEXT}</a>'


def _find_action(
    actions: Sequence[TransactionAction], type_: str, descriptor: str
) -> str:
    for action in actions:
        if action.type == type_ and action.descriptor == descriptor:
            return action.value or ""
    return ""


def _get_redirect_value(actions: Sequence[TransactionAction]) -> str:
    for action in actions:
        if action.is_redirect:
            return wrap_link(action.value or "")
    return ""


def _find_entry(entries: Sequence[CatalogEntry], code: str) -> Optional[CatalogEntry]:
    for entry in entries:
        if entry.matches(code):
            return entry
    return None


def _str_override(entry: CatalogEntry, section: str, key: str) -> str:
    value = entry.get_override(section, key)
    return str(value) if value is not None else ""


def _expiry_note(template: str, value: Optional[int]) -> Optional[str]:
    return template.format(value) if value else None


def _notes(*notes: Optional[str]) -> tuple[str, ...]:
    return tuple(str(n) for n in notes if n)


def _build_placeholders(
    config: InstructionConfig,
    entity_name: str,
    *,
    va: str = "",
    pc: str = "",
    qr: str = "",
    rd: str = "",
    atm: str = "",
    ib: str = "",
    mb: str = "",
) -> dict[str, str]:
    expiry = config.expiry_policies
    values = {
        "va_number": va,
        "bank_name": entity_name,
        "atm_menu_path": atm,
        "ib_menu_path": ib,
        "mb_menu_path": mb,
        "ewallet_name": entity_name,
        "ewallet_deeplink": rd,
        "ewallet_ref_id": "",
        "qris_string": qr,
        "qris_expiry_minutes": str(expiry.get("QRIS_minutes", 15)),
        "outlet_name": entity_name,
        "payment_code": pc,
        "payment_barcode_url": "",
        "outlet_expiry_days": str(expiry.get("RETAIL_OUTLET_days", 1)),
        "dd_bank_name": entity_name,
        "dd_consent_url": rd,
        "dd_mandate_ref": "",
        "paylater_name": entity_name,
        "paylater_checkout_url": rd,
        "card_last4": "",
        "card_network": "",
        "three_ds_url": rd,
        "estimated_minutes": str(config.meta.estimated_invoice_update_minutes),
    }

    # fall back to catalog defaults for anything the gateway did not provide
    defaults = config.meta.placeholders
    return {k: v or str(defaults.get(k, "")) for k, v in values.items()}


def _apply_template(
    config: InstructionConfig, key: str, placeholders: Placeholders
) -> tuple[InstructionStep, ...]:
    steps = config.templates.get(key, ())
    return tuple(
        InstructionStep(s.step, render_template(s.text, placeholders)) for s in steps
    )


def _single_section(
    config: InstructionConfig,
    title: str,
    key: str,
    placeholders: Placeholders,
    notes: Sequence[str],
    *,
    section_title: Optional[str] = None,
) -> ResolvedInstructions:
    section = ResolvedSection(
        key,
        section_title if section_title is not None else title,
        _apply_template(config, key, placeholders),
    )
    return ResolvedInstructions(title, (section,), tuple(notes))
