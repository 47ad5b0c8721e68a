import pytest
from storefront.checkout.instructions import (
    render_template,
    resolve_instructions,
    wrap_link,
)
from storefront.checkout.models.instructions import (
    CatalogEntry,
    InstructionConfig,
    InstructionStep,
)
from storefront.checkout.models.payment import TransactionAction


def va_action(value):
    return TransactionAction(
        type="PRESENT_TO_CUSTOMER", descriptor="VIRTUAL_ACCOUNT_NUMBER", value=value
    )


def test_bank_sections(instruction_config: InstructionConfig):
    res = resolve_instructions(instruction_config, "BCA", [va_action("1234567890")])
    assert res.title == "Bank BCA"
    assert [s.key for s in res.sections] == ["ATM", "MBANKING"]
    assert [s.title for s in res.sections] == ["ATM", "Mobile Banking"]

    atm, mbanking = res.sections
    assert atm.steps == (
        InstructionStep(1, "Masukkan kartu ATM Bank BCA dan PIN Anda."),
        InstructionStep(2, "Pilih menu Transfer > Virtual Account."),
        InstructionStep(3, "Masukkan nomor VA 1234567890."),
    )
    assert mbanking.steps[1] == InstructionStep(
        2, "Masukkan nomor VA 1234567890 lalu konfirmasi."
    )
    for section in res.sections:
        assert all("{{va_number}}" not in s.text for s in section.steps)

    assert res.notes == ("Masa berlaku kode VA: 1440 menit.", "Gunakan BCA mobile.")


def test_bank_section_order_and_notes(instruction_config: InstructionConfig):
    res = resolve_instructions(instruction_config, "bri", [va_action("88")])
    assert [s.title for s in res.sections] == [
        "ATM",
        "Internet Banking",
        "Mobile Banking",
    ]
    assert res.sections[1].steps[0].text == "Login ke ib.bri.co.id."
    assert res.notes == (
        "Masa berlaku kode VA: 1440 menit.",
        "Internet banking memerlukan token.",
    )


def test_ewallet_redirect(instruction_config: InstructionConfig):
    actions = [
        TransactionAction(
            type="REDIRECT_CUSTOMER",
            descriptor="DEEPLINK_URL",
            value="ovo://pay?id=1&x=2",
        )
    ]
    res = resolve_instructions(instruction_config, "OVO", actions)
    assert res.title == "OVO"
    (section,) = res.sections
    assert section.key == "EWALLET"
    assert section.title == "OVO"
    assert section.steps[0].text == (
        'Buka OVO: <a href="ovo://pay?id=1&amp;x=2" target="_blank" '
        'rel="noreferrer">Buka Link</a>'
    )
    assert res.notes == (
        "Selesaikan pembayaran dalam 15 menit.",
        "Pastikan saldo OVO cukup.",
    )


def test_unknown_tokens_and_defaults(instruction_config: InstructionConfig):
    res = resolve_instructions(instruction_config, "OVO")
    assert res.sections[0].steps[0].text == "Buka OVO: "
    assert res.sections[0].steps[1].text == "Referensi -, kode {{unknown_token}}."


def test_qris(instruction_config: InstructionConfig):
    actions = [
        TransactionAction(
            type="PRESENT_TO_CUSTOMER", descriptor="QR_STRING", value="0002010102"
        )
    ]
    res = resolve_instructions(instruction_config, "  qris ", actions)
    assert res.title == "QRIS"
    assert res.sections[0].title == "QRIS"
    assert res.sections[0].steps[0].text == "Pindai QR 0002010102 dalam 30 menit."
    assert res.notes == (
        "QR kedaluwarsa dalam 30 menit.",
        "Gunakan aplikasi pembayaran apa pun.",
    )


def test_retail_outlet(instruction_config: InstructionConfig):
    actions = [
        TransactionAction(
            type="PRESENT_TO_CUSTOMER", descriptor="PAYMENT_CODE", value="ALF123"
        )
    ]
    res = resolve_instructions(instruction_config, "ALFAMART", actions)
    assert res.sections[0].key == "RETAIL_OUTLET"
    assert res.sections[0].steps[0].text == "Tunjukkan kode ALF123 di kasir Alfamart."
    assert res.notes == (
        "Pembayaran harus dilakukan sebelum 2 hari.",
        "Pembayaran hanya tunai.",
    )


def test_direct_debit(instruction_config: InstructionConfig):
    actions = [
        TransactionAction(
            type="REDIRECT", descriptor="WEB_URL", value="https://bank.test/consent"
        )
    ]
    res = resolve_instructions(instruction_config, "DD_BRI", actions)
    assert res.title == "BRI Direct Debit"
    assert res.sections[0].steps[0].text == (
        'Setujui debit BRI Direct Debit di <a href="https://bank.test/consent" '
        'target="_blank" rel="noreferrer">Buka Link</a>.'
    )
    assert res.notes == ()


def test_paylater(instruction_config: InstructionConfig):
    res = resolve_instructions(instruction_config, "KREDIVO")
    assert res.sections[0].key == "PAYLATER"
    assert res.notes == ("Cicilan tersedia 3 dan 6 bulan.",)


def test_card(instruction_config: InstructionConfig):
    res = resolve_instructions(instruction_config, "CARDS")
    assert res.title == "Kartu"
    (section,) = res.sections
    assert section.key == "CARD"
    assert section.title == "Kartu Kredit/Debit"
    assert section.steps[1].text == "Status diperbarui dalam 5 menit."
    assert res.notes == (
        "Selesaikan otentikasi dalam 10 menit.",
        "Pastikan kartu mendukung 3DS.",
        "Jaringan didukung: VISA, MASTERCARD.",
    )


@pytest.mark.parametrize("code", ["XYZ", "", "   ", None])
def test_unknown_channel(instruction_config: InstructionConfig, code):
    assert resolve_instructions(instruction_config, code) is None


def test_no_config():
    assert resolve_instructions(None, "BCA") is None


def test_deterministic(instruction_config: InstructionConfig):
    actions = [va_action("1234567890")]
    a = resolve_instructions(instruction_config, "BCA", actions)
    b = resolve_instructions(instruction_config, "BCA", actions)
    assert a == b


def test_bank_checked_before_ewallet():
    config = InstructionConfig(
        banks=(CatalogEntry(id="DUP", name="Bank"),),
        ewallets=(CatalogEntry(id="DUP", name="Wallet"),),
    )
    res = resolve_instructions(config, "dup")
    assert res.title == "Bank"
    assert res.sections == ()


def test_render_template_single_pass():
    assert render_template("{{a}}", {"a": "{{b}}", "b": "x"}) == "{{b}}"
    assert render_template("{{a}} {{c}}", {"a": "1"}) == "1 {{c}}"


@pytest.mark.parametrize(
    "value, expected",
    [
        ("", ""),
        ("not a link", "not a link"),
        ("www.example.com", "www.example.com"),
        (
            "https://pay.test/?a=1",
            '<a href="https://pay.test/?a=1" target="_blank" '
            'rel="noreferrer">Buka Link</a>',
        ),
    ],
)
def test_wrap_link(value, expected):
    assert wrap_link(value) == expected


def test_catalog_defaults_not_shared():
    first = InstructionConfig()
    second = InstructionConfig()
    assert first.meta is not second.meta
    assert first.meta.placeholders is not second.meta.placeholders
    assert first.templates is not second.templates
    assert CatalogEntry(id="BCA").overrides is not CatalogEntry(id="BRI").overrides
