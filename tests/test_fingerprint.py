"""Tests for fingerprint module."""

from decimal import Decimal

from statement_sync.lib.fingerprint import entry_fingerprint, fingerprint
from statement_sync.lib.models import RawLedgerEntry


def _entry(**kwargs) -> RawLedgerEntry:
    defaults = dict(
        description="PIX ENVIADO",
        encoded_date="5032024",
        magnitude=Decimal("150.00"),
        sign_indicator="D",
        lot_number=123,
        document_number=456,
    )
    defaults.update(kwargs)
    return RawLedgerEntry(**defaults)


def test_fingerprint_sorted_pairs():
    assert fingerprint({"b": 2, "a": "x"}) == "a:x|b:2"


def test_fingerprint_drops_zero_values():
    assert fingerprint({"a": "x", "b": 0, "c": "", "d": None}) == "a:x"


def test_fingerprint_order_independent():
    assert fingerprint({"a": 1, "b": 2}) == fingerprint({"b": 2, "a": 1})


def test_fingerprint_decimal_scale():
    assert fingerprint({"m": Decimal("1500.00")}) == fingerprint({"m": Decimal("1500")}) == "m:1500"


def test_entry_fingerprint_is_stable_literal():
    # Same value across runs and restarts
    assert entry_fingerprint(_entry()) == (
        "document_number:456|encoded_date:05032024|lot_number:123|magnitude:150|sign_indicator:D"
    )


def test_entry_fingerprint_date_padding():
    assert entry_fingerprint(_entry(encoded_date="5032024")) == entry_fingerprint(
        _entry(encoded_date="05032024")
    )


def test_entry_fingerprint_ignores_descriptive_fields():
    a = _entry(description="PIX ENVIADO", complementary_description="JOAO")
    b = _entry(description="Pix enviado - Joao", complementary_description="")
    assert entry_fingerprint(a) == entry_fingerprint(b)


def test_entry_fingerprint_differs_on_document():
    assert entry_fingerprint(_entry(document_number=1)) != entry_fingerprint(
        _entry(document_number=2)
    )


def test_entry_fingerprint_differs_on_sign():
    assert entry_fingerprint(_entry(sign_indicator="C")) != entry_fingerprint(_entry())


def test_entry_fingerprint_uses_entry_type_when_unsigned():
    debit = _entry(sign_indicator=None, entry_type_indicator="D")
    credit = _entry(sign_indicator=None, entry_type_indicator="C")
    assert entry_fingerprint(debit) != entry_fingerprint(credit)
    assert "sign_indicator:D" in entry_fingerprint(debit)
    assert "sign_indicator:C" in entry_fingerprint(credit)
