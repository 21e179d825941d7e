from decimal import Decimal

import pytest

from hotel_pos.services import ledger_codec
from hotel_pos.services.ledger_codec import DebtorEntry, PaymentEntry


def D(value):
    return Decimal(str(value))


def test_encode_payments_colon_form():
    raw = ledger_codec.encode_payments([
        PaymentEntry("cash", D("500.00")),
        PaymentEntry("mpesa", D("300.50")),
    ])
    assert raw == "cash:500,mpesa:300.5"


def test_encode_payments_skips_zero_and_returns_none_when_empty():
    assert ledger_codec.encode_payments([PaymentEntry("cash", D(0))]) is None
    assert ledger_codec.encode_payments([]) is None
    assert ledger_codec.encode_payments([PaymentEntry("kcb", D(0)), PaymentEntry("cash", D(10))]) == "cash:10"


def test_payments_survive_encode_decode():
    entries = [PaymentEntry("cash", D(700)), PaymentEntry("mpesa", D(300)), PaymentEntry("cash", D("12.5"))]
    decoded = ledger_codec.decode_payments(ledger_codec.encode_payments(entries))
    assert sorted((e.method, e.amount) for e in decoded) == sorted((e.method, e.amount) for e in entries)


@pytest.mark.parametrize("raw, expected", [
    ("cash", "cash"),
    ("mobile", "mpesa"),
    ("card", "kcb"),
    ("mpesa", "mpesa"),
    ("KCB", "kcb"),
])
def test_legacy_bare_token_takes_whole_amount_paid(raw, expected):
    assert ledger_codec.decode_payments(raw, D(750)) == [PaymentEntry(expected, D(750))]


def test_legacy_pending_and_zero_paid_decode_to_nothing():
    assert ledger_codec.decode_payments("pending", D(750)) == []
    assert ledger_codec.decode_payments("cash", D(0)) == []
    assert ledger_codec.decode_payments(None, D(100)) == []
    assert ledger_codec.decode_payments("   ", D(100)) == []


def test_decode_payments_skips_malformed_segments():
    raw = "cash:100,bitcoin:50,mpesa:abc,kcb:0,card:25,mobile,mpesa:"
    assert ledger_codec.decode_payments(raw, D(1000)) == [
        PaymentEntry("cash", D(100)),
        PaymentEntry("kcb", D(25)),
    ]


def test_corrupt_trailing_fragment_does_not_block_the_rest():
    assert ledger_codec.decode_payments("cash:200,mpesa:150,kc", D(350)) == [
        PaymentEntry("cash", D(200)),
        PaymentEntry("mpesa", D(150)),
    ]


def test_append_payments_rewrites_legacy_value():
    raw = ledger_codec.append_payments("card", D(400), [PaymentEntry("cash", D(100))])
    assert raw == "kcb:400,cash:100"


def test_summarize_and_merge_by_method():
    entries = [PaymentEntry("cash", D(100)), PaymentEntry("mpesa", D(50)), PaymentEntry("cash", D(25))]
    assert ledger_codec.summarize_by_method(entries) == {"cash": D(125), "mpesa": D(50), "kcb": D(0)}
    assert ledger_codec.merge_by_method(entries) == [PaymentEntry("cash", D(125)), PaymentEntry("mpesa", D(50))]
    assert ledger_codec.total(entries) == D(175)


def test_encode_debtors_strips_names_and_rejects_reserved_chars():
    assert ledger_codec.encode_debtors([DebtorEntry(" Jane ", D(200)), DebtorEntry("John", D("50.25"))]) == "Jane:200,John:50.25"
    assert ledger_codec.encode_debtors([]) is None
    with pytest.raises(ValueError):
        ledger_codec.encode_debtors([DebtorEntry("Doe, Jane", D(10))])
    with pytest.raises(ValueError):
        ledger_codec.encode_debtors([DebtorEntry("   ", D(10))])


def test_legacy_debtor_name_owes_whole_balance():
    assert ledger_codec.decode_debtors("John Kamau", D(250)) == [DebtorEntry("John Kamau", D(250))]
    assert ledger_codec.decode_debtors("John Kamau", D(0)) == []


def test_decode_debtors_colon_form_skips_bad_segments():
    assert ledger_codec.decode_debtors("Jane:200,:30,Bob:x,John:50", D(1000)) == [
        DebtorEntry("Jane", D(200)),
        DebtorEntry("John", D(50)),
    ]


def test_format_amount_has_no_exponent():
    assert ledger_codec.format_amount(D("1000.00")) == "1000"
    assert ledger_codec.format_amount(D("0.50")) == "0.5"


def test_legacy_debtor_name_may_contain_comma():
    assert ledger_codec.decode_debtors("Smith, John", D(800)) == [DebtorEntry("Smith, John", D(800))]


def test_clean_name_drops_reserved_chars():
    assert ledger_codec.clean_name("Smith, John") == "Smith John"
    assert ledger_codec.clean_name("Room:4 guest") == "Room 4 guest"
    assert ledger_codec.clean_name(",") == "Unknown"


def test_append_payments_keeps_unknown_history_as_unattributed():
    assert ledger_codec.append_payments("pending", D(600), [PaymentEntry("cash", D(100))]) == "unattributed:600,cash:100"
    # история короче amount_paid из-за битого сегмента
    assert ledger_codec.append_payments("cash:200,kc", D(350), [PaymentEntry("kcb", D(50))]) == "cash:200,unattributed:150,kcb:50"
    decoded = ledger_codec.decode_payments("unattributed:600,cash:100", D(700))
    assert ledger_codec.total(decoded) == D(700)
