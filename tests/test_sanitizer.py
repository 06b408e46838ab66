from decimal import Decimal

import pytest

from foodapp import config
from foodapp.utils import (clean_text, format_currency, is_valid_phone, is_valid_username, round_amount,
                           sanitize_input)


def test_sanitize_removes_script_tags():
    s = "<script>alert(1)</script>Bob"
    out = sanitize_input(s)
    assert "<script" not in out.lower()
    assert "bob" in out.lower()


def test_sanitize_strips_sql_meta():
    s = "Alice; DROP TABLE users; --"
    out = sanitize_input(s)
    # separators removed, core words may remain but punctuation should be gone
    assert ";" not in out
    assert "--" not in out
    assert "drop" in out.lower()


def test_clean_text_keeps_punctuation():
    assert clean_text("  <b>Level 3; unit 5</b>  ") == "Level 3; unit 5"
    assert clean_text("no\x00nul") == "nonul"
    assert clean_text(None) == ""


@pytest.mark.parametrize("phone,ok", [
    ("012-3456789", True),
    ("+60 12 345 6789", True),
    ("(03) 2161 0000", True),
    ("12345", False),
    ("012-3456789x", False),
    ("", False),
    (None, False),
])
def test_phone_validation(phone, ok):
    assert is_valid_phone(phone) is ok


@pytest.mark.parametrize("username,ok", [
    ("alice", True),
    ("bob_99", True),
    ("ab", False),
    ("bad name", False),
    ("<x>", False),
])
def test_username_validation(username, ok):
    assert is_valid_username(username) is ok


def test_money_rounding_and_format():
    assert round_amount(Decimal("2.345")) == Decimal("2.35")
    assert format_currency(Decimal("1234.5")) == "RM 1,234.50"


def test_currency_comes_from_config(monkeypatch):
    monkeypatch.setattr(config, "CURRENCY", "MYR")
    assert format_currency(Decimal("8")) == "MYR 8.00"
    assert format_currency(Decimal("8"), "SGD") == "SGD 8.00"
