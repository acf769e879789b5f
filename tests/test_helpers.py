from datetime import date

import pytest

from origination.utils.helpers import (
    add_months, age_on, mask_phone, mask_tax_id, normalize_phone, parse_date, round_money,
    sanitize_input, safe_get, validate_email, validate_tax_id,
)
from origination.utils.logging import redact


@pytest.mark.parametrize("tax_id", ["52998224725", "529.982.247-25", "99900000005", "11144477735"])
def test_valid_tax_ids(tax_id):
    assert validate_tax_id(tax_id)


@pytest.mark.parametrize("tax_id", ["52998224726", "11111111111", "123", "", "5299822472a"])
def test_invalid_tax_ids(tax_id):
    assert not validate_tax_id(tax_id)


def test_mask_tax_id_shows_only_middle_digits():
    assert mask_tax_id("52998224725") == "***.982.247-**"
    assert mask_tax_id("123") == "***"
    assert mask_tax_id(None) == "***"


def test_phone_helpers():
    assert normalize_phone("(11) 99999-0000") == "5511999990000"
    assert normalize_phone("5511999990000") == "5511999990000"
    assert mask_phone("5511999990000") == "5511*****0000"
    assert mask_phone("123") == "****"


def test_parse_date_formats():
    assert parse_date("1990-05-20") == date(1990, 5, 20)
    assert parse_date("20/05/1990") == date(1990, 5, 20)
    assert parse_date("31/02/1990") is None
    assert parse_date("yesterday") is None
    assert parse_date(19900520) is None


def test_age_on_counts_completed_years():
    assert age_on(date(2000, 6, 15), today=date(2018, 6, 14)) == 17
    assert age_on(date(2000, 6, 15), today=date(2018, 6, 15)) == 18


def test_add_months_rolls_over_the_year():
    assert add_months(date(2024, 11, 25), 1, 10) == date(2024, 12, 10)
    assert add_months(date(2024, 12, 3), 1, 10) == date(2025, 1, 10)
    assert add_months(date(2024, 12, 3), 13, 10) == date(2026, 1, 10)


def test_round_money_is_half_up():
    assert round_money(2.675) == 2.68
    assert round_money(10) == 10.0


def test_sanitize_input_truncates_and_strips_control_chars():
    assert sanitize_input("a\x00b\nc", 10) == "ab\nc"
    assert sanitize_input("x" * 50, 20) == "x" * 20


def test_email_and_safe_get():
    assert validate_email("maria@example.com")
    assert not validate_email("maria@")
    assert safe_get({"a": {"b": 1}}, "a", "b") == 1
    assert safe_get({"a": None}, "a", "b", default="none") == "none"


def test_redact_masks_phones_and_tax_ids():
    text = redact("customer 5511999990000 with cpf 52998224725")
    assert "5511999990000" not in text
    assert "5511*****0000" in text
    assert "***.982.247-**" in text
