from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from autobill.utils.thai_text import (
    baht_text,
    format_currency,
    format_number,
    format_thai_date,
    thai_number_text,
)


@pytest.mark.parametrize(
    "amount, expected",
    [
        (0, "ศูนย์บาทถ้วน"),
        (1, "หนึ่งบาทถ้วน"),
        (10, "สิบบาทถ้วน"),
        (11, "สิบเอ็ดบาทถ้วน"),
        (20, "ยี่สิบบาทถ้วน"),
        (21, "ยี่สิบเอ็ดบาทถ้วน"),
        (101, "หนึ่งร้อยเอ็ดบาทถ้วน"),
        (1000000, "หนึ่งล้านบาทถ้วน"),
        (1000001, "หนึ่งล้านเอ็ดบาทถ้วน"),
        (2500000, "สองล้านห้าแสนบาทถ้วน"),
        (11000000, "สิบเอ็ดล้านบาทถ้วน"),
    ],
)
def test_baht_text_integer_rules(amount, expected):
    assert baht_text(amount) == expected


def test_baht_text_with_satang():
    assert baht_text(Decimal("1234.50")) == "หนึ่งพันสองร้อยสามสิบสี่บาทห้าสิบสตางค์"
    assert baht_text(0.25) == "ยี่สิบห้าสตางค์"
    assert baht_text(0.5) == "ห้าสิบสตางค์"
    assert baht_text("0.01") == "หนึ่งสตางค์"


def test_baht_text_rounds_satang_half_up():
    assert baht_text(1.005) == "หนึ่งบาทหนึ่งสตางค์"
    assert baht_text("99.999") == "หนึ่งร้อยบาทถ้วน"


def test_baht_text_negative_and_strings():
    assert baht_text(-5) == "ลบห้าบาทถ้วน"
    assert baht_text("฿1,250.50") == "หนึ่งพันสองร้อยห้าสิบบาทห้าสิบสตางค์"
    assert baht_text("abc") == "ศูนย์บาทถ้วน"


def test_thai_number_text():
    assert thai_number_text(0) == "ศูนย์"
    assert thai_number_text(21) == "ยี่สิบเอ็ด"
    assert thai_number_text(15.75) == "สิบห้า"


def test_format_currency():
    assert format_currency(1234.5) == "฿1,234.50"
    assert format_currency(Decimal("1000000")) == "฿1,000,000.00"
    assert format_currency(-50) == "-฿50.00"


def test_format_number():
    assert format_number(1234.5) == "1,234.5"
    assert format_number(1000) == "1,000"
    assert format_number("2.1255") == "2.126"


def test_format_thai_date():
    assert format_thai_date("2025-01-05") == "5 มกราคม 2568"
    assert format_thai_date(date(2024, 12, 31)) == "31 ธันวาคม 2567"
    assert format_thai_date(datetime(2025, 6, 1, 10, 30)) == "1 มิถุนายน 2568"
    assert format_thai_date("2025-03-09T08:00:00Z") == "9 มีนาคม 2568"


@pytest.mark.parametrize(
    "amount, expected",
    [
        (Decimal(10) ** 27, "หนึ่งพันล้านล้านล้านล้านบาทถ้วน"),
        (Decimal(10) ** 30, "หนึ่งล้านล้านล้านล้านล้านบาทถ้วน"),
        (Decimal("1000000000000000000000000000.25"), "หนึ่งพันล้านล้านล้านล้านบาทยี่สิบห้าสตางค์"),
        (-(Decimal(10) ** 27), "ลบหนึ่งพันล้านล้านล้านล้านบาทถ้วน"),
    ],
)
def test_baht_text_beyond_default_decimal_precision(amount, expected):
    assert baht_text(amount) == expected


def test_formatting_beyond_default_decimal_precision():
    assert format_currency(Decimal(10) ** 27) == "฿1,000,000,000,000,000,000,000,000,000.00"
    assert format_number(Decimal(10) ** 30) == "1,000,000,000,000,000,000,000,000,000,000"
    assert thai_number_text(Decimal(10) ** 30) == "หนึ่งล้านล้านล้านล้านล้าน"
