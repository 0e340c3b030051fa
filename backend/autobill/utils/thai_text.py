# backend/autobill/utils/thai_text.py
"""
Thai number / currency / date formatting (ใช้ในใบเสนอราคา + ใบกำกับภาษี)

- baht_text(1234.50)   -> "หนึ่งพันสองร้อยสามสิบสี่บาทห้าสิบสตางค์"
- thai_number_text(21) -> "ยี่สิบเอ็ด"
- format_currency(1234.5) -> "฿1,234.50"
- format_thai_date("2025-01-05") -> "5 มกราคม 2568"

Digit rules:
- หลักสิบ 1 -> "สิบ" (ไม่ใช่ หนึ่งสิบ), หลักสิบ 2 -> "ยี่สิบ"
- หลักหน่วย 1 ของกลุ่มที่ >= 10 -> "เอ็ด" (สิบเอ็ด, ร้อยเอ็ด)
- ทุก 6 หลักคั่นด้วย "ล้าน" (ล้านล้าน ได้ไม่จำกัด)
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any, Union

from .text_utils import clean_number_string

Number = Union[int, float, str, Decimal]

THAI_DIGIT_WORDS = ["", "หนึ่ง", "สอง", "สาม", "สี่", "ห้า", "หก", "เจ็ด", "แปด", "เก้า"]
THAI_POSITIONS = ["", "สิบ", "ร้อย", "พัน", "หมื่น", "แสน"]

THAI_MONTHS = [
    "มกราคม", "กุมภาพันธ์", "มีนาคม", "เมษายน",
    "พฤษภาคม", "มิถุนายน", "กรกฎาคม", "สิงหาคม",
    "กันยายน", "ตุลาคม", "พฤศจิกายน", "ธันวาคม",
]

MILLION = 1_000_000
BUDDHIST_ERA_OFFSET = 543
_CENT = Decimal("0.01")
_MILLI = Decimal("0.001")


def _to_decimal(v: Any) -> Decimal:
    if isinstance(v, Decimal):
        return v if v.is_finite() else Decimal("0")
    if isinstance(v, (int, float)):
        d = Decimal(str(v))
        return d if d.is_finite() else Decimal("0")
    s = clean_number_string(v)
    if not s or s == "-":
        return Decimal("0")
    try:
        return Decimal(s)
    except (InvalidOperation, ValueError):
        return Decimal("0")


def _quantize(d: Decimal, exp: Decimal) -> Decimal:
    # precision follows the integer part (default context stops at 28 digits)
    with localcontext() as ctx:
        ctx.prec = max(28, d.adjusted() + 6)
        return d.quantize(exp, rounding=ROUND_HALF_UP)


def _read_group(n: int) -> str:
    """Read 0 <= n < 1,000,000 (one group, no 'ล้าน')."""
    if n <= 0:
        return ""

    words = []
    for pos, ch in enumerate(reversed(str(n))):
        digit = int(ch)
        if digit == 0:
            continue

        if pos == 1 and digit == 1:
            word = ""
        elif pos == 1 and digit == 2:
            word = "ยี่"
        elif pos == 0 and digit == 1 and n >= 10:
            word = "เอ็ด"
        else:
            word = THAI_DIGIT_WORDS[digit]

        words.append(word + THAI_POSITIONS[pos])

    return "".join(reversed(words))


def _read_integer(n: int) -> str:
    if n < MILLION:
        return _read_group(n)

    high, low = divmod(n, MILLION)
    text = _read_integer(high) + "ล้าน"
    if low == 1:
        # หนึ่งล้านเอ็ด (ไม่ใช่ หนึ่งล้านหนึ่ง)
        text += "เอ็ด"
    elif low:
        text += _read_group(low)
    return text


def baht_text(amount: Number) -> str:
    """
    Convert an amount to Thai currency words (baht + satang).

    - 0 -> "ศูนย์บาทถ้วน"
    - negative -> "ลบ..." prefix
    - satang rounded half-up to 2 decimals
    - < 1 baht -> satang only ("ห้าสิบสตางค์")
    """
    d = _quantize(_to_decimal(amount), _CENT)
    if d == 0:
        return "ศูนย์บาทถ้วน"
    if d < 0:
        return "ลบ" + baht_text(d.copy_abs())

    baht = int(d)
    satang = int((d - baht) * 100)

    text = ""
    if baht > 0:
        text = _read_integer(baht) + "บาท"

    if satang == 0:
        return text + "ถ้วน"
    return text + _read_group(satang) + "สตางค์"


def thai_number_text(number: Number) -> str:
    """Integer part in Thai words, without 'บาท' / 'ถ้วน'."""
    d = _to_decimal(number)
    n = int(d.copy_abs())
    if n == 0:
        return "ศูนย์"
    text = _read_integer(n)
    return "ลบ" + text if d < 0 else text


def format_currency(amount: Number) -> str:
    d = _quantize(_to_decimal(amount), _CENT)
    if d < 0:
        return f"-฿{d.copy_abs():,.2f}"
    return f"฿{d:,.2f}"


def format_number(num: Number) -> str:
    """Grouped number, up to 3 decimals, trailing zeros dropped (1,234.5)."""
    d = _quantize(_to_decimal(num), _MILLI)
    s = f"{d:,.3f}"
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return s


def _coerce_date(value: Union[date, datetime, str]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value or "").strip()
    if not s:
        raise ValueError("empty date")
    # "2025-01-05" / "2025-01-05T10:00:00Z"
    if "T" in s:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    return date.fromisoformat(s[:10])


def format_thai_date(value: Union[date, datetime, str]) -> str:
    """'2025-01-05' -> '5 มกราคม 2568' (พ.ศ.)"""
    d = _coerce_date(value)
    return f"{d.day} {THAI_MONTHS[d.month - 1]} {d.year + BUDDHIST_ERA_OFFSET}"


__all__ = [
    "baht_text",
    "thai_number_text",
    "format_currency",
    "format_number",
    "format_thai_date",
]
