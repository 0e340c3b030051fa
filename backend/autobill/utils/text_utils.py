# backend/autobill/utils/text_utils.py
"""
Text utilities for AI extraction (Auto Bill)

Goals:
- Normalize pasted text safely before prompting (keep newlines!)
- Convert Thai digits to Arabic
- Normalize Unicode & punctuation variants
- Provide helpers used by the AI gateway:
  - clean_number_string (money / qty strings from LLM replies)
  - strip_code_fence / first_json_array / first_json_object
  - truncate_text_smart (long pasted text)
"""

from __future__ import annotations

import re
import unicodedata
from typing import Optional

# -------------------------
# Thai digit mapping
# -------------------------
THAI_DIGITS = "๐๑๒๓๔๕๖๗๘๙"
ARABIC_DIGITS = "0123456789"
THAI_TO_ARABIC = str.maketrans(THAI_DIGITS, ARABIC_DIGITS)

# -------------------------
# Common punctuation variants
# -------------------------
# dash variants: hyphen, en-dash, em-dash, minus, fullwidth hyphen
_DASH_CHARS = "\u2010\u2011\u2012\u2013\u2014\u2212\uFE63\uFF0D"
RE_DASHES = re.compile(rf"[{_DASH_CHARS}]+")
RE_MULTI_SPACE = re.compile(r"[ \t]+")

# Zero-width / control chars that often appear from copy & paste (LINE, PDF viewers)
RE_CONTROL = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F]")
RE_ZW = re.compile(r"[\u200B-\u200F\u202A-\u202E\u2060\uFEFF]")  # ZWSP + bidi marks etc.

# Numeric cleaning
RE_AMOUNT_JUNK = re.compile(r"[,\s$]|฿|THB|บาท|Baht", re.IGNORECASE)

# LLM replies: ```json ... ``` (or bare ``` ... ```)
RE_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
RE_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")
RE_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def _nfc(s: str) -> str:
    return unicodedata.normalize("NFC", s)


def _normalize_punct(s: str) -> str:
    """
    Normalize punctuation variants:
    - Convert dash variants to '-'
    - NFC only (NFKC splits Thai SARA AM "ำ" into two code points)
    """
    s2 = RE_DASHES.sub("-", s)
    return _nfc(s2)


def thai_digits_to_arabic(text: Optional[str]) -> str:
    if not text:
        return ""
    return str(text).translate(THAI_TO_ARABIC)


def normalize_text(text: Optional[str]) -> str:
    """
    Normalize pasted text before it goes into a prompt:
    - Convert Thai digits -> Arabic
    - Unicode normalize
    - Remove control & zero-width chars
    - Normalize dash variants
    - Collapse multiple spaces but KEEP newlines
      (line structure is what tells the model where one item ends)
    """
    if not text:
        return ""

    s = thai_digits_to_arabic(text)
    s = _normalize_punct(s)

    s = RE_CONTROL.sub("", s)
    s = RE_ZW.sub("", s)

    out_lines = []
    for line in s.splitlines():
        line = line.replace("\r", "")
        out_lines.append(RE_MULTI_SPACE.sub(" ", line).strip())

    # Reduce multiple empty lines to max 1
    normalized = "\n".join(out_lines)
    normalized = re.sub(r"\n{3,}", "\n\n", normalized).strip()
    return normalized


def clean_number_string(s: object) -> str:
    """
    Clean number string: remove commas, currency, spaces.
    Keep digits and at most one decimal point.
    Also normalizes Thai digits and dash variants.

    Example:
      "฿1,250.50 บาท" -> "1250.50"
      "๑๒" -> "12"
    """
    if s is None:
        return ""
    x = normalize_text(str(s))
    if not x:
        return ""
    x = RE_AMOUNT_JUNK.sub("", x).strip()

    neg = x.startswith("-")
    x = re.sub(r"[^\d.]", "", x)

    if x.count(".") > 1:
        # keep first dot only
        parts = x.split(".")
        x = parts[0] + "." + "".join(parts[1:])

    if neg and x:
        x = "-" + x
    return x


def strip_code_fence(text: Optional[str]) -> str:
    """
    Return the content of the first markdown code block if present,
    otherwise the trimmed text.
    """
    s = (text or "").strip()
    m = RE_CODE_FENCE.search(s)
    if m:
        return m.group(1).strip()
    return s


def first_json_array(text: Optional[str]) -> str:
    s = strip_code_fence(text)
    m = RE_JSON_ARRAY.search(s)
    return m.group(0) if m else s


def first_json_object(text: Optional[str]) -> str:
    s = strip_code_fence(text)
    m = RE_JSON_OBJECT.search(s)
    return m.group(0) if m else s


def truncate_text_smart(text: str, max_len: int) -> str:
    """Keep head + tail of very long text (totals usually sit at the end)."""
    t = (text or "").strip()
    if max_len <= 0 or len(t) <= max_len:
        return t
    head = int(max_len * 0.65)
    tail = max(0, max_len - head - 40)
    return t[:head] + "\n\n...<TRUNCATED>...\n\n" + (t[-tail:] if tail else "")


__all__ = [
    "thai_digits_to_arabic",
    "normalize_text",
    "clean_number_string",
    "strip_code_fence",
    "first_json_array",
    "first_json_object",
    "truncate_text_smart",
]
