from __future__ import annotations

import re
from typing import Any, Optional

from .text_utils import thai_digits_to_arabic

# -------------------------
# Regex helpers
# -------------------------
RE_TAX13 = re.compile(r"^\d{13}$")
RE_NOT_TAX_CHARS = re.compile(r"[^\d-]")

HEAD_OFFICE_BRANCH = "00000"


def _s(v: Any) -> str:
    if v is None:
        return ""
    return str(v).strip()


def _digits_only(v: str) -> str:
    return "".join(ch for ch in v if ch.isdigit())


# -------------------------
# Sanitizers
# -------------------------
def clean_tax_id(v: Any) -> str:
    """
    Tax ID as typed / extracted: keep digits and hyphens only.
    "0-1055-61071-87-3" stays as-is, "TAX: 0105561071873" -> "0105561071873"
    """
    s = thai_digits_to_arabic(_s(v))
    return RE_NOT_TAX_CHARS.sub("", s)


def sanitize_branch5(v: Any, default: str = HEAD_OFFICE_BRANCH) -> str:
    """
    Branch code must be 5 digits. Input might be: '0', '1', 'สาขา 00001', '00000-'
    - no digits -> default (head office)
    - shorter -> zero padded ("1" -> "00001")
    - longer -> last 5 digits (prefix noise like "สาขาที่ 000001")
    """
    s = thai_digits_to_arabic(_s(v))
    digits = _digits_only(s)
    if not digits:
        return default

    if len(digits) > 5:
        digits = digits[-5:]
    return digits.zfill(5)


def optional_text(v: Any) -> Optional[str]:
    """Trimmed string, or None when blank (stored as NULL)."""
    s = _s(v)
    return s or None


# -------------------------
# Validators
# -------------------------
def validate_tax13(v: Any) -> bool:
    """
    Allow empty. Otherwise must be exactly 13 digits once hyphens are removed.
    """
    s = clean_tax_id(v)
    if not s:
        return True
    return RE_TAX13.fullmatch(s.replace("-", "")) is not None


__all__ = [
    "HEAD_OFFICE_BRANCH",
    "clean_tax_id",
    "sanitize_branch5",
    "optional_text",
    "validate_tax13",
]
