# backend/autobill/extractors/items.py
"""
Line-item reply parser

Model reply -> List[ExtractedItem]
- strip ```json fences, take the first [...] block, json.loads
- drop non-object entries and blank descriptions
- quantity: commas removed, must be > 0 else 1
- unit: default "ชิ้น"
- unit_price: ฿ / $ / , / บาท / THB removed, must be >= 0 else 0

Malformed JSON raises ValueError (caller turns it into a user message).
"""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any, List, Optional

from ..models.schemas import DEFAULT_UNIT, ExtractedItem
from ..utils.text_utils import RE_AMOUNT_JUNK, first_json_array, thai_digits_to_arabic

logger = logging.getLogger(__name__)

# leading number like JS parseFloat ("2 ชิ้น" -> 2, "1.5kg" -> 1.5)
RE_LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)")


def _leading_float(s: str) -> Optional[float]:
    m = RE_LEADING_NUMBER.match(s.strip())
    if not m:
        return None
    v = float(m.group(0))
    return v if math.isfinite(v) else None


def _js_str(v: Any) -> str:
    # String(v || "")
    if v is None or v is False or v == "" or (isinstance(v, (int, float)) and not isinstance(v, bool) and v == 0):
        return ""
    return str(v)


def parse_quantity(v: Any) -> float:
    if v is None or isinstance(v, bool):
        return 1.0
    s = thai_digits_to_arabic(str(v)).replace(",", "")
    q = _leading_float(s)
    if q is None or q <= 0:
        return 1.0
    return q


def parse_unit_price(v: Any) -> float:
    if v is None or isinstance(v, bool):
        return 0.0
    s = RE_AMOUNT_JUNK.sub("", thai_digits_to_arabic(str(v)))
    p = _leading_float(s)
    if p is None or p < 0:
        return 0.0
    return p


def validate_items(data: Any) -> List[ExtractedItem]:
    if not isinstance(data, list):
        raise ValueError("Invalid response format: expected array")

    out: List[ExtractedItem] = []
    for index, obj in enumerate(data):
        if not isinstance(obj, dict):
            logger.warning("Invalid item at index %s, skipping", index)
            continue

        description = _js_str(obj.get("description")).strip()
        if not description:
            logger.warning("Empty description at index %s, skipping", index)
            continue

        unit = _js_str(obj.get("unit")).strip() or DEFAULT_UNIT

        out.append(
            ExtractedItem(
                description=description,
                quantity=parse_quantity(obj.get("quantity")),
                unit=unit,
                unit_price=parse_unit_price(obj.get("unit_price")),
            )
        )
    return out


def parse_items_reply(content: str) -> List[ExtractedItem]:
    js = first_json_array(content)
    return validate_items(json.loads(js))


__all__ = [
    "parse_quantity",
    "parse_unit_price",
    "validate_items",
    "parse_items_reply",
]
