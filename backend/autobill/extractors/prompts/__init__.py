# -*- coding: utf-8 -*-
"""
prompts package

We store prompt text in .txt files so it's editable without touching code.
This __init__ loads them safely.
"""

from __future__ import annotations

import os
import logging

logger = logging.getLogger(__name__)


def _read(name: str) -> str:
    """Read prompt file safely"""
    base = os.path.dirname(__file__)
    path = os.path.join(base, name)
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read().strip()
            if not content:
                logger.warning("Prompt file %s is empty", name)
            return content
    except FileNotFoundError:
        logger.warning("Prompt file not found: %s", name)
        return ""


# ============================================================
# Line items (รายการสินค้า / บริการ)
# ============================================================

ITEMS_SYSTEM = _read("items_system.txt")
ITEMS_TEXT_USER = _read("items_text_user.txt")
ITEMS_IMAGE_USER = _read("items_image_user.txt")


# ============================================================
# Customer (ข้อมูลลูกค้า)
# ============================================================

CUSTOMER_SYSTEM = _read("customer_system.txt")
CUSTOMER_TEXT_USER = _read("customer_text_user.txt")
CUSTOMER_IMAGE_USER = _read("customer_image_user.txt")


def render_text_prompt(template: str, text: str) -> str:
    """Put pasted text into a *_text_user template ({text} placeholder)."""
    return template.replace("{text}", text)


__all__ = [
    "ITEMS_SYSTEM",
    "ITEMS_TEXT_USER",
    "ITEMS_IMAGE_USER",
    "CUSTOMER_SYSTEM",
    "CUSTOMER_TEXT_USER",
    "CUSTOMER_IMAGE_USER",
    "render_text_prompt",
]
