# backend/autobill/services/ai_service.py
"""
AI Service - chat completion gateway (OpenRouter-compatible)

✅ Core intent:
- ผู้ใช้วางข้อความ / อัปโหลดรูป -> ให้ AI แยก "รายการสินค้า" หรือ "ข้อมูลลูกค้า"
- ค่าที่ AI ส่งกลับมา "ห้ามเชื่อทั้งหมด" ต้องผ่าน parser/validator เสมอ (extractors/*)

Flow (ทุก extract_*):
1) system prompt + user prompt (ข้อความ หรือ image_url แบบ data URI)
2) POST {AI_BASE_URL}/chat/completions
3) strip ```json fence -> first JSON array/object -> json.loads -> validate
4) parse ไม่ได้ -> AIExtractionError (ข้อความภาษาไทยสำหรับผู้ใช้)

Quota + call logging อยู่ที่ usage_service (ไฟล์นี้ไม่รู้จัก company)
"""

from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import requests
from PIL import Image, UnidentifiedImageError

from ..config import Settings, get_settings
from ..extractors import parse_customer_reply, parse_items_reply
from ..extractors.prompts import (
    CUSTOMER_IMAGE_USER,
    CUSTOMER_SYSTEM,
    CUSTOMER_TEXT_USER,
    ITEMS_IMAGE_USER,
    ITEMS_SYSTEM,
    ITEMS_TEXT_USER,
    render_text_prompt,
)
from ..utils.text_utils import normalize_text, truncate_text_smart

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

DEFAULT_MAX_IMAGE_PIXELS = 40_000_000

SUPPORTED_IMAGE_TYPES: Dict[str, str] = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/gif": "GIF",
    "image/webp": "WEBP",
}

# api_type values for log_ai_api_call
API_EXTRACT_ITEMS = "extract_items"
API_EXTRACT_IMAGE = "extract_image"
API_EXTRACT_CUSTOMER = "extract_customer"
API_EXTRACT_CUSTOMER_TEXT = "extract_customer_text"

MSG_ITEMS_TEXT_FAILED = "ไม่สามารถแยกข้อมูลได้ กรุณาลองใหม่"
MSG_ITEMS_IMAGE_FAILED = "ไม่สามารถแยกข้อมูลจากรูปภาพได้ กรุณาลองใหม่"
MSG_CUSTOMER_IMAGE_FAILED = "ไม่สามารถแยกข้อมูลลูกค้าจากรูปภาพได้ กรุณาลองใหม่"
MSG_CUSTOMER_TEXT_FAILED = "ไม่สามารถแยกข้อมูลลูกค้าจากข้อความได้ กรุณาลองใหม่"
MSG_AI_UNAVAILABLE = "ไม่สามารถเชื่อมต่อบริการ AI ได้ กรุณาลองใหม่"
MSG_AI_NOT_CONFIGURED = "ยังไม่ได้ตั้งค่าบริการ AI"

UserContent = Union[str, List[Dict[str, Any]]]


class AIExtractionError(RuntimeError):
    """LLM call or reply parsing failed. str(e) is a Thai message for the user."""

    def __init__(self, message: str, request_tokens: int = 0, response_tokens: int = 0) -> None:
        super().__init__(message)
        self.request_tokens = request_tokens
        self.response_tokens = response_tokens


class InvalidImageError(ValueError):
    """Uploaded bytes are not a decodable image of the declared type."""


@dataclass
class ChatResult:
    content: str
    model: str = ""
    request_tokens: int = 0
    response_tokens: int = 0


@dataclass
class ExtractionResult:
    value: Any
    model: str = ""
    request_tokens: int = 0
    response_tokens: int = 0


# ---------------------------------------------------------------------
# Chat completion
# ---------------------------------------------------------------------
def _usage_tokens(data: Dict[str, Any]) -> Tuple[int, int]:
    usage = data.get("usage") or {}
    if not isinstance(usage, dict):
        return 0, 0
    try:
        return int(usage.get("prompt_tokens") or 0), int(usage.get("completion_tokens") or 0)
    except (TypeError, ValueError):
        return 0, 0


def chat_completion(system: str, user_content: UserContent, settings: Optional[Settings] = None) -> ChatResult:
    s = settings or get_settings()
    if not s.ai_api_key:
        logger.error("Missing OPENROUTER_API_KEY")
        raise AIExtractionError(MSG_AI_NOT_CONFIGURED)

    url = s.ai_base_url.rstrip("/") + "/chat/completions"
    headers = {
        "Authorization": f"Bearer {s.ai_api_key}",
        "Content-Type": "application/json",
        "HTTP-Referer": s.app_url,
        "X-Title": s.app_title,
    }
    payload: Dict[str, Any] = {
        "model": s.ai_model,
        "max_tokens": s.ai_max_tokens,
        "messages": [
            {"role": "system", "content": system},
            {"role": "user", "content": user_content},
        ],
    }

    try:
        r = requests.post(url, headers=headers, json=payload, timeout=s.ai_timeout)
    except requests.RequestException as e:
        logger.error("AI API request failed: %s", e)
        raise AIExtractionError(MSG_AI_UNAVAILABLE) from e

    if r.status_code >= 400:
        logger.error("AI API error %s: %s", r.status_code, (r.text or "")[:500])
        raise AIExtractionError(MSG_AI_UNAVAILABLE)

    try:
        data = r.json()
    except ValueError as e:
        logger.error("AI API returned non-JSON body: %s", (r.text or "")[:500])
        raise AIExtractionError(MSG_AI_UNAVAILABLE) from e

    choices = data.get("choices") if isinstance(data, dict) else None
    if not choices:
        logger.error("AI API returned no choices: %s", str(data)[:500])
        raise AIExtractionError(MSG_AI_UNAVAILABLE)

    message = (choices[0] or {}).get("message") or {}
    content = message.get("content") or ""
    req_tokens, resp_tokens = _usage_tokens(data)
    logger.debug("AI reply (%s chars, tokens in=%s out=%s)", len(content), req_tokens, resp_tokens)

    return ChatResult(
        content=str(content),
        model=str(data.get("model") or s.ai_model),
        request_tokens=req_tokens,
        response_tokens=resp_tokens,
    )


# ---------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------
def _resize_max_side(img: Image.Image, max_side: int) -> Image.Image:
    if max_side <= 0:
        return img
    w, h = img.size
    m = max(w, h)
    if m <= max_side:
        return img
    ratio = max_side / float(m)
    nw = max(1, int(w * ratio))
    nh = max(1, int(h * ratio))
    return img.resize((nw, nh), resample=Image.LANCZOS)


def prepare_image(
    data: bytes,
    mime_type: str,
    max_side: int,
    max_pixels: int = DEFAULT_MAX_IMAGE_PIXELS,
) -> Tuple[bytes, str]:
    """
    Validate + downscale an uploaded image.
    Images over max_pixels are rejected before decoding (header size only).
    Returns (bytes, mime_type); the original bytes when no resize is needed.
    GIF is re-encoded as PNG when resized (first frame only).
    """
    fmt = SUPPORTED_IMAGE_TYPES.get(mime_type)
    if fmt is None:
        raise InvalidImageError(f"unsupported image type: {mime_type}")

    try:
        with Image.open(io.BytesIO(data)) as head:
            w, h = head.size
            if max_pixels > 0 and w * h > max_pixels:
                raise InvalidImageError(f"image too large: {w}x{h}")
            head.verify()
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
        raise InvalidImageError("cannot decode image") from e

    if max(img.size) <= max_side or max_side <= 0:
        return data, mime_type

    if fmt == "GIF":
        fmt, mime_type = "PNG", "image/png"
    if fmt == "JPEG" and img.mode not in ("RGB", "L"):
        img = img.convert("RGB")
    elif img.mode == "P":
        img = img.convert("RGBA")

    resized = _resize_max_side(img, max_side)
    out = io.BytesIO()
    resized.save(out, format=fmt)
    logger.info("Image downscaled %sx%s -> %sx%s", img.size[0], img.size[1], resized.size[0], resized.size[1])
    return out.getvalue(), mime_type


def image_data_uri(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def _image_content(prompt: str, data: bytes, mime_type: str, settings: Settings) -> List[Dict[str, Any]]:
    prepared, mime = prepare_image(data, mime_type, settings.max_image_side, settings.max_image_pixels)
    return [
        {"type": "image_url", "image_url": {"url": image_data_uri(prepared, mime)}},
        {"type": "text", "text": prompt},
    ]


def _prepare_text(text: str, settings: Settings) -> str:
    return truncate_text_smart(normalize_text(text), settings.ai_text_max)


# ---------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------
def _run(system: str, user_content: UserContent, parse: Any, failed_msg: str, settings: Settings) -> ExtractionResult:
    reply = chat_completion(system, user_content, settings=settings)
    try:
        value = parse(reply.content)
    except ValueError as e:
        # json.JSONDecodeError is a ValueError too
        logger.error("Failed to parse extraction result: %s", e)
        logger.error("Raw response: %s", reply.content[:2000])
        raise AIExtractionError(
            failed_msg,
            request_tokens=reply.request_tokens,
            response_tokens=reply.response_tokens,
        ) from e

    return ExtractionResult(
        value=value,
        model=reply.model,
        request_tokens=reply.request_tokens,
        response_tokens=reply.response_tokens,
    )


def extract_items_from_text(text: str, settings: Optional[Settings] = None) -> ExtractionResult:
    """ExtractionResult.value -> List[ExtractedItem]"""
    s = settings or get_settings()
    user = render_text_prompt(ITEMS_TEXT_USER, _prepare_text(text, s))
    return _run(ITEMS_SYSTEM, user, parse_items_reply, MSG_ITEMS_TEXT_FAILED, s)


def extract_items_from_image(data: bytes, mime_type: str, settings: Optional[Settings] = None) -> ExtractionResult:
    """ExtractionResult.value -> List[ExtractedItem]"""
    s = settings or get_settings()
    content = _image_content(ITEMS_IMAGE_USER, data, mime_type, s)
    return _run(ITEMS_SYSTEM, content, parse_items_reply, MSG_ITEMS_IMAGE_FAILED, s)


def extract_customer_from_text(text: str, settings: Optional[Settings] = None) -> ExtractionResult:
    """ExtractionResult.value -> ExtractedCustomer"""
    s = settings or get_settings()
    user = render_text_prompt(CUSTOMER_TEXT_USER, _prepare_text(text, s))
    return _run(CUSTOMER_SYSTEM, user, parse_customer_reply, MSG_CUSTOMER_TEXT_FAILED, s)


def extract_customer_from_image(data: bytes, mime_type: str, settings: Optional[Settings] = None) -> ExtractionResult:
    """ExtractionResult.value -> ExtractedCustomer"""
    s = settings or get_settings()
    content = _image_content(CUSTOMER_IMAGE_USER, data, mime_type, s)
    return _run(CUSTOMER_SYSTEM, content, parse_customer_reply, MSG_CUSTOMER_IMAGE_FAILED, s)


__all__ = [
    "SUPPORTED_IMAGE_TYPES",
    "API_EXTRACT_ITEMS",
    "API_EXTRACT_IMAGE",
    "API_EXTRACT_CUSTOMER",
    "API_EXTRACT_CUSTOMER_TEXT",
    "AIExtractionError",
    "InvalidImageError",
    "ChatResult",
    "ExtractionResult",
    "chat_completion",
    "prepare_image",
    "image_data_uri",
    "extract_items_from_text",
    "extract_items_from_image",
    "extract_customer_from_text",
    "extract_customer_from_image",
]
