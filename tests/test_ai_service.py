from __future__ import annotations

import base64
import io
import json
from dataclasses import replace
from typing import Any, Dict, List

import pytest
import requests
from PIL import Image

from autobill.services import ai_service
from autobill.services.ai_service import (
    AIExtractionError,
    InvalidImageError,
    MSG_AI_NOT_CONFIGURED,
    MSG_AI_UNAVAILABLE,
    MSG_CUSTOMER_TEXT_FAILED,
    prepare_image,
)


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._body = body
        self.text = text or json.dumps(body or {})

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no json")
        return self._body


def _completion(content: str, prompt_tokens: int = 120, completion_tokens: int = 40) -> Dict[str, Any]:
    return {
        "model": "anthropic/claude-3.5-sonnet",
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


class Captured:
    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.replies: List[FakeResponse] = []

    def __getitem__(self, index: int) -> Dict[str, Any]:
        return self.calls[index]


@pytest.fixture
def captured(monkeypatch) -> Captured:
    cap = Captured()

    def fake_post(url, headers=None, json=None, timeout=None):
        cap.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        return cap.replies.pop(0)

    monkeypatch.setattr(ai_service.requests, "post", fake_post)
    return cap


def _png(w: int, h: int, fmt: str = "PNG") -> bytes:
    buf = io.BytesIO()
    mode = "P" if fmt == "GIF" else "RGB"
    Image.new(mode, (w, h)).save(buf, format=fmt)
    return buf.getvalue()


def test_extract_items_from_text_calls_chat_completions(captured, settings):
    reply = '```json\n[{"description": "ค่าออกแบบ", "quantity": 1, "unit": "งาน", "unit_price": 5000}]\n```'
    captured.replies.append(FakeResponse(body=_completion(reply)))

    result = ai_service.extract_items_from_text("ค่าออกแบบโลโก้ 1 งาน 5,000 บาท", settings=settings)

    assert [it.description for it in result.value] == ["ค่าออกแบบ"]
    assert result.value[0].unit_price == 5000
    assert result.request_tokens == 120
    assert result.response_tokens == 40

    call = captured[0]
    assert call["url"] == "https://openrouter.ai/api/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer test-key"
    assert call["headers"]["X-Title"] == "Auto Bill"
    assert call["json"]["max_tokens"] == 4096
    messages = call["json"]["messages"]
    assert messages[0]["role"] == "system"
    assert messages[1]["role"] == "user"
    assert "ค่าออกแบบโลโก้ 1 งาน 5,000 บาท" in messages[1]["content"]


def test_long_text_is_truncated_before_prompting(captured, settings):
    captured.replies.append(FakeResponse(body=_completion("[]")))
    s = replace(settings, ai_text_max=200)

    ai_service.extract_items_from_text("ก" * 1000, settings=s)

    assert "<TRUNCATED>" in captured[0]["json"]["messages"][1]["content"]


def test_missing_api_key(settings):
    with pytest.raises(AIExtractionError) as ei:
        ai_service.extract_items_from_text("ข้อความทดสอบ", settings=replace(settings, ai_api_key=""))
    assert str(ei.value) == MSG_AI_NOT_CONFIGURED


def test_http_error_is_reported_as_unavailable(captured, settings):
    captured.replies.append(FakeResponse(status_code=502, body=None, text="bad gateway"))
    with pytest.raises(AIExtractionError) as ei:
        ai_service.extract_items_from_text("ข้อความทดสอบ", settings=settings)
    assert str(ei.value) == MSG_AI_UNAVAILABLE


def test_network_error_is_reported_as_unavailable(monkeypatch, settings):
    def boom(*args, **kwargs):
        raise requests.ConnectionError("down")

    monkeypatch.setattr(ai_service.requests, "post", boom)
    with pytest.raises(AIExtractionError):
        ai_service.extract_customer_from_text("บริษัท เอ จำกัด", settings=settings)


def test_empty_choices(captured, settings):
    captured.replies.append(FakeResponse(body={"choices": []}))
    with pytest.raises(AIExtractionError):
        ai_service.extract_items_from_text("ข้อความทดสอบ", settings=settings)


def test_unparsable_reply_keeps_token_counts(captured, settings):
    captured.replies.append(FakeResponse(body=_completion("ขออภัย ไม่เข้าใจ", 80, 10)))
    with pytest.raises(AIExtractionError) as ei:
        ai_service.extract_customer_from_text("บริษัท เอ จำกัด", settings=settings)
    assert str(ei.value) == MSG_CUSTOMER_TEXT_FAILED
    assert ei.value.request_tokens == 80
    assert ei.value.response_tokens == 10


def test_image_is_sent_as_downscaled_data_uri(captured, settings):
    reply = '{"customer_name": "บริษัท เอ จำกัด", "customer_tax_id": "0105561071873"}'
    captured.replies.append(FakeResponse(body=_completion(reply)))

    result = ai_service.extract_customer_from_image(_png(256, 128), "image/png", settings=settings)

    assert result.value.customer_name == "บริษัท เอ จำกัด"
    parts = captured[0]["json"]["messages"][1]["content"]
    assert parts[0]["type"] == "image_url"
    assert parts[1]["type"] == "text"
    url = parts[0]["image_url"]["url"]
    assert url.startswith("data:image/png;base64,")
    sent = Image.open(io.BytesIO(base64.b64decode(url.split(",", 1)[1])))
    assert sent.size == (64, 32)


def test_prepare_image_keeps_small_images():
    data = _png(32, 32)
    assert prepare_image(data, "image/png", 64) == (data, "image/png")


def test_prepare_image_gif_becomes_png_when_resized():
    out, mime = prepare_image(_png(200, 100, fmt="GIF"), "image/gif", 50)
    assert mime == "image/png"
    assert Image.open(io.BytesIO(out)).size == (50, 25)


def test_prepare_image_rejects_bad_input():
    with pytest.raises(InvalidImageError):
        prepare_image(b"not an image", "image/png", 64)
    with pytest.raises(InvalidImageError):
        prepare_image(_png(10, 10), "image/bmp", 64)
    with pytest.raises(InvalidImageError):
        prepare_image(_png(20, 20), "image/png", 64, max_pixels=100)


@pytest.mark.parametrize("side", [10000, 15000])
def test_prepare_image_rejects_huge_pixel_counts(side):
    # 10000x10000 only warns in Pillow, 15000x15000 raises DecompressionBombError
    buf = io.BytesIO()
    Image.new("1", (side, side)).save(buf, format="PNG")
    with pytest.raises(InvalidImageError):
        prepare_image(buf.getvalue(), "image/png", 2048)
