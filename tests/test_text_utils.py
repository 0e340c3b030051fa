from __future__ import annotations

from autobill.utils.text_utils import (
    clean_number_string,
    first_json_array,
    first_json_object,
    normalize_text,
    strip_code_fence,
    thai_digits_to_arabic,
    truncate_text_smart,
)
from autobill.utils.validators import (
    clean_tax_id,
    optional_text,
    sanitize_branch5,
    validate_tax13,
)


def test_thai_digits_to_arabic():
    assert thai_digits_to_arabic("๑๒๓ บาท") == "123 บาท"
    assert thai_digits_to_arabic(None) == ""


def test_normalize_text_keeps_lines_and_thai_vowels():
    raw = "กาแฟ   เย็น\u200b ๒ แก้ว\r\n\n\n\nจำนวน  ๓"
    assert normalize_text(raw) == "กาแฟ เย็น 2 แก้ว\n\nจำนวน 3"


def test_clean_number_string():
    assert clean_number_string("฿1,250.50 บาท") == "1250.50"
    assert clean_number_string("THB 99") == "99"
    assert clean_number_string("-20") == "-20"
    assert clean_number_string(None) == ""


def test_strip_code_fence():
    assert strip_code_fence("```json\n[1, 2]\n```") == "[1, 2]"
    assert strip_code_fence("  plain  ") == "plain"


def test_first_json_array_and_object():
    reply = 'Here you go:\n```json\n[{"description": "A"}]\n```\nThanks'
    assert first_json_array(reply) == '[{"description": "A"}]'
    assert first_json_object('result: {"x": 1} done') == '{"x": 1}'
    assert first_json_array("no json") == "no json"


def test_truncate_text_smart_keeps_head_and_tail():
    text = "A" * 200 + "B" * 200
    out = truncate_text_smart(text, 200)
    assert out.startswith("A" * 130)
    assert out.endswith("B" * 30)
    assert "<TRUNCATED>" in out
    assert truncate_text_smart("short", 100) == "short"


def test_sanitize_branch5():
    assert sanitize_branch5("1") == "00001"
    assert sanitize_branch5("") == "00000"
    assert sanitize_branch5(None) == "00000"
    assert sanitize_branch5("สาขา 00002") == "00002"
    assert sanitize_branch5("๐๐๐๐๓") == "00003"
    assert sanitize_branch5("0000012") == "00012"
    assert sanitize_branch5("", default="99999") == "99999"


def test_clean_tax_id():
    assert clean_tax_id("TAX: 0105561071873") == "0105561071873"
    assert clean_tax_id("0-1055-61071-87-3") == "0-1055-61071-87-3"
    assert clean_tax_id(None) == ""


def test_validate_tax13():
    assert validate_tax13("") is True
    assert validate_tax13("0-1055-61071-87-3") is True
    assert validate_tax13("12345") is False


def test_optional_text():
    assert optional_text("  ") is None
    assert optional_text(" x ") == "x"
