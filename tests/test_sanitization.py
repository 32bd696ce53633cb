import json

import pytest

from app.utils.sanitization import sanitize, sanitize_list, sanitize_object


def test_removes_null_bytes_and_literal_null_escapes() -> None:
    assert sanitize("a\x00b") == "ab"
    assert sanitize("x\\u0000y") == "xy"
    assert sanitize("x\\x00y\\0z") == "xyz"


def test_escaped_backslash_before_zero_is_kept() -> None:
    raw = r'{"path": "C:\\0data"}'
    assert sanitize(raw) == raw
    assert json.loads(sanitize(raw)) == {"path": "C:\\0data"}


def test_keeps_tab_newline_and_carriage_return() -> None:
    assert sanitize("a\x07b\n\tc\r\nd\x7f\x85") == "ab\n\tc\r\nd"


def test_unicode_escapes_are_revalidated() -> None:
    assert sanitize("caf\\u00e9") == "caf\\u00e9"
    assert sanitize("bell\\u0007!") == "bell!"
    assert sanitize("odd\\ufffe") == "odd"


def test_invalid_code_points_removed() -> None:
    assert sanitize("a\ud800b\uffffc") == "abc"


def test_trims_and_handles_non_strings() -> None:
    assert sanitize("  padded \n") == "padded"
    assert sanitize(None) == ""
    assert sanitize(42) == ""


@pytest.mark.parametrize(
    "raw",
    [
        "plain text",
        "\\u\\u00000041 nested",
        "\\\\u0000\\u0000 \x00 \\u0001",
        "  \x01 lead and trail \x02  ",
        '{"feedback": "ok\\u0000"}',
    ],
)
def test_sanitize_is_idempotent(raw: str) -> None:
    once = sanitize(raw)
    assert sanitize(once) == once


def test_sanitize_list_drops_non_strings() -> None:
    assert sanitize_list([" a", 3, None, "b\x00"]) == ["a", "b"]


def test_sanitize_object_recurses() -> None:
    value = {"a": " x\x00 ", "b": ["y\x07", 1], "c": {"d": "z"}}
    assert sanitize_object(value) == {"a": "x", "b": ["y", 1], "c": {"d": "z"}}


def test_output_contains_no_removed_control_characters() -> None:
    raw = "".join(chr(code) for code in range(0x00, 0xA0)) + "text"
    cleaned = sanitize(raw)
    assert all(ch in "\t\n\r" or 0x20 <= ord(ch) <= 0x7E for ch in cleaned)
    assert cleaned.endswith("text")
