"""入库与 prompt 文本清洗工具。

去除空字节、控制字符与非法 Unicode 转义，保证文本可以安全写入数据库，
也不会在 JSON 解析前破坏结构。所有函数都是纯函数且不会抛出异常。
"""

from __future__ import annotations

import re
from typing import Any, Iterable, List

# 字面量形式的空字节转义：\u0000 / \x00 / \0（前面已是反斜杠的 \\0 不算）
_ESCAPED_NULLS = re.compile(r"\\u0000|\\x00|(?<!\\)\\0")
# 保留 \t \n \r，其余 C0、DEL 与 C1 控制字符全部移除
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
# 非字符与孤立代理项
_INVALID_CODEPOINTS = re.compile("[\ufffe\uffff\ud800-\udfff]")
_UNICODE_ESCAPE = re.compile(r"\\u([0-9a-fA-F]{4})")


def _is_safe_codepoint(code: int) -> bool:
    return 0x20 <= code <= 0x7E or 0xA0 <= code <= 0xFFFD


def _revalidate_escape(match: re.Match) -> str:
    # 安全的转义原样保留，交给 JSON 解析器解码，避免提前解码出引号等结构字符
    if _is_safe_codepoint(int(match.group(1), 16)):
        return match.group(0)
    return ""


def _sanitize_once(text: str) -> str:
    text = text.replace("\x00", "")
    text = _ESCAPED_NULLS.sub("", text)
    text = _CONTROL_CHARS.sub("", text)
    text = _INVALID_CODEPOINTS.sub("", text)
    text = _UNICODE_ESCAPE.sub(_revalidate_escape, text)
    return text.strip()


def sanitize(text: Any) -> str:
    """清洗单个字符串，非字符串输入返回空串。

    每一轮只会删除字符，因此重复执行直到不再变化即可保证幂等：
    删除某段转义后拼出的新转义也会在下一轮被处理。
    """

    if not isinstance(text, str):
        return ""
    current = text
    while True:
        cleaned = _sanitize_once(current)
        if cleaned == current:
            return cleaned
        current = cleaned


def sanitize_list(values: Iterable[Any]) -> List[str]:
    """清洗字符串序列，丢弃非字符串元素。"""

    return [sanitize(value) for value in values if isinstance(value, str)]


def sanitize_object(value: Any) -> Any:
    """递归清洗 dict / list 中的所有字符串值。"""

    if isinstance(value, str):
        return sanitize(value)
    if isinstance(value, dict):
        return {key: sanitize_object(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_object(item) for item in value]
    return value
