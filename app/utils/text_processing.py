"""文档解析与文本统计工具。"""

from __future__ import annotations

import math
from io import BytesIO
from pathlib import Path
from typing import Dict, List

from docx import Document as DocxDocument
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

WORDS_PER_PAGE = 250

MIME_TYPES = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".doc": "application/msword",
    ".txt": "text/plain",
    "": "text/plain",
}


class UnsupportedDocumentError(ValueError):
    """不支持的文件类型或文件已损坏。"""


def parse_document(content: bytes, filename: str) -> List[Dict[str, object]]:
    """根据文件后缀解析为按页的文本列表。

    返回 ``[{"page": int, "text": str}, ...]``。页码采用 1-based。
    """

    suffix = Path(filename).suffix.lower()
    if suffix == ".pdf":
        return _parse_pdf(content)
    if suffix in {".docx", ".doc"}:
        return _parse_docx(content)
    if suffix in {".txt", ".md", ""}:
        return _parse_plain(content)
    raise UnsupportedDocumentError(f"Unsupported file extension: {suffix}")


def _parse_pdf(content: bytes) -> List[Dict[str, object]]:
    try:
        reader = PdfReader(BytesIO(content))
        return [
            {"page": idx, "text": page.extract_text() or ""}
            for idx, page in enumerate(reader.pages, start=1)
        ]
    except PdfReadError as exc:
        raise UnsupportedDocumentError(f"Failed to extract text from PDF: {exc}") from exc


def _parse_docx(content: bytes) -> List[Dict[str, object]]:
    try:
        doc = DocxDocument(BytesIO(content))
    except Exception as exc:  # noqa: BLE001 - python-docx 对损坏文件抛出多种异常
        raise UnsupportedDocumentError(f"Failed to extract text from DOCX: {exc}") from exc
    text = "\n".join(p.text for p in doc.paragraphs)
    return [{"page": 1, "text": text}]


def _parse_plain(content: bytes) -> List[Dict[str, object]]:
    return [{"page": 1, "text": content.decode("utf-8", errors="ignore")}]


def join_pages(pages: List[Dict[str, object]]) -> str:
    return "\n\n".join(str(page["text"]) for page in pages if page["text"])


def count_words(text: str) -> int:
    return len(text.split())


def estimate_page_count(text: str) -> int:
    """按每页约 250 词估算页数。"""

    return math.ceil(count_words(text) / WORDS_PER_PAGE)


def guess_mime_type(filename: str) -> str:
    return MIME_TYPES.get(Path(filename).suffix.lower(), "application/octet-stream")


def truncate_for_prompt(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "\n\n[Content truncated for length...]"
