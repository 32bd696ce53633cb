from io import BytesIO

import pytest
from docx import Document

from app.utils.text_processing import (
    UnsupportedDocumentError,
    count_words,
    estimate_page_count,
    guess_mime_type,
    join_pages,
    parse_document,
    truncate_for_prompt,
)


def test_parse_plain_text() -> None:
    pages = parse_document("第一段\nsecond line".encode("utf-8"), "notes.txt")
    assert pages == [{"page": 1, "text": "第一段\nsecond line"}]


def test_parse_docx() -> None:
    doc = Document()
    doc.add_paragraph("Heading paragraph")
    doc.add_paragraph("Body paragraph")
    buffer = BytesIO()
    doc.save(buffer)

    text = join_pages(parse_document(buffer.getvalue(), "report.docx"))
    assert "Heading paragraph\nBody paragraph" in text


def test_corrupt_files_raise() -> None:
    with pytest.raises(UnsupportedDocumentError):
        parse_document(b"not a pdf", "broken.pdf")
    with pytest.raises(UnsupportedDocumentError):
        parse_document(b"not a docx", "broken.docx")
    with pytest.raises(UnsupportedDocumentError):
        parse_document(b"", "image.png")


def test_word_and_page_estimates() -> None:
    assert count_words("one  two\nthree") == 3
    assert estimate_page_count("w " * 250) == 1
    assert estimate_page_count("w " * 251) == 2
    assert estimate_page_count("") == 0


def test_mime_types_and_truncation() -> None:
    assert guess_mime_type("a.PDF") == "application/pdf"
    assert guess_mime_type("a.zip") == "application/octet-stream"
    assert truncate_for_prompt("abc", 5) == "abc"
    assert truncate_for_prompt("abcdef", 3) == "abc\n\n[Content truncated for length...]"
