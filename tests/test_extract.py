from __future__ import annotations

import pytest

from statement_ingest import extract
from statement_ingest.config import Settings
from statement_ingest.errors import DocumentNotFoundError, EmptyDocumentError, UnsupportedFileTypeError


class _FakePage:
    def __init__(self, text):
        self._text = text

    def extract_text(self):
        return self._text


class _FakePdf:
    def __init__(self, pages):
        self.pages = [_FakePage(t) for t in pages]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_file_kind():
    assert extract.file_kind("a/b/Export.CSV") == "csv"
    assert extract.file_kind("statement.pdf") == "pdf"
    assert extract.file_kind("statement.txt") == "txt"
    with pytest.raises(UnsupportedFileTypeError):
        extract.file_kind("statement.xlsx")


def test_text_file_drops_bom(tmp_path):
    path = tmp_path / "export.csv"
    path.write_bytes("\ufeffDate,Description,Amount\n".encode("utf-8"))
    assert extract.extract_text(path).startswith("Date,")


def test_missing_and_empty(tmp_path):
    with pytest.raises(DocumentNotFoundError):
        extract.extract_text(tmp_path / "nope.txt")

    empty = tmp_path / "empty.txt"
    empty.write_text("\n\n", encoding="utf-8")
    with pytest.raises(EmptyDocumentError):
        extract.extract_text(empty)


def test_pdf_pages_are_capped(tmp_path, monkeypatch):
    path = tmp_path / "statement.pdf"
    path.write_bytes(b"%PDF-1.4")
    monkeypatch.setattr(extract.pdfplumber, "open", lambda p: _FakePdf(["uno", None, "tres", "cuatro"]))

    text = extract.extract_text(path, Settings(PDF_MAX_PAGES=3))
    assert text == "uno\n\ntres"


def test_pdf_without_text_layer(tmp_path, monkeypatch):
    path = tmp_path / "scan.pdf"
    path.write_bytes(b"%PDF-1.4")
    monkeypatch.setattr(extract.pdfplumber, "open", lambda p: _FakePdf([None, ""]))

    with pytest.raises(EmptyDocumentError, match="PDF"):
        extract.extract_text(path)
