from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import pdfplumber

from .config import Settings, settings as default_settings
from .errors import DocumentNotFoundError, EmptyDocumentError, UnsupportedFileTypeError


logger = logging.getLogger(__name__)

CSV_EXTENSIONS = (".csv",)
STATEMENT_EXTENSIONS = (".pdf", ".txt")


def file_kind(path: Union[str, Path]) -> str:
    """'csv' | 'pdf' | 'txt'; cualquier otra extensión no se procesa."""
    ext = Path(path).suffix.lower()
    if ext in CSV_EXTENSIONS:
        return "csv"
    if ext in STATEMENT_EXTENSIONS:
        return ext.lstrip(".")
    raise UnsupportedFileTypeError(ext or "(sin extensión)")


def extract_pdf_text(pdf_path: Union[str, Path], max_pages: int) -> str:
    """Texto de las primeras `max_pages` páginas, una página tras otra."""
    chunks = []
    with pdfplumber.open(str(pdf_path)) as pdf:
        for page in pdf.pages[:max_pages]:
            chunks.append(page.extract_text() or "")
    return "\n".join(chunks)


def extract_text(path: Union[str, Path], settings: Optional[Settings] = None) -> str:
    """
    - CSV / TXT: se leen como UTF-8 tal cual (se descarta un BOM inicial)
    - PDF: pdfplumber, acotado a PDF_MAX_PAGES páginas
    """
    cfg = settings or default_settings
    p = Path(path)
    kind = file_kind(p)

    if not p.exists():
        raise DocumentNotFoundError(f"No existe el archivo: {p}")

    if kind == "pdf":
        text = extract_pdf_text(p, cfg.PDF_MAX_PAGES)
    else:
        text = p.read_text(encoding="utf-8-sig")

    if not text.strip():
        what = "PDF" if kind == "pdf" else "archivo"
        raise EmptyDocumentError(f"No se encontró contenido de texto en el {what}")

    logger.debug("Texto extraído de %s: %d caracteres", p.name, len(text), extra={"event": "text_extracted"})
    return text
