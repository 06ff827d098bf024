"""Read a PDF into per-page glyphs, plain text and detected tables.

Each PyMuPDF text span becomes one Glyph.  PyMuPDF measures y downwards from
the top of the page, so span origins are flipped into the bottom-left origin
that table detection expects.
"""

import logging
from pathlib import Path

import pymupdf
from pydantic import BaseModel, Field

from soc1_analyzer.tables.detection import extract_tables
from soc1_analyzer.tables.schema import Glyph, Table

logger = logging.getLogger(__name__)

PAGE_ERROR_TEXT = "[Error reading page content]"


class DocumentReadError(Exception):
    """The file could not be opened as a PDF."""


class DocumentInfo(BaseModel):
    """Everything the analysis needs from a document."""

    total_pages: int
    text: str
    tables: list[Table] = Field(default_factory=list)
    metadata: dict | None = None


def page_glyphs(page: pymupdf.Page, page_number: int) -> list[Glyph]:
    """Return one Glyph per non-empty text span on the page."""
    page_height = page.rect.height
    glyphs: list[Glyph] = []
    for block in page.get_text("dict").get("blocks", []):
        if block.get("type") != 0:
            continue
        for line in block.get("lines", []):
            for span in line.get("spans", []):
                text = span.get("text", "")
                if not text.strip():
                    continue
                x0, y0, x1, y1 = span["bbox"]
                origin_x, origin_y = span.get("origin", (x0, y1))
                glyphs.append(
                    Glyph(
                        text=text,
                        x=origin_x,
                        y=page_height - origin_y,
                        width=x1 - x0,
                        height=y1 - y0,
                        page=page_number,
                    )
                )
    return glyphs


def _open(pdf_path: Path) -> pymupdf.Document:
    try:
        doc = pymupdf.open(pdf_path)
    except FileNotFoundError as exc:
        raise DocumentReadError(f"File not found: {pdf_path}") from exc
    except (pymupdf.FileDataError, RuntimeError) as exc:
        raise DocumentReadError("The uploaded file is not a valid PDF or is corrupted.") from exc

    if doc.needs_pass:
        doc.close()
        raise DocumentReadError("This PDF is password-protected and cannot be processed.")
    return doc


def get_page_count(pdf_path: Path | str) -> int:
    """Return the number of pages in the PDF."""
    doc = _open(Path(pdf_path))
    try:
        return len(doc)
    finally:
        doc.close()


def read_pdf(pdf_path: Path | str) -> DocumentInfo:
    """Extract text and tables from every page of a PDF.

    A page that fails to read is recorded with a placeholder text and
    contributes no tables; the rest of the document is still processed.
    """
    pdf_path = Path(pdf_path)
    doc = _open(pdf_path)
    text_parts: list[str] = []
    tables: list[Table] = []

    try:
        total_pages = len(doc)
        logger.info("Reading %s (%d pages)", pdf_path.name, total_pages)
        for page_idx in range(total_pages):
            page_number = page_idx + 1
            try:
                glyphs = page_glyphs(doc[page_idx], page_number)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.warning("Error processing page %d: %s", page_number, exc)
                text_parts.append(f"\n--- Page {page_number} ---\n{PAGE_ERROR_TEXT}\n")
                continue

            page_text = " ".join(glyph.text for glyph in glyphs)
            text_parts.append(f"\n--- Page {page_number} ---\n{page_text}\n")
            tables.extend(extract_tables(glyphs, page_number))

        metadata = {key: value for key, value in (doc.metadata or {}).items() if value}
    finally:
        doc.close()

    logger.info("Read %d pages, detected %d tables", total_pages, len(tables))
    return DocumentInfo(total_pages=total_pages, text="".join(text_parts).strip(), tables=tables, metadata=metadata or None)
