"""Plain-text extraction from uploaded documents."""

import csv
import io
import logging
from typing import List

import docx
from openpyxl import load_workbook
from pypdf import PdfReader

logger = logging.getLogger(__name__)

PDF_MIME_TYPES = {"application/pdf"}
WORD_MIME_TYPES = {
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
}
EXCEL_MIME_TYPES = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
}
CSV_MIME_TYPES = {"text/csv", "application/csv"}
TEXT_MIME_TYPES = {"application/json", "application/xml"}

PDF_EMPTY_TEXT_ERROR = (
    "PDF text extraction failed. The PDF may be image-based (scanned) or encrypted."
)


def is_text_extractable(mime_type: str) -> bool:
    """Whether ``mime_type`` is a document we can pull text out of."""
    mime = (mime_type or "").lower()
    return (
        mime in PDF_MIME_TYPES
        or mime in WORD_MIME_TYPES
        or mime in EXCEL_MIME_TYPES
        or mime in CSV_MIME_TYPES
        or mime in TEXT_MIME_TYPES
        or mime.startswith("text/")
    )


def _extract_pdf(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    pages: List[str] = []
    for page in reader.pages:
        page_text = (page.extract_text() or "").strip()
        if page_text:
            pages.append(page_text)
    text = "\n\n".join(pages).strip()
    if not text:
        raise ValueError(PDF_EMPTY_TEXT_ERROR)
    return text


def _extract_docx(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))
    lines = [paragraph.text for paragraph in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                lines.append("\t".join(cells))
    return "\n".join(lines).strip()


def _extract_xlsx(data: bytes) -> str:
    workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    sections: List[str] = []
    try:
        for sheet in workbook.worksheets:
            rows: List[str] = []
            for row in sheet.iter_rows(values_only=True):
                values = ["" if value is None else str(value) for value in row]
                if any(v.strip() for v in values):
                    rows.append(",".join(values))
            if rows:
                sections.append(f"Sheet: {sheet.title}\n" + "\n".join(rows))
    finally:
        workbook.close()
    return "\n\n".join(sections).strip()


def _extract_csv(data: bytes) -> str:
    decoded = data.decode("utf-8", errors="replace")
    reader = csv.reader(io.StringIO(decoded))
    return "\n".join(", ".join(cell.strip() for cell in row) for row in reader if row).strip()


def extract_text(data: bytes, mime_type: str) -> str:
    """
    Extract plain text from a document's raw bytes.

    Raises ValueError when the type is unsupported or the document has no
    recoverable text.
    """
    mime = (mime_type or "").lower()
    if mime in PDF_MIME_TYPES:
        return _extract_pdf(data)
    if mime in WORD_MIME_TYPES:
        if mime == "application/msword":
            raise ValueError("Legacy .doc files are not supported for text extraction.")
        return _extract_docx(data)
    if mime in EXCEL_MIME_TYPES:
        if mime == "application/vnd.ms-excel":
            raise ValueError("Legacy .xls files are not supported for text extraction.")
        return _extract_xlsx(data)
    if mime in CSV_MIME_TYPES:
        return _extract_csv(data)
    if mime.startswith("text/") or mime in TEXT_MIME_TYPES:
        return data.decode("utf-8", errors="replace").strip()
    raise ValueError(f"Unsupported file type for text extraction: {mime_type}")
