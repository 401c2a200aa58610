import io

import docx
import pytest
from openpyxl import Workbook
from pypdf import PdfWriter

from multimodal.documents import PDF_EMPTY_TEXT_ERROR, extract_text, is_text_extractable

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _docx_bytes() -> bytes:
    document = docx.Document()
    document.add_paragraph("Quarterly results")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Revenue"
    table.rows[0].cells[1].text = "12M"
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _xlsx_bytes() -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Pipeline"
    sheet.append(["Stage", "Deals"])
    sheet.append(["Demo", 4])
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _blank_pdf_bytes() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def test_plain_text_and_csv_are_decoded():
    assert extract_text(b"  hello world \n", "text/plain") == "hello world"
    assert extract_text(b"name,score\nacme, 9\n", "text/csv") == "name, score\nacme, 9"


def test_docx_paragraphs_and_tables_are_extracted():
    text = extract_text(_docx_bytes(), DOCX_MIME)
    assert "Quarterly results" in text
    assert "Revenue\t12M" in text


def test_xlsx_sheets_are_labelled():
    text = extract_text(_xlsx_bytes(), XLSX_MIME)
    assert text.startswith("Sheet: Pipeline")
    assert "Demo,4" in text


def test_image_only_pdf_raises():
    with pytest.raises(ValueError) as excinfo:
        extract_text(_blank_pdf_bytes(), "application/pdf")
    assert str(excinfo.value) == PDF_EMPTY_TEXT_ERROR


def test_legacy_and_unknown_types_raise():
    with pytest.raises(ValueError):
        extract_text(b"", "application/msword")
    with pytest.raises(ValueError):
        extract_text(b"", "application/vnd.ms-excel")
    with pytest.raises(ValueError):
        extract_text(b"", "application/zip")


def test_is_text_extractable():
    assert is_text_extractable("application/pdf")
    assert is_text_extractable("text/markdown")
    assert is_text_extractable(DOCX_MIME)
    assert not is_text_extractable("image/png")
    assert not is_text_extractable("video/mp4")
    assert not is_text_extractable(None)
