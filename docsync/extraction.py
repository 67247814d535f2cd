import io
from collections.abc import Callable
from typing import Protocol

import docx
import fitz  # PyMuPDF
import pytesseract
from loguru import logger
from openpyxl import load_workbook
from PIL import Image
from pptx import Presentation

from .errors import ExtractionError
from .formats import Extraction
from .models import SourceItem


class ContentSource(Protocol):
    def download(self, item: SourceItem) -> bytes:
        """Raw bytes of the item; native formats come back exported to OOXML."""
        ...


class Extractor(Protocol):
    def extract(self, item: SourceItem) -> str: ...


def _table_rows(table) -> list[str]:
    rows = []
    for row in table.rows:
        cells = [cell.text.strip() for cell in row.cells]
        if any(cells):
            rows.append(" | ".join(cells))
    return rows


def docx_text(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))
    parts = [p.text for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        parts.extend(_table_rows(table))
    return "\n".join(parts)


def pptx_text(data: bytes) -> str:
    presentation = Presentation(io.BytesIO(data))
    slides = []
    for slide in presentation.slides:
        parts = []
        for shape in slide.shapes:
            if shape.has_text_frame and shape.text_frame.text.strip():
                parts.append(shape.text_frame.text)
            if getattr(shape, "has_table", False) and shape.has_table:
                parts.extend(_table_rows(shape.table))
        if parts:
            slides.append("\n".join(parts))
    return "\n\n".join(slides)


def xlsx_text(data: bytes) -> str:
    workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        sheets = []
        for sheet in workbook.worksheets:
            lines = [f"Sheet: {sheet.title}", ""]
            for row in sheet.iter_rows(values_only=True):
                values = [str(v) for v in row if v is not None and str(v).strip()]
                if values:
                    lines.append(" | ".join(values))
            sheets.append("\n".join(lines))
        return "\n\n".join(sheets)
    finally:
        workbook.close()


def pdf_text(data: bytes) -> str:
    with fitz.open(stream=data, filetype="pdf") as document:
        return "\n".join(page.get_text("text") for page in document)


def pdf_ocr_text(data: bytes, lang: str = "eng") -> str:
    pages = []
    with fitz.open(stream=data, filetype="pdf") as document:
        for page in document:
            pix = page.get_pixmap(matrix=fitz.Matrix(2, 2))
            image = Image.open(io.BytesIO(pix.tobytes("png"))).convert("RGB")
            pages.append(pytesseract.image_to_string(image, lang=lang))
    return "\n\n".join(p for p in pages if p.strip())


class TextExtractor:
    """Format-dispatched text extraction with an OCR fallback for image-only PDFs."""

    def __init__(self, source: ContentSource, ocr_threshold: int = 50, ocr: bool = True, ocr_lang: str = "eng"):
        self.source = source
        self.ocr_threshold = ocr_threshold
        self.ocr = ocr
        self.ocr_lang = ocr_lang
        self._handlers: dict[Extraction, Callable[[bytes], str]] = {
            Extraction.DOCUMENT: docx_text,
            Extraction.SLIDES: pptx_text,
            Extraction.SPREADSHEET: xlsx_text,
            Extraction.PDF: self._pdf,
            Extraction.TEXT: lambda data: data.decode("utf-8", errors="replace"),
        }

    def _pdf(self, data: bytes) -> str:
        text = pdf_text(data)
        if len(text.strip()) > self.ocr_threshold or not self.ocr:
            return text
        logger.info("PDF text layer too thin ({} chars), falling back to OCR", len(text.strip()))
        return pdf_ocr_text(data, self.ocr_lang) or text

    def extract(self, item: SourceItem) -> str:
        strategy = item.format_tag.extraction
        handler = self._handlers.get(strategy)
        if handler is None:
            raise ExtractionError(item.id, item.display_name, f"unsupported format {item.format_tag.name}")
        try:
            data = self.source.download(item)
        except Exception as e:
            raise ExtractionError(item.id, item.display_name, f"download failed: {e}") from e
        try:
            return handler(data)
        except Exception as e:
            raise ExtractionError(item.id, item.display_name, f"{strategy.value} extraction failed: {e}") from e
