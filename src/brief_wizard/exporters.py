"""Utilities for exporting synthesized briefs to DOCX and PDF."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any

from .rendering import BriefBlock, iter_brief_blocks

logger = logging.getLogger(__name__)


class ExportError(RuntimeError):
    """Raised when a brief document cannot be generated."""


def _write_bytes(payload: bytes, destination: Path) -> Path:
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(payload)
    except OSError as exc:
        raise ExportError(f"Unable to write brief export: {destination}") from exc
    return destination


class BriefDocxExporter:
    """Render brief Markdown to a Word document with python-docx."""

    def render(self, markdown_text: str) -> bytes:
        try:
            from docx import Document
            from docx.enum.text import WD_ALIGN_PARAGRAPH
            from docx.shared import Pt
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise ExportError(
                "python-docx is required to export briefs as DOCX."
            ) from exc

        document = Document()
        normal = document.styles["Normal"]
        normal.font.name = "Calibri"
        normal.font.size = Pt(11)

        for block in iter_brief_blocks(markdown_text):
            if block.kind == "heading1":
                heading = document.add_heading(block.text, level=1)
                heading.alignment = WD_ALIGN_PARAGRAPH.CENTER
            elif block.kind == "heading2":
                document.add_heading(block.text, level=2)
            elif block.kind == "heading3":
                document.add_heading(block.text, level=3)
            elif block.kind == "bullet":
                style = "List Bullet 2" if block.level else "List Bullet"
                document.add_paragraph(block.text, style=style)
            elif block.kind == "blank":
                continue
            else:
                paragraph = document.add_paragraph(block.text)
                paragraph.paragraph_format.space_after = Pt(5)

        buffer = io.BytesIO()
        document.save(buffer)
        return buffer.getvalue()

    def export(self, markdown_text: str, destination: Path) -> Path:
        return _write_bytes(self.render(markdown_text), destination)


class BriefPDFExporter:
    """Render brief Markdown to PDF using a minimal fpdf2 layout."""

    _UNICODE_TRANSLATION = str.maketrans(
        {
            "\u00a0": " ",  # non-breaking space
            "\u2010": "-",  # hyphen
            "\u2011": "-",  # non-breaking hyphen
            "\u2013": "-",  # en dash
            "\u2014": "-",  # em dash
            "\u2018": "'",  # left single quote
            "\u2019": "'",  # right single quote
            "\u201c": '"',  # left double quote
            "\u201d": '"',  # right double quote
            "\u2022": "-",  # bullet
            "\u2212": "-",  # minus sign
        }
    )

    def render(self, markdown_text: str) -> bytes:
        try:
            from fpdf import FPDF  # type: ignore[import]
        except ImportError as exc:  # pragma: no cover - optional dependency
            raise ExportError(
                "fpdf2 is required to export briefs as PDF."
            ) from exc

        pdf: Any = FPDF(unit="mm", format="A4")
        pdf.set_auto_page_break(auto=True, margin=15)
        pdf.set_margin(15)
        pdf.add_page()
        pdf.set_title("Strategic Brief")

        for block in iter_brief_blocks(markdown_text):
            self._render_block(pdf, block)

        try:
            return bytes(pdf.output())
        except (OSError, RuntimeError) as exc:
            raise ExportError("Unable to render brief PDF.") from exc

    def export(self, markdown_text: str, destination: Path) -> Path:
        return _write_bytes(self.render(markdown_text), destination)

    def _render_block(self, pdf: Any, block: BriefBlock) -> None:
        if block.kind == "blank":
            pdf.ln(4)
            return

        if block.kind in {"heading1", "heading2", "heading3"}:
            font_size = {"heading1": 18, "heading2": 14, "heading3": 12}[
                block.kind
            ]
            pdf.set_font("Helvetica", "B", size=font_size)
            pdf.set_x(pdf.l_margin)
            align = "C" if block.kind == "heading1" else "L"
            pdf.multi_cell(0, 8, self._safe_text(block.text), align=align)
            pdf.ln(2)
            pdf.set_font("Helvetica", size=11)
            return

        if block.kind == "bullet":
            pdf.set_font("Helvetica", size=11)
            pdf.set_x(pdf.l_margin + 4 + block.level * 6)
            pdf.multi_cell(0, 6, self._safe_text(f"- {block.text}"))
            pdf.ln(1)
            return

        if block.kind == "paragraph":
            pdf.set_font("Helvetica", size=11)
            pdf.set_x(pdf.l_margin)
            pdf.multi_cell(0, 6, self._safe_text(block.text))
            pdf.ln(2)
            return

        logger.debug("Unhandled render block kind: %s", block.kind)

    @classmethod
    def _safe_text(cls, text: str) -> str:
        text = text.translate(cls._UNICODE_TRANSLATION)
        try:
            text.encode("latin-1")
        except UnicodeEncodeError:
            return text.encode("latin-1", "replace").decode("latin-1")
        return text
