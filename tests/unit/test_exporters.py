"""
Unit tests for DOCX and PDF brief exports.

Run: pytest tests/unit/test_exporters.py -v
"""

import io

import pytest

from brief_wizard.exporters import BriefDocxExporter, BriefPDFExporter, ExportError
from brief_wizard.rendering import brief_filename


# ---------------------------------------------------------------------------
# BriefDocxExporter
# ---------------------------------------------------------------------------

class TestBriefDocxExporter:

    def test_render_produces_word_document(self, sample_brief):
        from docx import Document

        payload = BriefDocxExporter().render(sample_brief)

        assert payload[:2] == b"PK"
        document = Document(io.BytesIO(payload))
        styles = [(p.style.name, p.text) for p in document.paragraphs]
        assert ("Heading 1", "Strategic Brief: Gen Z Snack Loyalty") in styles
        assert ("Heading 2", "Business Context") in styles
        assert (
            "List Bullet 2",
            "Identify the moments that trigger switching",
        ) in styles
        assert ("List Bullet", "Prioritise loyalty levers") in styles

    def test_export_writes_named_file(self, sample_brief, tmp_path):
        destination = tmp_path / "nested" / brief_filename(sample_brief)

        written = BriefDocxExporter().export(sample_brief, destination)

        assert written == destination
        assert destination.read_bytes()[:2] == b"PK"


# ---------------------------------------------------------------------------
# BriefPDFExporter
# ---------------------------------------------------------------------------

class TestBriefPDFExporter:

    def test_render_produces_pdf(self, sample_brief):
        payload = BriefPDFExporter().render(sample_brief)
        assert payload.startswith(b"%PDF")

    def test_non_latin_text_is_tolerated(self):
        payload = BriefPDFExporter().render(
            "# Strategic Brief: Café – “Gen Z” 中文\n"
            "- • bullet"
        )
        assert payload.startswith(b"%PDF")

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("“quoted”", '"quoted"'),
            ("en–dash", "en-dash"),
            ("中", "?"),
        ],
    )
    def test_safe_text(self, raw, expected):
        assert BriefPDFExporter._safe_text(raw) == expected

    def test_unwritable_destination_raises_export_error(
        self, sample_brief, tmp_path
    ):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(ExportError):
            BriefPDFExporter().export(sample_brief, blocker / "brief.pdf")
