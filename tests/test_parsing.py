import sys
import unittest
from io import BytesIO
from pathlib import Path

from docx import Document

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.parsing.parse import DOCX_MIME, PDF_MIME, extract_text  # noqa: E402


class ExtractTextTests(unittest.TestCase):
    def test_docx_paragraphs_are_joined(self):
        document = Document()
        document.add_paragraph("Jane Doe")
        document.add_paragraph("   ")
        document.add_paragraph("Built React and TypeScript dashboards")
        buffer = BytesIO()
        document.save(buffer)

        text = extract_text(buffer.getvalue(), DOCX_MIME)
        self.assertEqual(text, "Jane Doe\nBuilt React and TypeScript dashboards")

    def test_corrupt_pdf_yields_empty_text_and_warns(self):
        with self.assertLogs("app.parsing.parse", level="WARNING") as logs:
            text = extract_text(b"definitely not a pdf", PDF_MIME)
        self.assertEqual(text, "")
        self.assertTrue(any("PDF parsing failed" in line for line in logs.output))

    def test_corrupt_docx_yields_empty_text(self):
        with self.assertLogs("app.parsing.parse", level="WARNING"):
            self.assertEqual(extract_text(b"PK not a zip", DOCX_MIME), "")

    def test_mime_parameters_are_ignored(self):
        with self.assertLogs("app.parsing.parse", level="WARNING"):
            self.assertEqual(extract_text(b"garbage", "Application/PDF; charset=binary"), "")

    def test_unknown_mime_is_decoded_as_text(self):
        self.assertEqual(extract_text("Node & Next.js".encode("utf-8"), "text/plain"), "Node & Next.js")


if __name__ == "__main__":
    unittest.main()
