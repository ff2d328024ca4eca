"""Tests for docintake.orchestrator (fake providers, real PDFs built with fitz)."""

from __future__ import annotations

import re
import unittest
from pathlib import Path
from unittest.mock import patch

import fitz  # PyMuPDF
import pytest
from PIL import Image

from docintake.orchestrator import StrategyStackOrchestrator
from docintake.providers import ExtractionProvider, ProviderRegistry
from docintake.schema import OcrResult, StrategyStep
from docintake.utils import RasterizationError

INVOICE_TEXT = (
    "FACTURA ELECTRONICA Nro 001-001-0000123\n"
    "Fecha de emision: 10/01/2024\n"
    "Cliente: Comercial Asuncion SA\n"
    "Total a pagar: 100.000"
)


class _FakeProvider(ExtractionProvider):
    def __init__(self, name: str, result: OcrResult | None = None, exc: Exception | None = None) -> None:
        self.name = name
        self.result = result or OcrResult(success=True, data={"by": name}, raw_text=f"text from {name}")
        self.exc = exc
        self.calls: list[str] = []

    def process(self, file_path, json_schema):
        self.calls.append(file_path)
        if self.exc is not None:
            raise self.exc
        return self.result


def _fail(name: str, error: str) -> _FakeProvider:
    return _FakeProvider(name, OcrResult(success=False, error=error))


def _create_text_pdf(tmp_dir: Path) -> Path:
    pdf_path = tmp_dir / "invoice.pdf"
    doc = fitz.open()
    page = doc.new_page(width=612, height=792)
    page.insert_text((72, 72), INVOICE_TEXT, fontsize=11)
    doc.save(str(pdf_path))
    doc.close()
    return pdf_path


def _create_blank_pdf(tmp_dir: Path) -> Path:
    pdf_path = tmp_dir / "scan.pdf"
    doc = fitz.open()
    doc.new_page(width=612, height=792)
    doc.save(str(pdf_path))
    doc.close()
    return pdf_path


class TestStackOrder(unittest.TestCase):
    def test_first_success_wins(self) -> None:
        first = _fail("Tesseract", "blurry")
        second = _FakeProvider("Ollama")
        third = _FakeProvider("PaddleOCR")
        orchestrator = StrategyStackOrchestrator(ProviderRegistry([first, second, third]))

        result = orchestrator.run("scan.png", ["Tesseract", "Ollama", "PaddleOCR"], {})

        self.assertTrue(result.success)
        self.assertEqual(result.provider, "Ollama")
        self.assertEqual(result.data, {"by": "Ollama"})
        self.assertEqual(len(first.calls), 1)
        self.assertEqual(third.calls, [])
        self.assertIn("SUCCESS with Ollama. Extracted text: text from Ollama", result.logs)

    def test_last_failure_wins(self) -> None:
        registry = ProviderRegistry([_fail("Tesseract", "first error"), _fail("Ollama", "second error")])
        result = StrategyStackOrchestrator(registry).run("scan.png", ["Tesseract", "Ollama"], {})

        self.assertFalse(result.success)
        self.assertEqual(result.error, "second error")
        self.assertIsNone(result.provider)
        self.assertIn("Stack finished without success.", result.logs)

    def test_provider_exception_is_recorded_and_stack_continues(self) -> None:
        crashing = _FakeProvider("Tesseract", exc=RuntimeError("engine crashed"))
        registry = ProviderRegistry([crashing])
        result = StrategyStackOrchestrator(registry).run("scan.png", ["Tesseract"], {})

        self.assertFalse(result.success)
        self.assertEqual(result.error, "engine crashed")
        self.assertIn("CRITICAL ERROR in Tesseract: engine crashed", result.logs)

    def test_unknown_provider_is_skipped(self) -> None:
        ollama = _FakeProvider("Ollama")
        result = StrategyStackOrchestrator(ProviderRegistry([ollama])).run(
            "scan.png", ["DoesNotExist", "Ollama"], {}
        )
        self.assertTrue(result.success)
        self.assertIn("WARNING: strategy NOT FOUND: DoesNotExist", result.logs)

    def test_mime_restriction_skips_step(self) -> None:
        pdf_only = _FakeProvider("PdfOnly")
        fallback = _FakeProvider("Tesseract")
        stack = [
            StrategyStep(name="PdfOnly", mime_types=["application/pdf"]),
            {"name": "Tesseract", "mimeTypes": ["image/png"]},
        ]
        result = StrategyStackOrchestrator(ProviderRegistry([pdf_only, fallback])).run("scan.png", stack, {})

        self.assertEqual(result.provider, "Tesseract")
        self.assertEqual(pdf_only.calls, [])
        self.assertIn("Strategy PdfOnly skipped: type image/png not allowed.", result.logs)

    def test_empty_stack(self) -> None:
        provider = _FakeProvider("Tesseract")
        result = StrategyStackOrchestrator(ProviderRegistry([provider])).run("scan.png", [], {})

        self.assertFalse(result.success)
        self.assertEqual(result.error, "No strategies defined")
        self.assertEqual(provider.calls, [])

    def test_progress_sink_receives_full_log_after_each_line(self) -> None:
        seen: list[str] = []
        registry = ProviderRegistry([_fail("Tesseract", "nope"), _FakeProvider("Ollama")])
        result = StrategyStackOrchestrator(registry).run(
            "scan.png", ["Tesseract", "Ollama"], {}, on_progress=seen.append
        )

        self.assertEqual(len(seen), len(result.logs.splitlines()))
        self.assertEqual(seen[-1], result.logs)
        for earlier, later in zip(seen, seen[1:]):
            self.assertTrue(later.startswith(earlier))

    def test_log_lines_are_timestamped(self) -> None:
        result = StrategyStackOrchestrator(ProviderRegistry([_FakeProvider("Ollama")])).run(
            "scan.png", ["Ollama"], {}
        )
        for line in result.logs.splitlines():
            self.assertRegex(line, r"^\[\d{4}-\d{2}-\d{2}T[^\]]+\] ")


class TestPdfPreprocessing:
    def test_text_pdf_prepends_pdf_text(self, tmp_path: Path):
        pdf_path = _create_text_pdf(tmp_path)
        pdf_text = _FakeProvider("PdfText")
        tesseract = _FakeProvider("Tesseract")
        stack = ["Tesseract"]

        result = StrategyStackOrchestrator(ProviderRegistry([pdf_text, tesseract])).run(
            str(pdf_path), stack, {}
        )

        assert result.provider == "PdfText"
        assert pdf_text.calls == [str(pdf_path)]
        assert tesseract.calls == []
        assert stack == ["Tesseract"]
        assert "PDF with text layer detected. Prioritising PdfText." in result.logs

    def test_text_pdf_keeps_existing_pdf_text_position(self, tmp_path: Path):
        pdf_path = _create_text_pdf(tmp_path)
        pdf_text = _FakeProvider("PdfText")
        paddle = _FakeProvider("PaddleOCR")

        result = StrategyStackOrchestrator(ProviderRegistry([pdf_text, paddle])).run(
            str(pdf_path), ["PaddleOCR", "PdfText"], {}
        )

        assert result.provider == "PaddleOCR"
        assert pdf_text.calls == []

    def test_scanned_pdf_is_rasterized(self, tmp_path: Path):
        pdf_path = _create_blank_pdf(tmp_path)
        jpg_path = str(tmp_path / "scan.jpg")
        tesseract = _FakeProvider("Tesseract")
        stack = [StrategyStep(name="Tesseract", mime_types=["image/jpeg"])]

        with patch("docintake.orchestrator.pdf_text.rasterize_first_page", return_value=jpg_path) as raster:
            result = StrategyStackOrchestrator(ProviderRegistry([tesseract])).run(str(pdf_path), stack, {})

        raster.assert_called_once_with(str(pdf_path))
        assert result.success
        assert tesseract.calls == [jpg_path]
        assert "PDF looks like a scanned image" in result.logs

    def test_rendered_page_is_removed_and_siblings_untouched(self, tmp_path: Path):
        pdf_path = _create_blank_pdf(tmp_path)
        sibling = tmp_path / "scan.jpg"
        Image.new("RGB", (4, 4), color="red").save(sibling, format="JPEG")
        original_bytes = sibling.read_bytes()
        tesseract = _FakeProvider("Tesseract")
        page = Image.new("RGB", (20, 30), color="white")

        with patch("docintake.pdf_text.convert_from_path", return_value=[page]):
            result = StrategyStackOrchestrator(ProviderRegistry([tesseract])).run(
                str(pdf_path), ["Tesseract"], {}
            )

        assert result.success
        rendered = tesseract.calls[0]
        assert rendered != str(sibling)
        assert not Path(rendered).exists()
        assert sibling.read_bytes() == original_bytes
        assert sorted(p.name for p in tmp_path.iterdir()) == ["scan.jpg", "scan.pdf"]

    def test_rendered_page_is_removed_when_provider_raises(self, tmp_path: Path):
        pdf_path = _create_blank_pdf(tmp_path)
        tesseract = _FakeProvider("Tesseract", exc=RuntimeError("engine crashed"))
        page = Image.new("RGB", (20, 30), color="white")

        with patch("docintake.pdf_text.convert_from_path", return_value=[page]):
            result = StrategyStackOrchestrator(ProviderRegistry([tesseract])).run(
                str(pdf_path), ["Tesseract"], {}
            )

        assert result.error == "engine crashed"
        assert not Path(tesseract.calls[0]).exists()

    def test_rasterize_failure_keeps_original_pdf(self, tmp_path: Path):
        pdf_path = _create_blank_pdf(tmp_path)
        paddle = _FakeProvider("PaddleOCR")

        with patch(
            "docintake.orchestrator.pdf_text.rasterize_first_page",
            side_effect=RasterizationError("pdftoppm missing"),
        ):
            result = StrategyStackOrchestrator(ProviderRegistry([paddle])).run(
                str(pdf_path), ["PaddleOCR"], {}
            )

        assert result.success
        assert paddle.calls == [str(pdf_path)]
        assert re.search(r"PDF conversion error: pdftoppm missing\. Continuing with the original file\.", result.logs)

    def test_short_text_layer_is_not_text_bearing(self, tmp_path: Path):
        pdf_path = tmp_path / "stamp.pdf"
        doc = fitz.open()
        doc.new_page().insert_text((72, 72), "PAGADO", fontsize=11)
        doc.save(str(pdf_path))
        doc.close()
        pdf_text = _FakeProvider("PdfText")
        paddle = _FakeProvider("PaddleOCR")

        with patch("docintake.orchestrator.pdf_text.rasterize_first_page", side_effect=RasterizationError("x")):
            result = StrategyStackOrchestrator(ProviderRegistry([pdf_text, paddle])).run(
                str(pdf_path), ["PaddleOCR"], {}
            )

        assert result.provider == "PaddleOCR"
        assert pdf_text.calls == []

    @pytest.mark.parametrize("stack", [[], ()])
    def test_empty_stack_skips_preprocessing(self, tmp_path: Path, stack):
        pdf_path = _create_blank_pdf(tmp_path)
        with patch("docintake.orchestrator.pdf_text.rasterize_first_page") as raster:
            result = StrategyStackOrchestrator(ProviderRegistry()).run(str(pdf_path), stack, {})
        raster.assert_not_called()
        assert result.error == "No strategies defined"


if __name__ == "__main__":
    unittest.main()
