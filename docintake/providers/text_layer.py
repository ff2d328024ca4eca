"""Text-layer reader: embedded PDF text mapped to the schema."""

from __future__ import annotations

import logging
from typing import Any

from ..pdf_text import extract_native_text
from ..schema import OcrResult
from .base import ExtractionProvider
from .schema_mapper import SchemaMapper

logger = logging.getLogger(__name__)


class PdfTextProvider(ExtractionProvider):
    name = "PdfText"
    supported_mime_types = ("application/pdf",)

    def __init__(self, mapper: SchemaMapper) -> None:
        self.mapper = mapper

    def process(self, file_path: str, json_schema: dict[str, Any]) -> OcrResult:
        try:
            logger.info("[PdfText] Extracting text from: %s", file_path)
            text = extract_native_text(file_path)
            if not text.strip():
                return OcrResult(
                    success=False,
                    error="No text found in PDF (it might be a scanned image)",
                )
            logger.info("[PdfText] Formatting text with %s...", self.mapper.model)
            data = self.mapper.map_text_to_schema(text, json_schema)
            return OcrResult(success=True, raw_text=text, data=data)
        except Exception as exc:
            logger.error("[PdfText] Error: %s", exc)
            return OcrResult(success=False, error=str(exc) or "PdfText unknown error")
