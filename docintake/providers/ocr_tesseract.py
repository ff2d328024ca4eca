"""Local Tesseract OCR on raster images."""

from __future__ import annotations

import logging
from typing import Any

import pytesseract
from PIL import Image

from ..config import TESSERACT_LANG
from ..schema import OcrResult
from .base import ExtractionProvider
from .schema_mapper import SchemaMapper

logger = logging.getLogger(__name__)


class TesseractProvider(ExtractionProvider):
    name = "Tesseract"
    supported_mime_types = ("image/png", "image/jpeg", "image/jpg", "image/webp")

    def __init__(
        self,
        mapper: SchemaMapper,
        lang: str = TESSERACT_LANG,
        tessdata_path: str | None = None,
    ) -> None:
        self.mapper = mapper
        self.lang = lang
        self.tessdata_path = tessdata_path

    def _config(self) -> str:
        if self.tessdata_path:
            return f'--tessdata-dir "{self.tessdata_path}"'
        return ""

    def recognize(self, file_path: str) -> str:
        with Image.open(file_path) as image:
            return pytesseract.image_to_string(
                image.convert("RGB"), lang=self.lang, config=self._config()
            )

    def process(self, file_path: str, json_schema: dict[str, Any]) -> OcrResult:
        try:
            logger.info("[Tesseract] Recognizing path: %s", file_path)
            text = self.recognize(file_path)
            data = self.mapper.map_text_to_schema(text, json_schema)
            return OcrResult(success=True, raw_text=text, data=data)
        except Exception as exc:
            logger.error("[Tesseract] Error: %s", exc)
            return OcrResult(success=False, error=str(exc) or "Tesseract unknown error")
