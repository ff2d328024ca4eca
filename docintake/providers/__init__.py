"""Pluggable extraction providers.

Each module in this package wraps one extraction engine behind the
``ExtractionProvider`` contract. All providers fail gracefully: a missing
dependency or engine error is reported as an unsuccessful ``OcrResult`` so
the strategy stack can fall through to the next entry.
"""

from __future__ import annotations

from .base import ExtractionProvider, ProviderRegistry
from .ocr_paddle import PaddleOcrProvider
from .ocr_tesseract import TesseractProvider
from .schema_mapper import SchemaMapper
from .text_layer import PdfTextProvider
from .vision import OllamaVisionProvider


def build_default_registry(mapper: SchemaMapper | None = None, vision_client=None) -> ProviderRegistry:
    """Construct the four built-in providers sharing one schema mapper."""
    mapper = mapper or SchemaMapper()
    return ProviderRegistry(
        [
            TesseractProvider(mapper),
            OllamaVisionProvider(client=vision_client),
            PdfTextProvider(mapper),
            PaddleOcrProvider(mapper),
        ]
    )


__all__ = [
    "ExtractionProvider",
    "OllamaVisionProvider",
    "PaddleOcrProvider",
    "PdfTextProvider",
    "ProviderRegistry",
    "SchemaMapper",
    "TesseractProvider",
    "build_default_registry",
]
