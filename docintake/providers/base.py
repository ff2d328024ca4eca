"""Provider contract and the name-keyed registry the orchestrator depends on."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable

from ..schema import OcrResult

logger = logging.getLogger(__name__)

FRIENDLY_NAMES: dict[str, str] = {
    "Tesseract": "Tesseract (image OCR)",
    "PdfText": "PDF extraction (plain text layer)",
    "Ollama": "Ollama (LLM vision)",
    "PaddleOCR": "PaddleOCR (multilingual / tables)",
}


class ExtractionProvider(ABC):
    """Converts a local file into raw text and/or schema-shaped data."""

    name: str = ""
    supported_mime_types: tuple[str, ...] = ()

    def get_name(self) -> str:
        return self.name

    def get_supported_mime_types(self) -> list[str]:
        return list(self.supported_mime_types)

    @abstractmethod
    def process(self, file_path: str, json_schema: dict[str, Any]) -> OcrResult:
        """Extract data from *file_path*. Expected failures return ``success=False``."""


class ProviderRegistry:
    """Explicitly constructed mapping of provider name -> provider."""

    def __init__(self, providers: Iterable[ExtractionProvider] = ()) -> None:
        self._providers: dict[str, ExtractionProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: ExtractionProvider) -> None:
        if not provider.name:
            raise ValueError("Provider must declare a name")
        self._providers[provider.name] = provider

    def get(self, name: str) -> ExtractionProvider | None:
        return self._providers.get(name)

    def names(self) -> list[str]:
        return list(self._providers)

    def describe(self) -> list[dict[str, Any]]:
        """Catalogue of available strategies for config editors."""
        return [
            {
                "id": provider.name,
                "name": FRIENDLY_NAMES.get(provider.name, provider.name),
                "mime_types": provider.get_supported_mime_types(),
            }
            for provider in self._providers.values()
        ]

    def __contains__(self, name: object) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)
