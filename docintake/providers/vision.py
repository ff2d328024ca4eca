"""Vision LLM engine: the model reads the image and emits schema-shaped JSON.

Extraction and mapping happen in one call, so the schema mapper is bypassed.
"""

from __future__ import annotations

import base64
import json
import logging
from pathlib import Path
from typing import Any

from ..config import (
    DOCUMENT_LOCALE,
    OLLAMA_BASE_URL,
    OLLAMA_TIMEOUT_SEC,
    OLLAMA_VISION_MODEL,
)
from ..schema import OcrResult
from ..utils import guess_mime_type, is_image_mime, truncate
from .base import ExtractionProvider
from .schema_mapper import build_client, strip_code_fences

logger = logging.getLogger(__name__)

PARSE_PREVIEW_CHARS = 100


def _file_to_data_url(file_path: str, mime: str) -> str:
    b64 = base64.b64encode(Path(file_path).read_bytes()).decode("utf-8")
    return f"data:{mime};base64,{b64}"


def build_vision_prompt(json_schema: dict[str, Any], locale: str = DOCUMENT_LOCALE) -> str:
    schema_block = json.dumps(json_schema, indent=2, ensure_ascii=False, sort_keys=True)
    return (
        "Analyze this image and extract the relevant information strictly "
        "following this JSON schema:\n"
        f"{schema_block}\n\n"
        "Rules:\n"
        "1. Respond ONLY with the JSON object.\n"
        "2. If a value cannot be found, use null.\n"
        f"3. The document locale is '{locale}'; interpret dates and amounts "
        "according to that locale."
    )


class OllamaVisionProvider(ExtractionProvider):
    name = "Ollama"
    supported_mime_types = ("application/pdf", "image/png", "image/jpeg", "image/jpg", "image/webp")

    def __init__(
        self,
        client: Any = None,
        model: str = OLLAMA_VISION_MODEL,
        timeout_sec: int = OLLAMA_TIMEOUT_SEC,
        locale: str = DOCUMENT_LOCALE,
    ) -> None:
        self._client = client
        self.model = model
        self.timeout_sec = timeout_sec
        self.locale = locale

    @property
    def client(self):
        if self._client is None:
            self._client = build_client()
        return self._client

    def process(self, file_path: str, json_schema: dict[str, Any]) -> OcrResult:
        mime = guess_mime_type(file_path, default="")
        if not is_image_mime(mime):
            return OcrResult(
                success=False,
                error="Vision engine cannot read PDF files directly without prior conversion to images.",
            )
        try:
            logger.info(
                "[Ollama] Sending request to %s (Model: %s, Timeout: %ss)",
                OLLAMA_BASE_URL, self.model, self.timeout_sec,
            )
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": build_vision_prompt(json_schema, self.locale)},
                            {"type": "image_url", "image_url": {"url": _file_to_data_url(file_path, mime)}},
                        ],
                    }
                ],
                response_format={"type": "json_object"},
                temperature=0,
                timeout=self.timeout_sec,
            )
            raw = (resp.choices[0].message.content if resp.choices else None) or ""
        except Exception as exc:
            logger.error("[Ollama] Error: %s", exc)
            return OcrResult(success=False, error=str(exc) or "Ollama unknown error")

        try:
            data = json.loads(strip_code_fences(raw))
        except json.JSONDecodeError as exc:
            logger.error("[Ollama] JSON parse error. Raw response: %s", raw)
            return OcrResult(
                success=False,
                raw_text=raw,
                error=(
                    f"JSON parse failure from vision model: {exc}. "
                    f"Partial response: {truncate(raw, PARSE_PREVIEW_CHARS)}..."
                ),
            )
        return OcrResult(success=True, data=data)
