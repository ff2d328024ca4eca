"""Map raw OCR/text-layer output onto a target JSON schema with an LLM.

Talks to Ollama through its OpenAI-compatible ``/v1`` endpoint, so any
OpenAI-compatible server works by changing ``OLLAMA_BASE_URL``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from ..config import (
    DOCUMENT_LOCALE,
    OLLAMA_API_KEY,
    OLLAMA_BASE_URL,
    OLLAMA_MODEL,
    OLLAMA_TIMEOUT_SEC,
)
from ..utils import SchemaMappingError

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = (
    "You extract structured data from documents. "
    "You always answer with a single JSON object and nothing else."
)


def build_mapping_prompt(text: str, json_schema: dict[str, Any], locale: str = DOCUMENT_LOCALE) -> str:
    """Deterministic instruction constraining the model to the schema shape."""
    schema_block = json.dumps(json_schema, indent=2, ensure_ascii=False, sort_keys=True)
    return (
        "The following text was extracted from a document via OCR.\n"
        "Extract the relevant information and return it strictly as JSON "
        "following this schema:\n"
        f"{schema_block}\n\n"
        "Rules:\n"
        "1. Respond ONLY with the JSON object.\n"
        "2. If a value cannot be found, use null.\n"
        f"3. The document locale is '{locale}'; interpret dates and amounts "
        "according to that locale.\n\n"
        "Extracted text:\n"
        '"""\n'
        f"{text}\n"
        '"""'
    )


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code block if the model added one."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text


def build_client(base_url: str = OLLAMA_BASE_URL, api_key: str = OLLAMA_API_KEY):
    import openai

    return openai.OpenAI(base_url=base_url, api_key=api_key)


class SchemaMapper:
    """Shared helper used by the OCR-producing providers."""

    def __init__(
        self,
        client: Any = None,
        model: str = OLLAMA_MODEL,
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

    def map_text_to_schema(self, text: str, json_schema: dict[str, Any]) -> Any:
        """Return the parsed JSON object; raise ``SchemaMappingError`` on any failure."""
        prompt = build_mapping_prompt(text, json_schema, self.locale)
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format={"type": "json_object"},
                temperature=0,
                timeout=self.timeout_sec,
            )
            content = resp.choices[0].message.content if resp.choices else None
            if not content:
                raise ValueError("empty response from model")
            return json.loads(strip_code_fences(content))
        except Exception as exc:
            logger.error("Error mapping text to schema: %s", exc)
            raise SchemaMappingError(f"Error processing text with the LLM: {exc}") from exc
