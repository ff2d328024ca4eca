"""PaddleOCR engine for tables and multilingual scans, run as a subprocess.

The ``paddleocr`` CLI prints a Python-dict-like result per page on stdout;
the recognized lines live in its ``rec_texts`` list. Running out of process
keeps the heavy Paddle runtime (and its model downloads) out of the worker.
"""

from __future__ import annotations

import ast
import logging
import os
import re
import subprocess
from typing import Any

from ..config import PADDLEOCR_BIN, PADDLEOCR_LANG, PADDLEOCR_TIMEOUT_SEC
from ..schema import OcrResult
from ..utils import MissingDependencyError, ProviderError, truncate
from .base import ExtractionProvider
from .schema_mapper import SchemaMapper

logger = logging.getLogger(__name__)

_REC_TEXTS_RE = re.compile(r"'rec_texts':\s*\[(.*?)\]", re.DOTALL)

# Disable OneDNN optimisations that crash on some container CPUs.
_PADDLE_ENV = {
    "PADDLE_PDX_DISABLE_MODEL_SOURCE_CHECK": "True",
    "FLAGS_use_mkldnn": "0",
    "FLAGS_use_onednn": "0",
    "PYTHONWARNINGS": "ignore",
}


def parse_rec_texts(stdout: str) -> str | None:
    """Return recognized lines joined by newlines, or None if absent."""
    chunks = _REC_TEXTS_RE.findall(stdout)
    if not chunks:
        return None
    lines: list[str] = []
    for chunk in chunks:
        try:
            items = ast.literal_eval(f"[{chunk}]")
            lines.extend(str(item) for item in items)
        except (ValueError, SyntaxError):
            lines.extend(
                part.strip().strip("'\"") for part in chunk.split(",") if part.strip()
            )
    return "\n".join(lines)


class PaddleOcrProvider(ExtractionProvider):
    name = "PaddleOCR"
    supported_mime_types = ("image/png", "image/jpeg", "image/jpg", "image/webp", "application/pdf")

    def __init__(
        self,
        mapper: SchemaMapper,
        binary: str = PADDLEOCR_BIN,
        lang: str = PADDLEOCR_LANG,
        timeout_sec: int = PADDLEOCR_TIMEOUT_SEC,
    ) -> None:
        self.mapper = mapper
        self.binary = binary
        self.lang = lang
        self.timeout_sec = timeout_sec

    def build_command(self, file_path: str) -> list[str]:
        return [
            self.binary, "ocr",
            "-i", file_path,
            "--use_angle_cls", "true",
            "--lang", self.lang,
            "--enable_mkldnn", "false",
        ]

    def run_cli(self, file_path: str) -> str:
        """Invoke the CLI and return its stdout; raise ``ProviderError`` on failure."""
        try:
            completed = subprocess.run(
                self.build_command(file_path),
                capture_output=True,
                text=True,
                timeout=self.timeout_sec,
                env={**os.environ, **_PADDLE_ENV},
                check=False,
            )
        except FileNotFoundError as exc:
            raise MissingDependencyError(f"'{self.binary}' executable not found on PATH") from exc
        except subprocess.TimeoutExpired as exc:
            raise ProviderError(f"timed out after {self.timeout_sec}s") from exc
        if completed.stderr:
            logger.debug("[PaddleOCR] CLI stderr: %s", completed.stderr)
        if completed.returncode != 0:
            raise ProviderError(
                f"exit code {completed.returncode}: {truncate(completed.stderr.strip(), 500)}"
            )
        return completed.stdout

    def process(self, file_path: str, json_schema: dict[str, Any]) -> OcrResult:
        try:
            logger.info("[PaddleOCR] Processing path: %s", file_path)
            stdout = self.run_cli(file_path)
            text = parse_rec_texts(stdout)
            if text is None:
                logger.warning("[PaddleOCR] Could not find 'rec_texts' in stdout. Using raw output.")
                text = stdout
            else:
                logger.info("[PaddleOCR] Parsed rec_texts. Length: %d", len(text))
            logger.info("[PaddleOCR] Text to LLM: %s...", truncate(text, 200))
            data = self.mapper.map_text_to_schema(text, json_schema)
            return OcrResult(success=True, raw_text=text, data=data)
        except Exception as exc:
            logger.error("[PaddleOCR] Error: %s", exc)
            return OcrResult(success=False, error=f"PaddleOCR failed: {exc}")
