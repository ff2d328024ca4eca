"""Utility helpers: error taxonomy, MIME detection, binary checks."""

from __future__ import annotations

import logging
import mimetypes
import shutil
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

DEFAULT_MIME = "application/octet-stream"
PDF_MIME = "application/pdf"

mimetypes.add_type("image/webp", ".webp")


class DocintakeError(Exception):
    """Base exception for pipeline errors."""


class ConfigNotFoundError(DocintakeError):
    """Raised when no document-type config exists for a tenant/slug."""


class ProviderError(DocintakeError):
    """Raised when an extraction engine cannot produce a result."""


class SchemaMappingError(ProviderError):
    """Raised when the language model fails to map text to the schema."""


class MissingDependencyError(ProviderError):
    """Raised when required system dependencies are missing."""


class RasterizationError(DocintakeError):
    """Raised when a PDF page cannot be rendered to an image."""


class StorageError(DocintakeError):
    """Raised when a file handle cannot be resolved or stored."""


def guess_mime_type(path: str | Path, default: str | None = DEFAULT_MIME) -> str | None:
    """Return the declared content type of *path* based on its extension."""

    mime, _ = mimetypes.guess_type(str(path))
    return mime or default


def is_image_mime(mime: str | None) -> bool:
    return bool(mime) and mime.startswith("image/")


def check_binary_exists(binary_name: str) -> bool:
    """Return True if a binary is available on PATH."""

    return shutil.which(binary_name) is not None


def check_dependencies(binaries: Iterable[str] = ("paddleocr", "tesseract", "pdftoppm")) -> dict[str, bool]:
    """Report which external tools are on PATH. Warns, never raises."""

    logger.info("Checking system dependencies...")
    status: dict[str, bool] = {}
    for binary in binaries:
        found = check_binary_exists(binary)
        status[binary] = found
        if found:
            logger.info("OK: %s detected.", binary)
        else:
            logger.warning(
                "%s is not available on PATH. Some local OCR strategies may fail.", binary
            )
    return status


def truncate(text: str | None, limit: int) -> str:
    """Return at most *limit* characters of *text* (empty for None)."""

    if not text:
        return ""
    return text[:limit]
