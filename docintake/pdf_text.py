"""Native PDF helpers using PyMuPDF (fitz) and pdf2image.

Text-layer extraction decides whether a PDF is "text-bearing"; scanned PDFs
get their first page rasterized so image-only engines can read them.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

import fitz  # PyMuPDF
from pdf2image import convert_from_path

from .config import RASTER_DPI, TEXT_LAYER_MIN_CHARS
from .utils import RasterizationError

logger = logging.getLogger(__name__)


def extract_native_text(pdf_path: str | Path) -> str:
    """Return the embedded text of every page, joined by newlines."""
    doc = fitz.open(str(pdf_path))
    parts: list[str] = []
    try:
        for page in doc:
            text = page.get_text()
            if text.strip():
                parts.append(text.strip())
    finally:
        doc.close()
    return "\n".join(parts)


def has_text_layer(pdf_path: str | Path, min_chars: int = TEXT_LAYER_MIN_CHARS) -> bool:
    """True when the trimmed text layer is longer than *min_chars*.

    Unreadable PDFs count as having no text layer.
    """
    try:
        text = extract_native_text(pdf_path)
    except Exception as exc:
        logger.warning("Could not read text layer of %s: %s", pdf_path, exc)
        return False
    return len(text.strip()) > min_chars


def rasterize_first_page(pdf_path: str | Path, dpi: int = RASTER_DPI) -> str:
    """Render page 1 of *pdf_path* to a temporary JPEG and return its path.

    The caller owns the returned file and must delete it.
    """
    pdf_path = Path(pdf_path)
    try:
        images = convert_from_path(str(pdf_path), dpi=dpi, first_page=1, last_page=1)
    except Exception as exc:  # pragma: no cover - depends on system binaries
        raise RasterizationError(f"PDF rendering failed: {exc}") from exc
    if not images:
        raise RasterizationError(f"PDF rendering produced no pages: {pdf_path}")
    tmp = tempfile.NamedTemporaryFile(delete=False, suffix=".jpg", prefix=f"{pdf_path.stem}-")
    try:
        images[0].convert("RGB").save(tmp, format="JPEG", quality=90)
    except OSError as exc:
        tmp.close()
        Path(tmp.name).unlink(missing_ok=True)
        raise RasterizationError(f"Could not write rendered page: {exc}") from exc
    finally:
        tmp.close()
    return tmp.name
