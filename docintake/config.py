"""Centralized configuration for engines, storage and runtime flags.

All env-driven settings live here so there is a single source of truth.
Import from ``docintake.config`` in providers, worker, api, etc.
"""

from __future__ import annotations

import logging
import os
import sys


def _env_bool(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def _env_int(name: str, default: int, lo: int = 1, hi: int = 10_000) -> int:
    try:
        return max(lo, min(hi, int(os.environ.get(name, str(default)))))
    except (TypeError, ValueError):
        return default


def _env_str(name: str, default: str) -> str:
    value = os.environ.get(name, "").strip()
    return value or default


# ---------------------------------------------------------------------------
# LLM / vision engine (Ollama via its OpenAI-compatible endpoint)
# ---------------------------------------------------------------------------
OLLAMA_BASE_URL: str = _env_str("OLLAMA_BASE_URL", "http://localhost:11434/v1")
OLLAMA_MODEL: str = _env_str("OLLAMA_MODEL", "llama3")
OLLAMA_VISION_MODEL: str = _env_str("OLLAMA_VISION_MODEL", OLLAMA_MODEL)
OLLAMA_API_KEY: str = _env_str("OLLAMA_API_KEY", "ollama")
OLLAMA_TIMEOUT_SEC: int = _env_int("OLLAMA_TIMEOUT_SEC", default=300, hi=3600)
DOCUMENT_LOCALE: str = _env_str("DOCUMENT_LOCALE", "es")

# ---------------------------------------------------------------------------
# Local OCR engines
# ---------------------------------------------------------------------------
TESSERACT_LANG: str = _env_str("TESSERACT_LANG", "spa+eng")
PADDLEOCR_BIN: str = _env_str("PADDLEOCR_BIN", "paddleocr")
PADDLEOCR_LANG: str = _env_str("PADDLEOCR_LANG", "es")
PADDLEOCR_TIMEOUT_SEC: int = _env_int("PADDLEOCR_TIMEOUT_SEC", default=300, hi=3600)

# ---------------------------------------------------------------------------
# Pre-processing
# ---------------------------------------------------------------------------
TEXT_LAYER_MIN_CHARS: int = _env_int("TEXT_LAYER_MIN_CHARS", default=50, lo=0)
RASTER_DPI: int = _env_int("RASTER_DPI", default=300, hi=1200)

# ---------------------------------------------------------------------------
# Notification, storage and worker
# ---------------------------------------------------------------------------
WEBHOOK_TIMEOUT_SEC: int = _env_int("WEBHOOK_TIMEOUT_SEC", default=15, hi=600)
STORAGE_DIR: str = _env_str("STORAGE_DIR", "uploads")
JOB_STORE_DIR: str = os.environ.get("JOB_STORE_DIR", "").strip()
CONFIG_FILE: str = os.environ.get("CONFIG_FILE", "").strip()
ASYNC_WORKERS: int = _env_int("ASYNC_WORKERS", default=1, hi=64)
LOG_LEVEL: str = _env_str("LOG_LEVEL", "INFO").upper()
LOG_JSON: bool = _env_bool("LOG_JSON")


def configure_logging(level: str | None = None) -> None:
    """Install a root handler once; safe to call repeatedly."""
    root = logging.getLogger()
    root.setLevel((level or LOG_LEVEL).upper())
    if root.handlers:
        return
    if LOG_JSON:
        fmt = '{"ts": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "msg": "%(message)s"}'
    else:
        fmt = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    root.addHandler(handler)


def log_startup_config() -> None:
    """Print one startup line summarising active configuration."""
    msg = (
        f"docintake config: OLLAMA_BASE_URL={OLLAMA_BASE_URL} "
        f"OLLAMA_MODEL={OLLAMA_MODEL} OLLAMA_VISION_MODEL={OLLAMA_VISION_MODEL} "
        f"OLLAMA_TIMEOUT_SEC={OLLAMA_TIMEOUT_SEC} "
        f"TESSERACT_LANG={TESSERACT_LANG} PADDLEOCR_LANG={PADDLEOCR_LANG} "
        f"PADDLEOCR_TIMEOUT_SEC={PADDLEOCR_TIMEOUT_SEC} "
        f"TEXT_LAYER_MIN_CHARS={TEXT_LAYER_MIN_CHARS} RASTER_DPI={RASTER_DPI} "
        f"STORAGE_DIR={STORAGE_DIR} ASYNC_WORKERS={ASYNC_WORKERS}"
    )
    print(msg, flush=True)
    sys.stderr.write(msg + "\n")
    sys.stderr.flush()
