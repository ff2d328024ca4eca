"""Local-disk blob storage facade.

Handles of local files are plain paths (``uploads/<name>``) and resolve to
themselves. ``http(s)`` handles are downloaded to a temporary local copy, which the
job consumer deletes once processing finishes.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from urllib.parse import urlparse

import httpx

from .config import STORAGE_DIR, WEBHOOK_TIMEOUT_SEC
from .utils import StorageError

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024


class LocalStorage:
    def __init__(self, root: str | Path = STORAGE_DIR) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def upload(self, source: str | Path, dest_name: str) -> str:
        """Copy *source* into storage and return its handle."""
        target = self.root / dest_name
        source = Path(source)
        if source.resolve() == target.resolve():
            return str(target)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copyfile(source, target)
        except OSError as exc:
            raise StorageError(f"Upload failed for {source}: {exc}") from exc
        return str(target)

    def delete(self, handle: str) -> None:
        Path(handle).unlink(missing_ok=True)

    def get_external_url(self, handle: str) -> str:
        if urlparse(handle).scheme in ("http", "https"):
            return handle
        return "/" + Path(handle).as_posix().lstrip("/")

    def resolve_local_path(self, handle: str) -> str:
        """Return a local path for *handle*, downloading remote handles first."""
        parsed = urlparse(handle)
        if parsed.scheme in ("http", "https"):
            return self._download(handle, Path(parsed.path).suffix)
        if not Path(handle).exists():
            raise StorageError(f"File not found in storage: {handle}")
        return handle

    def _download(self, url: str, suffix: str) -> str:
        tmp = tempfile.NamedTemporaryFile(delete=False, suffix=suffix)
        try:
            with httpx.stream("GET", url, timeout=WEBHOOK_TIMEOUT_SEC, follow_redirects=True) as resp:
                resp.raise_for_status()
                for chunk in resp.iter_bytes(DOWNLOAD_CHUNK_SIZE):
                    tmp.write(chunk)
        except Exception as exc:
            tmp.close()
            Path(tmp.name).unlink(missing_ok=True)
            if isinstance(exc, (httpx.HTTPError, OSError)):
                raise StorageError(f"Download failed for {url}: {exc}") from exc
            raise
        finally:
            tmp.close()
        logger.info("Downloaded %s to %s", url, tmp.name)
        return tmp.name
