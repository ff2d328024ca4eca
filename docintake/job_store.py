"""In-memory process record store with optional disk persistence.

Thread-safe. Each record goes through: pending -> processing -> completed | failed,
and completed records may later become validated.

When JOB_STORE_DIR is set, every update is persisted to disk as JSON so
results (and live progress logs) survive server restarts.
"""

from __future__ import annotations

import json
import logging
import threading
import time
import uuid
from pathlib import Path
from typing import Any

from .config import JOB_STORE_DIR
from .schema import ProcessRecord, ProcessStatus

logger = logging.getLogger(__name__)

# In-memory TTL for finished records; only applied when a disk copy backs get().
_IN_MEMORY_TTL_SECONDS = 3600
_TERMINAL_STATUSES = (ProcessStatus.COMPLETED, ProcessStatus.FAILED, ProcessStatus.VALIDATED)


class ProcessStore:
    """Thread-safe record store keyed by process id."""

    def __init__(self, persist_dir: str | None = None) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, ProcessRecord] = {}
        self._persist_dir: Path | None = Path(persist_dir) if persist_dir else None
        if self._persist_dir:
            self._persist_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def create(
        self,
        tenant_id: str,
        document_type: str,
        file_handle: str,
        external_id: str = "",
        api_key: str | None = None,
        tags: list[str] | None = None,
        storage_type: str = "local",
        process_id: str | None = None,
    ) -> ProcessRecord:
        record = ProcessRecord(
            id=process_id or uuid.uuid4().hex,
            tenant_id=tenant_id,
            external_id=external_id,
            document_type=document_type,
            api_key=api_key,
            file_handle=file_handle,
            storage_type=storage_type,
            tags=tags or [],
        )
        with self._lock:
            self._evict_old()
            self._records[record.id] = record
            self._persist_to_disk(record)
        return record

    def get(self, process_id: str) -> ProcessRecord | None:
        with self._lock:
            record = self._records.get(process_id)
        if record is not None:
            return record

        if self._persist_dir:
            disk_path = self._persist_dir / f"{process_id}.json"
            if disk_path.exists():
                try:
                    record = ProcessRecord.model_validate_json(disk_path.read_text())
                except Exception:
                    logger.warning("Failed to read persisted process %s", process_id)
                    return None
                with self._lock:
                    self._records.setdefault(process_id, record)
                return record
        return None

    def update_status(self, process_id: str, fields: dict[str, Any]) -> ProcessRecord | None:
        """Apply a partial update atomically; unknown ids are ignored."""
        current = self.get(process_id)
        if current is None:
            logger.warning("update_status on unknown process %s", process_id)
            return None
        unknown = set(fields) - set(ProcessRecord.model_fields)
        if unknown:
            raise ValueError(f"Unknown process fields: {', '.join(sorted(unknown))}")
        with self._lock:
            current = self._records.get(process_id, current)
            merged = {**current.model_dump(), **fields, "updated_at": time.time()}
            if "status" in fields:
                merged["status"] = ProcessStatus(fields["status"])
            record = ProcessRecord.model_validate(merged)
            self._records[process_id] = record
            self._persist_to_disk(record)
        return record

    def list(self, status_filter: str | None = None, tenant_id: str | None = None) -> list[ProcessRecord]:
        """Return records, newest first."""
        with self._lock:
            records = list(self._records.values())

        if self._persist_dir:
            in_memory_ids = {r.id for r in records}
            for path in self._persist_dir.glob("*.json"):
                if path.stem in in_memory_ids:
                    continue
                try:
                    records.append(ProcessRecord.model_validate_json(path.read_text()))
                except Exception:
                    logger.warning("Skipping unreadable process file %s", path.name)

        if status_filter:
            records = [r for r in records if r.status == status_filter]
        if tenant_id:
            records = [r for r in records if r.tenant_id == tenant_id]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    def _evict_old(self) -> None:
        """Drop finished records older than the TTL from memory (called under lock)."""
        if not self._persist_dir:
            return
        now = time.time()
        stale = [
            pid
            for pid, record in self._records.items()
            if (now - record.updated_at) > _IN_MEMORY_TTL_SECONDS
            and record.status in _TERMINAL_STATUSES
        ]
        for pid in stale:
            del self._records[pid]

    def _persist_to_disk(self, record: ProcessRecord) -> None:
        """Write a record to disk (called under lock)."""
        if not self._persist_dir:
            return
        try:
            disk_path = self._persist_dir / f"{record.id}.json"
            disk_path.write_text(record.model_dump_json())
        except Exception:
            logger.warning("Failed to persist process %s to disk", record.id)


# Module-level instance used by worker and API.
store = ProcessStore(persist_dir=JOB_STORE_DIR or None)
