"""Background worker for document extraction jobs.

``JobConsumer.process`` is the queue entrypoint: it drives one process record
from ``processing`` to a terminal status, runs validation and fires the
webhook. Jobs are submitted to a small ThreadPoolExecutor so the ASGI event
loop is not blocked.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Optional

from .config import ASYNC_WORKERS
from .config_store import ConfigRegistry, load_registry
from .job_store import ProcessStore, store
from .orchestrator import StrategyStackOrchestrator
from .providers import build_default_registry
from .schema import JobMessage, ProcessStatus, StackResult
from .storage import LocalStorage
from .validation import validate_data
from .webhook import WebhookDispatcher

logger = logging.getLogger(__name__)


def _failed_fields(error: str, **extra: Any) -> dict[str, Any]:
    """Fields for a failed run; results of any earlier run are cleared."""
    return {
        "status": ProcessStatus.FAILED,
        "error_message": error,
        "extracted_data": None,
        "validation_results": None,
        "ocr_provider": None,
        **extra,
    }


class JobConsumer:
    """Runs the extraction pipeline for queued jobs."""

    def __init__(
        self,
        store: ProcessStore,
        configs: ConfigRegistry,
        storage: LocalStorage,
        orchestrator: StrategyStackOrchestrator,
        dispatcher: WebhookDispatcher,
    ) -> None:
        self.store = store
        self.configs = configs
        self.storage = storage
        self.orchestrator = orchestrator
        self.dispatcher = dispatcher

    def process(self, message: JobMessage | dict[str, Any]) -> Optional[StackResult]:
        """Process one job. Never raises; the record always ends terminal."""
        if not isinstance(message, JobMessage):
            message = JobMessage.model_validate(message)
        process_id = message.process_id
        logger.info("[Job] Processing OCR for process %s (%s)", process_id, message.doc_type_slug)

        if self.store.get(process_id) is None:
            logger.warning("[Job] Process record not found: %s", process_id)
            return None

        local_path: Optional[str] = None
        doc_config = None
        result: Optional[StackResult] = None
        try:
            self.store.update_status(process_id, {"status": ProcessStatus.PROCESSING})

            doc_config = self.configs.get_document_type(message.tenant_id, message.doc_type_slug)
            if doc_config is None:
                self.store.update_status(process_id, _failed_fields("Config not found"))
                logger.error(
                    "[Job] Config not found for tenant %s, slug %s",
                    message.tenant_id, message.doc_type_slug,
                )
                return None

            local_path = self.storage.resolve_local_path(message.file_handle)
            result = self.orchestrator.run(
                local_path,
                doc_config.strategy_stack,
                doc_config.json_schema,
                on_progress=lambda text: self.store.update_status(process_id, {"logs": text}),
            )

            if result.success:
                fields: dict[str, Any] = {
                    "status": ProcessStatus.COMPLETED,
                    "extracted_data": result.data,
                    "ocr_provider": result.provider or "unknown",
                    "error_message": None,
                    "logs": result.logs,
                    "validation_results": None,
                }
                if doc_config.validation_rules:
                    fields["validation_results"] = validate_data(result.data, doc_config.validation_rules)
                self.store.update_status(process_id, fields)
                logger.info("[Job] OCR successful for process %s with %s", process_id, fields["ocr_provider"])
            else:
                error = result.error or "Unknown error"
                self.store.update_status(process_id, _failed_fields(error, logs=result.logs))
                logger.error("[Job] OCR failed for process %s: %s", process_id, error)
        except Exception as exc:
            logger.exception("[Job] Unexpected error for process %s", process_id)
            self.store.update_status(process_id, _failed_fields(f"{type(exc).__name__}: {exc}"))
        finally:
            self._cleanup(message.file_handle, local_path)

        record = self.store.get(process_id)
        if record is not None:
            self.dispatcher.notify(message.tenant_id, doc_config, record)
        return result

    def _cleanup(self, handle: str, local_path: Optional[str]) -> None:
        """Remove a downloaded copy; files that are the stored handle stay."""
        if not local_path or local_path == handle:
            return
        try:
            Path(local_path).unlink(missing_ok=True)
        except OSError as exc:
            logger.error("[Job] Error removing temporary file %s: %s", local_path, exc)


# ---------------------------------------------------------------------------
# Thread-pool queue
# ---------------------------------------------------------------------------
_pool = ThreadPoolExecutor(max_workers=max(1, ASYNC_WORKERS))
_consumer: Optional[JobConsumer] = None
_consumer_lock = threading.Lock()


def build_consumer(configs: Optional[ConfigRegistry] = None) -> JobConsumer:
    """Wire a consumer from the default store, storage, registry and configs."""
    configs = configs or load_registry()
    return JobConsumer(
        store=store,
        configs=configs,
        storage=LocalStorage(),
        orchestrator=StrategyStackOrchestrator(build_default_registry()),
        dispatcher=WebhookDispatcher(configs),
    )


def get_consumer() -> JobConsumer:
    global _consumer
    with _consumer_lock:
        if _consumer is None:
            _consumer = build_consumer()
        return _consumer


def set_consumer(consumer: Optional[JobConsumer]) -> None:
    """Install the consumer used by ``enqueue`` (None resets to the default)."""
    global _consumer
    with _consumer_lock:
        _consumer = consumer


def enqueue(message: JobMessage) -> Future:
    """Submit a job to the background thread pool."""
    return _pool.submit(get_consumer().process, message)


def submit_process(
    tenant_id: str,
    doc_type_slug: str,
    file_handle: str,
    process_id: Optional[str] = None,
    **record_fields: Any,
) -> tuple[str, Future]:
    """Create (or reset to pending) a process record and enqueue it."""
    consumer = get_consumer()
    existing = consumer.store.get(process_id) if process_id else None
    if existing is not None:
        consumer.store.update_status(
            existing.id,
            {
                "status": ProcessStatus.PENDING,
                "file_handle": file_handle,
                "error_message": None,
                "extracted_data": None,
                "validation_results": None,
                "ocr_provider": None,
                "logs": "",
            },
        )
        process_id = existing.id
    else:
        process_id = consumer.store.create(
            tenant_id=tenant_id,
            document_type=doc_type_slug,
            file_handle=file_handle,
            process_id=process_id,
            **record_fields,
        ).id

    message = JobMessage(
        process_id=process_id,
        tenant_id=tenant_id,
        doc_type_slug=doc_type_slug,
        file_handle=file_handle,
    )
    return process_id, enqueue(message)
