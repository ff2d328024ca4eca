"""FastAPI app: polling, review and strategy catalogue endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from .config import configure_logging, log_startup_config
from .review import revalidate, revert_to_completed, update_extracted_data
from .utils import ConfigNotFoundError, check_dependencies
from .worker import get_consumer, submit_process

logger = logging.getLogger(__name__)

app = FastAPI(title="docintake")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    log_startup_config()
    check_dependencies()


# ---------------------------------------------------------------------------
# Global error handler
# ---------------------------------------------------------------------------
@app.exception_handler(Exception)
async def _unhandled_exception_handler(request, exc: Exception):  # noqa: ARG001
    if isinstance(exc, HTTPException):
        raise exc
    logger.exception("Unhandled API error")
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc) or "Internal server error"},
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _record_or_404(process_id: str):
    record = get_consumer().store.get(process_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Process not found.")
    return record


def _dump(record) -> dict[str, Any]:
    return record.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/strategies")
def list_strategies():
    """Providers that can appear in a document type's strategy stack."""
    return get_consumer().orchestrator.registry.describe()


@app.get("/api/processes/{process_id}")
def get_process(process_id: str):
    """Poll a process record; ``logs`` grows while the stack runs."""
    return _dump(_record_or_404(process_id))


@app.post("/api/processes/{process_id}/validate")
def validate_process(process_id: str, extracted_data: Any = Body(...)):
    consumer = get_consumer()
    _record_or_404(process_id)
    try:
        record = revalidate(consumer.store, consumer.configs, process_id, extracted_data)
    except ConfigNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {
        "success": True,
        "status": record.status.value,
        "validationResults": _dump(record)["validationResults"],
    }


@app.put("/api/processes/{process_id}/data")
def update_process_data(process_id: str, extracted_data: Any = Body(...)):
    _record_or_404(process_id)
    record = update_extracted_data(get_consumer().store, process_id, extracted_data)
    return {"success": True, "status": record.status.value}


@app.post("/api/processes/{process_id}/revert")
def revert_process(process_id: str):
    _record_or_404(process_id)
    record = revert_to_completed(get_consumer().store, process_id)
    return {"success": True, "status": record.status.value}


@app.post("/api/processes/{process_id}/retry", status_code=202)
def retry_process(process_id: str):
    """Reset the record to pending and queue it again."""
    record = _record_or_404(process_id)
    submit_process(
        record.tenant_id,
        record.document_type,
        record.file_handle,
        process_id=record.id,
    )
    return {"success": True, "processId": record.id, "status": "pending"}
