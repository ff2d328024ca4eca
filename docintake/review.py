"""Reviewer actions on finished process records.

A reviewer may correct extracted data and re-run validation. ``validated``
is only reachable through ``revalidate`` when every rule passes; any manual
edit afterwards demotes the record back to ``completed``.
"""

from __future__ import annotations

import logging
from typing import Any

from .config_store import ConfigRegistry
from .job_store import ProcessStore
from .schema import ProcessRecord, ProcessStatus
from .utils import ConfigNotFoundError
from .validation import all_passed, validate_data

logger = logging.getLogger(__name__)


def _require(store: ProcessStore, process_id: str) -> ProcessRecord:
    record = store.get(process_id)
    if record is None:
        raise KeyError(process_id)
    return record


def revalidate(
    store: ProcessStore,
    configs: ConfigRegistry,
    process_id: str,
    extracted_data: Any,
) -> ProcessRecord:
    """Store reviewed data, re-run validation and promote when all rules pass."""
    record = _require(store, process_id)
    doc_config = configs.get_document_type(record.tenant_id, record.document_type)
    if doc_config is None:
        raise ConfigNotFoundError(
            f"Configuration not found for {record.tenant_id}/{record.document_type}"
        )

    results = validate_data(extracted_data, doc_config.validation_rules)
    status = ProcessStatus.VALIDATED if all_passed(results) else ProcessStatus.COMPLETED
    logger.info("Process %s revalidated: %s", process_id, status.value)
    return store.update_status(
        process_id,
        {"extracted_data": extracted_data, "validation_results": results, "status": status},
    )


def update_extracted_data(store: ProcessStore, process_id: str, extracted_data: Any) -> ProcessRecord:
    """Save a manual edit; a validated record drops back to completed."""
    record = _require(store, process_id)
    fields: dict[str, Any] = {"extracted_data": extracted_data}
    if record.status == ProcessStatus.VALIDATED:
        fields["status"] = ProcessStatus.COMPLETED
    return store.update_status(process_id, fields)


def revert_to_completed(store: ProcessStore, process_id: str) -> ProcessRecord:
    record = _require(store, process_id)
    if record.status != ProcessStatus.VALIDATED:
        return record
    return store.update_status(process_id, {"status": ProcessStatus.COMPLETED})
