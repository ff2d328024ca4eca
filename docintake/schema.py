"""Pydantic models for configs, process records and pipeline results."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    """Accepts both snake_case and the camelCase keys used in stored configs."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProcessStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    VALIDATED = "validated"
    FAILED = "failed"


RuleType = Literal[
    "not_null",
    "is_date",
    "is_number",
    "comparison",
    "compare_number",
    "compare_date",
    "formula",
    "regex",
]
Operator = Literal["gt", "lt", "gte", "lte", "eq", "neq"]


class RuleSpec(_CamelModel):
    """One declarative validation check against a field."""

    rule_type: str
    operator: Optional[Operator] = None
    compare_value: Any = None  # "today", a date string or a number
    compare_field: Optional[str] = None
    offset_value: Optional[int] = None
    offset_unit: Optional[Literal["days", "months", "years"]] = None
    formula: Optional[str] = None
    regex: Optional[str] = None
    predefined_regex: Optional[str] = None
    message: str = ""


class RuleResult(_CamelModel):
    success: bool
    message: str = ""
    rule_type: str


class StrategyStep(_CamelModel):
    """One entry of a strategy stack: provider name + optional MIME filter."""

    name: str
    mime_types: List[str] = Field(default_factory=list)


class DocumentTypeConfig(_CamelModel):
    """Per-tenant document type: target schema, rules, stack, webhook override."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    tenant_id: str
    slug: str
    json_schema: Dict[str, Any]
    validation_rules: Optional[Dict[str, List[RuleSpec]]] = None
    strategy_stack: List[StrategyStep] = Field(default_factory=list)
    webhook_override: Optional[str] = None

    @field_validator("strategy_stack", mode="before")
    @classmethod
    def _coerce_bare_names(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [{"name": step} if isinstance(step, str) else step for step in value]


class WebhookAuth(_CamelModel):
    type: Literal["none", "header", "bearer", "basic"] = "none"
    header_name: Optional[str] = None
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class ApiKeyConfig(_CamelModel):
    key: str
    label: str = ""
    webhook_url: Optional[str] = None
    webhook_enabled: bool = True
    webhook_auth: Optional[WebhookAuth] = None


class TenantConfig(_CamelModel):
    tenant_id: str
    name: str = ""
    api_keys: List[ApiKeyConfig] = Field(default_factory=list)
    webhook_url: Optional[str] = None
    webhook_enabled: bool = True


class NotificationPolicy(BaseModel):
    """Resolved webhook target for one job."""

    enabled: bool
    url: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    key_label: Optional[str] = None


class ProcessRecord(_CamelModel):
    """A document submitted for extraction, tracked through its status lifecycle."""

    id: str
    tenant_id: str
    external_id: str = ""
    document_type: str
    api_key: Optional[str] = None
    file_handle: str
    storage_type: str = "local"
    tags: List[str] = Field(default_factory=list)
    status: ProcessStatus = ProcessStatus.PENDING
    extracted_data: Any = None
    validation_results: Optional[Dict[str, List[RuleResult]]] = None
    logs: str = ""
    error_message: Optional[str] = None
    ocr_provider: Optional[str] = None
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)


class JobMessage(_CamelModel):
    """Descriptor delivered by the queue to the job consumer."""

    process_id: str
    tenant_id: str
    doc_type_slug: str
    file_handle: str


class OcrResult(BaseModel):
    """Outcome of a single provider invocation."""

    success: bool
    data: Any = None
    raw_text: Optional[str] = None
    error: Optional[str] = None


class StackResult(OcrResult):
    """Outcome of a whole strategy stack run."""

    logs: str = ""
    provider: Optional[str] = None


class WebhookPayload(_CamelModel):
    """Outbound notification body (serialized with camelCase keys)."""

    id: str
    external_id: str = ""
    status: ProcessStatus
    document_type: str
    extracted_data: Any = None
    tags: List[str] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def from_record(cls, record: ProcessRecord) -> "WebhookPayload":
        return cls(
            id=record.id,
            external_id=record.external_id,
            status=record.status,
            document_type=record.document_type,
            extracted_data=record.extracted_data,
            tags=record.tags,
            error=record.error_message,
        )
