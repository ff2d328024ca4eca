"""Tenant and document-type configuration lookup.

Tenant/config CRUD lives outside this package; the pipeline only needs
lookups by ``tenant_id`` and ``(tenant_id, slug)``. Configs can be loaded
from a JSON file shaped like::

    {
      "tenants": [{"tenantId": "acme", "webhookUrl": "...", "apiKeys": [...]}],
      "documentTypes": [{"tenantId": "acme", "slug": "invoice", "jsonSchema": {...}, ...}]
    }
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

from .config import CONFIG_FILE
from .schema import DocumentTypeConfig, TenantConfig

logger = logging.getLogger(__name__)


class ConfigRegistry:
    """Thread-safe in-memory registry of tenants and document types."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tenants: dict[str, TenantConfig] = {}
        self._doc_types: dict[tuple[str, str], DocumentTypeConfig] = {}

    def add_tenant(self, tenant: TenantConfig | dict) -> TenantConfig:
        if not isinstance(tenant, TenantConfig):
            tenant = TenantConfig.model_validate(tenant)
        with self._lock:
            self._tenants[tenant.tenant_id] = tenant
        return tenant

    def add_document_type(self, config: DocumentTypeConfig | dict) -> DocumentTypeConfig:
        if not isinstance(config, DocumentTypeConfig):
            config = DocumentTypeConfig.model_validate(config)
        with self._lock:
            self._doc_types[(config.tenant_id, config.slug)] = config
        return config

    def get_tenant(self, tenant_id: str) -> TenantConfig | None:
        with self._lock:
            return self._tenants.get(tenant_id)

    def get_document_type(self, tenant_id: str, slug: str) -> DocumentTypeConfig | None:
        with self._lock:
            return self._doc_types.get((tenant_id, slug))

    def document_types(self) -> list[DocumentTypeConfig]:
        with self._lock:
            return list(self._doc_types.values())

    def load_json(self, path: str | Path) -> None:
        data = json.loads(Path(path).read_text())
        for tenant in data.get("tenants", []):
            self.add_tenant(tenant)
        for doc_type in data.get("documentTypes", data.get("document_types", [])):
            self.add_document_type(doc_type)
        logger.info(
            "Loaded %d tenants and %d document types from %s",
            len(self._tenants), len(self._doc_types), path,
        )


def load_registry(path: str | None = CONFIG_FILE) -> ConfigRegistry:
    registry = ConfigRegistry()
    if path:
        registry.load_json(path)
    return registry
