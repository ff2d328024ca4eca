"""Outcome notification: policy resolution and best-effort webhook delivery.

Resolution order for the target URL is document-type override, then the
API-key specific URL, then the tenant default. Enablement is decided by the
API-key block when one exists for the job's key, otherwise by the tenant.
"""

from __future__ import annotations

import base64
import logging
from typing import Optional

import httpx

from .config import WEBHOOK_TIMEOUT_SEC
from .config_store import ConfigRegistry
from .schema import (
    ApiKeyConfig,
    DocumentTypeConfig,
    NotificationPolicy,
    ProcessRecord,
    TenantConfig,
    WebhookAuth,
    WebhookPayload,
)

logger = logging.getLogger(__name__)


def build_auth_headers(auth: Optional[WebhookAuth]) -> dict[str, str]:
    """Translate a webhook auth config into request headers."""
    if auth is None or auth.type == "none":
        return {}
    if auth.type == "header" and auth.header_name:
        return {auth.header_name: auth.token or ""}
    if auth.type == "bearer" and auth.token:
        return {"Authorization": f"Bearer {auth.token}"}
    if auth.type == "basic" and auth.username:
        credentials = f"{auth.username}:{auth.password or ''}".encode("utf-8")
        return {"Authorization": f"Basic {base64.b64encode(credentials).decode('ascii')}"}
    return {}


def find_api_key_config(tenant: Optional[TenantConfig], api_key: Optional[str]) -> Optional[ApiKeyConfig]:
    if tenant is None or not api_key:
        return None
    return next((cfg for cfg in tenant.api_keys if cfg.key == api_key), None)


def resolve_notification_policy(
    tenant: Optional[TenantConfig],
    api_key: Optional[str],
    doc_config: Optional[DocumentTypeConfig],
) -> NotificationPolicy:
    """Pure resolver over document-type > API-key > tenant settings."""
    if tenant is None:
        return NotificationPolicy(enabled=False)

    key_config = find_api_key_config(tenant, api_key)
    enabled = key_config.webhook_enabled if key_config is not None else tenant.webhook_enabled

    candidates = (
        doc_config.webhook_override if doc_config else None,
        key_config.webhook_url if key_config else None,
        tenant.webhook_url,
    )
    url = next((candidate for candidate in candidates if candidate), None)

    return NotificationPolicy(
        enabled=enabled,
        url=url,
        headers=build_auth_headers(key_config.webhook_auth if key_config else None),
        key_label=key_config.label if key_config else None,
    )


class WebhookDispatcher:
    """Sends one POST per finished job. Never raises to the caller."""

    def __init__(
        self,
        configs: ConfigRegistry,
        client: Optional[httpx.Client] = None,
        timeout_sec: float = WEBHOOK_TIMEOUT_SEC,
    ) -> None:
        self.configs = configs
        self._client = client
        self.timeout_sec = timeout_sec

    def _post(self, url: str, body: dict, headers: dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return self._client.post(url, json=body, headers=headers, timeout=self.timeout_sec)
        with httpx.Client(timeout=self.timeout_sec) as client:
            return client.post(url, json=body, headers=headers)

    def notify(
        self,
        tenant_id: str,
        doc_config: Optional[DocumentTypeConfig],
        record: ProcessRecord,
    ) -> bool:
        """Deliver the outcome of *record*; returns True when the POST succeeded."""
        key_label = "unknown"
        try:
            tenant = self.configs.get_tenant(tenant_id)
            if tenant is None:
                logger.info("[Webhook] No tenant config for %s; skipping", tenant_id)
                return False
            policy = resolve_notification_policy(tenant, record.api_key, doc_config)
            key_label = policy.key_label or key_label
            if not policy.enabled:
                logger.info(
                    "[Webhook] Notifications disabled for tenant %s (%s)",
                    tenant_id, record.api_key or "global",
                )
                return False
            if not policy.url:
                logger.info("[Webhook] No webhook URL configured for tenant %s", tenant_id)
                return False

            body = WebhookPayload.from_record(record).model_dump(mode="json", by_alias=True)
            response = self._post(policy.url, body, policy.headers)
            response.raise_for_status()
            logger.info("[Webhook] Sent to %s for process %s", policy.url, record.id)
            return True
        except Exception as exc:
            logger.error("[Webhook] Failed for tenant %s (key: %s): %s", tenant_id, key_label, exc)
            return False
