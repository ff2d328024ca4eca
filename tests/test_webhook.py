"""Tests for docintake.webhook (policy resolution and httpx delivery)."""

from __future__ import annotations

import base64
import json
import unittest

import httpx

from docintake.config_store import ConfigRegistry
from docintake.schema import (
    DocumentTypeConfig,
    ProcessRecord,
    ProcessStatus,
    TenantConfig,
    WebhookAuth,
)
from docintake.webhook import WebhookDispatcher, build_auth_headers, resolve_notification_policy


def _tenant(**overrides) -> TenantConfig:
    data = {
        "tenantId": "acme",
        "webhookUrl": "https://tenant.example/hook",
        "webhookEnabled": True,
        "apiKeys": [
            {
                "key": "key-1",
                "label": "ERP",
                "webhookUrl": "https://erp.example/hook",
                "webhookEnabled": True,
                "webhookAuth": {"type": "bearer", "token": "s3cret"},
            },
            {"key": "key-off", "label": "Muted", "webhookEnabled": False},
        ],
    }
    data.update(overrides)
    return TenantConfig.model_validate(data)


def _doc_config(override: str | None = None) -> DocumentTypeConfig:
    return DocumentTypeConfig(
        tenant_id="acme", slug="invoice", json_schema={}, webhook_override=override
    )


def _record(api_key: str | None = "key-1") -> ProcessRecord:
    return ProcessRecord(
        id="p-1",
        tenant_id="acme",
        external_id="ext-9",
        document_type="invoice",
        api_key=api_key,
        file_handle="uploads/p-1.pdf",
        tags=["batch-7"],
        status=ProcessStatus.COMPLETED,
        extracted_data={"total": 100},
    )


class TestAuthHeaders(unittest.TestCase):
    def test_variants(self) -> None:
        self.assertEqual(build_auth_headers(None), {})
        self.assertEqual(build_auth_headers(WebhookAuth(type="none", token="x")), {})
        self.assertEqual(
            build_auth_headers(WebhookAuth(type="header", header_name="X-Api-Key", token="abc")),
            {"X-Api-Key": "abc"},
        )
        self.assertEqual(
            build_auth_headers(WebhookAuth(type="bearer", token="abc")),
            {"Authorization": "Bearer abc"},
        )
        expected = "Basic " + base64.b64encode(b"user:pw").decode()
        self.assertEqual(
            build_auth_headers(WebhookAuth(type="basic", username="user", password="pw")),
            {"Authorization": expected},
        )

    def test_incomplete_configs_send_nothing(self) -> None:
        self.assertEqual(build_auth_headers(WebhookAuth(type="header", token="abc")), {})
        self.assertEqual(build_auth_headers(WebhookAuth(type="bearer")), {})
        self.assertEqual(build_auth_headers(WebhookAuth(type="basic", password="pw")), {})


class TestResolveNotificationPolicy(unittest.TestCase):
    def test_missing_tenant_is_disabled(self) -> None:
        self.assertFalse(resolve_notification_policy(None, "key-1", _doc_config()).enabled)

    def test_key_block_overrides_tenant_enablement(self) -> None:
        tenant = _tenant(webhookEnabled=True)
        self.assertFalse(resolve_notification_policy(tenant, "key-off", _doc_config()).enabled)

        tenant = _tenant(webhookEnabled=False)
        self.assertTrue(resolve_notification_policy(tenant, "key-1", _doc_config()).enabled)

    def test_tenant_flag_applies_without_key_block(self) -> None:
        tenant = _tenant(webhookEnabled=False)
        self.assertFalse(resolve_notification_policy(tenant, "unknown-key", _doc_config()).enabled)
        self.assertFalse(resolve_notification_policy(tenant, None, _doc_config()).enabled)

    def test_url_priority(self) -> None:
        tenant = _tenant()
        self.assertEqual(
            resolve_notification_policy(tenant, "key-1", _doc_config("https://override/hook")).url,
            "https://override/hook",
        )
        self.assertEqual(
            resolve_notification_policy(tenant, "key-1", _doc_config()).url,
            "https://erp.example/hook",
        )
        self.assertEqual(
            resolve_notification_policy(tenant, None, _doc_config()).url,
            "https://tenant.example/hook",
        )

    def test_headers_and_label_come_from_key_block(self) -> None:
        policy = resolve_notification_policy(_tenant(), "key-1", _doc_config())
        self.assertEqual(policy.headers, {"Authorization": "Bearer s3cret"})
        self.assertEqual(policy.key_label, "ERP")


class TestWebhookDispatcher(unittest.TestCase):
    def setUp(self) -> None:
        self.configs = ConfigRegistry()
        self.configs.add_tenant(_tenant())
        self.requests: list[httpx.Request] = []

    def _dispatcher(self, status_code: int = 200) -> WebhookDispatcher:
        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(status_code)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        return WebhookDispatcher(self.configs, client=client, timeout_sec=5)

    def test_posts_camel_case_payload_with_auth(self) -> None:
        delivered = self._dispatcher().notify("acme", _doc_config(), _record())

        self.assertTrue(delivered)
        self.assertEqual(len(self.requests), 1)
        request = self.requests[0]
        self.assertEqual(str(request.url), "https://erp.example/hook")
        self.assertEqual(request.headers["Authorization"], "Bearer s3cret")
        self.assertEqual(
            json.loads(request.content),
            {
                "id": "p-1",
                "externalId": "ext-9",
                "status": "completed",
                "documentType": "invoice",
                "extractedData": {"total": 100},
                "tags": ["batch-7"],
                "error": None,
            },
        )

    def test_disabled_key_sends_nothing(self) -> None:
        self.assertFalse(self._dispatcher().notify("acme", _doc_config(), _record("key-off")))
        self.assertEqual(self.requests, [])

    def test_unknown_tenant_sends_nothing(self) -> None:
        self.assertFalse(self._dispatcher().notify("other", _doc_config(), _record()))
        self.assertEqual(self.requests, [])

    def test_no_url_sends_nothing(self) -> None:
        self.configs.add_tenant(TenantConfig(tenant_id="bare"))
        self.assertFalse(self._dispatcher().notify("bare", None, _record(None)))
        self.assertEqual(self.requests, [])

    def test_http_error_is_swallowed(self) -> None:
        with self.assertLogs("docintake.webhook", level="ERROR") as logs:
            delivered = self._dispatcher(status_code=500).notify("acme", _doc_config(), _record())
        self.assertFalse(delivered)
        self.assertIn("acme", logs.output[0])
        self.assertIn("ERP", logs.output[0])

    def test_transport_error_is_swallowed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        dispatcher = WebhookDispatcher(self.configs, client=client)
        self.assertFalse(dispatcher.notify("acme", _doc_config(), _record()))


if __name__ == "__main__":
    unittest.main()
