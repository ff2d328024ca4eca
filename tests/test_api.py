"""Tests for docintake.api endpoints."""

from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient

from docintake import worker
from docintake.config_store import ConfigRegistry
from docintake.job_store import ProcessStore
from docintake.orchestrator import StrategyStackOrchestrator
from docintake.providers import build_default_registry
from docintake.schema import ProcessStatus
from docintake.worker import JobConsumer


class _ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        from docintake.api import app

        self.store = ProcessStore()
        self.configs = ConfigRegistry()
        self.configs.add_document_type(
            {
                "tenantId": "acme",
                "slug": "invoice",
                "jsonSchema": {},
                "validationRules": {"total": [{"ruleType": "is_number", "message": "Total must be numeric"}]},
            }
        )
        worker.set_consumer(
            JobConsumer(
                store=self.store,
                configs=self.configs,
                storage=MagicMock(),
                orchestrator=StrategyStackOrchestrator(
                    build_default_registry(mapper=MagicMock(), vision_client=MagicMock())
                ),
                dispatcher=MagicMock(),
            )
        )
        self.client = TestClient(app, raise_server_exceptions=False)
        record = self.store.create(tenant_id="acme", document_type="invoice", file_handle="f.pdf")
        self.process_id = record.id
        self.store.update_status(
            self.process_id, {"status": ProcessStatus.COMPLETED, "extracted_data": {"total": "abc"}}
        )

    def tearDown(self) -> None:
        worker.set_consumer(None)


class TestHealthAndStrategies(_ApiTestCase):
    def test_health(self) -> None:
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"status": "ok"})

    def test_strategies(self) -> None:
        r = self.client.get("/api/strategies")
        self.assertEqual(r.status_code, 200)
        ids = sorted(entry["id"] for entry in r.json())
        self.assertEqual(ids, ["Ollama", "PaddleOCR", "PdfText", "Tesseract"])


class TestProcessEndpoints(_ApiTestCase):
    def test_poll(self) -> None:
        r = self.client.get(f"/api/processes/{self.process_id}")
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["status"], "completed")
        self.assertEqual(body["extractedData"], {"total": "abc"})
        self.assertIn("logs", body)

    def test_poll_unknown(self) -> None:
        r = self.client.get("/api/processes/missing")
        self.assertEqual(r.status_code, 404)

    def test_validate_promotes(self) -> None:
        r = self.client.post(f"/api/processes/{self.process_id}/validate", json={"total": "1.234,56"})
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["status"], "validated")
        self.assertTrue(body["validationResults"]["total"][0]["success"])

    def test_validate_failure_stays_completed(self) -> None:
        r = self.client.post(f"/api/processes/{self.process_id}/validate", json={"total": "n/a"})
        self.assertEqual(r.json()["status"], "completed")
        self.assertEqual(r.json()["validationResults"]["total"][0]["message"], "Total must be numeric")

    def test_validate_without_config(self) -> None:
        other = self.store.create(tenant_id="acme", document_type="receipt", file_handle="f.pdf")
        r = self.client.post(f"/api/processes/{other.id}/validate", json={})
        self.assertEqual(r.status_code, 404)

    def test_edit_then_revert(self) -> None:
        self.client.post(f"/api/processes/{self.process_id}/validate", json={"total": 5})
        r = self.client.put(f"/api/processes/{self.process_id}/data", json={"total": 6})
        self.assertEqual(r.json(), {"success": True, "status": "completed"})
        self.assertEqual(self.store.get(self.process_id).extracted_data, {"total": 6})

        self.client.post(f"/api/processes/{self.process_id}/validate", json={"total": 6})
        r = self.client.post(f"/api/processes/{self.process_id}/revert")
        self.assertEqual(r.json()["status"], "completed")

    @patch("docintake.api.submit_process")
    def test_retry_requeues_same_record(self, mock_submit: MagicMock) -> None:
        r = self.client.post(f"/api/processes/{self.process_id}/retry")
        self.assertEqual(r.status_code, 202)
        mock_submit.assert_called_once_with("acme", "invoice", "f.pdf", process_id=self.process_id)


if __name__ == "__main__":
    unittest.main()
