"""
Tests for the HTTP API.

Routes run against an in-memory execution store and a connection manager
built from the test settings.
"""
import threading
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from importer.api.dependencies import ExecutionStore, get_connection_manager, get_execution_store
from importer.api.main import app
from importer.connectors.manager import ConnectionManager
from importer.models import ImportExecution, ImportStatus


ACCOUNT_MAPPING = {
    "target_entity": "account",
    "field_mappings": [
        {"source_field": "id", "target_field": "externalId"},
        {"source_field": "name", "target_field": "accountName", "required": True},
    ],
}

CUSTOMER_ORDERS = {
    "primary_table": "customers",
    "joined_tables": [{
        "table_name": "orders",
        "join_type": "inner",
        "join_conditions": [{"source_field": "id", "target_field": "customer_id"}],
    }],
}


@pytest.fixture()
def store(session_factory):
    return ExecutionStore(session_factory)


@pytest.fixture()
def client(store, settings):
    app.dependency_overrides[get_execution_store] = lambda: store
    app.dependency_overrides[get_connection_manager] = lambda: ConnectionManager(settings)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def sqlite_connection(sqlite_source):
    return {"type": "DATABASE_SQLITE", "filePath": sqlite_source}


class TestHealth:
    """Test the health endpoint."""

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["database"] == "ok"


class TestConnectionRoutes:
    """Test connection test, schema and preview endpoints."""

    def test_missing_file_reports_failure_in_body(self, client, tmp_path):
        response = client.post("/api/connections/test", json={
            "connection": {"type": "FILE_CSV", "file_path": str(tmp_path / "missing.csv")}
        })
        assert response.status_code == 200
        assert response.json()["success"] is False

    def test_sqlite_connection_test(self, client, sqlite_connection):
        response = client.post("/api/connections/test", json={"connection": sqlite_connection})
        body = response.json()
        assert body["success"] is True
        assert {t["name"] for t in body["schema"]["tables"]} >= {"customers", "orders"}

    def test_schema_and_preview(self, client, sqlite_connection):
        schema = client.post("/api/connections/schema", json={"connection": sqlite_connection}).json()
        customers = next(t for t in schema["tables"] if t["name"] == "customers")
        assert customers["record_count"] == 3

        response = client.post("/api/connections/preview", json={
            "connection": sqlite_connection,
            "table_name": "customers",
            "limit": 2,
        })
        assert response.status_code == 200
        assert len(response.json()["rows"]) == 2
        assert "email" in response.json()["columns"]

    def test_unsupported_source_type(self, client):
        response = client.post("/api/connections/test", json={"connection": {"type": "FTP"}})
        assert response.status_code == 400
        assert "Unsupported source type" in response.json()["detail"]


class TestJoinRoutes:
    """Test the join preview endpoint."""

    def test_preview(self, client, sqlite_connection):
        response = client.post("/api/joins/preview", json={
            "connection": sqlite_connection,
            "joined_table": CUSTOMER_ORDERS,
        })
        body = response.json()
        assert response.status_code == 200
        assert body["approximate"] is False
        assert body["total_rows"] == 3
        assert "orders.total" in body["columns"]

    def test_bad_join_lists_problems(self, client, sqlite_connection):
        bad = dict(CUSTOMER_ORDERS, primary_table="clients")
        response = client.post("/api/joins/preview", json={
            "connection": sqlite_connection,
            "joined_table": bad,
        })
        assert response.status_code == 400
        assert "Primary table clients not found in source schema" in response.json()["problems"]

    def test_join_on_file_source(self, client, write_csv):
        path = write_csv("id,name\n1,Acme\n")
        response = client.post("/api/joins/preview", json={
            "connection": {"type": "FILE_CSV", "file_path": path},
            "joined_table": CUSTOMER_ORDERS,
        })
        assert response.status_code == 400


class TestExecutionRoutes:
    """Test starting, reading and cancelling executions."""

    def test_run_csv_import(self, client, write_csv, session_factory):
        path = write_csv("id,name\n1,Acme\n2,Globex\n")
        response = client.post("/api/executions", json={
            "connection": {"type": "FILE_CSV", "file_path": path},
            "mapping": ACCOUNT_MAPPING,
        })
        assert response.status_code == 202
        execution_id = response.json()["id"]

        # TestClient runs background tasks before returning
        execution = client.get(f"/api/executions/{execution_id}").json()
        assert execution["status"] == "COMPLETED"
        assert execution["successful_records"] == 2
        assert execution["target_entity"] == "account"

        listed = client.get("/api/executions").json()
        assert [e["id"] for e in listed] == [execution_id]

    def test_failed_rows_and_logs(self, client, write_csv):
        path = write_csv("id,name\n1,Acme\n2,\n")
        execution_id = client.post("/api/executions", json={
            "connection": {"type": "FILE_CSV", "file_path": path},
            "mapping": ACCOUNT_MAPPING,
        }).json()["id"]

        execution = client.get(f"/api/executions/{execution_id}").json()
        assert execution["status"] == "FAILED"
        assert execution["failed_records"] == 1
        assert execution["errors"][0]["record_index"] == 1

        logs = client.get(f"/api/executions/{execution_id}/logs").json()
        assert logs["logs"][0]["message"] == "Starting import execution"

        errors = client.get(f"/api/executions/{execution_id}/logs", params={"level": "ERROR"}).json()
        assert errors["total"] == 1
        assert errors["logs"][0]["message"] == "Failed to process record 2"

    def test_unknown_entity_rejected_before_storing(self, client, write_csv, store):
        path = write_csv("id,name\n1,Acme\n")
        response = client.post("/api/executions", json={
            "connection": {"type": "FILE_CSV", "file_path": path},
            "mapping": dict(ACCOUNT_MAPPING, target_entity="invoice"),
        })
        assert response.status_code == 400
        assert "Unknown target entity: invoice" in response.json()["detail"]
        assert store.repository.list_executions() == []

    def test_cancel_terminal_execution(self, client, write_csv):
        path = write_csv("id,name\n1,Acme\n")
        execution_id = client.post("/api/executions", json={
            "connection": {"type": "FILE_CSV", "file_path": path},
            "mapping": ACCOUNT_MAPPING,
        }).json()["id"]

        response = client.post(f"/api/executions/{execution_id}/cancel")
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot cancel execution in status: COMPLETED"

    def test_cancel_orphaned_pending_execution(self, client, store):
        execution = store.repository.create(ImportExecution(target_entity="account"))

        response = client.post(f"/api/executions/{execution.id}/cancel")
        assert response.json()["status"] == "cancelled"
        assert store.repository.get(execution.id).status == ImportStatus.CANCELLED

    def test_cancel_running_execution_signals_token(self, client, store):
        execution = store.repository.create(ImportExecution(target_entity="account"))
        token = store.register_run(execution.id)

        response = client.post(f"/api/executions/{execution.id}/cancel")
        assert response.json()["status"] == "cancelling"
        assert token.is_cancelled

    def test_cancel_while_worker_finishes_keeps_final_status(self, client, store):
        """A worker finishing mid-cancel is never overwritten with CANCELLED."""
        execution = ImportExecution(target_entity="account")
        execution.transition(ImportStatus.RUNNING)
        store.repository.create(execution)
        token = store.register_run(execution.id)

        read_execution = store.repository.get
        workers = []

        def read_then_worker_finishes(execution_id):
            current = read_execution(execution_id)
            if not workers:
                finished = read_execution(execution_id)
                finished.transition(ImportStatus.COMPLETED)
                store.repository.finalize(finished)
                worker = threading.Thread(target=store.finish_run, args=(execution_id,))
                worker.start()
                workers.append(worker)
            return current

        with patch.object(store.repository, "get", side_effect=read_then_worker_finishes):
            response = client.post(f"/api/executions/{execution.id}/cancel")
        workers[0].join(timeout=5)

        assert response.json()["status"] == "cancelling"
        assert token.is_cancelled
        assert store.repository.get(execution.id).status == ImportStatus.COMPLETED

    def test_not_found(self, client):
        assert client.get("/api/executions/nope").status_code == 404
        assert client.get("/api/executions/nope/logs").status_code == 404
        assert client.post("/api/executions/nope/cancel").status_code == 404
