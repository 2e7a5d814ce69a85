"""
Tests for the HTTP and WebSocket surfaces.

Services are wired over the in-memory pool (see conftest.py), so no database
is needed.
"""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from fakes import FakeAsyncpgPool, FakeSqlError, FakeStore
from loadsim.api import error_handling
from loadsim.core.services import Services


class TestExecuteQuery:
    def test_select_returns_rows(self, client: TestClient, services: Services) -> None:
        resp = client.post("/api/queries/execute", json={"query": "SELECT 1"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["rowCount"] == 1
        assert body["data"] == [{"?column?": 1}]
        assert body["executionTime"] >= 0
        assert services.channel.published == 1

    def test_dashboard_path_is_equivalent(self, client: TestClient) -> None:
        resp = client.post("/execute-query", json={"query": "select 1"})
        assert resp.status_code == 200
        assert resp.json()["rowCount"] == 1

    def test_insert_reports_affected_rows(
        self, client: TestClient, store: FakeStore
    ) -> None:
        store.script["INSERT INTO USERS"] = "INSERT 0 2"
        resp = client.post(
            "/api/queries/execute",
            json={"query": "INSERT INTO users (name) VALUES ('a'), ('b')"},
        )
        assert resp.status_code == 200
        assert resp.json()["affectedRows"] == 2

    def test_blocked_statement_is_forbidden_and_not_executed(
        self, client: TestClient, services: Services, backend: FakeAsyncpgPool
    ) -> None:
        resp = client.post("/api/queries/execute", json={"query": "DROP TABLE users"})

        assert resp.status_code == 403
        body = resp.json()
        assert body["code"] == "QUERY_BLOCKED"
        assert "security reasons" in body["error"]
        assert body["executionTime"] == 0
        assert backend.acquired == 0
        assert services.channel.published == 0

    @pytest.mark.parametrize("query", ["SHOW TABLES", "WITH x AS (SELECT 1) SELECT 1"])
    def test_unsupported_statement_is_rejected(
        self, client: TestClient, services: Services, query: str
    ) -> None:
        resp = client.post("/api/queries/execute", json={"query": query})

        assert resp.status_code == 400
        assert resp.json()["code"] == "QUERY_UNSUPPORTED"
        assert services.channel.published == 0

    def test_empty_query_is_malformed(self, client: TestClient) -> None:
        resp = client.post("/api/queries/execute", json={"query": "   "})
        assert resp.status_code == 400
        assert resp.json()["code"] == "MALFORMED_QUERY"

    def test_missing_query_field_is_a_validation_error(self, client: TestClient) -> None:
        resp = client.post("/api/queries/execute", json={})
        assert resp.status_code == 422

    def test_store_error_is_reported_with_timing(
        self, client: TestClient, services: Services, store: FakeStore
    ) -> None:
        store.script["FROM NOWHERE"] = FakeSqlError('relation "nowhere" does not exist')

        resp = client.post("/api/queries/execute", json={"query": "SELECT * FROM nowhere"})

        assert resp.status_code == 400
        body = resp.json()
        assert body["code"] == "42P01"
        assert "nowhere" in body["error"]
        # The failed statement is still measured and broadcast.
        assert services.channel.published == 1

    def test_store_unavailable(
        self, client: TestClient, services: Services, backend: FakeAsyncpgPool
    ) -> None:
        backend.acquire_error = OSError("connection refused")

        resp = client.post("/api/queries/execute", json={"query": "SELECT 1"})

        assert resp.status_code == 503
        assert resp.json()["code"] == "STORE_UNAVAILABLE"
        assert services.channel.published == 1


    def test_unexpected_failure_is_a_flat_500(
        self, client: TestClient, services: Services, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def explode(sql: str, viewer_id: str | None = None):
            raise RuntimeError("gateway exploded")

        monkeypatch.setattr(services, "submit", explode)
        monkeypatch.setattr(error_handling.settings, "APP_DEBUG", True)

        resp = client.post("/api/queries/execute", json={"query": "SELECT 1"})

        assert resp.status_code == 500
        assert resp.json() == {
            "error": "gateway exploded",
            "code": "INTERNAL_ERROR",
            "executionTime": 0,
        }


class TestServiceEndpoints:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["checks"]["postgres"]["status"] == "healthy"
        assert body["checks"]["generator"]["running"] is False

    def test_health_degraded_when_store_down(
        self, client: TestClient, backend: FakeAsyncpgPool
    ) -> None:
        backend.acquire_error = OSError("connection refused")
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "degraded"

    def test_info(self, client: TestClient) -> None:
        body = client.get("/api/info").json()
        assert body["features"]["allowed_query_types"] == ["SELECT", "INSERT", "UPDATE"]
        assert body["endpoints"]["live_metrics"] == "/ws/metrics"

    def test_generator_status(self, client: TestClient) -> None:
        body = client.get("/api/generator").json()
        assert body["viewers"] == 0
        assert body["generator"]["running"] is False

    def test_unknown_viewer_is_404(self, client: TestClient) -> None:
        assert client.get("/api/viewers/nobody/history").status_code == 404
        assert client.get("/api/viewers/nobody/stats").status_code == 404

    def test_no_viewers(self, client: TestClient) -> None:
        assert client.get("/api/viewers/").json() == []


def _receive_until(ws, events: set[str]) -> dict[str, dict[str, Any]]:
    """Read messages until one of each event type in `events` has arrived."""
    seen: dict[str, dict[str, Any]] = {}
    while not events.issubset(seen):
        message = ws.receive_json()
        seen.setdefault(message["event"], message)
    return seen


@pytest.mark.websocket
class TestLiveMetricsWebSocket:
    def test_connect_execute_and_history(self, client: TestClient) -> None:
        with client.websocket_connect("/ws/metrics") as ws:
            hello = ws.receive_json()
            assert hello["event"] == "connected"
            viewer_id = hello["viewerId"]

            ws.send_json({"action": "execute", "query": "SELECT 1"})
            seen = _receive_until(ws, {"query_result", "query_metric"})

            result = seen["query_result"]
            assert result["status"] == 200
            assert result["rowCount"] == 1

            metric = seen["query_metric"]
            assert metric["data"]["queryType"] == "SELECT"
            assert metric["data"]["viewerId"] == viewer_id
            assert metric["stats"]["total"] == 1

            ws.send_json({"action": "history"})
            history = _receive_until(ws, {"history"})["history"]
            assert [e["query"] for e in history["entries"]] == ["SELECT 1"]

            ws.send_json({"action": "stats"})
            stats = _receive_until(ws, {"stats"})["stats"]
            assert stats["stats"]["SELECT"] == 1

            assert client.get("/api/viewers/").json() == [viewer_id]
            rest_history = client.get(f"/api/viewers/{viewer_id}/history").json()
            assert rest_history["count"] == 1

    def test_rejected_execute_is_only_answered(
        self, client: TestClient, services: Services
    ) -> None:
        with client.websocket_connect("/ws/metrics") as ws:
            ws.receive_json()
            ws.send_json({"action": "execute", "query": "DELETE FROM users"})
            reply = ws.receive_json()

            assert reply["event"] == "query_result"
            assert reply["status"] == 403
            assert reply["code"] == "QUERY_BLOCKED"
        assert services.channel.published == 0

    def test_bad_messages_get_errors(self, client: TestClient) -> None:
        with client.websocket_connect("/ws/metrics") as ws:
            ws.receive_json()

            ws.send_text("not json")
            assert ws.receive_json() == {"event": "error", "error": "Invalid message"}

            ws.send_json({"action": "execute", "query": "  "})
            assert ws.receive_json()["error"] == "Please enter a SQL query"

            ws.send_json({"action": "dance"})
            assert ws.receive_json()["error"] == "Unknown action: dance"

    def test_session_is_removed_on_disconnect(
        self, client: TestClient, services: Services
    ) -> None:
        with client.websocket_connect("/ws/metrics") as ws:
            ws.receive_json()
            assert len(services.sessions) == 1
        assert len(services.sessions) == 0
        assert len(services.channel) == 0
