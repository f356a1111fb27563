"""Tests for the diagnostics API."""

import pytest
from fastapi.testclient import TestClient

from conftest import make_record, raw_client, wait_for
from mplogger.api import create_app
from mplogger.models import LogLevel
from mplogger.protocol import encode_frame


@pytest.fixture
def api(store):
    store.ingest(make_record(10, 1, LogLevel.DEBUG, "quiet"))
    store.ingest(make_record(10, 1, LogLevel.ERROR, "loud"))
    store.ingest(make_record(20, 3, LogLevel.INFO, "other"))
    return TestClient(create_app(store))


class TestReadEndpoints:
    """Store queries"""

    def test_health(self, api):
        response = api.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["record_count"] == 3
        assert body["connected_clients"] == 0

    def test_processes(self, api):
        assert api.get("/api/processes").json() == {"processes": [10, 20]}

    def test_threads(self, api):
        assert api.get("/api/processes/20/threads").json() == {"process_id": 20, "threads": [3]}

    def test_threads_unknown_process(self, api):
        assert api.get("/api/processes/99/threads").status_code == 404

    def test_logs_with_level(self, api):
        response = api.get("/api/logs", params={"process_id": 10, "thread_id": 1, "level": "warn"})
        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 1
        assert body["logs"][0]["message"] == "loud"
        assert body["logs"][0]["level"] == int(LogLevel.ERROR)

    def test_logs_window(self, api):
        response = api.get("/api/logs", params={"process_id": 10, "thread_id": 1, "offset": 1, "count": 5})
        assert [log["message"] for log in response.json()["logs"]] == ["quiet"]

    @pytest.mark.parametrize("params", [
        {"level": "loudest"},
        {"offset": -1},
        {"count": -5},
    ])
    def test_logs_bad_query(self, api, params):
        response = api.get("/api/logs", params={"process_id": 10, "thread_id": 1, **params})
        assert response.status_code == 400

    def test_storage_info(self, api):
        body = api.get("/api/storage/info").json()
        assert body["count"] == 3
        assert body["capacity"] == 1000
        assert body["processes"] == 2
        assert body["is_full"] is False


class TestConnectionsEndpoint:
    """Connection snapshots"""

    def test_without_acceptor(self, api):
        assert api.get("/api/connections").json() == []

    def test_with_acceptor(self, store, acceptor, socket_path):
        api = TestClient(create_app(store, acceptor))
        client = raw_client(socket_path)
        try:
            client.sendall(encode_frame(make_record(31)))
            assert wait_for(lambda: store.count_matching(31, 1) == 1)
            connections = api.get("/api/connections").json()
            assert connections[0]["process_id"] == 31
            assert connections[0]["state"] == "connected"
            assert api.get("/health").json()["connected_clients"] == 1
        finally:
            client.close()
