"""Tests for the HTTP surface over the document store."""

import asyncio

from fastapi.testclient import TestClient

from collab_store.config import Settings
from collab_store.errors import IntegrityViolation, QueryError, StorageConnectionError
from collab_store.main import app, create_app
from collab_store.persistence.memory import InMemoryDocumentStore


def _client(store=None) -> TestClient:
    return TestClient(create_app(Settings(backend="memory"), store=store))


def _commit(client: TestClient, version: int, data: object, op: object):
    return client.post(
        "/collections/docs/docs/a/commit",
        json={"operation": op, "snapshot": {"id": "a", "version": version, "type": "json0", "data": data}},
    )


def test_health() -> None:
    with _client() as client:
        assert client.get("/health").json() == {"status": "ok"}


def test_commit_and_read_back() -> None:
    with _client() as client:
        assert client.get("/collections/docs/docs/a/snapshot").json()["version"] == 0

        assert _commit(client, 1, {"x": 1}, {"op": 1}).json() == {"success": True}
        assert _commit(client, 2, {"x": 2}, {"op": 2}).json() == {"success": True}

        stale = _commit(client, 2, {"x": 99}, {"op": 3})
        assert stale.status_code == 200
        assert stale.json() == {"success": False}

        snap = client.get("/collections/docs/docs/a/snapshot").json()
        assert snap["version"] == 2
        assert snap["data"] == {"x": 2}

        ops = client.get("/collections/docs/docs/a/ops", params={"from": 0}).json()
        assert [o["version"] for o in ops["ops"]] == [1, 2]
        assert ops["ops"][0]["operation"] == {"op": 1}

        ranged = client.get("/collections/docs/docs/a/ops", params={"from": 1, "to": 2}).json()
        assert [o["version"] for o in ranged["ops"]] == [2]


def test_negative_version_is_rejected_by_validation() -> None:
    with _client() as client:
        assert _commit(client, -1, {}, {}).status_code == 422
        assert client.get("/collections/docs/docs/a/ops", params={"from": -1}).status_code == 422


def test_storage_outage_maps_to_503() -> None:
    class DownStore(InMemoryDocumentStore):
        async def get_snapshot(self, collection, doc_id):
            raise StorageConnectionError("database unreachable")

    with _client(DownStore()) as client:
        resp = client.get("/collections/docs/docs/a/snapshot")
        assert resp.status_code == 503
        assert "unreachable" in resp.json()["detail"]


def test_duplicate_op_version_maps_to_409() -> None:
    class DuplicateStore(InMemoryDocumentStore):
        async def commit(self, collection, doc_id, operation, snapshot):
            raise IntegrityViolation(collection, doc_id, snapshot.version)

    with _client(DuplicateStore()) as client:
        resp = _commit(client, 2, {}, {})
        assert resp.status_code == 409
        assert "version=2" in resp.json()["detail"]


def test_query_error_maps_to_500() -> None:
    class BrokenStore(InMemoryDocumentStore):
        async def get_ops(self, collection, doc_id, from_version, to_version=None):
            raise QueryError('relation "ops" does not exist')

    with _client(BrokenStore()) as client:
        resp = client.get("/collections/docs/docs/a/ops")
        assert resp.status_code == 500
        assert "ops" in resp.json()["detail"]


def test_closed_store_maps_to_503() -> None:
    store = InMemoryDocumentStore()

    with _client(store) as client:
        asyncio.run(store.close())
        assert client.get("/collections/docs/docs/a/snapshot").status_code == 503
        assert _commit(client, 1, {}, {}).status_code == 503


def test_module_level_app_serves_health() -> None:
    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "ok"}
