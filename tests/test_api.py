"""API contract tests for /api/migration (routes/migration.py)."""
import threading

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from s3migrate.main import app
from s3migrate.services.migration_runner import MigrationService, get_migration_service
from s3migrate.services.object_store import ObjectStore


@pytest.fixture
def make_service(engine, s3_client):
    def _make(settings) -> MigrationService:
        return MigrationService(settings, engine, object_store_factory=lambda s: ObjectStore(s, client=s3_client))
    return _make


@pytest.fixture
def service(make_service, settings) -> MigrationService:
    return make_service(settings)


@pytest_asyncio.fixture
async def client(service):
    app.dependency_overrides[get_migration_service] = lambda: service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    await service.shutdown()


async def test_config_hides_credentials(client) -> None:
    resp = await client.get("/api/migration/config")
    assert resp.status_code == 200
    body = resp.json()
    assert body["S3_BUCKET"] == "test-bucket"
    assert "S3_SECRET" not in body
    assert "DATABASE_URL" not in body


async def test_checks(client, s3_client) -> None:
    s3_client.bucket_reachable = False
    resp = await client.post("/api/migration/checks")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is False
    statuses = {c["key"]: c["status"] for c in body["checks"]}
    assert statuses["s3"] == "error"
    assert statuses["database"] == "ok"


async def test_start_then_status(client, service, add_file) -> None:
    await add_file(10, "files/a.txt", 100)

    resp = await client.post("/api/migration/start", json={"dryRun": "off"})
    assert resp.status_code == 202
    assert resp.json()["running"] is True

    await service.wait()
    resp = await client.get("/api/migration/status")
    body = resp.json()
    assert body["running"] is False
    assert body["progress"]["phase"] == "complete"
    assert body["progress"]["migrated"] == 1
    assert "currentFile" in body["progress"]
    assert body["result"]["success"] is True
    assert body["result"]["bytes_transferred"] == 100


async def test_start_twice_conflicts(client, service, s3_client, add_file) -> None:
    await add_file(10, "files/a.txt", 100)
    gate = threading.Event()

    # Hold the first run in its preflight S3 check
    def blocked_head_bucket(Bucket):
        gate.wait(5)
        return {}
    s3_client.head_bucket = blocked_head_bucket

    first = await client.post("/api/migration/start", json={"dryRun": "full"})
    second = await client.post("/api/migration/start", json={})
    gate.set()
    await service.wait()

    assert first.status_code == 202
    assert second.status_code == 409
    assert service.last_result.success


async def test_start_with_invalid_config(make_service, make_settings) -> None:
    service = make_service(make_settings(S3_BUCKET=""))
    app.dependency_overrides[get_migration_service] = lambda: service
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            resp = await ac.post("/api/migration/start", json={})
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 422
    assert "S3_BUCKET" in resp.json()["detail"]
    assert not service.running


async def test_stop_without_run(client) -> None:
    resp = await client.post("/api/migration/stop")
    assert resp.status_code == 409


async def test_cleanup_previews_disabled(client) -> None:
    resp = await client.post("/api/migration/cleanup-previews", json={"maxAgeDays": 0})
    assert resp.status_code == 200
    assert resp.json() == {"deleted": 0, "bytesFreed": 0}


async def test_cleanup_previews_rejects_negative_age(client) -> None:
    resp = await client.post("/api/migration/cleanup-previews", json={"maxAgeDays": -1})
    assert resp.status_code == 422


async def test_idle_status(client) -> None:
    resp = await client.get("/api/migration/status")
    body = resp.json()
    assert body["running"] is False
    assert body["progress"]["status"] == "idle"
    assert body["result"] is None


def test_cleanup_route_documents_dry_run() -> None:
    operation = app.openapi()["paths"]["/api/migration/cleanup-previews"]["post"]
    assert "only reports" in operation["description"]
