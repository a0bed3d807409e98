"""API tests — scan and maintenance routes through the full FastAPI app."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import vigil.database as db_mod
import vigil.dependencies as dep
from conftest import make_config, write_file
from vigil.main import create_app


@pytest_asyncio.fixture
async def client(engine, session_factory, site):
    """App client bound to the in-memory store; lifespan is not run."""
    db_mod._engine = engine
    db_mod._session_factory = session_factory
    dep.reset_singletons()
    dep._config_instance = make_config(scan_root=str(site))

    transport = ASGITransport(app=create_app())
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    if dep._file_integrity is not None:
        await dep._file_integrity.stop()
    dep.reset_singletons()
    db_mod._engine = None
    db_mod._session_factory = None


async def _scan(client) -> int:
    resp = await client.post("/api/v1/scans", json={})
    assert resp.status_code == 200
    return resp.json()["scan_id"]


class TestScanRoutes:
    @pytest.mark.asyncio
    async def test_trigger_and_fetch(self, client, site):
        write_file(site, "index.php", "<?php echo 1;\n")
        resp = await client.post("/api/v1/scans", json={"scan_type": "manual"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "completed"

        scan = (await client.get(f"/api/v1/scans/{body['scan_id']}")).json()
        assert scan["new_files"] == 1
        assert scan["is_baseline"] is True

        summary = (await client.get(f"/api/v1/scans/{body['scan_id']}/summary")).json()
        assert summary["new"] == 1

    @pytest.mark.asyncio
    async def test_file_listing_with_status_filter(self, client, site):
        write_file(site, "a.php", "one\n")
        write_file(site, "b.php", "two\n")
        await _scan(client)
        write_file(site, "a.php", "one changed\n")
        scan_id = await _scan(client)

        resp = await client.get(f"/api/v1/scans/{scan_id}/files", params={"status": "all"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["total_count"] == 1
        record = body["results"][0]
        assert record["file_path"] == "a.php"
        assert record["status"] == "changed"
        assert "+one changed" in record["diff_content"]

        everything = (await client.get(f"/api/v1/scans/{scan_id}/files")).json()
        assert everything["total_count"] == 2

    @pytest.mark.asyncio
    async def test_list_and_stats(self, client, site):
        write_file(site, "a.php", "a")
        first = await _scan(client)
        second = await _scan(client)

        listing = (await client.get("/api/v1/scans", params={"per_page": 1})).json()
        assert listing["total_count"] == 2
        assert listing["results"][0]["id"] == second

        stats = (await client.get("/api/v1/scans/stats")).json()
        assert stats["baseline_scan_id"] == first
        assert stats["statistics"]["completed_scans"] == 2

    @pytest.mark.asyncio
    async def test_missing_scan_is_404_envelope(self, client):
        resp = await client.get("/api/v1/scans/999", headers={"X-Request-ID": "req-1"})
        assert resp.status_code == 404
        body = resp.json()
        assert body["error"] is True
        assert body["status_code"] == 404
        assert body["request_id"] == "req-1"

    @pytest.mark.asyncio
    async def test_cancel_finished_scan_conflicts(self, client):
        scan_id = await _scan(client)
        resp = await client.post(f"/api/v1/scans/{scan_id}/cancel")
        assert resp.status_code == 409
        assert resp.json()["error"] is True

    @pytest.mark.asyncio
    async def test_background_scan_needs_running_worker(self, client):
        resp = await client.post("/api/v1/scans", json={"background": True})
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_baseline_and_delete(self, client, site):
        write_file(site, "a.php", "a")
        first = await _scan(client)
        second = await _scan(client)

        resp = await client.post(f"/api/v1/scans/{second}/baseline")
        assert resp.status_code == 200
        assert resp.json()["is_baseline"] is True

        assert (await client.delete(f"/api/v1/scans/{second}")).status_code == 409
        assert (await client.delete(f"/api/v1/scans/{first}")).status_code == 204
        assert (await client.get(f"/api/v1/scans/{first}")).status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_scan_type_is_422(self, client):
        resp = await client.post("/api/v1/scans", json={"scan_type": "hourly"})
        assert resp.status_code == 422
        assert resp.json()["detail"] == "Validation error"


class TestMaintenanceRoutes:
    @pytest.mark.asyncio
    async def test_prune_defaults(self, client):
        resp = await client.post("/api/v1/maintenance/prune", json={})
        assert resp.status_code == 200
        assert resp.json() == {"tier3_diffs_removed": 0, "scans_deleted": 0}

    @pytest.mark.asyncio
    async def test_prune_rejects_inverted_tiers(self, client):
        resp = await client.post(
            "/api/v1/maintenance/prune", json={"tier2_days": 40, "tier3_days": 30}
        )
        assert resp.status_code == 422
        assert "tier2_days" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_cache_stats_and_cleanup(self, client, site):
        write_file(site, "a.php", "cached body")
        await _scan(client)

        stats = (await client.get("/api/v1/maintenance/cache")).json()
        assert stats["total_entries"] == 1

        resp = await client.post("/api/v1/maintenance/cache-cleanup")
        assert resp.json() == {"expired_entries_removed": 0}


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert "file_integrity" in body["modules"]
        assert resp.headers["X-Request-ID"]
