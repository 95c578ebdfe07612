"""
健康检查与统一错误格式测试
"""

from unittest.mock import patch

import pytest

from workbench.api.routes.health import overall_status
from workbench.infra import system_metrics
from workbench.main import app


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthz(self, client):
        resp = await client.get("/healthz")
        assert resp.json() == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_health_checks(self, client):
        with patch.object(system_metrics, "system_memory", return_value={"total": 100, "used": 50, "free": 50, "percentage": 50.0}), \
                patch.object(system_metrics, "disk_usage", return_value={"total": 100, "used": 10, "free": 90, "percentage": 10.0}):
            resp = await client.get("/api/health")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert set(body["checks"]) == {"database", "memory", "disk"}
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["environment"] == "test"

    @pytest.mark.asyncio
    async def test_critical_memory_returns_503(self, client):
        with patch.object(system_metrics, "system_memory", return_value={"total": 100, "used": 95, "free": 5, "percentage": 95.0}), \
                patch.object(system_metrics, "disk_usage", return_value={"total": 100, "used": 85, "free": 15, "percentage": 85.0}):
            resp = await client.get("/api/health")

        assert resp.status_code == 503
        body = resp.json()
        assert body["status"] == "unhealthy"
        assert body["checks"]["disk"]["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_metrics(self, client):
        await client.post("/api/chats", json={})

        body = (await client.get("/api/health/metrics")).json()

        assert body["database"]["connected"] is True
        assert body["database"]["chats"] == 1
        assert body["cache"]["enabled"] is False
        assert body["cache"]["total_requests"] == 0
        assert "calls" in body["providers"]

    def test_overall_status(self):
        assert overall_status({"a": {"status": "healthy"}}) == "healthy"
        assert overall_status({"a": {"status": "healthy"}, "b": {"status": "degraded"}}) == "degraded"
        assert overall_status({"a": {"status": "degraded"}, "b": {"status": "unhealthy"}}) == "unhealthy"

    def test_meminfo_uses_available_memory(self, tmp_path):
        meminfo = tmp_path / "meminfo"
        meminfo.write_text(
            "MemTotal:        6000000 kB\n"
            "MemFree:         1000000 kB\n"
            "MemAvailable:    5500000 kB\n"
            "Cached:          4200000 kB\n"
        )

        assert system_metrics._read_meminfo(str(meminfo)) == (6000000 * 1024, 5500000 * 1024)
        assert system_metrics._read_meminfo(str(tmp_path / "missing")) is None

    def test_page_cache_not_counted_as_used(self):
        total, available = 6000000 * 1024, 5500000 * 1024
        with patch.object(system_metrics, "_read_meminfo", return_value=(total, available)):
            memory = system_metrics.system_memory()

        assert memory["percentage"] == 8.3
        assert memory["free"] == round(available / 1024 / 1024)
        assert system_metrics.grade(memory["percentage"], 70, 90) == "healthy"

    def test_grade(self):
        assert system_metrics.grade(69.9, 70, 90) == "healthy"
        assert system_metrics.grade(70, 70, 90) == "degraded"
        assert system_metrics.grade(90, 70, 90) == "unhealthy"


class TestErrorFormat:
    @pytest.mark.asyncio
    async def test_unknown_route(self, client):
        resp = await client.get("/api/nothing-here")

        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_method_not_allowed(self, client):
        resp = await client.put("/api/chats")

        assert resp.status_code == 405
        assert resp.json()["code"] == "METHOD_NOT_ALLOWED"

    @pytest.mark.asyncio
    async def test_invalid_json_body(self, client):
        resp = await client.post(
            "/api/chats", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_request_id_header(self, client):
        resp = await client.get("/healthz", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"

    def test_api_routes_registered(self):
        paths = {route.path for route in app.routes}
        for path in (
            "/api/chat",
            "/api/completions",
            "/api/embeddings",
            "/api/responses",
            "/api/images/generate",
            "/api/audio/transcribe",
            "/api/providers/status",
            "/api/registry",
            "/api/tools",
            "/api/terminal/execute",
            "/api/notebook/execute",
            "/api/python/detect",
            "/api/runtime",
            "/api/feedback",
            "/api/settings",
        ):
            assert path in paths, path
