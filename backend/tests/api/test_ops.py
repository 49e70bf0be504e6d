import pytest

from floatr.settings import settings


@pytest.mark.asyncio
async def test_health_live(api_client):
	resp = await api_client.get("/health/live")

	assert resp.status_code == 200
	assert resp.json() == {"status": "ok"}
	assert resp.headers.get("X-Request-Id")


@pytest.mark.asyncio
async def test_health_ready_degrades_without_postgres(api_client):
	resp = await api_client.get("/health/ready")

	assert resp.status_code == 503
	checks = resp.json()["checks"]
	assert checks["redis"]["ok"] is True
	assert checks["postgres"] == {"ok": False, "error": "pool_unavailable"}


@pytest.mark.asyncio
async def test_metrics_require_admin_token(api_client, monkeypatch):
	monkeypatch.setattr(settings, "obs_metrics_public", False)
	monkeypatch.setattr(settings, "obs_admin_token", "s3cret")

	denied = await api_client.get("/metrics")
	allowed = await api_client.get("/metrics", headers={"X-Admin-Token": "s3cret"})

	assert denied.status_code == 403
	assert allowed.status_code == 200
	assert "floatr_" in allowed.text


@pytest.mark.asyncio
async def test_request_id_is_echoed(api_client):
	resp = await api_client.get("/health/live", headers={"X-Request-Id": "req-123"})

	assert resp.headers["X-Request-Id"] == "req-123"
