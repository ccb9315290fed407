import pytest

from app.core.config import settings


@pytest.mark.asyncio
async def test_health_is_public(client):
    r = await client.get("/v1/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": settings.service_name}


@pytest.mark.asyncio
async def test_guards(client):
    r = await client.get("/v1/wallet")
    assert r.status_code == 401

    r = await client.get("/v1/wallet", headers={"X-API-Key": "amv_notakey"})
    assert r.status_code == 401

    r = await client.post("/v1/internal/sweep", headers={"X-Internal-Admin-Key": "wrong"})
    assert r.status_code == 403
