"""
tests.test_smoke

Minimal smoke tests to validate the service can boot and serve core endpoints.

Responsibilities:
- Ensure the FastAPI app starts and DB readiness check works in test mode.
"""

from __future__ import annotations

import httpx
import pytest

from conftest import make_settings
from identity_gateway.api.app import create_app


@pytest.mark.asyncio
async def test_health_endpoints(tmp_path) -> None:
    app = create_app(settings=make_settings(tmp_path))

    # httpx ASGITransport does not manage lifespan; enter it explicitly.
    async with app.router.lifespan_context(app):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            r = await client.get("/healthz")
            assert r.status_code == 200
            assert r.json()["status"] == "ok"

            r = await client.get("/readyz")
            assert r.status_code == 200
            assert r.json() == {"status": "ready", "auth_mode": "Disabled"}
            assert r.headers["x-request-id"]


# --- Module Notes -----------------------------------------------------------
# Mode-specific flows are covered in `test_api.py`.
