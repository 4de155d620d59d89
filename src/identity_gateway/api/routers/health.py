"""
identity_gateway.api.routers.health

Health and readiness endpoints.

Responsibilities:
- Provide liveness check (`/healthz`).
- Provide readiness check (`/readyz`) with registry DB connectivity validation.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from identity_gateway.api.deps import auth_config_dep, db_session
from identity_gateway.auth.config import AuthConfig

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(
    session: AsyncSession = Depends(db_session),
    cfg: AuthConfig = Depends(auth_config_dep),
) -> dict[str, str]:
    # Readiness: the registry must be reachable; every service token check depends on it.
    await session.execute(text("SELECT 1"))
    return {"status": "ready", "auth_mode": cfg.mode.value}


# --- Module Notes -----------------------------------------------------------
# Kubernetes typically uses /healthz for liveness and /readyz for readiness gating.
