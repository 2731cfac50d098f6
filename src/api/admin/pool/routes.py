"""Credential pool admin API routes.

- Pool statistics and key listing (secrets masked)
- Add / delete keys
- Pause / resume / reset-health
- Expiring promotions and a manual quota-reset sweep
"""

from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Body, Depends, Query

from src.api.dependencies import get_pool_manager, require_admin
from src.core.exceptions import InvalidRequestException
from src.services.key_pool.manager import PoolManager

from .schemas import PauseRequest, SweepRequest

router = APIRouter(
    prefix="/api/admin/pool",
    tags=["Admin - Pool"],
    dependencies=[Depends(require_admin)],
)

MANUAL_PAUSE_REASON = "Manual pause via admin API"


# ---------------------------------------------------------------------------
# GET /api/admin/pool/stats
# ---------------------------------------------------------------------------


@router.get("/stats")
async def pool_stats(pool: PoolManager = Depends(get_pool_manager)) -> dict[str, Any]:
    stats = await pool.stats()
    return {"success": True, "key_stats": stats.to_dict()}


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@router.get("/keys")
async def list_keys(pool: PoolManager = Depends(get_pool_manager)) -> dict[str, Any]:
    credentials = await pool.list_credentials()
    return {"success": True, "keys": [c.to_public_dict() for c in credentials]}


@router.get("/keys/expiring")
async def expiring_keys(
    days: int | None = Query(None, ge=0, le=365),
    pool: PoolManager = Depends(get_pool_manager),
) -> dict[str, Any]:
    """Active keys whose promotion ends within ``days`` (default: configured window)."""
    credentials = await pool.expiring_promos(days)
    return {"success": True, "keys": [c.to_public_dict() for c in credentials]}


@router.post("/keys")
async def add_key(
    body: dict[str, Any] = Body(...),
    pool: PoolManager = Depends(get_pool_manager),
) -> dict[str, Any]:
    credential = await pool.add(body)
    return {"success": True, "key": credential.to_public_dict()}


@router.post("/keys/{credential_id}/pause")
async def pause_key(
    credential_id: str,
    body: PauseRequest | None = None,
    pool: PoolManager = Depends(get_pool_manager),
) -> dict[str, Any]:
    reason = (body.reason if body else None) or MANUAL_PAUSE_REASON
    credential = await pool.pause(credential_id, reason)
    return {"success": True, "key": credential.to_public_dict()}


@router.post("/keys/{credential_id}/resume")
async def resume_key(
    credential_id: str, pool: PoolManager = Depends(get_pool_manager)
) -> dict[str, Any]:
    credential = await pool.resume(credential_id)
    return {"success": True, "key": credential.to_public_dict()}


@router.post("/keys/{credential_id}/reset-health")
async def reset_key_health(
    credential_id: str, pool: PoolManager = Depends(get_pool_manager)
) -> dict[str, Any]:
    credential = await pool.reset_health(credential_id)
    return {"success": True, "key": credential.to_public_dict()}


@router.delete("/keys/{credential_id}")
async def delete_key(
    credential_id: str, pool: PoolManager = Depends(get_pool_manager)
) -> dict[str, Any]:
    await pool.delete(credential_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# POST /api/admin/pool/sweep
# ---------------------------------------------------------------------------


@router.post("/sweep")
async def run_sweep(
    body: SweepRequest | None = None,
    pool: PoolManager = Depends(get_pool_manager),
) -> dict[str, Any]:
    today = None
    if body and body.today:
        try:
            today = date.fromisoformat(body.today)
        except ValueError as exc:
            raise InvalidRequestException(
                "today must be an ISO date (YYYY-MM-DD)", details={"field": "today"}
            ) from exc

    results = await pool.run_quota_reset_sweep(today)
    return {
        "success": True,
        "reset": [
            {
                "id": r.credential.id,
                "name": r.credential.name,
                "status": r.credential.status.value,
                "resumed": r.resumed,
                "next_reset": r.credential.quota_reset_at.isoformat(),
            }
            for r in results
        ],
    }
