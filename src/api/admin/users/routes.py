"""User and supporter-code admin API routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from pydantic import ValidationError

from src.api.dependencies import get_usage_recorder, get_user_service, require_admin
from src.core.exceptions import InvalidRequestException
from src.models.user import CodeGenerationRequest
from src.services.usage.recorder import UsageRecorder
from src.services.user_quota.service import UserQuotaService

router = APIRouter(prefix="/api/admin", tags=["Admin - Users"], dependencies=[Depends(require_admin)])


@router.get("/users")
async def list_users(users: UserQuotaService = Depends(get_user_service)) -> dict[str, Any]:
    accounts = await users.list_users(limit=100)
    return {
        "success": True,
        "users": [
            {"id": a.id, "user_key": a.user_key, **a.to_status_dict()} for a in accounts
        ],
    }


@router.get("/users/stats")
async def user_stats(users: UserQuotaService = Depends(get_user_service)) -> dict[str, Any]:
    stats = await users.stats()
    return {"success": True, "user_stats": stats.to_dict()}


@router.post("/codes/generate")
async def generate_codes(
    body: dict[str, Any] | None = Body(default=None),
    users: UserQuotaService = Depends(get_user_service),
) -> dict[str, Any]:
    try:
        request = CodeGenerationRequest.model_validate(body or {})
    except ValidationError as exc:
        raise InvalidRequestException(
            "Invalid code generation request",
            details={
                "errors": exc.errors(
                    include_url=False, include_context=False, include_input=False
                )
            },
        ) from exc

    codes = await users.generate_codes(request.count, request.tier, request.created_by)
    return {
        "success": True,
        "codes": [
            {
                "code": c.code,
                "tier": c.tier,
                "created_at": c.created_at.isoformat() if c.created_at else None,
            }
            for c in codes
        ],
    }


@router.get("/codes")
async def list_codes(users: UserQuotaService = Depends(get_user_service)) -> dict[str, Any]:
    codes = await users.list_codes(limit=100)
    return {"success": True, "codes": [c.to_dict() for c in codes]}


@router.get("/logs")
async def usage_logs(
    limit: int = Query(50, ge=1, le=500, description="Number of rows, newest first"),
    usage: UsageRecorder = Depends(get_usage_recorder),
) -> dict[str, Any]:
    entries = await usage.recent(limit=limit)
    return {"success": True, "logs": [e.to_dict() for e in entries]}
