"""Caller account status."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_user_service
from src.core.exceptions import InvalidRequestException
from src.services.user_quota.service import UserQuotaService

router = APIRouter(prefix="/api/user", tags=["User Profile"])


@router.get("/status")
async def user_status(
    user_key: str | None = Query(None),
    users: UserQuotaService = Depends(get_user_service),
) -> dict[str, Any]:
    if not user_key:
        raise InvalidRequestException("Missing user_key")
    account = await users.status(user_key)
    return {"success": True, **account.to_status_dict()}
