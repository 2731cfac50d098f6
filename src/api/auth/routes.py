"""
Account registration and supporter-code redemption.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.api.dependencies import get_user_service
from src.core.exceptions import InvalidRequestException
from src.core.logger import logger
from src.services.user_quota.service import UserQuotaService

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


class RegisterRequest(BaseModel):
    hardware_id: Optional[str] = Field(default=None, max_length=255)


class RedeemCodeRequest(BaseModel):
    user_key: Optional[str] = None
    code: Optional[str] = None


@router.post("/register")
async def register(
    body: Optional[RegisterRequest] = None,
    users: UserQuotaService = Depends(get_user_service),
) -> dict[str, Any]:
    account = await users.register(body.hardware_id if body else None)
    logger.info("[Registration] new user {}", account.user_key[:7])
    return {
        "success": True,
        "user_key": account.user_key,
        "tier": account.tier,
        "free_speeches_remaining": account.free_speeches_remaining,
    }


@router.post("/redeem-code")
async def redeem_code(
    body: RedeemCodeRequest,
    users: UserQuotaService = Depends(get_user_service),
) -> dict[str, Any]:
    if not body.user_key or not body.code:
        raise InvalidRequestException("Missing user_key or code")

    account = await users.redeem_code(body.user_key, body.code)
    return {
        "success": True,
        "tier": account.tier,
        "free_speeches_remaining": account.free_speeches_remaining,
    }
