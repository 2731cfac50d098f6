"""
Speech generation endpoint.

``user_key`` is optional: callers without one are limited per client IP.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from src.api.dependencies import get_client_ip, get_orchestrator
from src.services.speech.orchestrator import RequestOrchestrator, SpeechRequest

router = APIRouter(prefix="/api/speech", tags=["Speech"])


class SpeechGenerateRequest(BaseModel):
    # Presence is checked by the orchestrator so missing fields share its error shape
    user_key: str | None = None
    context: str | None = None
    system_prompt: str | None = None
    model: str | None = None
    voice_id: str | None = None
    voice_settings: dict[str, Any] | None = None


@router.post("/generate")
async def generate_speech(
    body: SpeechGenerateRequest,
    request: Request,
    orchestrator: RequestOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    result = await orchestrator.generate(
        SpeechRequest(
            context=body.context or "",
            system_prompt=body.system_prompt or "",
            voice_id=body.voice_id or "",
            model=body.model or "",
            voice_settings=body.voice_settings,
        ),
        user_key=body.user_key,
        client_ip=get_client_ip(request),
    )
    return result.to_dict()
