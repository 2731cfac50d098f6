"""
Speech request orchestration.

One inbound request: gate the caller, pick a credential, write the line,
synthesize it with the credential, then report the outcome back to the pool.

Failure mapping (what the caller sees):

| Condition                           | Exception                     | HTTP |
|-------------------------------------|-------------------------------|------|
| missing field                       | InvalidRequestException       | 400  |
| unknown user key                    | InvalidUserKeyException       | 401  |
| caller allowance used up            | QuotaExceededException        | 429  |
| no usable credential                | NoHealthyCredentialException  | 503  |
| text or speech upstream failed      | UpstreamServiceException      | 502  |
"""

from __future__ import annotations

import base64
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from src.clients.upstream import SpeechSynthesizer, TextGenerator, UpstreamCallError, VoiceSettings
from src.config import Config, config
from src.core.enums import CallerTier, PauseCause
from src.core.exceptions import (
    InvalidRequestException,
    InvalidUserKeyException,
    PoolServiceException,
    QuotaExceededException,
    UpstreamServiceException,
)
from src.core.logger import logger
from src.models.pool import Credential, Proxy
from src.models.user import UserAccount
from src.services.key_pool.manager import PoolManager
from src.services.proxy_pool.manager import ProxyPoolManager
from src.services.proxy_pool.residential import residential_proxy_url
from src.services.usage.recorder import UsageRecorder
from src.services.user_quota.anonymous import AnonymousRateLimiter
from src.services.user_quota.service import UserQuotaService

REQUIRED_FIELDS = ("context", "system_prompt", "voice_id", "model")

TEXT_UPSTREAM = "text_generation"
SPEECH_UPSTREAM = "speech_synthesis"


@dataclass(frozen=True, slots=True)
class SpeechRequest:
    context: str
    system_prompt: str
    voice_id: str
    model: str
    voice_settings: dict[str, Any] | None = field(default=None)


@dataclass(frozen=True, slots=True)
class SpeechResult:
    speech_text: str
    audio_data: str  # base64
    processing_time_ms: int
    speeches_remaining: int | None
    tier: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "speech_text": self.speech_text,
            "audio_data": self.audio_data,
            "processing_time_ms": self.processing_time_ms,
            "speeches_remaining": self.speeches_remaining,
            "tier": self.tier,
        }


class RequestOrchestrator:
    def __init__(
        self,
        *,
        pool: PoolManager,
        users: UserQuotaService,
        anonymous: AnonymousRateLimiter,
        usage: UsageRecorder,
        text_generator: TextGenerator,
        synthesizer: SpeechSynthesizer,
        proxies: ProxyPoolManager | None = None,
        cfg: Config | None = None,
    ) -> None:
        self.pool = pool
        self.users = users
        self.anonymous = anonymous
        self.usage = usage
        self.text_generator = text_generator
        self.synthesizer = synthesizer
        self.proxies = proxies
        self.cfg = cfg or config

    @staticmethod
    def validate(request: SpeechRequest) -> None:
        for name in REQUIRED_FIELDS:
            value = getattr(request, name, None)
            if not isinstance(value, str) or not value.strip():
                raise InvalidRequestException(
                    f"Missing required field: {name}", details={"field": name}
                )

    async def _gate(
        self, user_key: str | None, client_ip: str | None
    ) -> tuple[UserAccount | None, CallerTier]:
        if not user_key:
            allowance = await self.anonymous.check(client_ip)
            if not allowance.allowed:
                raise QuotaExceededException(
                    f"IP rate limit exceeded. {allowance.limit} speeches per month without "
                    "an API key. Register for a free account or support the mod for "
                    "unlimited usage.",
                    details={"speeches_remaining": 0, **allowance.to_dict()},
                )
            return None, CallerTier.FREE

        user = await self.users.validate(user_key)
        if user is None:
            raise InvalidUserKeyException("Invalid user_key. Register at /api/auth/register")
        return user, user.caller_tier

    async def _egress(self, credential: Credential) -> tuple[str | None, Proxy | None]:
        """Outbound proxy for this credential: its residential region, else the proxy pool."""
        url = residential_proxy_url(credential.region_code, self.cfg)
        if url:
            return url, None
        if self.proxies is None:
            return None, None
        proxy = await self.proxies.select_proxy()
        return (proxy.url, proxy) if proxy else (None, None)

    async def generate(
        self,
        request: SpeechRequest,
        user_key: str | None = None,
        client_ip: str | None = None,
    ) -> SpeechResult:
        started = time.monotonic()
        request_id = uuid.uuid4().hex[:8]

        self.validate(request)
        user, tier = await self._gate(user_key, client_ip)
        logger.info(
            "[{}] speech request ({}, {})",
            request_id,
            tier.value,
            "anonymous" if user is None else user.user_key[:7],
        )

        credential = await self.pool.select_key(tier)
        logger.info(
            "[{}] selected credential {} (priority {})",
            request_id,
            credential.name,
            credential.priority,
        )

        # A text failure says nothing about the credential, so the pool is not told
        try:
            text = await self.text_generator.generate(
                model=request.model, system_prompt=request.system_prompt, context=request.context
            )
        except UpstreamCallError as exc:
            logger.warning("[{}] text generation failed: {}", request_id, exc.reason)
            raise UpstreamServiceException(TEXT_UPSTREAM, exc.reason, exc.status_code) from exc

        proxy_url, proxy = await self._egress(credential)
        try:
            audio = await self.synthesizer.synthesize(
                secret=credential.secret,
                voice_id=request.voice_id,
                text=text,
                settings=VoiceSettings.from_dict(request.voice_settings),
                proxy_url=proxy_url,
            )
        except UpstreamCallError as exc:
            logger.warning(
                "[{}] speech synthesis failed with credential {}: {}",
                request_id,
                credential.name,
                exc.reason,
            )
            await self._report_synthesis_failure(credential, proxy, exc)
            raise UpstreamServiceException(SPEECH_UPSTREAM, exc.reason, exc.status_code) from exc

        if proxy is not None and self.proxies is not None:
            await self.proxies.record_success(proxy.id)
        await self.pool.record_success(credential.id, len(text))

        remaining = await self._settle_caller(user)
        await self.usage.log(
            credential_id=credential.id,
            user_id=user.id if user else None,
            client_ip=client_ip,
            voice_id=request.voice_id,
            model=request.model,
            speech_text=text,
            units=len(text),
        )
        if user is None:
            remaining = await self._anonymous_remaining(client_ip)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info("[{}] complete in {}ms", request_id, elapsed_ms)
        return SpeechResult(
            speech_text=text,
            audio_data=base64.b64encode(audio).decode("ascii"),
            processing_time_ms=elapsed_ms,
            speeches_remaining=remaining,
            tier=user.tier if user else "anonymous",
        )

    async def _report_synthesis_failure(
        self, credential: Credential, proxy: Proxy | None, exc: UpstreamCallError
    ) -> None:
        # Transport errors (no HTTP status) are the proxy's fault as much as the credential's
        if proxy is not None and self.proxies is not None and exc.status_code is None:
            await self.proxies.record_failure(proxy.id, exc.reason)

        if exc.quota_exhausted:
            try:
                await self.pool.pause(
                    credential.id, f"Upstream quota exhausted: {exc.reason}", PauseCause.AUTO_QUOTA
                )
            except PoolServiceException as pause_exc:
                logger.warning(
                    "Failed to pause exhausted credential {}: {}", credential.id[:8], pause_exc
                )
            return
        await self.pool.record_failure(credential.id, exc.reason)

    async def _settle_caller(self, user: UserAccount | None) -> int | None:
        """Consume the caller's allowance; returns what is left for free users."""
        if user is None:
            return None
        try:
            updated = await self.users.consume_speech(user.id)
        except PoolServiceException as exc:
            logger.warning("Failed to consume speech for {}: {}", user.user_key[:7], exc)
            return None
        if updated is None or updated.caller_tier != CallerTier.FREE:
            return None
        return updated.free_speeches_remaining

    async def _anonymous_remaining(self, client_ip: str | None) -> int | None:
        try:
            return (await self.anonymous.check(client_ip)).remaining
        except PoolServiceException as exc:
            logger.warning("Failed to read anonymous allowance: {}", exc)
            return None
