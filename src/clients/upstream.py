"""
Upstream provider clients.

Two opaque remote calls per generation: a chat completion that writes the
spoken line, then text-to-speech with a pooled credential. Both return the
payload or raise ``UpstreamCallError``; the pool only needs success/failure,
a reason, and whether the upstream said the credential's quota is gone.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any

import httpx

from src.clients.http_client import HTTPClientPool
from src.config import Config, config
from src.config.constants import SpeechDefaults
from src.services.proxy_pool.residential import make_proxy_param

# Fragments in an upstream error that mean the account ran out of characters
_QUOTA_EXHAUSTED_PATTERNS = ("quota_exceeded", "quota exceeded", "exceeds your quota")


class UpstreamCallError(Exception):
    """A remote call failed."""

    def __init__(
        self,
        reason: str,
        status_code: int | None = None,
        quota_exhausted: bool = False,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code
        self.quota_exhausted = quota_exhausted


@dataclass(frozen=True, slots=True)
class VoiceSettings:
    stability: float = SpeechDefaults.STABILITY
    similarity_boost: float = SpeechDefaults.SIMILARITY_BOOST

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> VoiceSettings:
        data = data or {}
        stability = data.get("stability")
        similarity = data.get("similarity_boost")
        return cls(
            stability=float(stability) if stability is not None else SpeechDefaults.STABILITY,
            similarity_boost=(
                float(similarity) if similarity is not None else SpeechDefaults.SIMILARITY_BOOST
            ),
        )


def extract_error_message(body: str | bytes | None) -> str:
    """Best-effort extraction of an error message from a JSON error body."""
    if not body:
        return ""
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        return body[:500]
    if isinstance(data, dict):
        for key in ("detail", "error"):
            obj = data.get(key)
            if isinstance(obj, dict):
                return str(obj.get("message") or obj.get("status") or obj)
            if isinstance(obj, str):
                return obj
        return str(data.get("message", body[:500]))
    return body[:500]


def is_quota_exhausted(body: str | bytes | None) -> bool:
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    text = (body or "").lower()
    return any(pattern in text for pattern in _QUOTA_EXHAUSTED_PATTERNS)


class TextGenerator:
    """Chat-completion client producing the spoken line."""

    def __init__(self, cfg: Config | None = None, client: httpx.AsyncClient | None = None) -> None:
        self.cfg = cfg or config
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or HTTPClientPool.get_default_client()

    async def generate(self, *, model: str, system_prompt: str, context: str) -> str:
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {
                    "role": "user",
                    "content": (
                        f"Context:\n{context}\n\n"
                        "Generate a short spoken line for this colonist:"
                    ),
                },
            ],
            "max_tokens": SpeechDefaults.MAX_TOKENS,
            "temperature": SpeechDefaults.TEMPERATURE,
        }
        try:
            response = await self.client.post(
                f"{self.cfg.openai_base_url.rstrip('/')}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.cfg.openai_api_key}"},
                timeout=self.cfg.upstream_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise UpstreamCallError(f"{type(exc).__name__}: {exc}") from exc

        if response.status_code >= 400:
            raise UpstreamCallError(
                extract_error_message(response.text) or f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            text = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise UpstreamCallError("Malformed completion response") from exc
        text = (text or "").strip()
        if not text:
            raise UpstreamCallError("Empty completion")
        return text


class SpeechSynthesizer:
    """Text-to-speech client authenticated with a pooled credential."""

    def __init__(self, cfg: Config | None = None, client: httpx.AsyncClient | None = None) -> None:
        self.cfg = cfg or config
        self._client = client

    def _client_for(self, proxy_url: str | None) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        if not proxy_url:
            return HTTPClientPool.get_default_client()
        # One pooled client per egress URL; the name must not reveal the password
        digest = hashlib.sha256(proxy_url.encode()).hexdigest()[:12]
        return HTTPClientPool.get_client(f"egress-{digest}", proxy=make_proxy_param(proxy_url))

    async def synthesize(
        self,
        *,
        secret: str,
        voice_id: str,
        text: str,
        settings: VoiceSettings | None = None,
        proxy_url: str | None = None,
    ) -> bytes:
        settings = settings or VoiceSettings()
        payload = {
            "text": text,
            "model_id": self.cfg.elevenlabs_model_id,
            "voice_settings": {
                "stability": settings.stability,
                "similarity_boost": settings.similarity_boost,
            },
        }
        try:
            response = await self._client_for(proxy_url).post(
                f"{self.cfg.elevenlabs_base_url.rstrip('/')}/text-to-speech/{voice_id}",
                json=payload,
                headers={"xi-api-key": secret},
                timeout=self.cfg.upstream_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise UpstreamCallError(f"{type(exc).__name__}: {exc}") from exc

        if response.status_code >= 400:
            body = response.content
            raise UpstreamCallError(
                extract_error_message(body) or f"HTTP {response.status_code}",
                status_code=response.status_code,
                quota_exhausted=is_quota_exhausted(body),
            )
        if not response.content:
            raise UpstreamCallError("Empty audio response", status_code=response.status_code)
        return response.content
