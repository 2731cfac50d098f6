"""Stand-ins for the remote text and speech providers."""

from __future__ import annotations

from src.clients.upstream import UpstreamCallError, VoiceSettings

LINE = "Another raid? Fine. I'll get my rifle."
AUDIO = b"ID3\x00fake-mp3"


class FakeTextGenerator:
    def __init__(self, error: UpstreamCallError | None = None) -> None:
        self.error = error
        self.calls = 0

    async def generate(self, *, model: str, system_prompt: str, context: str) -> str:
        self.calls += 1
        if self.error:
            raise self.error
        return LINE


class FakeSynthesizer:
    def __init__(self, error: UpstreamCallError | None = None) -> None:
        self.error = error
        self.calls: list[dict] = []

    async def synthesize(
        self,
        *,
        secret: str,
        voice_id: str,
        text: str,
        settings: VoiceSettings | None = None,
        proxy_url: str | None = None,
    ) -> bytes:
        self.calls.append(
            {"secret": secret, "voice_id": voice_id, "settings": settings, "proxy_url": proxy_url}
        )
        if self.error:
            raise self.error
        return AUDIO
