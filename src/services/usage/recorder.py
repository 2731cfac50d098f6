"""
Usage log writer.

One row per completed generation. Read by reporting and by the anonymous
limiter; the credential pool never reads it.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select

from src.core.exceptions import PoolServiceException
from src.core.logger import logger
from src.models.database import PoolCredential, UsageLog, User
from src.models.user import UsageEntry
from src.services.scored_pool.repository import SessionFactory
from src.services.scored_pool.service import StoreBoundService


class UsageRecorder(StoreBoundService):
    store_label = "Usage"

    def __init__(self, session_factory: SessionFactory, store_timeout_seconds: float = 5.0) -> None:
        super().__init__(store_timeout_seconds)
        self._session_factory = session_factory

    async def log(
        self,
        *,
        credential_id: str | None,
        user_id: str | None,
        client_ip: str | None,
        voice_id: str | None,
        model: str | None,
        speech_text: str | None,
        units: int,
        success: bool = True,
    ) -> None:
        """Append a usage row; failures are logged, never raised."""
        try:
            await self._store(
                "log",
                self._insert,
                credential_id=credential_id,
                user_id=user_id,
                client_ip=client_ip,
                voice_id=voice_id,
                model_used=model,
                speech_text=speech_text,
                units_consumed=units,
                success=success,
            )
        except PoolServiceException as exc:
            logger.warning("Usage: failed to write usage log: {}", exc)

    def _insert(self, **values: object) -> None:
        with self._session_factory() as db:
            db.add(UsageLog(**values))
            db.commit()

    def count_anonymous(self, client_ip: str, since: datetime, until: datetime) -> int:
        """Successful anonymous generations from *client_ip* in [since, until)."""
        stmt = select(func.count(UsageLog.id)).where(
            UsageLog.user_id.is_(None),
            UsageLog.client_ip == client_ip,
            UsageLog.success.is_(True),
            UsageLog.created_at >= since,
            UsageLog.created_at < until,
        )
        with self._session_factory() as db:
            return int(db.execute(stmt).scalar_one())

    async def anonymous_usage(self, client_ip: str, since: datetime, until: datetime) -> int:
        return await self._store("count_anonymous", self.count_anonymous, client_ip, since, until)

    async def recent(self, limit: int = 50) -> list[UsageEntry]:
        """Newest usage rows, each with the caller's tier and the credential's name."""
        return await self._store("recent", self._recent, limit)

    def _recent(self, limit: int) -> list[UsageEntry]:
        stmt = (
            select(UsageLog, User.tier, PoolCredential.name)
            .outerjoin(User, UsageLog.user_id == User.id)
            .outerjoin(PoolCredential, UsageLog.credential_id == PoolCredential.id)
            .order_by(UsageLog.created_at.desc())
            .limit(limit)
        )
        with self._session_factory() as db:
            return [
                UsageEntry(
                    id=row.id,
                    credential_id=row.credential_id,
                    key_name=key_name,
                    user_id=row.user_id,
                    user_tier=user_tier,
                    client_ip=row.client_ip,
                    voice_id=row.voice_id,
                    model_used=row.model_used,
                    speech_text=row.speech_text,
                    units_consumed=row.units_consumed,
                    success=row.success,
                    created_at=row.created_at,
                )
                for row, user_tier, key_name in db.execute(stmt).all()
            ]
