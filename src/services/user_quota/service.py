"""
Caller quota gate.

Registered callers get a ``CV-XXXX-XXXX-XXXX-XXXX`` key with a small free
allowance; a supporter code lifts the cap. The same pattern as the credential
pool applies: every decrement is a single conditional UPDATE.
"""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timezone

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError

from src.config import Config, config
from src.config.constants import UserKeyFormat
from src.core.enums import CallerTier
from src.core.exceptions import (
    InvalidRequestException,
    InvalidUserKeyException,
    NotFoundException,
    QuotaExceededException,
)
from src.core.logger import logger
from src.models.database import SupporterCode, User
from src.models.user import (
    UNLIMITED_SPEECHES,
    IssuedCode,
    SupporterCodeRecord,
    UserAccount,
    UserStats,
)
from src.services.scored_pool.repository import SessionFactory
from src.services.scored_pool.service import StoreBoundService


def generate_user_key() -> str:
    raw = uuid.uuid4().hex.upper()
    groups = [raw[i : i + 4] for i in range(0, 16, 4)]
    return "-".join([UserKeyFormat.USER_KEY_PREFIX, *groups])


def generate_supporter_code() -> str:
    raw = secrets.token_hex(6).upper()
    groups = [raw[i : i + 4] for i in range(0, 12, 4)]
    return "-".join([UserKeyFormat.SUPPORTER_CODE_PREFIX, *groups])


class UserQuotaService(StoreBoundService):
    """Registration, allowance checks and supporter-code redemption."""

    store_label = "UserQuota"

    def __init__(self, session_factory: SessionFactory, cfg: Config | None = None) -> None:
        self.cfg = cfg or config
        super().__init__(self.cfg.pool_store_timeout_seconds)
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register(self, hardware_id: str | None = None) -> UserAccount:
        account = await self._store("register", self._register, hardware_id)
        logger.info("UserQuota: registered {} ({})", account.user_key[:7], account.tier)
        return account

    def _register(self, hardware_id: str | None) -> UserAccount:
        hardware_id = (hardware_id or "").strip() or None
        with self._session_factory() as db:
            if hardware_id:
                existing = db.execute(
                    select(func.count(User.id)).where(User.hardware_id == hardware_id)
                ).scalar_one()
                if existing >= self.cfg.max_accounts_per_device:
                    raise InvalidRequestException(
                        "Maximum number of accounts reached for this device",
                        details={"limit": self.cfg.max_accounts_per_device},
                    )

            user = User(
                user_key=generate_user_key(),
                hardware_id=hardware_id,
                tier=CallerTier.FREE.value,
                free_speeches_remaining=self.cfg.free_tier_speeches,
                total_speeches_generated=0,
            )
            db.add(user)
            db.commit()
            return UserAccount.from_row(user)

    # ------------------------------------------------------------------
    # Allowance
    # ------------------------------------------------------------------

    async def validate(self, user_key: str) -> UserAccount | None:
        """Look up *user_key*; ``None`` when unknown.

        Raises:
            QuotaExceededException: a free caller has no speeches left
        """
        account = await self._store("validate", self._find, user_key)
        if account is None:
            return None
        if account.tier == CallerTier.FREE.value and account.free_speeches_remaining <= 0:
            raise QuotaExceededException(
                "Free speech limit reached. Please support the mod or use your own API keys.",
                details={"speeches_remaining": 0},
            )
        return account

    def _find(self, user_key: str) -> UserAccount | None:
        with self._session_factory() as db:
            user = db.execute(select(User).where(User.user_key == user_key)).scalar_one_or_none()
            return UserAccount.from_row(user) if user is not None else None

    async def consume_speech(self, user_id: str) -> UserAccount | None:
        """Decrement a free caller's allowance (never below 0) and count the speech."""
        return await self._store("consume_speech", self._consume_speech, user_id)

    def _consume_speech(self, user_id: str) -> UserAccount | None:
        now = datetime.now(timezone.utc)
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                free_speeches_remaining=case(
                    (
                        (User.tier == CallerTier.FREE.value)
                        & (User.free_speeches_remaining > 0),
                        User.free_speeches_remaining - 1,
                    ),
                    else_=User.free_speeches_remaining,
                ),
                total_speeches_generated=User.total_speeches_generated + 1,
                last_used_at=now,
            )
            .returning(*User.__table__.columns)
        )
        with self._session_factory() as db:
            row = db.execute(stmt).first()
            db.commit()
        return UserAccount.from_row(row) if row is not None else None

    # ------------------------------------------------------------------
    # Supporter codes
    # ------------------------------------------------------------------

    async def redeem_code(self, user_key: str, code: str) -> UserAccount:
        account = await self._store("redeem_code", self._redeem_code, user_key, code.strip())
        logger.info("UserQuota: {} upgraded to {}", account.user_key[:7], account.tier)
        return account

    def _redeem_code(self, user_key: str, code: str) -> UserAccount:
        now = datetime.now(timezone.utc)
        with self._session_factory() as db:
            supporter_code = db.execute(
                select(SupporterCode).where(SupporterCode.code == code)
            ).scalar_one_or_none()
            if supporter_code is None:
                raise NotFoundException("Invalid supporter code")
            if supporter_code.used_by is not None:
                raise InvalidRequestException("This code has already been used")

            user = db.execute(select(User).where(User.user_key == user_key)).scalar_one_or_none()
            if user is None:
                raise InvalidUserKeyException("User not found")

            # Single-use: only the first concurrent redemption matches used_by IS NULL
            claimed = db.execute(
                update(SupporterCode)
                .where(SupporterCode.id == supporter_code.id, SupporterCode.used_by.is_(None))
                .values(used_by=user.id, redeemed_at=now)
            )
            if claimed.rowcount != 1:
                db.rollback()
                raise InvalidRequestException("This code has already been used")

            row = db.execute(
                update(User)
                .where(User.id == user.id)
                .values(
                    tier=supporter_code.tier,
                    free_speeches_remaining=UNLIMITED_SPEECHES,
                    supporter_code_used=code,
                )
                .returning(*User.__table__.columns)
            ).first()
            db.commit()
        return UserAccount.from_row(row)

    async def generate_codes(
        self, count: int, tier: str = CallerTier.SUPPORTER.value, created_by: str = "admin"
    ) -> list[IssuedCode]:
        if count < 1:
            raise InvalidRequestException("count must be at least 1")
        codes = await self._store("generate_codes", self._generate_codes, count, tier, created_by)
        logger.info("UserQuota: generated {} {} code(s) for {}", len(codes), tier, created_by)
        return codes

    def _generate_codes(self, count: int, tier: str, created_by: str) -> list[IssuedCode]:
        issued: list[IssuedCode] = []
        with self._session_factory() as db:
            while len(issued) < count:
                row = SupporterCode(code=generate_supporter_code(), tier=tier, created_by=created_by)
                db.add(row)
                try:
                    db.commit()
                except IntegrityError:
                    # Random collision; draw another code
                    db.rollback()
                    continue
                issued.append(IssuedCode(code=row.code, tier=row.tier, created_at=row.created_at))
        return issued

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def status(self, user_key: str) -> UserAccount:
        account = await self._store("status", self._find, user_key)
        if account is None:
            raise InvalidUserKeyException("User not found")
        return account

    async def stats(self) -> UserStats:
        return await self._store("stats", self._stats)

    def _stats(self) -> UserStats:
        free = User.tier == CallerTier.FREE.value
        stmt = select(
            func.count(User.id),
            func.coalesce(func.sum(case((free, 1), else_=0)), 0),
            func.coalesce(
                func.sum(case((User.tier == CallerTier.SUPPORTER.value, 1), else_=0)), 0
            ),
            func.coalesce(func.sum(case((User.tier == CallerTier.PREMIUM.value, 1), else_=0)), 0),
            func.coalesce(func.sum(User.total_speeches_generated), 0),
            func.coalesce(func.sum(case((free, User.total_speeches_generated), else_=0)), 0),
            func.coalesce(func.sum(case((free, 0), else_=User.total_speeches_generated)), 0),
        )
        with self._session_factory() as db:
            values = db.execute(stmt).one()
        return UserStats(*(int(v or 0) for v in values))

    async def list_users(self, limit: int = 100) -> list[UserAccount]:
        """Most recently registered callers first."""
        return await self._store("list_users", self._list_users, limit)

    def _list_users(self, limit: int) -> list[UserAccount]:
        stmt = select(User).order_by(User.created_at.desc()).limit(limit)
        with self._session_factory() as db:
            return [UserAccount.from_row(u) for u in db.execute(stmt).scalars()]

    async def list_codes(self, limit: int = 100) -> list[SupporterCodeRecord]:
        return await self._store("list_codes", self._list_codes, limit)

    def _list_codes(self, limit: int) -> list[SupporterCodeRecord]:
        stmt = select(SupporterCode).order_by(SupporterCode.created_at.desc()).limit(limit)
        with self._session_factory() as db:
            return [SupporterCodeRecord.from_row(c) for c in db.execute(stmt).scalars()]
