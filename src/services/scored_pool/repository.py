"""Generic store access for scored resource pools.

Every state transition is one ``UPDATE ... WHERE id = :id`` statement with
server-side arithmetic and ``RETURNING`` the new row, so two requests
finishing on the same resource at once never lose an update. Health clamping
is expressed with ``CASE`` to stay portable across PostgreSQL and SQLite.

Methods are synchronous and open their own session; async callers run them
through ``asyncio.to_thread``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Generic, TypeVar

from sqlalchemy import and_, case, delete, func, literal, or_, select, update
from sqlalchemy.orm import Session

from src.core.enums import PauseCause, ResourceStatus
from src.core.exceptions import NotFoundException
from src.services.scored_pool.policy import (
    LEGACY_AUTO_PAUSE_PATTERNS,
    MAX_HEALTH,
    MIN_HEALTH,
    HealthPolicy,
    PauseDecision,
    decide_pause,
    pause_note,
)

ModelT = TypeVar("ModelT")
ValueT = TypeVar("ValueT")

SessionFactory = Callable[[], Session]

# Longest failure reason persisted; upstream error bodies can be large
MAX_REASON_LENGTH = 500


@dataclass(frozen=True)
class FailureOutcome(Generic[ValueT]):
    """State after a failure report, plus the pause it triggered (if any)."""

    value: ValueT
    paused: PauseDecision | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScoredResourceRepository(Generic[ModelT, ValueT]):
    """Health/pause bookkeeping shared by every pool table.

    Subclasses set ``model`` (an ORM class using ``ScoredResourceMixin``),
    ``value_type`` (a frozen dataclass with ``from_row``), ``policy`` and a
    ``label`` used in error messages.
    """

    model: ClassVar[Any]
    value_type: ClassVar[Any]
    policy: ClassVar[HealthPolicy]
    label: ClassVar[str] = "resource"
    # Whether reset_health also lifts a pause
    reset_reactivates: ClassVar[bool] = False

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def _columns(self) -> list[Any]:
        return list(self.model.__table__.columns)

    def _to_value(self, row: Any) -> ValueT:
        return self.value_type.from_row(row)

    def _not_found(self, resource_id: str) -> NotFoundException:
        return NotFoundException(
            f"{self.label} {resource_id} not found", details={"resource": self.label}
        )

    @classmethod
    def _clamped(cls, expression: Any) -> Any:
        return case(
            (expression > MAX_HEALTH, literal(MAX_HEALTH)),
            (expression < MIN_HEALTH, literal(MIN_HEALTH)),
            else_=expression,
        )

    @classmethod
    def selectable_clause(cls) -> Any:
        m = cls.model
        return and_(
            m.status == ResourceStatus.ACTIVE,
            m.health_score >= cls.policy.selectable_threshold,
        )

    @classmethod
    def auto_resumable_clause(cls) -> Any:
        """SQL twin of ``policy.is_auto_resumable`` for paused rows."""
        m = cls.model
        legacy = and_(
            m.pause_cause.is_(None),
            or_(*(m.notes.like(f"%{pattern}%") for pattern in LEGACY_AUTO_PAUSE_PATTERNS)),
        )
        return and_(
            m.status == ResourceStatus.PAUSED,
            or_(m.pause_cause.in_([PauseCause.AUTO_HEALTH, PauseCause.AUTO_QUOTA]), legacy),
        )

    def _execute_returning(self, db: Session, stmt: Any) -> Any:
        return db.execute(stmt.returning(*self._columns)).first()

    def _pause_statement(
        self,
        resource_id: str,
        reason: str,
        cause: PauseCause,
        now: datetime,
        only_if_active: bool,
    ) -> Any:
        m = self.model
        condition = m.id == resource_id
        if only_if_active:
            condition = and_(condition, m.status == ResourceStatus.ACTIVE)
        note = pause_note(reason, cause, now.isoformat(timespec="seconds"))
        return (
            update(m)
            .where(condition)
            .values(
                status=ResourceStatus.PAUSED,
                pause_cause=cause,
                notes=literal(note) + func.coalesce(m.notes, ""),
                updated_at=now,
            )
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, resource_id: str) -> ValueT:
        with self._session_factory() as db:
            row = db.execute(
                select(*self._columns).where(self.model.id == resource_id)
            ).first()
        if row is None:
            raise self._not_found(resource_id)
        return self._to_value(row)

    def list_all(self) -> list[ValueT]:
        m = self.model
        with self._session_factory() as db:
            rows = db.execute(select(*self._columns).order_by(m.priority, m.name)).all()
        return [self._to_value(row) for row in rows]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _success_values(self, now: datetime) -> dict[str, Any]:
        m = self.model
        return {
            "total_requests": m.total_requests + 1,
            "successful_requests": m.successful_requests + 1,
            "consecutive_failures": 0,
            "health_score": self._clamped(m.health_score + self.policy.success_increment),
            "last_success_at": now,
            "updated_at": now,
        }

    def record_success(self, resource_id: str) -> ValueT:
        """Raise health, clear the failure streak. Never changes status."""
        now = _utcnow()
        stmt = update(self.model).where(self.model.id == resource_id).values(
            **self._success_values(now)
        )
        with self._session_factory() as db:
            row = self._execute_returning(db, stmt)
            if row is None:
                db.rollback()
                raise self._not_found(resource_id)
            db.commit()
        return self._to_value(row)

    def record_failure(self, resource_id: str, reason: str) -> FailureOutcome[ValueT]:
        """Lower health and pause the resource if the policy says so.

        The decrement is applied regardless of status so a paused resource
        keeps an accurate score. The pause itself is conditional on the row
        still being active, so concurrent failures pause it exactly once.
        """
        m = self.model
        now = _utcnow()
        reason = (reason or "unknown error")[:MAX_REASON_LENGTH]
        stmt = (
            update(m)
            .where(m.id == resource_id)
            .values(
                total_requests=m.total_requests + 1,
                consecutive_failures=m.consecutive_failures + 1,
                health_score=self._clamped(m.health_score - self.policy.failure_decrement),
                last_failure_at=now,
                last_failure_reason=reason,
                updated_at=now,
            )
        )
        with self._session_factory() as db:
            row = self._execute_returning(db, stmt)
            if row is None:
                db.rollback()
                raise self._not_found(resource_id)

            decision = decide_pause(self.policy, float(row.health_score), row.consecutive_failures)
            paused: PauseDecision | None = None
            if decision is not None and row.status == ResourceStatus.ACTIVE:
                paused_row = self._execute_returning(
                    db,
                    self._pause_statement(
                        resource_id, decision.reason, decision.cause, now, only_if_active=True
                    ),
                )
                if paused_row is not None:
                    row = paused_row
                    paused = decision
            db.commit()
        return FailureOutcome(value=self._to_value(row), paused=paused)

    def pause(
        self, resource_id: str, reason: str, cause: PauseCause = PauseCause.MANUAL
    ) -> ValueT:
        """Force ``paused``; prepends the reason to notes, health untouched."""
        now = _utcnow()
        with self._session_factory() as db:
            row = self._execute_returning(
                db, self._pause_statement(resource_id, reason, cause, now, only_if_active=False)
            )
            if row is None:
                db.rollback()
                raise self._not_found(resource_id)
            db.commit()
        return self._to_value(row)

    def resume(self, resource_id: str) -> ValueT:
        """Full rehabilitation: active, health 100, no failure streak."""
        now = _utcnow()
        stmt = (
            update(self.model)
            .where(self.model.id == resource_id)
            .values(
                status=ResourceStatus.ACTIVE,
                pause_cause=None,
                health_score=MAX_HEALTH,
                consecutive_failures=0,
                updated_at=now,
            )
        )
        with self._session_factory() as db:
            row = self._execute_returning(db, stmt)
            if row is None:
                db.rollback()
                raise self._not_found(resource_id)
            db.commit()
        return self._to_value(row)

    def reset_health(self, resource_id: str) -> ValueT:
        now = _utcnow()
        values: dict[str, Any] = {
            "health_score": MAX_HEALTH,
            "consecutive_failures": 0,
            "updated_at": now,
        }
        if self.reset_reactivates:
            values.update(status=ResourceStatus.ACTIVE, pause_cause=None)
        stmt = update(self.model).where(self.model.id == resource_id).values(**values)
        with self._session_factory() as db:
            row = self._execute_returning(db, stmt)
            if row is None:
                db.rollback()
                raise self._not_found(resource_id)
            db.commit()
        return self._to_value(row)

    def delete(self, resource_id: str) -> None:
        with self._session_factory() as db:
            result = db.execute(delete(self.model).where(self.model.id == resource_id))
            if result.rowcount == 0:
                db.rollback()
                raise self._not_found(resource_id)
            db.commit()
