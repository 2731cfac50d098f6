"""Credential store.

Extends the generic scored-resource repository with the quota dimension:
selectable reads, inserts with a computed reset date, the quota-reset sweep
and aggregate stats.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import and_, case, func, literal, or_, select, update
from sqlalchemy.exc import IntegrityError

from src.config.constants import CredentialDefaults
from src.core.enums import ResourceStatus
from src.core.exceptions import DuplicateCredentialException
from src.models.database import PoolCredential
from src.models.pool import Credential, CredentialCreate, PoolStats
from src.services.key_pool.quota_cycle import advance_reset_date, initial_reset_date
from src.services.scored_pool.policy import CREDENTIAL_HEALTH_POLICY, MAX_HEALTH
from src.services.scored_pool.repository import ScoredResourceRepository

UNLIMITED = CredentialDefaults.UNLIMITED_QUOTA


@dataclass(frozen=True, slots=True)
class QuotaReset:
    """One credential rolled over by the sweep."""

    credential: Credential
    resumed: bool


class CredentialRepository(ScoredResourceRepository[PoolCredential, Credential]):
    model = PoolCredential
    value_type = Credential
    policy = CREDENTIAL_HEALTH_POLICY
    label = "credential"

    @classmethod
    def has_quota_clause(cls):
        m = PoolCredential
        return or_(m.monthly_quota == UNLIMITED, m.quota_used_this_period < m.monthly_quota)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_selectable(self) -> list[Credential]:
        """Active, healthy credentials with quota left."""
        m = PoolCredential
        stmt = (
            select(*self._columns)
            .where(self.selectable_clause(), self.has_quota_clause())
            .order_by(m.priority, m.cost_per_unit, m.health_score.desc())
        )
        with self._session_factory() as db:
            rows = db.execute(stmt).all()
        return [self._to_value(row) for row in rows]

    def expiring_promos(self, window_days: int, now: datetime | None = None) -> list[Credential]:
        """Active credentials whose promotion ends within *window_days*."""
        m = PoolCredential
        now = now or datetime.now(timezone.utc)
        stmt = (
            select(*self._columns)
            .where(
                m.promo_expires_at.is_not(None),
                m.promo_expires_at >= now,
                m.promo_expires_at <= now + timedelta(days=window_days),
                m.status == ResourceStatus.ACTIVE,
            )
            .order_by(m.promo_expires_at)
        )
        with self._session_factory() as db:
            rows = db.execute(stmt).all()
        return [self._to_value(row) for row in rows]

    def stats(self) -> PoolStats:
        m = PoolCredential
        limited = m.monthly_quota != UNLIMITED
        stmt = select(
            func.count(m.id),
            func.coalesce(func.sum(case((m.status == ResourceStatus.ACTIVE, 1), else_=0)), 0),
            func.coalesce(func.sum(case((m.status == ResourceStatus.PAUSED, 1), else_=0)), 0),
            func.avg(m.health_score),
            func.coalesce(func.sum(m.quota_used_this_period), 0),
            func.coalesce(
                func.sum(
                    case(
                        (
                            and_(limited, m.monthly_quota > m.quota_used_this_period),
                            m.monthly_quota - m.quota_used_this_period,
                        ),
                        else_=0,
                    )
                ),
                0,
            ),
            func.coalesce(func.sum(case((limited, 0), else_=1)), 0),
        )
        with self._session_factory() as db:
            total, active, paused, avg_health, used, available, unlimited = db.execute(stmt).one()
        return PoolStats(
            total=int(total or 0),
            active=int(active),
            paused=int(paused),
            avg_health=float(avg_health) if avg_health is not None else 0.0,
            quota_used=int(used),
            quota_available=int(available),
            unlimited=int(unlimited),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, spec: CredentialCreate, now: datetime | None = None) -> Credential:
        """Insert a validated credential; its first reset date comes from *now*."""
        m = PoolCredential
        now = now or datetime.now(timezone.utc)
        cost, quota = spec.resolved_cost_and_quota()

        with self._session_factory() as db:
            clash = db.execute(
                select(m.name, m.secret).where(or_(m.name == spec.name, m.secret == spec.secret))
            ).first()
            if clash is not None:
                field = "secret" if clash.secret == spec.secret else "name"
                raise DuplicateCredentialException(
                    f"A credential with this {field} already exists", field=field
                )

            row = PoolCredential(
                name=spec.name,
                secret=spec.secret,
                tier=spec.tier,
                cost_per_unit=cost,
                monthly_quota=quota,
                quota_used_this_period=0,
                quota_reset_at=initial_reset_date(now),
                priority=spec.priority,
                status=ResourceStatus.ACTIVE,
                health_score=MAX_HEALTH,
                consecutive_failures=0,
                region_code=spec.region_code,
                promo_type=spec.promo_type,
                promo_expires_at=spec.promo_expires_at,
                notes=spec.notes,
                created_at=now,
                updated_at=now,
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateCredentialException(
                    "A credential with this secret or name already exists"
                ) from exc
            return Credential.from_row(row)

    def record_success(self, credential_id: str, units: int = 0) -> Credential:
        """Success bookkeeping plus ``quota_used_this_period += units`` in one statement."""
        m = PoolCredential
        now = datetime.now(timezone.utc)
        values = self._success_values(now)
        used = m.quota_used_this_period + units
        # Never record more than the period allows; overage just exhausts the credential
        values["quota_used_this_period"] = case(
            (and_(m.monthly_quota != UNLIMITED, used > m.monthly_quota), m.monthly_quota),
            else_=used,
        )
        stmt = update(m).where(m.id == credential_id).values(**values)
        with self._session_factory() as db:
            row = self._execute_returning(db, stmt)
            if row is None:
                db.rollback()
                raise self._not_found(credential_id)
            db.commit()
        return self._to_value(row)

    def reset_due_quotas(self, today: date | None = None) -> list[QuotaReset]:
        """Roll over every credential whose reset date has arrived.

        Each row is updated with ``WHERE quota_reset_at = <value read>``, so a
        concurrent sweep cannot reset the same period twice, and the new reset
        date is always after *today*, so a second run finds nothing due.
        Auto-paused credentials come back fully rehabilitated; manual pauses
        stay paused.
        """
        m = PoolCredential
        today = today or datetime.now(timezone.utc).date()
        now = datetime.now(timezone.utc)
        resumable = self.auto_resumable_clause()

        with self._session_factory() as db:
            due = db.execute(
                select(m.id, m.created_at, m.quota_reset_at, m.status).where(
                    m.quota_reset_at <= today
                )
            ).all()

            results: list[QuotaReset] = []
            for credential_id, created_at, previous_reset, status in due:
                next_reset = advance_reset_date(created_at.day, previous_reset, today)
                stmt = (
                    update(m)
                    .where(m.id == credential_id, m.quota_reset_at == previous_reset)
                    .values(
                        quota_used_this_period=0,
                        quota_reset_at=next_reset,
                        status=case(
                            (resumable, literal(ResourceStatus.ACTIVE, type_=m.status.type)), else_=m.status
                        ),
                        health_score=case((resumable, MAX_HEALTH), else_=m.health_score),
                        consecutive_failures=case(
                            (resumable, 0), else_=m.consecutive_failures
                        ),
                        pause_cause=case((resumable, None), else_=m.pause_cause),
                        updated_at=now,
                    )
                )
                row = self._execute_returning(db, stmt)
                if row is None:
                    continue
                value = self._to_value(row)
                resumed = status == ResourceStatus.PAUSED and value.status == ResourceStatus.ACTIVE
                results.append(QuotaReset(credential=value, resumed=resumed))
            db.commit()
        return results
