"""Outbound proxy store: the scored pool without tiers, cost or quota."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError

from src.core.enums import ResourceStatus
from src.core.exceptions import DuplicateCredentialException
from src.models.database import PoolProxy
from src.models.pool import Proxy, ProxyCreate, ProxyStats
from src.services.scored_pool.policy import MAX_HEALTH, PROXY_HEALTH_POLICY
from src.services.scored_pool.repository import ScoredResourceRepository


class ProxyRepository(ScoredResourceRepository[PoolProxy, Proxy]):
    model = PoolProxy
    value_type = Proxy
    policy = PROXY_HEALTH_POLICY
    label = "proxy"
    reset_reactivates = True

    def select_best(self) -> Proxy | None:
        """Best selectable proxy, or ``None`` when the caller should go direct."""
        m = PoolProxy
        stmt = (
            select(*self._columns)
            .where(self.selectable_clause())
            .order_by(
                m.priority.asc(),
                m.health_score.desc(),
                m.last_success_at.desc().nulls_last(),
            )
            .limit(1)
        )
        with self._session_factory() as db:
            row = db.execute(stmt).first()
        return self._to_value(row) if row is not None else None

    def insert(self, spec: ProxyCreate) -> Proxy:
        now = datetime.now(timezone.utc)
        with self._session_factory() as db:
            row = PoolProxy(
                name=spec.name,
                url=spec.url,
                proxy_type=spec.proxy_type,
                priority=spec.priority,
                status=ResourceStatus.ACTIVE,
                health_score=MAX_HEALTH,
                consecutive_failures=0,
                created_at=now,
                updated_at=now,
            )
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateCredentialException(
                    "A proxy with this name already exists", field="name"
                ) from exc
            return Proxy.from_row(row)

    def stats(self) -> ProxyStats:
        m = PoolProxy
        stmt = select(
            func.count(m.id),
            func.coalesce(func.sum(case((m.status == ResourceStatus.ACTIVE, 1), else_=0)), 0),
            func.coalesce(func.sum(case((m.status == ResourceStatus.PAUSED, 1), else_=0)), 0),
            func.coalesce(func.avg(m.health_score), 0),
            func.coalesce(func.sum(m.total_requests), 0),
            func.coalesce(func.sum(m.successful_requests), 0),
        )
        with self._session_factory() as db:
            total, active, paused, avg_health, requests, successes = db.execute(stmt).one()
        return ProxyStats(
            total=int(total or 0),
            active=int(active),
            paused=int(paused),
            avg_health=float(avg_health),
            total_requests=int(requests),
            successful_requests=int(successes),
        )
