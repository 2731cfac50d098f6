"""Outbound proxy pool.

Same health feedback loop as the credential pool at a smaller scale: no
tiers, no cost, no quota. Callers that get ``None`` from ``select_proxy``
connect directly.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from src.core.enums import PauseCause
from src.core.exceptions import InvalidRequestException, PoolServiceException
from src.core.logger import logger
from src.core.metrics import pool_outcome_total, pool_pause_total
from src.models.pool import Proxy, ProxyCreate, ProxyStats
from src.services.proxy_pool.repository import ProxyRepository
from src.services.scored_pool.service import StoreBoundService


class ProxyPoolManager(StoreBoundService):
    store_label = "ProxyPool"

    def __init__(self, repository: ProxyRepository, store_timeout_seconds: float = 5.0) -> None:
        super().__init__(store_timeout_seconds)
        self.repository = repository

    async def select_proxy(self) -> Proxy | None:
        """Best active proxy, or ``None`` to use a direct connection.

        Store trouble also degrades to a direct connection.
        """
        try:
            proxy = await self._store("select_proxy", self.repository.select_best)
        except PoolServiceException as exc:
            logger.warning("ProxyPool: selection failed, using direct connection: {}", exc)
            return None
        if proxy is None:
            logger.warning("ProxyPool: no healthy proxies available, using direct connection")
        return proxy

    async def record_success(self, proxy_id: str | None) -> None:
        if not proxy_id:
            return  # direct connection
        try:
            await self._store("record_success", self.repository.record_success, proxy_id)
        except PoolServiceException as exc:
            logger.warning("ProxyPool: failed to record success for {}: {}", proxy_id[:8], exc)
            return
        pool_outcome_total.labels(pool="proxy", outcome="success").inc()

    async def record_failure(self, proxy_id: str | None, reason: str = "Unknown error") -> None:
        if not proxy_id:
            return
        try:
            outcome = await self._store(
                "record_failure", self.repository.record_failure, proxy_id, reason
            )
        except PoolServiceException as exc:
            logger.warning("ProxyPool: failed to record failure for {}: {}", proxy_id[:8], exc)
            return
        pool_outcome_total.labels(pool="proxy", outcome="failure").inc()
        logger.info(
            "ProxyPool: failure recorded for proxy {}, health: {:g}%",
            proxy_id[:8],
            outcome.value.health_score,
        )
        if outcome.paused is not None:
            pool_pause_total.labels(pool="proxy", cause=outcome.paused.cause.value).inc()
            logger.warning(
                "ProxyPool: proxy {} auto-paused: {}", outcome.value.name, outcome.paused.reason
            )

    async def pause(self, proxy_id: str, reason: str = "Manual pause") -> Proxy:
        proxy = await self._store(
            "pause", self.repository.pause, proxy_id, reason, PauseCause.MANUAL
        )
        pool_pause_total.labels(pool="proxy", cause=PauseCause.MANUAL.value).inc()
        logger.info("ProxyPool: proxy {} paused: {}", proxy.name, reason)
        return proxy

    async def resume(self, proxy_id: str) -> Proxy:
        proxy = await self._store("resume", self.repository.resume, proxy_id)
        logger.info("ProxyPool: proxy {} resumed", proxy.name)
        return proxy

    async def reset_health(self, proxy_id: str) -> Proxy:
        """Health back to 100 and back in rotation."""
        proxy = await self._store("reset_health", self.repository.reset_health, proxy_id)
        logger.info("ProxyPool: proxy {} health reset to 100%", proxy.name)
        return proxy

    async def add(self, spec: ProxyCreate | dict[str, Any]) -> Proxy:
        if not isinstance(spec, ProxyCreate):
            try:
                spec = ProxyCreate.model_validate(spec)
            except ValidationError as exc:
                raise InvalidRequestException(
                    "Invalid proxy definition",
                    details={
                        "errors": exc.errors(
                            include_url=False, include_context=False, include_input=False
                        )
                    },
                ) from exc
        proxy = await self._store("add", self.repository.insert, spec)
        logger.info("ProxyPool: added new proxy {}", proxy.name)
        return proxy

    async def delete(self, proxy_id: str) -> None:
        await self._store("delete", self.repository.delete, proxy_id)

    async def list_proxies(self) -> list[Proxy]:
        return await self._store("list", self.repository.list_all)

    async def stats(self) -> ProxyStats:
        return await self._store("stats", self.repository.stats)
