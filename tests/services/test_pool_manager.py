"""Tests for key_pool/manager.py: selection, feedback, admin and sweeps."""

from __future__ import annotations

import asyncio
import dataclasses
import random
import threading
import time
from datetime import date, timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from src.core.enums import CallerTier, PauseCause, ResourceStatus
from src.core.exceptions import (
    DuplicateCredentialException,
    InvalidRequestException,
    NoHealthyCredentialException,
    NotFoundException,
    StoreUnavailableException,
)
from src.models.database import PoolCredential
from src.services.key_pool.config import PoolConfig
from src.services.key_pool.manager import PoolManager
from src.services.key_pool.repository import CredentialRepository


@pytest.fixture()
def manager(session_factory) -> PoolManager:
    return PoolManager(
        CredentialRepository(session_factory),
        PoolConfig(cache_ttl_seconds=60),
        rng=random.Random(42),
    )


def _force(session_factory, credential_id: str, **values) -> None:
    with session_factory() as db:
        db.execute(update(PoolCredential).where(PoolCredential.id == credential_id).values(**values))
        db.commit()


class _FailingRepository(CredentialRepository):
    """Every store call fails like a dropped connection."""

    def __init__(self) -> None:
        super().__init__(session_factory=None)  # type: ignore[arg-type]

    def _fail(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    list_selectable = _fail
    reset_due_quotas = _fail
    record_success = _fail
    record_failure = _fail
    pause = _fail


class _SlowRepository(_FailingRepository):
    def _slow(self, *args, **kwargs):
        time.sleep(0.5)
        return []

    list_selectable = _slow
    reset_due_quotas = _slow


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_single_credential_lifecycle(manager: PoolManager) -> None:
    added = await manager.add({"name": "k1", "secret": "sk_k1_secret", "monthly_quota": 1000})

    chosen = await manager.select_key("free")
    assert chosen.id == added.id

    after_success = await manager.record_success(added.id, 100)
    assert after_success is not None
    assert after_success.quota_used_this_period == 100
    assert after_success.health_score == 100.0

    for _ in range(5):
        state = await manager.record_failure(added.id, "x")

    assert state is not None
    assert state.health_score == 50.0
    assert state.status == ResourceStatus.PAUSED
    assert state.consecutive_failures == 5


@pytest.mark.asyncio
async def test_premium_always_gets_best_priority(manager: PoolManager) -> None:
    best = await manager.add({"name": "p1", "secret": "sk_p1_secret", "priority": 1})
    await manager.add({"name": "p2", "secret": "sk_p2_secret", "priority": 2})

    for _ in range(20):
        assert (await manager.select_key(CallerTier.PREMIUM)).id == best.id


@pytest.mark.asyncio
async def test_exhausted_quota_is_excluded(manager: PoolManager) -> None:
    spent = await manager.add({"name": "spent", "secret": "sk_spent_1", "monthly_quota": 100})
    await manager.record_success(spent.id, 100)

    with pytest.raises(NoHealthyCredentialException):
        await manager.select_key("supporter")


@pytest.mark.asyncio
async def test_unlimited_credential_is_selectable(manager: PoolManager, session_factory) -> None:
    added = await manager.add({"name": "k1", "secret": "s", "monthly_quota": -1})
    _force(session_factory, added.id, quota_used_this_period=10**7)
    manager.cache.invalidate()

    assert (await manager.select_key("free")).id == added.id


@pytest.mark.asyncio
async def test_sweep_resumes_auto_pause_but_not_manual(
    manager: PoolManager, session_factory
) -> None:
    auto = await manager.add({"name": "auto", "secret": "sk_auto_1"})
    manual = await manager.add({"name": "manual", "secret": "sk_manual_1"})
    await manager.pause(auto.id, "Health score dropped below 80% (75%)", PauseCause.AUTO_HEALTH)
    await manager.pause(manual.id, "Manual pause via admin dashboard")

    today = date.today()
    _force(session_factory, auto.id, health_score=75.0, quota_reset_at=today - timedelta(days=1))
    _force(session_factory, manual.id, quota_reset_at=today - timedelta(days=1))

    results = await manager.run_quota_reset_sweep(today)

    assert {r.credential.id for r in results} == {auto.id, manual.id}
    assert (await manager.get(auto.id)).status == ResourceStatus.ACTIVE
    assert (await manager.get(auto.id)).health_score == 100.0
    assert (await manager.get(manual.id)).status == ResourceStatus.PAUSED
    assert (await manager.select_key("free")).id == auto.id


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_mutations_invalidate_selection_cache(manager: PoolManager) -> None:
    only = await manager.add({"name": "only", "secret": "sk_only_1"})
    await manager.select_key("free")
    assert manager.cache.is_warm

    await manager.pause(only.id, "operator hold")
    assert not manager.cache.is_warm
    with pytest.raises(NoHealthyCredentialException):
        await manager.select_key("free")

    await manager.resume(only.id)
    assert (await manager.select_key("free")).id == only.id


@pytest.mark.asyncio
async def test_selection_rechecks_stale_snapshot(manager: PoolManager) -> None:
    only = await manager.add({"name": "only", "secret": "sk_only_1", "monthly_quota": 10})
    await manager.select_key("free")
    # Snapshot entry that went stale without the manager seeing it
    stale = manager.cache.get()[0]
    assert stale.id == only.id
    manager.cache.put([dataclasses.replace(stale, quota_used_this_period=10)])

    with pytest.raises(NoHealthyCredentialException):
        await manager.select_key("free")


class _GatedRepository(CredentialRepository):
    """Holds the next selectable read open until released."""

    def __init__(self, session_factory) -> None:
        super().__init__(session_factory)
        self.hold_next_read = False
        self.read_done = threading.Event()
        self.release = threading.Event()

    def list_selectable(self):
        rows = super().list_selectable()
        if self.hold_next_read:
            self.hold_next_read = False
            self.read_done.set()
            self.release.wait(5)
        return rows


@pytest.mark.asyncio
async def test_pause_during_selection_read_is_not_masked_by_cache(session_factory) -> None:
    repo = _GatedRepository(session_factory)
    manager = PoolManager(repo, PoolConfig(cache_ttl_seconds=60))
    only = await manager.add({"name": "only", "secret": "sk_only_1"})
    await manager.select_key("free")

    manager.cache.invalidate()
    repo.hold_next_read = True
    selecting = asyncio.create_task(manager.select_key("free"))
    assert await asyncio.to_thread(repo.read_done.wait, 5)

    await manager.pause(only.id, "operator hold")
    repo.release.set()
    # The in-flight selection may still see the row it already read
    assert (await selecting).id == only.id

    assert not manager.cache.is_warm
    with pytest.raises(NoHealthyCredentialException):
        await manager.select_key("free")


# ---------------------------------------------------------------------------
# Admin operations
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_add_rejects_missing_secret(manager: PoolManager) -> None:
    with pytest.raises(InvalidRequestException) as exc_info:
        await manager.add({"name": "k1"})
    assert exc_info.value.status_code == 400
    assert exc_info.value.details["errors"]


@pytest.mark.asyncio
async def test_add_rejects_duplicate_secret(manager: PoolManager) -> None:
    await manager.add({"name": "a", "secret": "sk_dup_1"})
    with pytest.raises(DuplicateCredentialException):
        await manager.add({"name": "b", "secret": "sk_dup_1"})


@pytest.mark.asyncio
async def test_admin_ops_on_unknown_id_raise_not_found(manager: PoolManager) -> None:
    for op in (manager.resume, manager.reset_health, manager.delete, manager.get):
        with pytest.raises(NotFoundException):
            await op("missing")
    with pytest.raises(NotFoundException):
        await manager.pause("missing", "x")


@pytest.mark.asyncio
async def test_delete_removes_credential(manager: PoolManager) -> None:
    added = await manager.add({"name": "a", "secret": "sk_del_1"})
    await manager.delete(added.id)
    assert await manager.list_credentials() == []


@pytest.mark.asyncio
async def test_stats(manager: PoolManager) -> None:
    a = await manager.add({"name": "a", "secret": "sk_a_1", "monthly_quota": 1000})
    await manager.add({"name": "b", "secret": "sk_b_1", "monthly_quota": -1})
    await manager.record_success(a.id, 250)

    stats = await manager.stats()
    assert stats.to_dict()["total"] == 2
    assert stats.quota_used == 250
    assert stats.quota_available == 750
    assert stats.unlimited == 1


# ---------------------------------------------------------------------------
# Store failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_store_error_surfaces_as_store_unavailable() -> None:
    manager = PoolManager(_FailingRepository(), PoolConfig())
    with pytest.raises(StoreUnavailableException) as exc_info:
        await manager.select_key("free")
    assert exc_info.value.status_code == 503
    assert exc_info.value.error_type == "store_unavailable"


@pytest.mark.asyncio
async def test_store_timeout_surfaces_as_store_unavailable() -> None:
    manager = PoolManager(_SlowRepository(), PoolConfig(store_timeout_seconds=0.05))
    with pytest.raises(StoreUnavailableException):
        await manager.select_key("free")


@pytest.mark.asyncio
async def test_feedback_never_raises_on_store_failure() -> None:
    manager = PoolManager(_FailingRepository(), PoolConfig())
    assert await manager.record_success("any-id", 10) is None
    assert await manager.record_failure("any-id", "upstream 500") is None


@pytest.mark.asyncio
async def test_feedback_on_unknown_id_is_swallowed(manager: PoolManager) -> None:
    assert await manager.record_failure("missing", "x") is None


@pytest.mark.asyncio
async def test_failed_initial_sweep_is_retried(session_factory) -> None:
    repo = CredentialRepository(session_factory)
    calls = {"n": 0}
    real_sweep = repo.reset_due_quotas

    def flaky_sweep(today=None):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("UPDATE", {}, Exception("deadlock"))
        return real_sweep(today)

    repo.reset_due_quotas = flaky_sweep  # type: ignore[method-assign]
    manager = PoolManager(repo, PoolConfig())
    await manager.add({"name": "a", "secret": "sk_a_1"})

    await manager.select_key("free")
    await manager.select_key("free")
    await manager.select_key("free")

    assert calls["n"] == 2
