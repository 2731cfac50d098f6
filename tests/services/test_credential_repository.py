"""Tests for key_pool/repository.py: atomic transitions against SQLite."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from src.core.enums import PauseCause, ResourceStatus
from src.core.exceptions import DuplicateCredentialException, NotFoundException
from src.models.database import PoolCredential
from src.models.pool import CredentialCreate
from src.services.key_pool.repository import CredentialRepository

CREATED = datetime(2026, 1, 31, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def repo(session_factory) -> CredentialRepository:
    return CredentialRepository(session_factory)


def _add(repo: CredentialRepository, name: str = "k1", **kwargs) -> str:
    spec = CredentialCreate(name=name, secret=f"sk_{name}_0123456789", **kwargs)
    return repo.insert(spec, now=CREATED).id


def _force(session_factory, credential_id: str, **values) -> None:
    with session_factory() as db:
        db.execute(update(PoolCredential).where(PoolCredential.id == credential_id).values(**values))
        db.commit()


# ---------------------------------------------------------------------------
# insert
# ---------------------------------------------------------------------------


def test_insert_applies_tier_profile_and_reset_date(repo: CredentialRepository) -> None:
    credential = repo.insert(
        CredentialCreate(name="a", secret="sk_aaaaaaaaaa", tier="creator"), now=CREATED
    )
    assert credential.status == ResourceStatus.ACTIVE
    assert credential.health_score == 100.0
    assert credential.monthly_quota == 100000
    assert credential.cost_per_unit == pytest.approx(0.00022)
    assert credential.quota_reset_at == date(2026, 2, 28)
    assert credential.region_code == "us"


def test_insert_duplicate_secret_is_rejected(repo: CredentialRepository) -> None:
    repo.insert(CredentialCreate(name="a", secret="sk_same_secret"))
    with pytest.raises(DuplicateCredentialException) as exc_info:
        repo.insert(CredentialCreate(name="b", secret="sk_same_secret"))
    assert exc_info.value.field == "secret"
    assert exc_info.value.status_code == 409


def test_insert_duplicate_name_is_rejected(repo: CredentialRepository) -> None:
    repo.insert(CredentialCreate(name="a", secret="sk_first_secret"))
    with pytest.raises(DuplicateCredentialException) as exc_info:
        repo.insert(CredentialCreate(name="a", secret="sk_other_secret"))
    assert exc_info.value.field == "name"


# ---------------------------------------------------------------------------
# record_success / record_failure
# ---------------------------------------------------------------------------


def test_record_success_consumes_quota_and_heals(repo: CredentialRepository, session_factory) -> None:
    cid = _add(repo)
    _force(session_factory, cid, health_score=90.0, consecutive_failures=3)

    credential = repo.record_success(cid, units=150)

    assert credential.health_score == 92.0
    assert credential.consecutive_failures == 0
    assert credential.quota_used_this_period == 150
    assert credential.total_requests == 1
    assert credential.successful_requests == 1
    assert credential.last_success_at is not None


def test_record_success_clamps_health_and_quota(repo: CredentialRepository) -> None:
    cid = _add(repo, monthly_quota=100)
    credential = repo.record_success(cid, units=250)
    assert credential.health_score == 100.0
    assert credential.quota_used_this_period == 100
    assert credential.has_quota is False


def test_record_success_unlimited_is_not_clamped(repo: CredentialRepository) -> None:
    cid = _add(repo, monthly_quota=-1)
    assert repo.record_success(cid, units=10**6).quota_used_this_period == 10**6


def test_record_success_never_changes_status(repo: CredentialRepository) -> None:
    cid = _add(repo)
    repo.pause(cid, "maintenance")
    assert repo.record_success(cid, units=1).status == ResourceStatus.PAUSED


def test_failures_pause_after_health_drop(repo: CredentialRepository) -> None:
    cid = _add(repo)

    outcome = repo.record_failure(cid, "HTTP 500")
    assert outcome.value.health_score == 90.0
    assert outcome.paused is None

    repo.record_failure(cid, "HTTP 500")
    outcome = repo.record_failure(cid, "HTTP 500")

    assert outcome.value.health_score == 70.0
    assert outcome.value.status == ResourceStatus.PAUSED
    assert outcome.value.pause_cause == PauseCause.AUTO_HEALTH
    assert outcome.paused is not None
    assert "Health score dropped below 80% (70%)" in outcome.value.notes
    assert outcome.value.notes.startswith("Auto-paused: ")
    assert outcome.value.last_failure_reason == "HTTP 500"


def test_failures_pause_after_consecutive_limit(repo: CredentialRepository, session_factory) -> None:
    cid = _add(repo)
    _force(session_factory, cid, consecutive_failures=4)
    outcome = repo.record_failure(cid, "timeout")
    assert outcome.value.status == ResourceStatus.PAUSED
    assert outcome.paused is not None
    assert outcome.paused.reason == "5 consecutive failures"


def test_failure_on_paused_credential_decrements_without_repausing(
    repo: CredentialRepository,
) -> None:
    cid = _add(repo)
    repo.pause(cid, "maintenance")
    outcome = repo.record_failure(cid, "late failure")
    assert outcome.paused is None
    assert outcome.value.health_score == 90.0
    assert outcome.value.pause_cause == PauseCause.MANUAL


def test_failure_health_never_below_zero(repo: CredentialRepository, session_factory) -> None:
    cid = _add(repo)
    _force(session_factory, cid, health_score=4.0)
    assert repo.record_failure(cid, "x").value.health_score == 0.0


def test_long_failure_reason_is_truncated(repo: CredentialRepository) -> None:
    cid = _add(repo)
    outcome = repo.record_failure(cid, "x" * 5000)
    assert len(outcome.value.last_failure_reason) == 500


def test_unknown_id_raises_not_found(repo: CredentialRepository) -> None:
    with pytest.raises(NotFoundException):
        repo.record_success("missing", units=1)
    with pytest.raises(NotFoundException):
        repo.record_failure("missing", "x")
    with pytest.raises(NotFoundException):
        repo.resume("missing")
    with pytest.raises(NotFoundException):
        repo.delete("missing")


# ---------------------------------------------------------------------------
# pause / resume / reset_health
# ---------------------------------------------------------------------------


def test_pause_and_resume_round_trip(repo: CredentialRepository) -> None:
    cid = _add(repo, notes="bought in bulk")
    paused = repo.pause(cid, "rotating")
    assert paused.status == ResourceStatus.PAUSED
    assert paused.pause_cause == PauseCause.MANUAL
    assert paused.notes.startswith("Paused: rotating at ")
    assert paused.notes.endswith("bought in bulk")
    assert paused.health_score == 100.0

    resumed = repo.resume(cid)
    assert resumed.status == ResourceStatus.ACTIVE
    assert resumed.pause_cause is None
    assert resumed.health_score == 100.0
    assert resumed.consecutive_failures == 0


def test_reset_health_keeps_credential_paused(repo: CredentialRepository, session_factory) -> None:
    cid = _add(repo)
    repo.pause(cid, "manual")
    _force(session_factory, cid, health_score=20.0, consecutive_failures=9)
    credential = repo.reset_health(cid)
    assert credential.health_score == 100.0
    assert credential.consecutive_failures == 0
    assert credential.status == ResourceStatus.PAUSED


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def test_list_selectable_filters_in_sql(repo: CredentialRepository, session_factory) -> None:
    ok = _add(repo, "ok")
    sick = _add(repo, "sick")
    spent = _add(repo, "spent", monthly_quota=10)
    paused = _add(repo, "paused")
    _force(session_factory, sick, health_score=75.0)
    _force(session_factory, spent, quota_used_this_period=10)
    repo.pause(paused, "x")

    assert [c.id for c in repo.list_selectable()] == [ok]


def test_expiring_promos_window(repo: CredentialRepository) -> None:
    now = datetime(2026, 10, 1, tzinfo=timezone.utc)
    soon = _add(repo, "soon", promo_expires_at=now + timedelta(days=3))
    _add(repo, "later", promo_expires_at=now + timedelta(days=30))
    _add(repo, "none")
    paused = _add(repo, "soon-paused", promo_expires_at=now + timedelta(days=2))
    repo.pause(paused, "x")

    assert [c.id for c in repo.expiring_promos(7, now=now)] == [soon]


def test_stats_separate_unlimited_from_available(repo: CredentialRepository) -> None:
    a = _add(repo, "a", monthly_quota=1000)
    _add(repo, "b", monthly_quota=-1)
    c = _add(repo, "c", monthly_quota=500)
    repo.record_success(a, units=400)
    repo.pause(c, "x")

    stats = repo.stats()
    assert stats.total == 3
    assert stats.active == 2
    assert stats.paused == 1
    assert stats.unlimited == 1
    assert stats.quota_used == 400
    assert stats.quota_available == 600 + 500
    assert stats.avg_health == pytest.approx(100.0)


def test_stats_on_empty_pool(repo: CredentialRepository) -> None:
    stats = repo.stats()
    assert stats.total == 0
    assert stats.avg_health == 0.0


# ---------------------------------------------------------------------------
# reset_due_quotas
# ---------------------------------------------------------------------------


def test_sweep_resets_due_credentials_only(repo: CredentialRepository, session_factory) -> None:
    due = _add(repo, "due")
    not_due = _add(repo, "not-due")
    _force(session_factory, due, quota_used_this_period=900)
    _force(session_factory, not_due, quota_used_this_period=5, quota_reset_at=date(2026, 3, 31))

    results = repo.reset_due_quotas(today=date(2026, 2, 28))

    assert [r.credential.id for r in results] == [due]
    credential = results[0].credential
    assert credential.quota_used_this_period == 0
    # Anchored to the 31st: Feb 28 -> Mar 31
    assert credential.quota_reset_at == date(2026, 3, 31)
    assert repo.get(not_due).quota_used_this_period == 5


def test_sweep_twice_same_day_is_noop(repo: CredentialRepository) -> None:
    _add(repo)
    today = date(2026, 2, 28)
    assert len(repo.reset_due_quotas(today=today)) == 1
    assert repo.reset_due_quotas(today=today) == []


def test_sweep_resumes_auto_paused_but_not_manual(repo: CredentialRepository, session_factory) -> None:
    auto = _add(repo, "auto")
    quota = _add(repo, "quota")
    manual = _add(repo, "manual")
    _force(session_factory, auto, health_score=70.0, consecutive_failures=3)
    repo.pause(auto, "Health score dropped below 80% (70%)", PauseCause.AUTO_HEALTH)
    repo.pause(quota, "Upstream quota exhausted", PauseCause.AUTO_QUOTA)
    repo.pause(manual, "operator hold")

    results = {r.credential.id: r for r in repo.reset_due_quotas(today=date(2026, 2, 28))}

    assert results[auto].resumed is True
    assert results[auto].credential.status == ResourceStatus.ACTIVE
    assert results[auto].credential.health_score == 100.0
    assert results[auto].credential.consecutive_failures == 0
    assert results[auto].credential.pause_cause is None
    assert results[quota].resumed is True
    assert results[manual].resumed is False
    assert results[manual].credential.status == ResourceStatus.PAUSED
    assert results[manual].credential.pause_cause == PauseCause.MANUAL
    assert results[manual].credential.quota_used_this_period == 0


def test_sweep_classifies_legacy_rows_by_notes(repo: CredentialRepository, session_factory) -> None:
    legacy_auto = _add(repo, "legacy-auto")
    legacy_manual = _add(repo, "legacy-manual")
    _force(
        session_factory,
        legacy_auto,
        status=ResourceStatus.PAUSED,
        pause_cause=None,
        notes="Auto-paused: Health score dropped below 80% at 2025-01-01",
    )
    _force(
        session_factory,
        legacy_manual,
        status=ResourceStatus.PAUSED,
        pause_cause=None,
        notes="Manual pause via admin dashboard",
    )

    results = {r.credential.id: r for r in repo.reset_due_quotas(today=date(2026, 2, 28))}

    assert results[legacy_auto].credential.status == ResourceStatus.ACTIVE
    assert results[legacy_manual].credential.status == ResourceStatus.PAUSED


def test_sweep_catches_up_multiple_missed_periods(repo: CredentialRepository) -> None:
    cid = _add(repo)
    results = repo.reset_due_quotas(today=date(2026, 6, 10))
    assert results[0].credential.quota_reset_at == date(2026, 6, 30)
    assert repo.get(cid).quota_reset_at == date(2026, 6, 30)
