"""In-process snapshot of the selectable credential set."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from src.models.pool import Credential


@dataclass(frozen=True, slots=True)
class _Snapshot:
    credentials: tuple[Credential, ...]
    loaded_at: float


class SelectionCache:
    """Time-boxed snapshot owned by one ``PoolManager``.

    The snapshot is only ever replaced as a whole (never mutated), so readers
    need no lock: they either see the previous tuple or the new one.

    Every ``invalidate()`` bumps ``generation``. A loader records the
    generation before reading the store and hands it back to ``put()``; rows
    read across an invalidation are returned to that one caller but never
    stored.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._snapshot: _Snapshot | None = None
        self.generation = 0

    def get(self) -> tuple[Credential, ...] | None:
        """The cached credentials, or ``None`` when empty or expired."""
        snapshot = self._snapshot
        if snapshot is None:
            return None
        if self._clock() - snapshot.loaded_at >= self.ttl_seconds:
            return None
        return snapshot.credentials

    def put(
        self,
        credentials: list[Credential] | tuple[Credential, ...],
        generation: int | None = None,
    ) -> tuple[Credential, ...]:
        frozen = tuple(credentials)
        if generation is not None and generation != self.generation:
            return frozen
        self._snapshot = _Snapshot(credentials=frozen, loaded_at=self._clock())
        return frozen

    def invalidate(self) -> None:
        self.generation += 1
        self._snapshot = None

    @property
    def is_warm(self) -> bool:
        return self.get() is not None
