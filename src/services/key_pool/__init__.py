"""Upstream credential pool: selection, health feedback and quota cycles.

Re-exports the main public API for convenience.
"""

from src.services.key_pool.config import PoolConfig
from src.services.key_pool.manager import PoolManager
from src.services.key_pool.repository import CredentialRepository, QuotaReset
from src.services.key_pool.scheduler import PoolMaintenanceScheduler

__all__ = [
    "CredentialRepository",
    "PoolConfig",
    "PoolMaintenanceScheduler",
    "PoolManager",
    "QuotaReset",
]
