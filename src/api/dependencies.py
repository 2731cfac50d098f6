"""
Shared route dependencies.

Services are built once in the application lifespan and hung off
``app.state``; routes pull them out through these helpers so tests can swap
in their own instances.
"""

from __future__ import annotations

import secrets

from fastapi import Header, HTTPException, Request, status

from src.config import config
from src.services.key_pool.manager import PoolManager
from src.services.proxy_pool.manager import ProxyPoolManager
from src.services.speech.orchestrator import RequestOrchestrator
from src.services.usage.recorder import UsageRecorder
from src.services.user_quota.service import UserQuotaService


def get_pool_manager(request: Request) -> PoolManager:
    return request.app.state.pool_manager


def get_proxy_manager(request: Request) -> ProxyPoolManager:
    return request.app.state.proxy_manager


def get_user_service(request: Request) -> UserQuotaService:
    return request.app.state.user_service


def get_orchestrator(request: Request) -> RequestOrchestrator:
    return request.app.state.orchestrator


def get_usage_recorder(request: Request) -> UsageRecorder:
    return request.app.state.usage_recorder


def require_admin(x_admin_token: str | None = Header(default=None)) -> None:
    """Reject the request unless ``X-Admin-Token`` matches ``ADMIN_TOKEN``.

    An empty ``ADMIN_TOKEN`` disables the admin surface entirely.
    """
    expected = config.admin_token
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin endpoints are disabled (ADMIN_TOKEN not set)",
        )
    if not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


def get_client_ip(request: Request, trusted_proxy_count: int = 1) -> str:
    """
    Client IP address, honouring proxy headers.

    X-Forwarded-For and X-Real-IP are trusted, which is only safe behind a
    trusted reverse proxy.
    """
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        # "client, proxy1, proxy2": count trusted_proxy_count hops from the right
        ips = [ip.strip() for ip in forwarded_for.split(",") if ip.strip()]
        if len(ips) > trusted_proxy_count:
            return ips[-(trusted_proxy_count + 1)]
        if ips:
            return ips[0]

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"
