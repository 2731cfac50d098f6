"""Proxy pool admin API routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from src.api.admin.pool.schemas import PauseRequest
from src.api.dependencies import get_proxy_manager, require_admin
from src.services.proxy_pool.manager import ProxyPoolManager

router = APIRouter(
    prefix="/api/admin/proxies",
    tags=["Admin - Proxies"],
    dependencies=[Depends(require_admin)],
)


@router.get("")
async def list_proxies(
    proxies: ProxyPoolManager = Depends(get_proxy_manager),
) -> dict[str, Any]:
    items = await proxies.list_proxies()
    stats = await proxies.stats()
    return {
        "success": True,
        "proxies": [p.to_public_dict() for p in items],
        "stats": stats.to_dict(),
    }


@router.post("")
async def add_proxy(
    body: dict[str, Any] = Body(...),
    proxies: ProxyPoolManager = Depends(get_proxy_manager),
) -> dict[str, Any]:
    proxy = await proxies.add(body)
    return {"success": True, "proxy": proxy.to_public_dict()}


@router.post("/{proxy_id}/pause")
async def pause_proxy(
    proxy_id: str,
    body: PauseRequest | None = None,
    proxies: ProxyPoolManager = Depends(get_proxy_manager),
) -> dict[str, Any]:
    reason = (body.reason if body else None) or "Manual pause via admin API"
    proxy = await proxies.pause(proxy_id, reason)
    return {"success": True, "proxy": proxy.to_public_dict()}


@router.post("/{proxy_id}/resume")
async def resume_proxy(
    proxy_id: str, proxies: ProxyPoolManager = Depends(get_proxy_manager)
) -> dict[str, Any]:
    proxy = await proxies.resume(proxy_id)
    return {"success": True, "proxy": proxy.to_public_dict()}


@router.post("/{proxy_id}/reset-health")
async def reset_proxy_health(
    proxy_id: str, proxies: ProxyPoolManager = Depends(get_proxy_manager)
) -> dict[str, Any]:
    proxy = await proxies.reset_health(proxy_id)
    return {"success": True, "proxy": proxy.to_public_dict()}


@router.delete("/{proxy_id}")
async def delete_proxy(
    proxy_id: str, proxies: ProxyPoolManager = Depends(get_proxy_manager)
) -> dict[str, Any]:
    await proxies.delete(proxy_id)
    return {"success": True}
