"""
Residential egress proxy addressing.

The provider routes by country through the username:
``http://customer-{user}-cc-{cc}:{password}@{host}:{port}``. A credential's
``region_code`` picks the country so each upstream account keeps a stable
egress region.
"""

from __future__ import annotations

from urllib.parse import quote

import httpx

from src.config import Config, config


def residential_proxy_url(region_code: str | None = "us", cfg: Config | None = None) -> str | None:
    """Proxy URL for *region_code*, or ``None`` when no residential account is configured."""
    cfg = cfg or config
    if not cfg.residential_proxy_enabled:
        return None
    cc = (region_code or "us").strip().lower() or "us"
    username = quote(f"customer-{cfg.residential_proxy_username}-cc-{cc}", safe="")
    password = quote(cfg.residential_proxy_password, safe="")
    return (
        f"http://{username}:{password}"
        f"@{cfg.residential_proxy_host}:{cfg.residential_proxy_port}"
    )


def make_proxy_param(proxy_url: str | None) -> str | httpx.Proxy | None:
    """httpx ``proxy=`` argument for *proxy_url* (``None`` = direct connection)."""
    if not proxy_url:
        return None
    return httpx.Proxy(url=proxy_url)
