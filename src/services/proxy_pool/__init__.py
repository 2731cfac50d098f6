"""Outbound proxy pool and residential egress addressing."""

from src.services.proxy_pool.manager import ProxyPoolManager
from src.services.proxy_pool.repository import ProxyRepository
from src.services.proxy_pool.residential import make_proxy_param, residential_proxy_url

__all__ = [
    "ProxyPoolManager",
    "ProxyRepository",
    "make_proxy_param",
    "residential_proxy_url",
]
