"""
Shared HTTP client pool.

Reuses httpx.AsyncClient instances instead of creating one per request.
"""

from typing import Any, Dict, Optional

import httpx

from src.core.logger import logger


class HTTPClientPool:
    """
    Process-wide pool of reusable httpx.AsyncClient instances
    """

    _default_client: Optional[httpx.AsyncClient] = None
    _clients: Dict[str, httpx.AsyncClient] = {}

    @classmethod
    def get_default_client(cls) -> httpx.AsyncClient:
        """Client for direct (non-proxied) upstream calls."""
        if cls._default_client is None:
            cls._default_client = httpx.AsyncClient(
                verify=True,
                timeout=httpx.Timeout(
                    connect=10.0,
                    read=60.0,
                    write=30.0,
                    pool=5.0,
                ),
                limits=httpx.Limits(
                    max_connections=100,
                    max_keepalive_connections=20,
                    keepalive_expiry=30.0,
                ),
                follow_redirects=True,
            )
            logger.info("Shared HTTP client initialised")
        return cls._default_client

    @classmethod
    def get_client(cls, name: str, **kwargs: Any) -> httpx.AsyncClient:
        """
        Get or create a named client.

        Used when a call needs its own configuration, e.g. one client per
        egress proxy so connections are not mixed across regions.

        Args:
            name: client identifier
            **kwargs: httpx.AsyncClient options
        """
        if name not in cls._clients:
            options: dict[str, Any] = {
                "verify": True,
                "timeout": httpx.Timeout(10.0, read=60.0),
                "follow_redirects": True,
            }
            options.update(kwargs)

            cls._clients[name] = httpx.AsyncClient(**options)
            logger.debug("Created named HTTP client: {}", name)

        return cls._clients[name]

    @classmethod
    async def close_all(cls) -> None:
        if cls._default_client is not None:
            await cls._default_client.aclose()
            cls._default_client = None

        for name, client in cls._clients.items():
            await client.aclose()
            logger.debug("Closed named HTTP client: {}", name)

        cls._clients.clear()
        logger.info("All HTTP clients closed")


async def close_http_clients() -> None:
    await HTTPClientPool.close_all()
