"""Shared HTTP client pool for capability connections.

Manages :class:`httpx.AsyncClient` instances keyed by provider name,
enabling TCP connection reuse across the record store and model providers.
Lifecycle is tied to the FastAPI application lifespan.
"""

import httpx


class HttpClientPool:
    """Manages shared ``httpx.AsyncClient`` instances per provider."""

    def __init__(self) -> None:
        self._clients: dict[str, httpx.AsyncClient] = {}

    def get(
        self,
        provider: str,
        *,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 60.0,
        max_connections: int = 100,
        max_keepalive: int = 20,
        proxy_url: str | None = None,
    ) -> httpx.AsyncClient:
        """Get or create a shared HTTP client for *provider*.

        The client is created lazily on first access and reused thereafter;
        options passed on later calls are ignored.
        """
        if provider not in self._clients:
            self._clients[provider] = httpx.AsyncClient(
                base_url=base_url or "",
                headers=headers,
                timeout=httpx.Timeout(timeout),
                limits=httpx.Limits(
                    max_connections=max_connections,
                    max_keepalive_connections=max_keepalive,
                ),
                proxy=proxy_url,
            )
        return self._clients[provider]

    @property
    def providers(self) -> list[str]:
        """Names of providers with an open client."""
        return sorted(self._clients)

    async def close_all(self) -> None:
        """Close all managed HTTP clients.  Call during app shutdown."""
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()
