"""
Base classes for external integrations.

Provides the shared error hierarchy and HTTP client lifecycle for
API-key authenticated vendor clients.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

import httpx


class IntegrationError(Exception):
    """Base exception for integration errors."""

    def __init__(
        self,
        message: str,
        provider: str = "",
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.provider = provider
        self.code = code
        self.status_code = status_code
        super().__init__(message)


class RateLimitError(IntegrationError):
    """Rate limit exceeded."""

    def __init__(
        self,
        message: str,
        provider: str,
        retry_after: Optional[int] = None,
    ):
        self.retry_after = retry_after
        super().__init__(message, provider, "rate_limit", 429)


class AuthenticationError(IntegrationError):
    """API key rejected."""
    pass


class IntegrationClient(ABC):
    """
    Abstract base class for API-key integration clients.

    Subclasses set ``provider`` and build requests against ``base_url``.
    An ``httpx.AsyncClient`` may be injected (tests pass one backed by
    ``httpx.MockTransport``); otherwise one is created lazily and owned by
    this client.
    """

    provider: str = "base"
    api_key_header: str = "Authorization"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def is_authenticated(self) -> bool:
        """Check if client has an API key."""
        return bool(self.api_key)

    def get_auth_headers(self) -> Dict[str, str]:
        """Get authorization headers for API requests."""
        return {self.api_key_header: self.api_key}

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client and self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "IntegrationClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @abstractmethod
    async def ping(self) -> bool:
        """Cheap reachability/auth check for diagnostics."""
        pass
