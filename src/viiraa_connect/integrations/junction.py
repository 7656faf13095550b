"""
Junction (formerly Vital) REST integration.

Implements the handful of calls the connector makes directly:
- User creation keyed by the ViiRaa user id, with "already exists" decoding
- Resolve-by-key fallback lookup
- Short-lived sign-in tokens for the device SDK
- Demo (sandbox) provider connections
- Connected provider listing and glucose timeseries for sync verification

Everything else (uploading device samples) is done by the device SDK.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from ..models.junction import (
    AlreadyExists,
    Created,
    CreateUserResult,
    Failed,
    JunctionEnvironment,
    ProviderConnectionResult,
    RemoteGlucoseReading,
)
from .base import (
    AuthenticationError,
    IntegrationClient,
    IntegrationError,
    RateLimitError,
)

logger = logging.getLogger(__name__)


JUNCTION_API_KEY_HEADER = "x-vital-api-key"


def _json_or_none(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def decode_create_user_response(status_code: int, body: Any) -> CreateUserResult:
    """
    Decode a ``POST /user/`` response into a tagged result.

    Shapes, checked in order:
        200/201 ``{"user_id": str, "client_user_id": str}``      -> Created
        400/409 ``{"detail": {"user_id": str, "created_on": ...}}`` -> AlreadyExists
        anything else                                            -> Failed
    """
    if status_code in (200, 201):
        if isinstance(body, dict) and isinstance(body.get("user_id"), str) and body["user_id"]:
            return Created(remote_user_id=body["user_id"])
        return Failed(reason="Created response without user_id", status_code=status_code)

    if status_code in (400, 409) and isinstance(body, dict):
        detail = body.get("detail")
        if isinstance(detail, dict) and isinstance(detail.get("user_id"), str) and detail["user_id"]:
            return AlreadyExists(
                remote_user_id=detail["user_id"],
                created_on=detail.get("created_on"),
            )

    if isinstance(body, dict):
        detail = body.get("detail", body)
        if isinstance(detail, dict):
            reason = detail.get("error_message") or detail.get("error_type") or str(detail)
        else:
            reason = str(detail)
    else:
        reason = f"HTTP {status_code}"
    return Failed(reason=reason, status_code=status_code)


class JunctionAPIClient(IntegrationClient):
    """
    Async client for the Junction REST API (v2).

    The base URL is chosen from the API key prefix; the key travels in the
    ``x-vital-api-key`` header. Calls are never retried here: the connector
    decides what is recoverable.

    Usage:
        async with JunctionAPIClient(api_key="sk_us_...") as client:
            result = await client.create_user("viiraa-user-id")
    """

    provider = "junction"
    api_key_header = JUNCTION_API_KEY_HEADER

    def __init__(
        self,
        api_key: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        base_url: Optional[str] = None,
    ):
        self.environment = JunctionEnvironment.from_api_key(api_key)
        super().__init__(
            api_key=api_key,
            base_url=base_url or self.environment.base_url,
            http_client=http_client,
            timeout=timeout,
        )

    def get_auth_headers(self) -> Dict[str, str]:
        headers = super().get_auth_headers()
        headers["Accept"] = "application/json"
        return headers

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        Send a request and return the raw response.

        Raises:
            IntegrationError: On transport failures (code "network")
        """
        url = f"{self.base_url}{endpoint}"
        client = await self._get_client()
        try:
            return await client.request(
                method,
                url,
                headers=self.get_auth_headers(),
                params=params,
                json=json_data,
            )
        except httpx.HTTPError as e:
            raise IntegrationError(
                f"Junction request failed: {method} {endpoint}: {e}",
                self.provider,
                "network",
            ) from e

    def _raise_for_auth_or_rate_limit(self, response: httpx.Response) -> None:
        if response.status_code in (401, 403):
            raise AuthenticationError(
                "Junction rejected the API key",
                self.provider,
                "auth",
                response.status_code,
            )
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                "Junction rate limit exceeded. Please wait before retrying.",
                self.provider,
                int(retry_after) if retry_after and retry_after.isdigit() else None,
            )

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Make an API request and return the decoded JSON body.

        Raises:
            AuthenticationError: If the API key is rejected
            RateLimitError: If rate limited
            IntegrationError: For transport and other API errors
        """
        response = await self._send(method, endpoint, params=params, json_data=json_data)
        self._raise_for_auth_or_rate_limit(response)

        if response.status_code in (200, 201):
            return _json_or_none(response)
        if response.status_code == 204:
            return {}

        body = _json_or_none(response)
        error_msg = body.get("detail", body) if isinstance(body, dict) else (response.text or "")
        raise IntegrationError(
            f"Junction API error: {error_msg or f'HTTP {response.status_code}'}",
            self.provider,
            str(response.status_code),
            response.status_code,
        )

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def create_user(self, client_user_id: str) -> CreateUserResult:
        """
        Create a Junction user keyed by ``client_user_id``.

        Returns:
            Created, AlreadyExists, or Failed. Only auth, rate-limit and
            transport failures raise.
        """
        response = await self._send("POST", "/user/", json_data={"client_user_id": client_user_id})
        self._raise_for_auth_or_rate_limit(response)
        result = decode_create_user_response(response.status_code, _json_or_none(response))
        logger.debug(f"create_user({client_user_id}) -> {type(result).__name__} (HTTP {response.status_code})")
        return result

    async def resolve_user(self, client_user_id: str) -> str:
        """Look up the Junction user id for an existing client user id."""
        data = await self._request("GET", f"/user/resolve/{client_user_id}")
        user_id = data.get("user_id") if isinstance(data, dict) else None
        if not user_id:
            raise IntegrationError(
                f"Resolve response for {client_user_id} has no user_id",
                self.provider,
                "invalid_response",
            )
        return user_id

    async def create_sign_in_token(self, user_id: str) -> str:
        """Issue a short-lived token that signs the device SDK in as ``user_id``."""
        data = await self._request("POST", f"/user/{user_id}/sign_in_token")
        token = data.get("sign_in_token") if isinstance(data, dict) else None
        if not token:
            raise IntegrationError(
                "Sign-in token response has no sign_in_token",
                self.provider,
                "invalid_response",
            )
        return token

    async def delete_user(self, user_id: str) -> None:
        await self._request("DELETE", f"/user/{user_id}")

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    async def create_demo_connection(self, user_id: str, provider: str) -> ProviderConnectionResult:
        """
        Connect a sandbox demo provider to ``user_id``.

        A 400 whose body says the connection already exists counts as connected.
        """
        response = await self._send(
            "POST",
            "/link/connect/demo",
            json_data={"user_id": user_id, "provider": provider},
        )
        self._raise_for_auth_or_rate_limit(response)

        if response.status_code in (200, 201):
            return ProviderConnectionResult.CONNECTED
        if response.status_code in (400, 409) and "already" in response.text.lower():
            return ProviderConnectionResult.ALREADY_CONNECTED

        logger.warning(
            f"Demo connection {provider} for {user_id} failed: "
            f"HTTP {response.status_code} {response.text[:200]}"
        )
        return ProviderConnectionResult.FAILED

    async def get_connected_providers(self, user_id: str) -> List[str]:
        """Slugs of providers connected to ``user_id``."""
        data = await self._request("GET", f"/user/providers/{user_id}")
        providers = data.get("providers", []) if isinstance(data, dict) else []
        return [p["slug"] for p in providers if isinstance(p, dict) and p.get("slug")]

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    async def get_glucose(
        self,
        user_id: str,
        start_date: datetime,
        end_date: Optional[datetime] = None,
    ) -> List[RemoteGlucoseReading]:
        """Glucose timeseries stored for ``user_id`` in the window."""
        params = {"start_date": start_date.isoformat()}
        if end_date:
            params["end_date"] = end_date.isoformat()
        data = await self._request("GET", f"/timeseries/{user_id}/glucose", params=params)
        if isinstance(data, dict):
            data = data.get("data", [])
        return [RemoteGlucoseReading.from_api_response(item) for item in data or []]

    async def ping(self) -> bool:
        """True when the API answers and accepts the key."""
        try:
            await self._request("GET", "/providers")
            return True
        except IntegrationError as e:
            logger.warning(f"Junction ping failed: {e}")
            return False
