"""Supabase auth adapter.

Wraps the synchronous supabase-py client behind the async RemoteAuthClient
interface. Blocking calls run in a worker thread; auth state callbacks are
marshalled back onto the event loop that subscribed.
"""

import asyncio
import inspect
import logging
from typing import Any, Optional, Set

import httpx
from supabase import AuthApiError, AuthError as SupabaseAuthError, Client, create_client

from ..exceptions import (
    AuthError,
    AuthNetworkError,
    InvalidCredentialsError,
    NoSessionError,
)
from ..models.session import AuthEvent, LocalUser, Session

logger = logging.getLogger(__name__)


def to_session(raw: Any) -> Optional[Session]:
    """Convert a supabase-py session object into a Session."""
    if raw is None or not getattr(raw, "access_token", None):
        return None
    user = raw.user
    return Session(
        access_token=raw.access_token,
        refresh_token=raw.refresh_token or "",
        expires_in=int(raw.expires_in or 3600),
        token_type=raw.token_type or "bearer",
        user=LocalUser(
            id=str(user.id),
            email=user.email or "",
            created_at=getattr(user, "created_at", None),
            last_sign_in_at=getattr(user, "last_sign_in_at", None),
        ),
    )


class SupabaseAuthClient:
    """
    Remote auth client backed by Supabase.

    Usage:
        auth = SupabaseAuthClient(url, anon_key)
        session = await auth.sign_in_with_password(email, password)
    """

    def __init__(
        self,
        url: str,
        key: str,
        client: Optional[Client] = None,
    ):
        if client is None and not (url and key):
            raise ValueError("Supabase URL and anon key are required")
        self.url = url
        self._client = client or create_client(url, key)
        self._pending: Set[asyncio.Task] = set()

    @property
    def client(self) -> Client:
        return self._client

    async def _call(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except AuthApiError as e:
            if getattr(e, "status", None) in (400, 401, 422):
                raise InvalidCredentialsError(str(e) or "Invalid email or password") from e
            raise AuthError(f"Auth request failed: {e}") from e
        except SupabaseAuthError as e:
            raise AuthError(f"Auth request failed: {e}") from e
        except httpx.HTTPError as e:
            raise AuthNetworkError(f"Network connection error: {e}") from e

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        response = await self._call(
            self._client.auth.sign_in_with_password,
            {"email": email, "password": password},
        )
        session = to_session(response.session)
        if session is None:
            raise NoSessionError()
        return session

    async def sign_up(self, email: str, password: str) -> Optional[Session]:
        response = await self._call(
            self._client.auth.sign_up,
            {"email": email, "password": password},
        )
        return to_session(response.session)

    async def exchange_code_for_session(self, auth_code: str) -> Session:
        response = await self._call(
            self._client.auth.exchange_code_for_session,
            {"auth_code": auth_code},
        )
        session = to_session(response.session)
        if session is None:
            raise NoSessionError()
        return session

    async def get_session(self) -> Optional[Session]:
        return to_session(await self._call(self._client.auth.get_session))

    async def sign_out(self) -> None:
        await self._call(self._client.auth.sign_out)

    def subscribe(self, listener):
        """
        Forward Supabase auth state changes to ``listener(event, session)``.

        Must be called on the event loop; callbacks fired from other threads
        are scheduled onto it. Unknown vendor events are dropped.
        """
        loop = asyncio.get_running_loop()

        def dispatch(event: AuthEvent, session: Optional[Session]) -> None:
            result = listener(event, session)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

        def on_change(vendor_event, vendor_session) -> None:
            event = AuthEvent.parse(vendor_event)
            if event is None:
                logger.debug(f"Ignoring auth event {vendor_event}")
                return
            loop.call_soon_threadsafe(dispatch, event, to_session(vendor_session))

        subscription = self._client.auth.on_auth_state_change(on_change)
        return subscription.unsubscribe
