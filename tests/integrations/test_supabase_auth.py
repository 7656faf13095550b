"""Tests for the Supabase auth adapter."""

import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest

from viiraa_connect.exceptions import AuthNetworkError, NoSessionError
from viiraa_connect.integrations.supabase_auth import SupabaseAuthClient, to_session
from viiraa_connect.models.session import AuthEvent


def vendor_session(user_id="user-a", access_token="access-1"):
    return SimpleNamespace(
        access_token=access_token,
        refresh_token="refresh-1",
        expires_in=3600,
        token_type="bearer",
        user=SimpleNamespace(id=user_id, email="a@example.com"),
    )


@pytest.fixture
def supabase_client():
    return MagicMock()


@pytest.fixture
def auth(supabase_client):
    return SupabaseAuthClient("https://abcdefgh.supabase.co", "anon", client=supabase_client)


class TestToSession:
    """Tests for vendor session conversion."""

    def test_converts_fields(self):
        session = to_session(vendor_session())
        assert session.user_id == "user-a"
        assert session.access_token == "access-1"
        assert session.user.email == "a@example.com"

    def test_none_and_tokenless(self):
        assert to_session(None) is None
        assert to_session(SimpleNamespace(access_token=None)) is None

    def test_missing_expiry_defaults_to_an_hour(self):
        raw = vendor_session()
        raw.expires_in = None
        assert to_session(raw).expires_in == 3600


class TestSupabaseAuthClient:
    """Tests for the async wrappers."""

    def test_requires_url_and_key(self):
        with pytest.raises(ValueError):
            SupabaseAuthClient("", "")

    @pytest.mark.asyncio
    async def test_sign_in_with_password(self, auth, supabase_client):
        supabase_client.auth.sign_in_with_password.return_value = SimpleNamespace(session=vendor_session())

        session = await auth.sign_in_with_password("a@example.com", "pw")

        assert session.user_id == "user-a"
        supabase_client.auth.sign_in_with_password.assert_called_once_with(
            {"email": "a@example.com", "password": "pw"}
        )

    @pytest.mark.asyncio
    async def test_sign_in_without_session_raises(self, auth, supabase_client):
        supabase_client.auth.sign_in_with_password.return_value = SimpleNamespace(session=None)
        with pytest.raises(NoSessionError):
            await auth.sign_in_with_password("a@example.com", "pw")

    @pytest.mark.asyncio
    async def test_sign_up_pending_confirmation(self, auth, supabase_client):
        supabase_client.auth.sign_up.return_value = SimpleNamespace(session=None)
        assert await auth.sign_up("a@example.com", "pw") is None

    @pytest.mark.asyncio
    async def test_exchange_code(self, auth, supabase_client):
        supabase_client.auth.exchange_code_for_session.return_value = SimpleNamespace(session=vendor_session())
        session = await auth.exchange_code_for_session("code-123")
        assert session.user_id == "user-a"
        supabase_client.auth.exchange_code_for_session.assert_called_once_with({"auth_code": "code-123"})

    @pytest.mark.asyncio
    async def test_network_error_is_mapped(self, auth, supabase_client):
        supabase_client.auth.get_session.side_effect = httpx.ConnectError("offline")
        with pytest.raises(AuthNetworkError):
            await auth.get_session()

    @pytest.mark.asyncio
    async def test_subscribe_marshals_onto_loop(self, auth, supabase_client):
        subscription = MagicMock()
        supabase_client.auth.on_auth_state_change.return_value = subscription
        received = []

        async def listener(event, session):
            received.append((event, session.user_id if session else None))

        unsubscribe = auth.subscribe(listener)
        on_change = supabase_client.auth.on_auth_state_change.call_args[0][0]

        on_change("SIGNED_IN", vendor_session())
        on_change("PASSWORD_RECOVERY", None)
        for _ in range(3):
            await asyncio.sleep(0)

        assert received == [(AuthEvent.SIGNED_IN, "user-a")]

        unsubscribe()
        subscription.unsubscribe.assert_called_once()
