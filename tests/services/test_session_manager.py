"""Tests for SessionManager - session ownership, persistence and change events."""

import pytest

from conftest import FakeAuthClient, event_names, events_named, make_session
from viiraa_connect.exceptions import AuthNetworkError, InvalidCredentialsError, NoSessionError
from viiraa_connect.models.session import AuthEvent, Session
from viiraa_connect.services.analytics import Events
from viiraa_connect.services.credential_store import MemoryCredentialStore
from viiraa_connect.services.events import SessionEvents
from viiraa_connect.services.session_manager import SessionManager


@pytest.fixture
def store():
    return MemoryCredentialStore()


@pytest.fixture
def changes():
    return []


@pytest.fixture
def manager(auth_client, store, analytics, changes):
    events = SessionEvents()
    events.subscribe(changes.append)
    return SessionManager(auth_client, store, analytics, events)


class TestRestore:
    """Tests for restore() at launch."""

    @pytest.mark.asyncio
    async def test_restore_existing_session(self, manager, auth_client, store, changes, analytics):
        auth_client.session = make_session()

        session = await manager.restore()

        assert session.user_id == "user-a"
        assert manager.is_authenticated
        assert not manager.is_loading
        assert Session.from_blob(store.fetch()) == session
        assert [c.event for c in changes] == [AuthEvent.INITIAL_SESSION]
        assert analytics.user_id == "user-a"
        assert Events.USER_SIGNED_IN not in event_names(analytics)

    @pytest.mark.asyncio
    async def test_restore_without_session(self, manager, changes):
        assert manager.is_loading

        assert await manager.restore() is None

        assert not manager.is_authenticated
        assert not manager.is_loading
        assert changes == []

    @pytest.mark.asyncio
    async def test_restore_failure_clears(self, manager, auth_client, store):
        store.save(b"stale")
        auth_client.error = AuthNetworkError()

        assert await manager.restore() is None

        assert store.fetch() is None
        assert not manager.is_loading


class TestExplicitAuth:
    """Tests for sign-in, sign-up, OAuth and sign-out."""

    @pytest.mark.asyncio
    async def test_sign_in_with_password(self, manager, auth_client, changes, analytics):
        auth_client.next_session = make_session()

        session = await manager.sign_in_with_password("a@example.com", "pw")

        assert manager.session == session
        assert changes[-1].event is AuthEvent.SIGNED_IN
        assert changes[-1].user_changed
        assert events_named(analytics, Events.USER_SIGNED_IN) == [{"method": "email"}]

    @pytest.mark.asyncio
    async def test_sign_in_failure_propagates(self, manager, auth_client, changes):
        auth_client.error = InvalidCredentialsError()
        with pytest.raises(InvalidCredentialsError):
            await manager.sign_in_with_password("a@example.com", "bad")
        assert changes == []

    @pytest.mark.asyncio
    async def test_sign_up_needing_confirmation(self, manager):
        with pytest.raises(NoSessionError):
            await manager.sign_up("a@example.com", "pw")
        assert not manager.is_authenticated

    @pytest.mark.asyncio
    async def test_sign_up_with_session(self, manager, auth_client, analytics):
        auth_client.sign_up_session = make_session()
        await manager.sign_up("a@example.com", "pw")
        assert events_named(analytics, Events.USER_SIGNED_IN) == [{"method": "email_signup"}]

    @pytest.mark.asyncio
    async def test_oauth_exchange(self, manager, auth_client, analytics):
        auth_client.next_session = make_session()
        await manager.exchange_code_for_session("code-1")
        assert events_named(analytics, Events.USER_SIGNED_IN) == [{"method": "oauth"}]

    @pytest.mark.asyncio
    async def test_sign_out(self, manager, auth_client, store, changes, analytics):
        auth_client.next_session = make_session()
        await manager.sign_in_with_password("a@example.com", "pw")

        await manager.sign_out()

        assert manager.session is None
        assert store.fetch() is None
        assert changes[-1].event is AuthEvent.SIGNED_OUT
        assert changes[-1].previous.user_id == "user-a"
        assert Events.USER_SIGNED_OUT in event_names(analytics)
        assert analytics.user_id is None

    @pytest.mark.asyncio
    async def test_sign_out_clears_even_when_remote_fails(self, manager, auth_client, store):
        auth_client.next_session = make_session()
        await manager.sign_in_with_password("a@example.com", "pw")
        auth_client.sign_out_error = AuthNetworkError()

        with pytest.raises(AuthNetworkError):
            await manager.sign_out()

        assert manager.session is None
        assert store.fetch() is None


class TestAuthListener:
    """Tests for handle_auth_change()."""

    @pytest.mark.asyncio
    async def test_listener_echo_is_not_republished(self, manager, auth_client, changes):
        auth_client.next_session = make_session()
        await manager.sign_in_with_password("a@example.com", "pw")

        await manager.handle_auth_change(AuthEvent.SIGNED_IN, auth_client.session)

        assert [c.event for c in changes] == [AuthEvent.SIGNED_IN]

    @pytest.mark.asyncio
    async def test_token_refresh_replaces_session(self, manager, auth_client, changes, store):
        auth_client.next_session = make_session()
        await manager.sign_in_with_password("a@example.com", "pw")
        auth_client.session = make_session(access_token="access-2")

        await manager.handle_auth_change(AuthEvent.TOKEN_REFRESHED)

        assert manager.session.access_token == "access-2"
        assert changes[-1].event is AuthEvent.TOKEN_REFRESHED
        assert not changes[-1].user_changed
        assert Session.from_blob(store.fetch()).access_token == "access-2"

    @pytest.mark.asyncio
    async def test_falls_back_to_passed_session(self, manager, auth_client):
        auth_client.session = None
        await manager.handle_auth_change(AuthEvent.SIGNED_IN, make_session("user-b"))
        assert manager.session.user_id == "user-b"

    @pytest.mark.asyncio
    async def test_remote_sign_out(self, manager, auth_client, changes, analytics):
        auth_client.next_session = make_session()
        await manager.sign_in_with_password("a@example.com", "pw")

        await manager.handle_auth_change(AuthEvent.SIGNED_OUT)

        assert manager.session is None
        assert changes[-1].event is AuthEvent.SIGNED_OUT
        assert Events.USER_SIGNED_OUT not in event_names(analytics)

    @pytest.mark.asyncio
    async def test_user_updated_is_ignored(self, manager, changes):
        await manager.handle_auth_change(AuthEvent.USER_UPDATED, make_session())
        assert changes == []
        assert manager.session is None


class TestPersistence:
    """Tests for credential store interaction."""

    @pytest.mark.asyncio
    async def test_store_failure_does_not_block_sign_in(self, analytics):
        class BrokenStore(MemoryCredentialStore):
            def save(self, blob):
                raise OSError("disk full")

        auth_client = FakeAuthClient()
        auth_client.next_session = make_session()
        manager = SessionManager(auth_client, BrokenStore(), analytics)

        await manager.sign_in_with_password("a@example.com", "pw")

        assert manager.is_authenticated
