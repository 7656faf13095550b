"""
Local session ownership.

The SessionManager holds the current auth session, persists it in the
credential store, and publishes every change on SessionEvents so the
connector and the web bridge can react.
"""

import logging
from typing import Optional

from ..exceptions import CredentialEncryptionError, NoSessionError, ViiraaConnectError
from ..models.session import AuthEvent, LocalUser, Session, SessionChange
from .analytics import Events
from .base import AnalyticsCollector, BaseService, CredentialStore, RemoteAuthClient
from .events import SessionEvents


class SessionManager(BaseService):
    """
    Owns the current Session.

    Usage:
        manager = SessionManager(auth_client, credential_store, analytics)
        manager.events.subscribe(on_change)
        await manager.restore()
        await manager.sign_in_with_password(email, password)
    """

    def __init__(
        self,
        auth_client: RemoteAuthClient,
        credential_store: CredentialStore,
        analytics: Optional[AnalyticsCollector] = None,
        events: Optional[SessionEvents] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(analytics=analytics, logger=logger)
        self._auth = auth_client
        self._store = credential_store
        self._events = events or SessionEvents()
        self._session: Optional[Session] = None
        self._is_loading = True

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def events(self) -> SessionEvents:
        return self._events

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def user(self) -> Optional[LocalUser]:
        return self._session.user if self._session else None

    @property
    def is_authenticated(self) -> bool:
        return self._session is not None

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    # ------------------------------------------------------------------
    # Launch
    # ------------------------------------------------------------------

    async def restore(self) -> Optional[Session]:
        """
        Adopt the session the remote client already holds (app launch).

        Any failure is treated as "no session"; the user signs in again.
        """
        try:
            session = await self._auth.get_session()
            if session is None:
                self.logger.info("No existing session; sign-in required")
                await self._clear(AuthEvent.SIGNED_OUT, explicit=False)
            else:
                await self._adopt(session, AuthEvent.INITIAL_SESSION)
        except Exception as e:
            self.logger.warning(f"Session restore failed, clearing: {e}")
            await self._clear(AuthEvent.SIGNED_OUT, explicit=False)
        finally:
            self._is_loading = False
        return self._session

    # ------------------------------------------------------------------
    # Explicit auth
    # ------------------------------------------------------------------

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        session = await self._auth.sign_in_with_password(email, password)
        await self._adopt(session, AuthEvent.SIGNED_IN, method="email")
        return session

    async def sign_up(self, email: str, password: str) -> Session:
        """
        Create an account and sign in.

        Raises:
            NoSessionError: When the account exists but needs email
                confirmation before a session is issued.
        """
        session = await self._auth.sign_up(email, password)
        if session is None:
            raise NoSessionError("Check your email to confirm your account")
        await self._adopt(session, AuthEvent.SIGNED_IN, method="email_signup")
        return session

    async def exchange_code_for_session(self, auth_code: str) -> Session:
        """Complete an OAuth redirect."""
        session = await self._auth.exchange_code_for_session(auth_code)
        await self._adopt(session, AuthEvent.SIGNED_IN, method="oauth")
        return session

    async def sign_out(self) -> None:
        """Sign out remotely and always clear local state."""
        try:
            await self._auth.sign_out()
        finally:
            await self._clear(AuthEvent.SIGNED_OUT, explicit=True)

    # ------------------------------------------------------------------
    # Remote auth listener
    # ------------------------------------------------------------------

    async def handle_auth_change(self, event: AuthEvent, session: Optional[Session] = None) -> None:
        """React to a remote auth state change."""
        if event in (AuthEvent.SIGNED_IN, AuthEvent.TOKEN_REFRESHED, AuthEvent.INITIAL_SESSION):
            try:
                current = await self._auth.get_session()
            except ViiraaConnectError as e:
                self.logger.warning(f"Could not re-read session after {event.value}: {e}")
                current = None
            current = current or session
            if current is None:
                self.logger.debug(f"{event.value} without a session; ignoring")
                return
            await self._adopt(current, event)
        elif event is AuthEvent.SIGNED_OUT:
            await self._clear(event, explicit=False)
        else:
            self.logger.debug(f"Ignoring auth event {event.value}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _persist(self, session: Session) -> None:
        try:
            self._store.save(session.to_blob())
        except (CredentialEncryptionError, OSError) as e:
            self.logger.error(f"Failed to persist session: {e}")

    async def _adopt(self, session: Session, event: AuthEvent, method: Optional[str] = None) -> None:
        previous = self._session
        if method is None and previous == session:
            # Listener echo of a session already adopted
            return

        self._persist(session)
        self._session = session

        if self.analytics is not None and (previous is None or previous.user_id != session.user_id):
            try:
                self.analytics.identify(session.user_id, {"email": session.user.email})
            except Exception as e:
                self.logger.warning(f"Analytics identify failed: {e}")
        if method is not None:
            self._track(Events.USER_SIGNED_IN, {"method": method})

        self.logger.info(f"Session adopted ({event.value}) for user {session.user_id}")
        await self._events.publish(SessionChange(event=event, session=session, previous=previous))

    async def _clear(self, event: AuthEvent, explicit: bool) -> None:
        previous = self._session
        try:
            self._store.clear()
        except OSError as e:
            self.logger.error(f"Failed to clear stored session: {e}")
        self._session = None

        if previous is None and not explicit:
            return

        if self.analytics is not None:
            try:
                self.analytics.reset()
            except Exception as e:
                self.logger.warning(f"Analytics reset failed: {e}")
        if explicit:
            self._track(Events.USER_SIGNED_OUT)

        self.logger.info("Session cleared")
        await self._events.publish(SessionChange(event=event, session=None, previous=previous))
