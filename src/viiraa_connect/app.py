"""
Composition root.

Builds every service once, wires session changes to the connector and the
web bridge, and owns startup and shutdown. Host applications supply the
device collaborators (SDK, health store, browser) and may override any
infrastructure piece.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx

from .config import Settings, get_settings
from .exceptions import ViiraaConnectError
from .integrations.supabase_auth import SupabaseAuthClient
from .models.session import AuthEvent, SessionChange
from .services.analytics import LoggingAnalytics
from .services.base import (
    AnalyticsCollector,
    CredentialStore,
    ExternalBrowser,
    HealthStore,
    RemoteAuthClient,
    VitalSDK,
)
from .services.credential_store import FernetCredentialStore, MemoryCredentialStore
from .services.encryption import CredentialEncryption
from .services.events import SessionEvents
from .services.health_service import HealthDataService
from .services.junction_connector import ThirdPartyConnector
from .services.session_bridge import SessionBridge
from .services.session_manager import SessionManager
from .services.sync_scheduler import SyncTimer
from .utils.error_log import ErrorLog
from .utils.logging_config import configure_logging

logger = logging.getLogger(__name__)


CONNECT_EVENTS = (AuthEvent.SIGNED_IN, AuthEvent.INITIAL_SESSION)


@dataclass
class Application:
    """Every long-lived service, constructed once."""

    settings: Settings
    auth_client: RemoteAuthClient
    credential_store: CredentialStore
    analytics: AnalyticsCollector
    events: SessionEvents
    session_manager: SessionManager
    health: HealthDataService
    connector: ThirdPartyConnector
    bridge: SessionBridge
    sync_timer: SyncTimer
    error_log: ErrorLog
    _unsubscribe_auth: Optional[Callable[[], None]] = field(default=None, repr=False)

    @property
    def junction_active(self) -> bool:
        return self.settings.junction_enabled and self.connector.is_configured

    async def start(self) -> None:
        """Configure logging and Junction, listen for auth changes, restore the session."""
        configure_logging(self.settings, self.error_log)

        if self.settings.junction_enabled:
            try:
                self.connector.configure()
            except ViiraaConnectError as e:
                logger.warning(f"Junction disabled for this run: {e}")
        else:
            logger.info("Junction integration disabled in configuration")

        self._unsubscribe_auth = self.auth_client.subscribe(self.session_manager.handle_auth_change)
        await self.session_manager.restore()

    async def shutdown(self) -> None:
        """Stop sync, the scheduler and remote listeners. In-flight syncs finish on their own."""
        if self._unsubscribe_auth is not None:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None
        self.connector.stop_automatic_sync()
        self.sync_timer.shutdown()
        if self.connector.api is not None:
            await self.connector.api.close()
        logger.info("Application shut down")

    async def on_session_change(self, change: SessionChange) -> None:
        await self.bridge.on_session_changed(change.session)

        if change.event is AuthEvent.SIGNED_OUT:
            await self.connector.disconnect(sign_out_sdk=True)
            return

        if change.event not in CONNECT_EVENTS or change.session is None:
            return
        if not self.junction_active:
            return

        try:
            await self.connector.connect(change.session.user_id)
        except ViiraaConnectError as e:
            logger.warning(f"Junction connect after {change.event.value} failed: {e}")
            return
        self.connector.start_automatic_sync()


def _default_credential_store(settings: Settings) -> CredentialStore:
    if not settings.credential_encryption_key:
        logger.warning("No credential encryption key configured; session kept in memory only")
        return MemoryCredentialStore()
    return FernetCredentialStore(
        settings.credential_store_path,
        CredentialEncryption(settings.credential_encryption_key),
    )


def build_application(
    settings: Optional[Settings] = None,
    *,
    sdk: VitalSDK,
    health_store: HealthStore,
    browser: ExternalBrowser,
    auth_client: Optional[RemoteAuthClient] = None,
    credential_store: Optional[CredentialStore] = None,
    analytics: Optional[AnalyticsCollector] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    sync_timer: Optional[SyncTimer] = None,
    error_log: Optional[ErrorLog] = None,
) -> Application:
    """Construct and wire the application services."""
    settings = settings or get_settings()
    auth_client = auth_client or SupabaseAuthClient(settings.supabase_url, settings.supabase_anon_key)
    credential_store = credential_store or _default_credential_store(settings)
    analytics = analytics or LoggingAnalytics()
    sync_timer = sync_timer or SyncTimer()
    error_log = error_log or ErrorLog(settings.error_log_path, settings.error_log_max_bytes)

    events = SessionEvents()
    session_manager = SessionManager(auth_client, credential_store, analytics, events)
    health = HealthDataService(health_store, analytics)
    connector = ThirdPartyConnector(
        settings,
        sdk,
        health_store,
        analytics,
        sync_timer=sync_timer,
        error_log=error_log,
        http_client=http_client,
    )
    bridge = SessionBridge(settings, analytics, session_manager.sign_out, health, browser)

    app = Application(
        settings=settings,
        auth_client=auth_client,
        credential_store=credential_store,
        analytics=analytics,
        events=events,
        session_manager=session_manager,
        health=health,
        connector=connector,
        bridge=bridge,
        sync_timer=sync_timer,
        error_log=error_log,
    )
    events.subscribe(app.on_session_change)
    return app
