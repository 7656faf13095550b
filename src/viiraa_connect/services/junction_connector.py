"""
Junction connector.

Links the signed-in ViiRaa user to a Junction user, signs the device SDK in,
registers the required data providers, and keeps device data flowing with
a recurring sync. Also provides read-only verification and diagnostics.

Lifecycle per local user session:
    DISCONNECTED -> LINKING -> PERMISSIONS_PENDING -> CONNECTED
Any linking failure returns to DISCONNECTED. A failed sync leaves the
connection in place; the user retries without re-linking.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set

import httpx

from ..config import Settings
from ..exceptions import (
    ConnectorError,
    InvalidAPIKeyError,
    InvalidUserIdError,
    NetworkError,
    NotConfiguredError,
    PermissionDeniedError,
    RateLimitedError,
    SyncFailedError,
    UserNotConnectedError,
)
from ..integrations.base import AuthenticationError, IntegrationError, RateLimitError
from ..integrations.junction import JunctionAPIClient
from ..models.health import REQUIRED_READ_TYPES, VitalType
from ..models.junction import (
    AlreadyExists,
    ConnectionState,
    Created,
    DiagnosticReport,
    JunctionEnvironment,
    ProviderConnectionResult,
    RemoteAccountLink,
    RemoteGlucoseReading,
    SyncState,
    SyncStatus,
    SyncVerification,
)
from ..utils.error_log import ERROR_LOGGED, ErrorLog
from .analytics import Events
from .base import AnalyticsCollector, BaseService, HealthStore, VitalSDK
from .sync_scheduler import SyncTimer


SYNC_JOB_ID = "junction_sync"


def _relative_time(moment: datetime, now: datetime) -> str:
    seconds = int((now - moment).total_seconds())
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    if seconds < 86400:
        hours = seconds // 3600
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    days = seconds // 86400
    return f"{days} day{'s' if days != 1 else ''} ago"


class ThirdPartyConnector(BaseService):
    """
    Junction account link and sync orchestration.

    Usage:
        connector = ThirdPartyConnector(settings, sdk, health_store, analytics)
        connector.configure()
        await connector.connect(user.id)
        connector.start_automatic_sync()
    """

    def __init__(
        self,
        settings: Settings,
        sdk: VitalSDK,
        health_store: HealthStore,
        analytics: Optional[AnalyticsCollector] = None,
        api_client: Optional[JunctionAPIClient] = None,
        sync_timer: Optional[SyncTimer] = None,
        error_log: Optional[ErrorLog] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(analytics=analytics, logger=logger)
        self.settings = settings
        self._sdk = sdk
        self._health_store = health_store
        self._api = api_client
        self._timer = sync_timer
        self._error_log = error_log
        self._http_client = http_client

        self._configured = False
        self._state = ConnectionState.DISCONNECTED
        self._link: Optional[RemoteAccountLink] = None
        self.sync_state = SyncState()
        self.last_verification: Optional[SyncVerification] = None

        # client_user_id -> remote user id, kept across failed attempts
        self._remote_ids: Dict[str, str] = {}
        self._inflight_creates: Dict[str, asyncio.Task] = {}
        self._sync_tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_configured(self) -> bool:
        return self._configured

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def is_ready(self) -> bool:
        return self._configured and self.is_connected

    @property
    def link(self) -> Optional[RemoteAccountLink]:
        return self._link

    @property
    def api(self) -> Optional[JunctionAPIClient]:
        return self._api

    @property
    def environment(self) -> Optional[JunctionEnvironment]:
        return self._api.environment if self._api else None

    @property
    def pending_syncs(self) -> int:
        return len(self._sync_tasks)

    @property
    def status_message(self) -> str:
        """Human-readable status for the settings screen."""
        if not self._configured:
            return "Junction SDK not configured"
        if not self.is_connected:
            return "User not connected to Junction"
        status = self.sync_state.status
        if status is SyncStatus.IDLE:
            if self.sync_state.last_sync_at:
                now = datetime.now(timezone.utc)
                return f"Last sync: {_relative_time(self.sync_state.last_sync_at, now)}"
            return "Ready to sync"
        if status is SyncStatus.SYNCING:
            return "Syncing health data..."
        if status is SyncStatus.SUCCESS:
            return "Sync complete"
        if self.sync_state.last_error is not None:
            return str(self.sync_state.last_error)
        return "Sync failed"

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(self, api_key: Optional[str] = None) -> None:
        """
        Configure the connector with a Junction API key.

        Args:
            api_key: Overrides the configured key. The environment and
                     region follow from its prefix.

        Raises:
            InvalidAPIKeyError: If no key is available.
        """
        key = api_key or (self._api.api_key if self._api else "") or self.settings.junction_api_key
        if not key or not key.strip():
            raise InvalidAPIKeyError("Junction API key is missing")

        if self._api is None or self._api.api_key != key:
            self._api = JunctionAPIClient(
                api_key=key,
                http_client=self._http_client,
                timeout=self.settings.junction_timeout_seconds,
            )

        self._configured = True
        self.logger.info(f"Junction configured ({self._api.environment.value})")
        self._track(Events.JUNCTION_CONFIGURED, {"environment": self._api.environment.value})

    def _require_configured(self) -> JunctionAPIClient:
        if not self._configured or self._api is None:
            raise NotConfiguredError()
        return self._api

    def _require_connected(self) -> RemoteAccountLink:
        if not self.is_connected or self._link is None:
            raise UserNotConnectedError()
        return self._link

    # ------------------------------------------------------------------
    # Connect
    # ------------------------------------------------------------------

    async def connect(self, local_user_id: str) -> RemoteAccountLink:
        """
        Link ``local_user_id`` to a Junction user and sign the SDK in.

        Raises:
            NotConfiguredError: If configure() has not been called.
            InvalidUserIdError: For an empty user id.
            InvalidAPIKeyError, RateLimitedError, NetworkError: When linking fails.
        """
        api = self._require_configured()
        if not local_user_id or not local_user_id.strip():
            raise InvalidUserIdError(local_user_id)

        if self._link is not None and self._link.client_user_id != local_user_id:
            self.logger.info("Different user signing in; dropping previous Junction link")
            await self.disconnect(sign_out_sdk=True)

        self._state = ConnectionState.LINKING
        try:
            sdk_status = await self._sdk.status()
            reconnecting = sdk_status.signed_in
            if reconnecting:
                owned_id = await self._lookup_remote_user(local_user_id)
                if owned_id is None or (sdk_status.user_id and sdk_status.user_id != owned_id):
                    self.logger.warning(
                        f"Junction SDK is signed in as {sdk_status.user_id or 'an unknown user'}, "
                        f"not {local_user_id}'s account; signing it out"
                    )
                    await self._sdk.sign_out()
                    reconnecting = False

            if reconnecting:
                remote_user_id = sdk_status.user_id or owned_id
                self.logger.info(f"Junction SDK already signed in; reconnecting {remote_user_id}")
            else:
                remote_user_id = await self._create_or_resolve_user(local_user_id)
                await self._sign_in_sdk(remote_user_id)

            self._remote_ids[local_user_id] = remote_user_id
            self._state = ConnectionState.PERMISSIONS_PENDING
            link = RemoteAccountLink(
                client_user_id=local_user_id,
                remote_user_id=remote_user_id,
                signed_in=True,
            )
            await self._connect_providers(link)
        except Exception as e:
            error = self._map_error(e)
            self._state = ConnectionState.DISCONNECTED
            self._link = None
            self.sync_state.last_error = SyncFailedError(error)
            self._record_error(f"Junction connection failed for {local_user_id}: {error.message}")
            self._track(Events.JUNCTION_CONNECTION_FAILED, {
                "user_id": local_user_id,
                "error": error.message,
                "code": error.code.value,
            })
            if error is e:
                raise
            raise error from e

        self._link = link
        self._state = ConnectionState.CONNECTED
        self.sync_state.last_error = None
        event = Events.JUNCTION_USER_RECONNECTED if reconnecting else Events.JUNCTION_USER_CONNECTED
        self.logger.info(
            f"User {local_user_id} connected to Junction as {remote_user_id} "
            f"(providers: {sorted(link.connected_providers)})"
        )
        self._track(event, {"user_id": local_user_id, "junction_user_id": remote_user_id})
        return link

    async def _lookup_remote_user(self, client_user_id: str) -> Optional[str]:
        """Known Junction id for ``client_user_id`` without creating one; None if Junction has none."""
        cached = self._remote_ids.get(client_user_id)
        if cached:
            return cached
        try:
            remote_user_id = await self._require_configured().resolve_user(client_user_id)
        except IntegrationError as e:
            if e.status_code == 404:
                return None
            raise
        self._remote_ids[client_user_id] = remote_user_id
        return remote_user_id

    async def _create_or_resolve_user(self, client_user_id: str) -> str:
        """Remote id for ``client_user_id``; at most one create in flight per user."""
        cached = self._remote_ids.get(client_user_id)
        if cached:
            self.logger.debug(f"Reusing Junction user {cached} for {client_user_id}")
            return cached

        task = self._inflight_creates.get(client_user_id)
        if task is None:
            task = asyncio.ensure_future(self._create_user(client_user_id))
            self._inflight_creates[client_user_id] = task
            task.add_done_callback(lambda _t: self._inflight_creates.pop(client_user_id, None))
        return await asyncio.shield(task)

    async def _create_user(self, client_user_id: str) -> str:
        api = self._require_configured()
        result = await api.create_user(client_user_id)

        if isinstance(result, Created):
            self.logger.info(f"Created Junction user {result.remote_user_id}")
            remote_user_id = result.remote_user_id
        elif isinstance(result, AlreadyExists):
            self.logger.info(f"Junction user already exists: {result.remote_user_id}")
            remote_user_id = result.remote_user_id
        elif result.is_conflict or result.status_code in (200, 201):
            self.logger.warning(
                f"Could not read Junction user id from create response "
                f"(HTTP {result.status_code}: {result.reason}); resolving by key"
            )
            remote_user_id = await api.resolve_user(client_user_id)
        else:
            raise NetworkError(
                f"Junction user creation failed: {result.reason}",
                details={"status_code": result.status_code},
            )

        self._remote_ids[client_user_id] = remote_user_id
        return remote_user_id

    async def _sign_in_sdk(self, remote_user_id: str) -> None:
        api = self._require_configured()
        token = await api.create_sign_in_token(remote_user_id)
        await self._sdk.sign_in(token)
        self.logger.info(f"Junction SDK signed in as {remote_user_id}")

    async def _connect_providers(self, link: RemoteAccountLink) -> None:
        for provider in self.settings.required_providers:
            result = await self.connect_provider(link.remote_user_id, provider)
            if result.is_connected:
                link.connected_providers.add(provider)

    async def connect_provider(self, remote_user_id: str, provider: str) -> ProviderConnectionResult:
        """
        Register ``provider`` for ``remote_user_id``. Never raises.

        Sandbox keys use a demo connection; production keys connect the
        source from the device SDK.
        """
        api = self._require_configured()
        try:
            if api.environment.is_sandbox:
                result = await api.create_demo_connection(remote_user_id, provider)
            else:
                await self._sdk.create_connected_source(provider)
                result = ProviderConnectionResult.CONNECTED
        except Exception as e:
            if "already" in str(e).lower():
                result = ProviderConnectionResult.ALREADY_CONNECTED
            else:
                self.logger.warning(f"Provider {provider} connection failed: {e}")
                self._track(Events.JUNCTION_PROVIDER_CONNECTION_FAILED, {
                    "provider": provider,
                    "error": str(e),
                })
                return ProviderConnectionResult.FAILED

        if result is ProviderConnectionResult.FAILED:
            self._track(Events.JUNCTION_PROVIDER_CONNECTION_FAILED, {"provider": provider})
        else:
            self.logger.info(f"Provider {provider}: {result.value}")
        return result

    def _map_error(self, exc: BaseException) -> ConnectorError:
        if isinstance(exc, ConnectorError):
            return exc
        if isinstance(exc, AuthenticationError):
            return InvalidAPIKeyError(details={"status_code": exc.status_code})
        if isinstance(exc, RateLimitError):
            return RateLimitedError(exc.retry_after)
        if isinstance(exc, IntegrationError):
            return NetworkError(
                f"Junction request failed: {exc}",
                details={"status_code": exc.status_code, "code": exc.code},
            )
        return NetworkError(f"Junction SDK error: {exc}", details={"cause": type(exc).__name__})

    def _record_error(self, message: str) -> None:
        """Log at ERROR and append to the persistent error log once."""
        self.logger.error(message, extra={ERROR_LOGGED: self._error_log is not None})
        if self._error_log is not None:
            self._error_log.log(message, category="junction")

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    async def request_permissions(self) -> None:
        """
        Ask for health store read access for every type Junction syncs.

        Raises:
            NotConfiguredError: If configure() has not been called.
            PermissionDeniedError: If the store is unavailable or access is denied.
        """
        self._require_configured()
        if not self._health_store.is_available():
            raise PermissionDeniedError("Health data is not available on this device.")

        read_types = set(REQUIRED_READ_TYPES) | {VitalType.GLUCOSE}
        try:
            granted = await self._health_store.request_authorization(read_types)
        except Exception as e:
            self._record_error(f"Health authorization failed: {e}")
            raise PermissionDeniedError(details={"cause": str(e)}) from e
        if not granted:
            raise PermissionDeniedError()

        self.logger.info("Health permissions granted for Junction")
        self._track(Events.JUNCTION_HEALTHKIT_AUTHORIZED)

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    async def sync_now(self) -> None:
        """
        Trigger an upload and mark success after the grace period.

        Success means the SDK accepted the trigger; the upload itself is not
        confirmed. Use verify_sync() for that.

        Raises:
            NotConfiguredError, UserNotConnectedError: Preconditions.
            SyncFailedError: If the SDK trigger fails.
        """
        self._require_configured()
        self._require_connected()

        self.sync_state.status = SyncStatus.SYNCING
        self.sync_state.last_error = None
        try:
            await self._sdk.sync_data()
            await asyncio.sleep(self.settings.sync_grace_seconds)
        except Exception as e:
            error = SyncFailedError(e)
            self.sync_state.status = SyncStatus.FAILED
            self.sync_state.last_error = error
            self._record_error(f"Junction sync failed: {e}")
            self._track(Events.JUNCTION_SYNC_FAILED, {"error": str(e)})
            raise error from e

        now = datetime.now(timezone.utc)
        self.sync_state.status = SyncStatus.SUCCESS
        self.sync_state.last_sync_at = now
        self.logger.info("Health data sync triggered")
        self._track(Events.JUNCTION_SYNC_SUCCESS, {"sync_date": now.isoformat()})

    def start_automatic_sync(self) -> None:
        """Sync now and then every ``sync_interval_seconds``. No-op when already running."""
        if self._timer is None:
            self._timer = SyncTimer()
        if self._timer.is_scheduled(SYNC_JOB_ID):
            return
        self._timer.schedule(
            SYNC_JOB_ID,
            self._sync_tick,
            self.settings.sync_interval_seconds,
            run_immediately=True,
        )
        self.logger.info(f"Junction automatic sync started (every {self.settings.sync_interval_seconds}s)")

    def stop_automatic_sync(self) -> None:
        """Cancel the recurring job. In-flight syncs keep running."""
        if self._timer is None or not self._timer.is_scheduled(SYNC_JOB_ID):
            return
        self._timer.cancel(SYNC_JOB_ID)
        self.logger.info("Junction automatic sync stopped")

    @property
    def is_auto_syncing(self) -> bool:
        return self._timer is not None and self._timer.is_scheduled(SYNC_JOB_ID)

    async def _sync_tick(self) -> None:
        task = asyncio.ensure_future(self._run_background_sync())
        self._sync_tasks.add(task)
        task.add_done_callback(self._sync_tasks.discard)

    async def _run_background_sync(self) -> None:
        try:
            await self.sync_now()
        except ConnectorError as e:
            if self.sync_state.last_error is None:
                self.sync_state.last_error = e
            self.logger.warning(f"Scheduled sync skipped: {e}")

    async def wait_for_syncs(self) -> None:
        """Wait for background syncs spawned by ticks so far."""
        if self._sync_tasks:
            await asyncio.gather(*list(self._sync_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Disconnect
    # ------------------------------------------------------------------

    async def disconnect(self, sign_out_sdk: bool = False) -> None:
        """
        Drop the Junction link and return to DISCONNECTED.

        Args:
            sign_out_sdk: Also end the device SDK session so the next user
                          never inherits it.
        """
        had_state = (
            self._link is not None
            or self._state is not ConnectionState.DISCONNECTED
            or bool(self._remote_ids)
            or self.is_auto_syncing
        )

        self.stop_automatic_sync()
        self._link = None
        self._remote_ids.clear()
        self.sync_state.reset()
        self.last_verification = None
        self._state = ConnectionState.DISCONNECTED

        if sign_out_sdk:
            try:
                await self._sdk.sign_out()
            except Exception as e:
                self.logger.warning(f"Junction SDK sign-out failed: {e}")

        if had_state:
            self.logger.info("User disconnected from Junction")
            self._track(Events.JUNCTION_USER_DISCONNECTED)

    # ------------------------------------------------------------------
    # Cloud reads and verification
    # ------------------------------------------------------------------

    async def fetch_glucose_from_cloud(
        self,
        start: datetime,
        end: datetime,
    ) -> List[RemoteGlucoseReading]:
        """Glucose readings Junction holds for the connected user."""
        api = self._require_configured()
        link = self._require_connected()
        try:
            return await api.get_glucose(link.remote_user_id, start, end)
        except IntegrationError as e:
            raise self._map_error(e) from e

    async def _count_local_glucose(self, start: datetime, end: datetime) -> int:
        if not self._health_store.is_available():
            return 0
        try:
            return len(await self._health_store.fetch_history(VitalType.GLUCOSE, start, end))
        except Exception as e:
            self.logger.warning(f"Local glucose query failed: {e}")
            return 0

    async def verify_sync(self, window_hours: Optional[int] = None) -> bool:
        """
        True when Junction holds at least one glucose reading in the window.

        False is inconclusive: the platform delays new data by hours.
        """
        hours = window_hours or self.settings.verify_window_hours
        end = datetime.now(timezone.utc)
        start = end - timedelta(hours=hours)

        remote = await self.fetch_glucose_from_cloud(start, end)
        local_count = await self._count_local_glucose(start, end)
        self.last_verification = SyncVerification(
            window_start=start,
            window_end=end,
            local_count=local_count,
            remote_count=len(remote),
        )
        if not remote:
            self.logger.info(
                f"No remote glucose in the last {hours}h ({local_count} local); "
                f"data can take ~{self.settings.health_data_delay_hours}h to arrive"
            )
        return self.last_verification.remote_has_data

    async def run_diagnostic(self) -> DiagnosticReport:
        """Collect connection, permission and data checks into one report."""
        report = DiagnosticReport(
            generated_at=datetime.now(timezone.utc),
            configured=self._configured,
            environment=self.environment,
            connection_state=self._state,
            sdk_signed_in=False,
            client_user_id=self._link.client_user_id if self._link else None,
            remote_user_id=self._link.remote_user_id if self._link else None,
            sync_status=self.sync_state.status,
            last_sync_at=self.sync_state.last_sync_at,
            last_error=str(self.sync_state.last_error) if self.sync_state.last_error else None,
        )

        try:
            report.sdk_signed_in = (await self._sdk.status()).signed_in
        except Exception as e:
            report.errors.append(f"SDK status: {e}")

        if self._health_store.is_available():
            for vital in sorted(REQUIRED_READ_TYPES, key=lambda v: v.value):
                try:
                    report.local_permissions[vital.value] = self._health_store.authorization_status(vital)
                except Exception as e:
                    report.errors.append(f"Permission status ({vital.value}): {e}")

        if self._api is not None and report.remote_user_id:
            try:
                report.remote_providers = await self._api.get_connected_providers(report.remote_user_id)
            except IntegrationError as e:
                report.errors.append(f"Remote providers: {e}")

        end = datetime.now(timezone.utc)
        start = end - timedelta(hours=self.settings.verify_window_hours)
        report.local_reading_count = await self._count_local_glucose(start, end)

        if self.is_ready:
            try:
                report.sync_verified = await self.verify_sync()
                if self.last_verification:
                    report.remote_reading_count = self.last_verification.remote_count
            except ConnectorError as e:
                report.errors.append(f"Sync verification: {e}")

        report.checklist = self._build_checklist(report)
        self.logger.info("Junction diagnostic:\n" + report.to_text())
        self._track(Events.JUNCTION_DIAGNOSTIC_RUN, {
            "sync_verified": report.sync_verified,
            "sdk_signed_in": report.sdk_signed_in,
            "error_count": len(report.errors),
        })
        return report

    def _build_checklist(self, report: DiagnosticReport) -> List[str]:
        items = []
        native = self.settings.junction_native_provider
        if not report.configured:
            items.append("Set VIIRAA_JUNCTION_API_KEY and restart the app")
        if report.connection_state is not ConnectionState.CONNECTED:
            items.append("Sign out and sign back in to reconnect to Junction")
        elif not report.sdk_signed_in:
            items.append("Junction SDK is signed out; sign out and back in to re-link")
        if not self._health_store.is_available():
            items.append("Health data is not available on this device")
        elif not report.local_permissions.get(VitalType.GLUCOSE.value, False):
            items.append("Enable Blood Glucose read access in Settings > Health > Data Access & Devices")
        if report.remote_user_id and native not in report.remote_providers:
            items.append(f"Provider {native} is not connected remotely; reconnect to register it")
        if report.local_reading_count == 0:
            items.append(
                f"No glucose readings on this device in the last {self.settings.verify_window_hours}h; "
                "make sure the CGM app writes to Health"
            )
        elif report.connection_state is ConnectionState.CONNECTED and not report.sync_verified:
            items.append(
                f"Junction can take ~{self.settings.health_data_delay_hours}h to show new data; "
                "run the diagnostic again later"
            )
        return items
