"""
Base service classes and protocols.

Defines the interfaces of the collaborators the host application supplies
(health store, device SDK, web surface, browser) and of the swappable
infrastructure pieces (credential store, remote auth, analytics).
"""

from abc import ABC
from datetime import date, datetime
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    runtime_checkable,
)
import logging

from ..models.health import HealthSample, VitalType
from ..models.junction import SDKStatus
from ..models.session import AuthEvent, Session


AuthListener = Callable[[AuthEvent, Optional[Session]], Any]
Unsubscribe = Callable[[], None]


@runtime_checkable
class CredentialStore(Protocol):
    """Secure key-value slot holding the serialized session."""

    def save(self, blob: bytes) -> None:
        """Replace the stored blob."""
        ...

    def fetch(self) -> Optional[bytes]:
        """Return the stored blob, or None."""
        ...

    def clear(self) -> None:
        """Remove the stored blob. No error when empty."""
        ...


@runtime_checkable
class RemoteAuthClient(Protocol):
    """Remote authentication API (email/password, OAuth, session lookup)."""

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        ...

    async def sign_up(self, email: str, password: str) -> Optional[Session]:
        """Returns None when the account needs email confirmation first."""
        ...

    async def exchange_code_for_session(self, auth_code: str) -> Session:
        ...

    async def get_session(self) -> Optional[Session]:
        ...

    async def sign_out(self) -> None:
        ...

    def subscribe(self, listener: AuthListener) -> Unsubscribe:
        """Register for auth state changes; returns a callable that unsubscribes."""
        ...


@runtime_checkable
class VitalSDK(Protocol):
    """Device-side Junction SDK that uploads health store samples."""

    async def status(self) -> SDKStatus:
        ...

    async def sign_in(self, sign_in_token: str) -> None:
        ...

    async def sign_out(self) -> None:
        ...

    async def sync_data(self) -> None:
        """Trigger an upload. Returns before the upload finishes."""
        ...

    async def create_connected_source(self, provider: str) -> None:
        """Connect a provider from the device (production environments)."""
        ...


@runtime_checkable
class HealthStore(Protocol):
    """On-device health data store."""

    def is_available(self) -> bool:
        ...

    async def request_authorization(self, read_types: Iterable[VitalType]) -> bool:
        """Prompt for read access; False when the user declines."""
        ...

    def authorization_status(self, vital_type: VitalType) -> bool:
        ...

    async def fetch_latest(self, vital_type: VitalType) -> Optional[HealthSample]:
        ...

    async def fetch_history(
        self,
        vital_type: VitalType,
        start: datetime,
        end: datetime,
    ) -> List[HealthSample]:
        ...

    async def fetch_daily_total(self, vital_type: VitalType, day: date) -> float:
        ...


@runtime_checkable
class WebSurface(Protocol):
    """Embedded web content view."""

    def add_user_script(self, source: str) -> None:
        """Run ``source`` at document start of every main-frame load."""
        ...

    def remove_all_user_scripts(self) -> None:
        ...

    async def evaluate_script(self, source: str) -> Any:
        ...

    def load(self, url: str) -> None:
        ...

    def show_sign_in_prompt(self) -> None:
        ...

    def set_loading(self, loading: bool) -> None:
        ...


@runtime_checkable
class ExternalBrowser(Protocol):
    """Opens URLs outside the app."""

    def open(self, url: str) -> None:
        ...


@runtime_checkable
class AnalyticsCollector(Protocol):
    """Product analytics sink."""

    def track(self, event: str, properties: Optional[Dict[str, Any]] = None) -> None:
        ...

    def identify(self, user_id: str, traits: Optional[Dict[str, Any]] = None) -> None:
        ...

    def reset(self) -> None:
        ...


SignOutCallback = Callable[[], Awaitable[None]]


class BaseService(ABC):
    """
    Abstract base class for all services.

    Provides common functionality:
    - Logging setup
    - Analytics access with failures contained
    """

    def __init__(
        self,
        analytics: Optional[AnalyticsCollector] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._analytics = analytics
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @property
    def logger(self) -> logging.Logger:
        """Get the logger instance."""
        return self._logger

    @property
    def analytics(self) -> Optional[AnalyticsCollector]:
        """Get the analytics collector."""
        return self._analytics

    def _track(self, event: str, properties: Optional[Dict[str, Any]] = None) -> None:
        """Track an analytics event; analytics failures never break the caller."""
        if self._analytics is None:
            return
        try:
            self._analytics.track(event, properties or {})
        except Exception as e:
            self.logger.warning(f"Analytics track failed for {event}: {e}")
