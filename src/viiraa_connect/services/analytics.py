"""
Analytics event names and the default logging collector.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


class Events:
    """Analytics event names."""

    # Auth
    USER_SIGNED_IN = "user_signed_in"
    USER_SIGNED_OUT = "user_signed_out"

    # Junction connector
    JUNCTION_CONFIGURED = "junction_configured"
    JUNCTION_USER_CONNECTED = "junction_user_connected"
    JUNCTION_USER_RECONNECTED = "junction_user_reconnected"
    JUNCTION_CONNECTION_FAILED = "junction_connection_failed"
    JUNCTION_PROVIDER_CONNECTION_FAILED = "junction_provider_connection_failed"
    JUNCTION_HEALTHKIT_AUTHORIZED = "junction_healthkit_authorized"
    JUNCTION_SYNC_SUCCESS = "junction_sync_success"
    JUNCTION_SYNC_FAILED = "junction_sync_failed"
    JUNCTION_USER_DISCONNECTED = "junction_user_disconnected"
    JUNCTION_DIAGNOSTIC_RUN = "junction_diagnostic_run"

    # Health store
    HEALTHKIT_AUTHORIZED = "healthkit_authorized"
    HEALTHKIT_AUTHORIZATION_FAILED = "healthkit_authorization_failed"
    HEALTHKIT_DATA_INJECTED = "healthkit_data_injected"

    # Embedded dashboard
    WEB_SESSION_INJECTED = "web_session_injected"
    WEB_ERROR = "web_error"


@dataclass
class TrackedEvent:
    name: str
    properties: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class LoggingAnalytics:
    """
    Analytics collector that writes events to the log.

    Keeps the most recent events in memory so diagnostics can show what
    the connector reported without a remote analytics backend.
    """

    def __init__(self, max_events: int = 200):
        self._events: Deque[TrackedEvent] = deque(maxlen=max_events)
        self._user_id: Optional[str] = None
        self._traits: Dict[str, Any] = {}

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def events(self) -> List[TrackedEvent]:
        return list(self._events)

    def track(self, event: str, properties: Optional[Dict[str, Any]] = None) -> None:
        tracked = TrackedEvent(name=event, properties=dict(properties or {}), user_id=self._user_id)
        self._events.append(tracked)
        logger.info(f"[analytics] {event} {tracked.properties}")

    def identify(self, user_id: str, traits: Optional[Dict[str, Any]] = None) -> None:
        self._user_id = user_id
        self._traits = dict(traits or {})
        logger.info(f"[analytics] identify {user_id}")

    def reset(self) -> None:
        self._user_id = None
        self._traits = {}
        logger.info("[analytics] reset")
