"""
Service layer.

- SessionManager: owns the auth session and publishes changes
- ThirdPartyConnector: Junction account link, sync and diagnostics
- SessionBridge: seeds the embedded dashboard with the native session
- HealthDataService: health store reads and derived statistics
"""

from .analytics import Events, LoggingAnalytics
from .base import (
    AnalyticsCollector,
    BaseService,
    CredentialStore,
    ExternalBrowser,
    HealthStore,
    RemoteAuthClient,
    VitalSDK,
    WebSurface,
)
from .credential_store import FernetCredentialStore, MemoryCredentialStore
from .encryption import CredentialEncryption
from .events import SessionEvents
from .health_service import HealthDataService
from .junction_connector import SYNC_JOB_ID, ThirdPartyConnector
from .session_bridge import NavigationPolicy, SessionBridge
from .session_manager import SessionManager
from .sync_scheduler import SyncTimer

__all__ = [
    "Events",
    "LoggingAnalytics",
    "AnalyticsCollector",
    "BaseService",
    "CredentialStore",
    "ExternalBrowser",
    "HealthStore",
    "RemoteAuthClient",
    "VitalSDK",
    "WebSurface",
    "FernetCredentialStore",
    "MemoryCredentialStore",
    "CredentialEncryption",
    "SessionEvents",
    "HealthDataService",
    "SYNC_JOB_ID",
    "ThirdPartyConnector",
    "NavigationPolicy",
    "SessionBridge",
    "SessionManager",
    "SyncTimer",
]
