"""Data models for sessions, Junction state and health readings."""

from .session import AuthEvent, LocalUser, Session, SessionChange
from .junction import (
    AlreadyExists,
    ConnectionState,
    Created,
    CreateUserResult,
    DiagnosticReport,
    Failed,
    JunctionEnvironment,
    ProviderConnectionResult,
    ProviderSlug,
    RemoteAccountLink,
    RemoteGlucoseReading,
    SDKStatus,
    SyncState,
    SyncStatus,
    SyncVerification,
)
from .health import (
    REQUIRED_READ_TYPES,
    ActivitySummary,
    GlucoseReading,
    GlucoseStatistics,
    HealthAuthorizationStatus,
    HealthSample,
    HealthSummary,
    VitalType,
    WeightReading,
    WeightTrend,
)

__all__ = [
    "AuthEvent",
    "LocalUser",
    "Session",
    "SessionChange",
    "AlreadyExists",
    "ConnectionState",
    "Created",
    "CreateUserResult",
    "DiagnosticReport",
    "Failed",
    "JunctionEnvironment",
    "ProviderConnectionResult",
    "ProviderSlug",
    "RemoteAccountLink",
    "RemoteGlucoseReading",
    "SDKStatus",
    "SyncState",
    "SyncStatus",
    "SyncVerification",
    "REQUIRED_READ_TYPES",
    "ActivitySummary",
    "GlucoseReading",
    "GlucoseStatistics",
    "HealthAuthorizationStatus",
    "HealthSample",
    "HealthSummary",
    "VitalType",
    "WeightReading",
    "WeightTrend",
]
