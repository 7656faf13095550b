"""
Junction (formerly Vital) data models.

Covers the remote account link, the connector and sync state machines,
the tagged result of the "create user" call, and the diagnostic report.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union


class ProviderSlug(str, Enum):
    """Junction data sources used by the app."""
    APPLE_HEALTH_KIT = "apple_health_kit"
    FREESTYLE_LIBRE = "freestyle_libre"
    ABBOTT_LIBREVIEW = "abbott_libreview"
    DEXCOM = "dexcom"
    OURA = "oura"
    FITBIT = "fitbit"


class JunctionEnvironment(str, Enum):
    """Region and environment, selected by API key prefix."""
    SANDBOX_US = "sandbox_us"
    SANDBOX_EU = "sandbox_eu"
    PRODUCTION_US = "production_us"
    PRODUCTION_EU = "production_eu"

    @property
    def is_sandbox(self) -> bool:
        return self in (JunctionEnvironment.SANDBOX_US, JunctionEnvironment.SANDBOX_EU)

    @property
    def base_url(self) -> str:
        return ENVIRONMENT_BASE_URLS[self]

    @classmethod
    def from_api_key(cls, api_key: str) -> "JunctionEnvironment":
        """Resolve the environment from the key prefix; unknown prefixes use sandbox US."""
        for prefix, env in API_KEY_PREFIXES.items():
            if api_key.startswith(prefix):
                return env
        return cls.SANDBOX_US


API_KEY_PREFIXES: Dict[str, JunctionEnvironment] = {
    "sk_us_": JunctionEnvironment.SANDBOX_US,
    "sk_eu_": JunctionEnvironment.SANDBOX_EU,
    "pk_us_": JunctionEnvironment.PRODUCTION_US,
    "pk_eu_": JunctionEnvironment.PRODUCTION_EU,
}

ENVIRONMENT_BASE_URLS: Dict[JunctionEnvironment, str] = {
    JunctionEnvironment.SANDBOX_US: "https://api.sandbox.tryvital.io/v2",
    JunctionEnvironment.SANDBOX_EU: "https://api.sandbox.eu.tryvital.io/v2",
    JunctionEnvironment.PRODUCTION_US: "https://api.tryvital.io/v2",
    JunctionEnvironment.PRODUCTION_EU: "https://api.eu.tryvital.io/v2",
}


class ConnectionState(str, Enum):
    """Connector lifecycle for one local user session."""
    DISCONNECTED = "disconnected"
    LINKING = "linking"
    PERMISSIONS_PENDING = "permissions_pending"
    CONNECTED = "connected"


class SyncStatus(str, Enum):
    """Sync status shown in settings."""
    IDLE = "Idle"
    SYNCING = "Syncing..."
    SUCCESS = "Sync Complete"
    FAILED = "Sync Failed"

    @property
    def is_in_progress(self) -> bool:
        return self is SyncStatus.SYNCING


@dataclass
class SyncState:
    """Transient, in-memory sync state owned by the connector."""
    status: SyncStatus = SyncStatus.IDLE
    last_sync_at: Optional[datetime] = None
    last_error: Optional[Exception] = None

    def reset(self) -> None:
        self.status = SyncStatus.IDLE
        self.last_sync_at = None
        self.last_error = None


@dataclass
class RemoteAccountLink:
    """Association between a local user and their Junction user."""
    client_user_id: str
    remote_user_id: str
    signed_in: bool = False
    connected_providers: Set[str] = field(default_factory=set)

    def to_dict(self) -> dict:
        return {
            "client_user_id": self.client_user_id,
            "remote_user_id": self.remote_user_id,
            "signed_in": self.signed_in,
            "connected_providers": sorted(self.connected_providers),
        }


# ----------------------------------------------------------------------------
# Create-user tagged result
# ----------------------------------------------------------------------------

@dataclass(frozen=True)
class Created:
    """A new Junction user was created."""
    remote_user_id: str


@dataclass(frozen=True)
class AlreadyExists:
    """The idempotency key already maps to a Junction user."""
    remote_user_id: str
    created_on: Optional[str] = None


@dataclass(frozen=True)
class Failed:
    """The call failed; the body did not match a known shape."""
    reason: str
    status_code: Optional[int] = None

    @property
    def is_conflict(self) -> bool:
        """400/409 responses may still mean "already exists" in another shape."""
        return self.status_code in (400, 409)


CreateUserResult = Union[Created, AlreadyExists, Failed]


class ProviderConnectionResult(str, Enum):
    """Outcome of requesting a provider connection."""
    CONNECTED = "connected"
    ALREADY_CONNECTED = "already_connected"
    FAILED = "failed"

    @property
    def is_connected(self) -> bool:
        return self is not ProviderConnectionResult.FAILED


@dataclass(frozen=True)
class SDKStatus:
    """What the device SDK reports about its own session."""
    signed_in: bool
    user_id: Optional[str] = None


# ----------------------------------------------------------------------------
# Cloud readings
# ----------------------------------------------------------------------------

class GlucoseClassification(str, Enum):
    LOW = "Low"
    IN_RANGE = "In Range"
    HIGH = "High"
    VERY_HIGH = "Very High"


@dataclass
class RemoteGlucoseReading:
    """Glucose reading stored in the Junction cloud (mg/dL)."""
    id: str
    value: float
    timestamp: datetime
    source: str

    @property
    def classification(self) -> GlucoseClassification:
        if self.value < 70:
            return GlucoseClassification.LOW
        if self.value < 180:
            return GlucoseClassification.IN_RANGE
        if self.value < 250:
            return GlucoseClassification.HIGH
        return GlucoseClassification.VERY_HIGH

    @classmethod
    def from_api_response(cls, data: dict) -> "RemoteGlucoseReading":
        """Parse a Junction timeseries sample."""
        timestamp = str(data["timestamp"]).replace("Z", "+00:00")
        source = data.get("source") or {}
        if isinstance(source, dict):
            source_name = source.get("name") or source.get("slug") or "unknown"
        else:
            source_name = str(source)
        return cls(
            id=str(data.get("id") or data["timestamp"]),
            value=float(data["value"]),
            timestamp=datetime.fromisoformat(timestamp),
            source=source_name,
        )


# ----------------------------------------------------------------------------
# Verification and diagnostics
# ----------------------------------------------------------------------------

@dataclass
class SyncVerification:
    """Remote vs local reading counts for a trailing window."""
    window_start: datetime
    window_end: datetime
    local_count: int
    remote_count: int

    @property
    def remote_has_data(self) -> bool:
        return self.remote_count > 0

    @property
    def is_conclusive(self) -> bool:
        # Absence of remote data is expected inside the platform delay.
        return self.remote_has_data


@dataclass
class DiagnosticReport:
    """Read-only snapshot of the connector's health for support screens."""
    generated_at: datetime
    configured: bool
    environment: Optional[JunctionEnvironment]
    connection_state: ConnectionState
    sdk_signed_in: bool
    client_user_id: Optional[str] = None
    remote_user_id: Optional[str] = None
    local_permissions: Dict[str, bool] = field(default_factory=dict)
    remote_providers: List[str] = field(default_factory=list)
    local_reading_count: int = 0
    remote_reading_count: int = 0
    sync_verified: bool = False
    sync_status: SyncStatus = SyncStatus.IDLE
    last_sync_at: Optional[datetime] = None
    last_error: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    checklist: List[str] = field(default_factory=list)

    @property
    def permission_mismatch(self) -> bool:
        """Local glucose access granted but the native provider is missing remotely."""
        local_ok = self.local_permissions.get("glucose", False)
        remote_ok = ProviderSlug.APPLE_HEALTH_KIT.value in self.remote_providers
        return local_ok != remote_ok

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generated_at": self.generated_at.isoformat(),
            "configured": self.configured,
            "environment": self.environment.value if self.environment else None,
            "connection_state": self.connection_state.value,
            "sdk_signed_in": self.sdk_signed_in,
            "client_user_id": self.client_user_id,
            "remote_user_id": self.remote_user_id,
            "local_permissions": dict(self.local_permissions),
            "remote_providers": list(self.remote_providers),
            "permission_mismatch": self.permission_mismatch,
            "local_reading_count": self.local_reading_count,
            "remote_reading_count": self.remote_reading_count,
            "sync_verified": self.sync_verified,
            "sync_status": self.sync_status.value,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "last_error": self.last_error,
            "errors": list(self.errors),
            "checklist": list(self.checklist),
        }

    def to_text(self) -> str:
        """Render the human-readable report."""
        def mark(ok: bool) -> str:
            return "OK" if ok else "--"

        lines = [
            "Junction Diagnostic Report",
            f"Generated: {self.generated_at.isoformat(timespec='seconds')}",
            "",
            f"[{mark(self.configured)}] Configured"
            + (f" ({self.environment.value})" if self.environment else ""),
            f"[{mark(self.connection_state is ConnectionState.CONNECTED)}] "
            f"Connection state: {self.connection_state.value}",
            f"[{mark(self.sdk_signed_in)}] SDK signed in",
            f"     Local user: {self.client_user_id or 'n/a'}",
            f"     Junction user: {self.remote_user_id or 'n/a'}",
            "",
            "Permissions (local):",
        ]
        if self.local_permissions:
            for name, granted in sorted(self.local_permissions.items()):
                lines.append(f"  [{mark(granted)}] {name}")
        else:
            lines.append("  (not available)")
        lines.append(
            "Providers (remote): " + (", ".join(self.remote_providers) or "none")
        )
        if self.permission_mismatch:
            lines.append("  Local and remote permission status disagree")
        lines.extend([
            "",
            f"Local glucose readings: {self.local_reading_count}",
            f"Remote glucose readings: {self.remote_reading_count}",
            f"[{mark(self.sync_verified)}] Data verified in Junction",
            f"Sync status: {self.sync_status.value}"
            + (f" (last {self.last_sync_at.isoformat(timespec='seconds')})" if self.last_sync_at else ""),
        ])
        if self.last_error:
            lines.append(f"Last error: {self.last_error}")
        if self.errors:
            lines.append("")
            lines.append("Errors during diagnostic:")
            lines.extend(f"  - {err}" for err in self.errors)
        if self.checklist:
            lines.append("")
            lines.append("Checklist:")
            lines.extend(f"  {i}. {item}" for i, item in enumerate(self.checklist, 1))
        return "\n".join(lines)
