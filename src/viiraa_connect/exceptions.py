"""
Custom exceptions for the ViiRaa connector.

This module defines a hierarchy of exceptions used by the session manager,
the Junction connector and the health data layer. Each exception includes:
- A user-facing message
- An error code for status displays and analytics
- A recovery suggestion shown next to the retry affordance
- Optional details for debugging
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Error codes for consistent status reporting."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"

    # Junction connector errors
    NOT_CONFIGURED = "NOT_CONFIGURED"
    USER_NOT_CONNECTED = "USER_NOT_CONNECTED"
    INVALID_API_KEY = "INVALID_API_KEY"
    NETWORK_ERROR = "NETWORK_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    SYNC_FAILED = "SYNC_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_USER_ID = "INVALID_USER_ID"

    # Auth errors
    NO_SESSION = "NO_SESSION"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    AUTH_NETWORK_ERROR = "AUTH_NETWORK_ERROR"

    # Health store errors
    HEALTH_STORE_UNAVAILABLE = "HEALTH_STORE_UNAVAILABLE"
    HEALTH_AUTHORIZATION_DENIED = "HEALTH_AUTHORIZATION_DENIED"
    HEALTH_QUERY_FAILED = "HEALTH_QUERY_FAILED"

    # Local storage errors
    CREDENTIAL_ENCRYPTION_ERROR = "CREDENTIAL_ENCRYPTION_ERROR"


class ViiraaConnectError(Exception):
    """
    Base exception for all connector errors.

    Attributes:
        message: Human-readable error message
        code: Error code from ErrorCode enum
        details: Optional dictionary with additional error details
    """

    recovery_suggestion: Optional[str] = None

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for status displays and logs."""
        result: Dict[str, Any] = {
            "error": {
                "code": self.code.value,
                "message": self.message,
            }
        }
        if self.recovery_suggestion:
            result["error"]["recovery_suggestion"] = self.recovery_suggestion
        if self.details:
            result["error"]["details"] = self.details
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value}, message={self.message!r})"


# ============================================================================
# Junction Connector Errors
# ============================================================================

class ConnectorError(ViiraaConnectError):
    """Base class for Junction connector errors."""


class NotConfiguredError(ConnectorError):
    """Raised when the connector is used before configure()."""

    recovery_suggestion = "The app needs to be updated with Junction credentials."

    def __init__(
        self,
        message: str = "Junction SDK is not configured. Please contact support.",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, code=ErrorCode.NOT_CONFIGURED, details=details)


class UserNotConnectedError(ConnectorError):
    """Raised when an operation needs a linked Junction user."""

    recovery_suggestion = "Try signing out and signing back in."

    def __init__(
        self,
        message: str = "User is not connected to Junction. Please sign in again.",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, code=ErrorCode.USER_NOT_CONNECTED, details=details)


class InvalidAPIKeyError(ConnectorError):
    """Raised when Junction rejects the API key."""

    recovery_suggestion = "This is an app configuration issue."

    def __init__(
        self,
        message: str = "Invalid Junction API key. Please contact support.",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, code=ErrorCode.INVALID_API_KEY, details=details)


class NetworkError(ConnectorError):
    """Raised when a Junction call fails at the transport or API level."""

    recovery_suggestion = "Check your Wi-Fi or cellular connection."

    def __init__(
        self,
        message: str = "Network error. Please check your connection and try again.",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, code=ErrorCode.NETWORK_ERROR, details=details)


class PermissionDeniedError(ConnectorError):
    """Raised when health data permissions are unavailable or denied."""

    recovery_suggestion = "Go to Settings > Privacy & Security > Health to enable access."

    def __init__(
        self,
        message: str = "HealthKit permission denied. Please enable health data access in Settings.",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, code=ErrorCode.PERMISSION_DENIED, details=details)


class SyncFailedError(ConnectorError):
    """Raised (and recorded in sync state) when a sync or link attempt fails."""

    recovery_suggestion = "Try again later or check your internet connection."

    def __init__(
        self,
        cause: BaseException,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.cause = cause
        error_details = details or {}
        error_details["cause"] = type(cause).__name__
        super().__init__(
            message=f"Failed to sync health data: {cause}",
            code=ErrorCode.SYNC_FAILED,
            details=error_details,
        )


class RateLimitedError(ConnectorError):
    """Raised when Junction rate limits the client."""

    recovery_suggestion = "Wait a few minutes before trying again."

    def __init__(
        self,
        retry_after: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.retry_after = retry_after
        error_details = details or {}
        if retry_after is not None:
            error_details["retry_after"] = retry_after
        super().__init__(
            message="Too many sync requests. Please wait a moment and try again.",
            code=ErrorCode.RATE_LIMITED,
            details=error_details,
        )


class InvalidUserIdError(ConnectorError):
    """Raised for an empty or malformed local or remote user id."""

    recovery_suggestion = "Try signing out and signing back in."

    def __init__(
        self,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        error_details = details or {}
        error_details["user_id"] = user_id
        super().__init__(
            message=f"Invalid user id: {user_id!r}",
            code=ErrorCode.INVALID_USER_ID,
            details=error_details,
        )


# ============================================================================
# Auth Errors
# ============================================================================

class AuthError(ViiraaConnectError):
    """Base class for remote auth errors."""


class NoSessionError(AuthError):
    """Raised when an auth call completes without issuing a session."""

    def __init__(self, message: str = "No session available") -> None:
        super().__init__(message=message, code=ErrorCode.NO_SESSION)


class InvalidCredentialsError(AuthError):
    """Raised when the remote auth API rejects the credentials."""

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(message=message, code=ErrorCode.INVALID_CREDENTIALS)


class AuthNetworkError(AuthError):
    """Raised when the remote auth API cannot be reached."""

    def __init__(self, message: str = "Network connection error") -> None:
        super().__init__(message=message, code=ErrorCode.AUTH_NETWORK_ERROR)


# ============================================================================
# Health Store Errors
# ============================================================================

class HealthStoreError(ViiraaConnectError):
    """Base class for on-device health store errors."""


class HealthStoreUnavailableError(HealthStoreError):
    """Raised when the device has no health store."""

    def __init__(self, message: str = "HealthKit is not available on this device.") -> None:
        super().__init__(message=message, code=ErrorCode.HEALTH_STORE_UNAVAILABLE)


class HealthAuthorizationDeniedError(HealthStoreError):
    """Raised when the user denies health data access."""

    def __init__(
        self,
        message: str = "HealthKit authorization was denied. Please enable health data access in Settings.",
    ) -> None:
        super().__init__(message=message, code=ErrorCode.HEALTH_AUTHORIZATION_DENIED)


class HealthQueryError(HealthStoreError):
    """Raised when a health store query fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=f"Failed to query health data: {message}",
            code=ErrorCode.HEALTH_QUERY_FAILED,
            details=details,
        )


# ============================================================================
# Local Storage Errors
# ============================================================================

class CredentialEncryptionError(ViiraaConnectError):
    """Raised when encryption/decryption of the stored session fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code=ErrorCode.CREDENTIAL_ENCRYPTION_ERROR)
