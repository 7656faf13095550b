"""Session and auth-change models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class LocalUser(BaseModel):
    """The product user as reported by the remote auth API."""

    id: str
    email: str = ""
    created_at: Optional[datetime] = None
    last_sign_in_at: Optional[datetime] = None

    class Config:
        frozen = True


class Session(BaseModel):
    """
    Tokens plus identity proving the user is authenticated.

    Immutable once issued; a token refresh or re-authentication replaces
    the whole value.
    """

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "bearer"
    user: LocalUser

    class Config:
        frozen = True

    @property
    def user_id(self) -> str:
        return self.user.id

    def to_blob(self) -> bytes:
        """Serialize for the credential store."""
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_blob(cls, blob: bytes) -> "Session":
        """Deserialize a credential store blob."""
        return cls.model_validate_json(blob)


class AuthEvent(str, Enum):
    """Remote auth state changes."""
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    SIGNED_OUT = "SIGNED_OUT"

    @classmethod
    def parse(cls, value: object) -> Optional["AuthEvent"]:
        """Map a vendor event name (string or enum) onto AuthEvent."""
        raw = getattr(value, "value", value)
        try:
            return cls(str(raw).upper())
        except ValueError:
            return None


@dataclass(frozen=True)
class SessionChange:
    """Published by the session manager whenever the session changes."""
    event: AuthEvent
    session: Optional[Session]
    previous: Optional[Session] = None

    @property
    def user_changed(self) -> bool:
        before = self.previous.user_id if self.previous else None
        after = self.session.user_id if self.session else None
        return before != after
