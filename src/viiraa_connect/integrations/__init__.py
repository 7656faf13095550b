"""
External service integrations.

- Junction (Vital) REST API for user linking and sync verification
- Supabase for remote authentication
"""

from .base import (
    AuthenticationError,
    IntegrationClient,
    IntegrationError,
    RateLimitError,
)
from .junction import JunctionAPIClient, decode_create_user_response

__all__ = [
    "AuthenticationError",
    "IntegrationClient",
    "IntegrationError",
    "RateLimitError",
    "JunctionAPIClient",
    "decode_create_user_response",
]
