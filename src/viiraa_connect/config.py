"""Configuration settings for the ViiRaa connector."""

from functools import lru_cache
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from pydantic_settings import BaseSettings


# __file__ = src/viiraa_connect/config.py
PACKAGE_ROOT = Path(__file__).parent  # src/viiraa_connect/
PROJECT_ROOT = PACKAGE_ROOT.parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Product web app
    base_url: str = "https://viiraa.com"
    dashboard_path: str = "/dashboard"
    product_domain: str = "viiraa.com"

    # Supabase auth
    supabase_url: str = "https://efwiicipqhurfcpczmnw.supabase.co"
    supabase_anon_key: str = ""

    # Embedded web surface contract
    web_auth_storage_key: Optional[str] = None
    web_auth_event_name: str = "ios-auth-ready"
    web_health_event_name: str = "ios-health-data-ready"

    # Junction (Vital)
    junction_enabled: bool = True
    junction_api_key: str = ""
    junction_native_provider: str = "apple_health_kit"
    junction_cgm_provider: Optional[str] = "freestyle_libre"
    junction_timeout_seconds: float = 30.0

    # Sync policy
    sync_interval_seconds: int = 3600
    sync_grace_seconds: float = 1.5
    verify_window_hours: int = 24
    health_data_delay_hours: int = 3

    # Local storage
    credential_store_path: Optional[Path] = None
    credential_encryption_key: str = ""
    error_log_path: Optional[Path] = None
    error_log_max_bytes: int = 100_000

    log_level: str = "INFO"

    def model_post_init(self, __context) -> None:
        """Set default file locations after initialization."""
        if self.credential_store_path is None:
            self.credential_store_path = Path.home() / ".viiraa" / "session.bin"
        if self.error_log_path is None:
            self.error_log_path = Path.home() / ".viiraa" / "viiraa_errors.log"

    @property
    def dashboard_url(self) -> str:
        return self.base_url.rstrip("/") + self.dashboard_path

    @property
    def supabase_project_ref(self) -> str:
        """Project ref is the first label of the Supabase host."""
        host = urlparse(self.supabase_url).hostname or ""
        return host.split(".")[0]

    @property
    def auth_storage_key(self) -> str:
        """Local-storage key the web dashboard's Supabase client reads."""
        if self.web_auth_storage_key:
            return self.web_auth_storage_key
        return f"sb-{self.supabase_project_ref}-auth-token"

    @property
    def required_providers(self) -> list[str]:
        providers = [self.junction_native_provider]
        if self.junction_cgm_provider:
            providers.append(self.junction_cgm_provider)
        return providers

    class Config:
        env_prefix = "VIIRAA_"
        env_file = str(PROJECT_ROOT / ".env")
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
