"""Application configuration using pydantic-settings."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_NC_INTERVAL = 5


class Settings(BaseSettings):
    """Network controller settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Central store
    store_url: str = "https://localhost:443"
    store_api_key: str = ""
    store_timeout: float = 15.0

    # Polling
    nc_interval: int = 30  # seconds between two cycles
    connect_timeout: float = 10.0

    # TLS material used to talk to the network elements
    network_cert_file: str = "config/rcs-network.pem"
    network_ca_file: str = ""

    # Push endpoint
    push_api_key: str = ""

    # Application
    log_level: str = "INFO"
    listen_host: str = "0.0.0.0"
    listen_port: int = 4499

    @field_validator("nc_interval")
    @classmethod
    def _clamp_interval(cls, value: int) -> int:
        return max(value, MIN_NC_INTERVAL)

    @field_validator("store_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def probe_timeout(self) -> float:
        """Per-element deadline: three quarters of the polling interval."""
        return self.nc_interval * 0.75


settings = Settings()
