"""Configuration management using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

NETWORKS = ("mainnet", "holesky")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Beaconcha.in API
    mainnet_api_url: str = "https://beaconcha.in/api/v1"
    holesky_api_url: str = "https://hoodi.beaconcha.in/api/v1"
    beaconchain_api_key: str = ""
    default_network: str = "mainnet"
    request_timeout_seconds: float = 30.0

    # Local storage
    data_dir: Path = Path.home() / ".validator-monitor"

    # Cache Settings
    cache_ttl_seconds: int = 300  # 5 minutes

    # Refresh loop
    default_refresh_interval_ms: int = 300_000

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def database_path(self) -> Path:
        return self.data_dir / "settings.db"

    def api_url_for(self, network: str) -> str:
        """Base URL for a network, falling back to mainnet for unknown names."""
        if network == "holesky":
            return self.holesky_api_url
        return self.mainnet_api_url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def is_valid_network(network: str) -> bool:
    return network in NETWORKS
