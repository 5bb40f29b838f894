"""Configuration management for the hostpulse agent."""

from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="HOSTPULSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Collection endpoint
    server: Optional[str] = None
    token: Optional[str] = None
    proxy: Optional[str] = None
    timeout: int = 10

    # Sampling
    interval: int = 60
    devices: str = ""
    interfaces: str = ""

    # Logging
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @property
    def devices_list(self) -> list[str]:
        """Get the disk allow-list."""
        return [d.strip() for d in self.devices.split(",") if d.strip()]

    @property
    def interfaces_list(self) -> list[str]:
        """Get the network interface allow-list."""
        return [i.strip() for i in self.interfaces.split(",") if i.strip()]

