"""
Edge Agent Configuration.

The CLI layer merges file, environment and flag values into one immutable
AgentConfig, which is passed explicitly to the assembler, the reporter and
the scheduler.
"""

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional
import yaml

from ..config import Settings
from ..utils.net import normalize_url
from .errors import ConfigError

DEFAULT_CONFIG_PATH = Path.home() / ".hostpulse-agent.yaml"

# YAML key (same as the Settings field) -> AgentConfig field
_YAML_KEYS = {
    "server": "server_url",
    "token": "token",
    "interval": "interval",
    "proxy": "proxy_url",
    "devices": "devices",
    "interfaces": "interfaces",
    "timeout": "timeout",
    "log_level": "log_level",
    "log_file": "log_file",
}

_INT_FIELDS = ("interval", "timeout")


@dataclass(frozen=True)
class AgentConfig:
    """Main agent configuration."""
    # Collection endpoint
    server_url: str = ""
    token: str = ""
    proxy_url: Optional[str] = None
    timeout: int = 10  # seconds, whole request

    # Sampling
    interval: int = 60  # seconds
    devices: tuple[str, ...] = field(default_factory=tuple)
    interfaces: tuple[str, ...] = field(default_factory=tuple)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def __post_init__(self):
        # Lists from YAML or the CLI are frozen so the config stays hashable.
        object.__setattr__(self, "devices", tuple(self.devices or ()))
        object.__setattr__(self, "interfaces", tuple(self.interfaces or ()))
        object.__setattr__(self, "server_url", normalize_url(self.server_url or ""))

    @classmethod
    def from_settings(cls, settings: Settings) -> "AgentConfig":
        """Load configuration from environment-backed settings."""
        return cls(
            server_url=settings.server or "",
            token=settings.token or "",
            proxy_url=settings.proxy or None,
            timeout=settings.timeout,
            interval=settings.interval,
            devices=settings.devices_list,
            interfaces=settings.interfaces_list,
            log_level=settings.log_level,
            log_file=str(settings.log_file) if settings.log_file else None,
        )

    @classmethod
    def from_yaml(cls, path: str) -> "AgentConfig":
        """Load configuration from YAML file."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}
        return cls._from_dict(data)

    @staticmethod
    def settings_fields(settings: Settings) -> set[str]:
        """AgentConfig fields the environment actually set."""
        return {_YAML_KEYS[name] for name in settings.model_fields_set if name in _YAML_KEYS}

    @classmethod
    def _from_dict(cls, data: dict) -> "AgentConfig":
        """Create config from dictionary."""
        if not isinstance(data, dict):
            raise ConfigError(f"config must be a mapping, got {type(data).__name__}")
        kwargs = {}
        for key, attr in _YAML_KEYS.items():
            if data.get(key) is not None:
                kwargs[attr] = data[key]

        for attr in _INT_FIELDS:
            if attr in kwargs:
                try:
                    kwargs[attr] = int(kwargs[attr])
                except (TypeError, ValueError):
                    raise ConfigError(f"{attr} must be an integer, got {kwargs[attr]!r}")
        return cls(**kwargs)

    def with_overrides(self, **overrides) -> "AgentConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(self, **changes)

    def merge(self, other: "AgentConfig", fields: Iterable[str]) -> "AgentConfig":
        """Return a copy taking the named fields from other."""
        changes = {name: getattr(other, name) for name in fields}
        return dataclasses.replace(self, **changes)

    def validate(self) -> "AgentConfig":
        """Check required values; raises ConfigError."""
        if not self.token:
            raise ConfigError("API token is not set (use --token or the config file)")
        if not self.server_url:
            raise ConfigError("server URL is not set (use --server or the config file)")
        if self.interval <= 0:
            raise ConfigError(f"interval must be positive, got {self.interval}")
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")
        return self

    def to_dict(self) -> dict:
        """Render with the YAML key names."""
        data = {}
        for key, attr in _YAML_KEYS.items():
            value = getattr(self, attr)
            if isinstance(value, tuple):
                value = list(value)
            data[key] = value
        return data

    def to_yaml(self, path: str) -> None:
        """Save configuration to YAML file."""
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False)
