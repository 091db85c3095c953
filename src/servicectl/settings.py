"""Environment-based configuration using pydantic-settings.

``AppSettings`` reads ``SERVICECTL_*`` variables (and an optional ``.env``
file) and can merge them over a ``Config`` loaded from YAML.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .config import Config
from .errors import ConfigError


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="SERVICECTL_", case_sensitive=False, extra="ignore"
    )

    # Logging
    log_level: str = Field(default="WARNING", description="Application log level")
    log_format: str = Field(default="text", description="Log format: json or text")

    # Runtime
    program_name: Optional[str] = Field(default=None, description="Override the program name in usage lines")
    config_path: Optional[str] = Field(default=None, description="Explicit YAML config path")
    sessions_dir: Optional[str] = None
    discovery_enabled: bool = Field(default=True, description="Run dynamic discovery at startup")
    verbose: bool = False
    token: Optional[str] = Field(default=None, description="Bearer token or API key for services that need auth")

    # Execution policy
    rate_limit_max: Optional[int] = None
    rate_limit_window_seconds: Optional[float] = None
    http_timeout_seconds: Optional[float] = None

    def load_config(self) -> Config:
        """Load the YAML config (honouring ``config_path``) and merge env over it."""
        path = Path(self.config_path).expanduser() if self.config_path else None
        return self.to_runtime_config(Config.load(path))

    def to_runtime_config(self, base: Optional[Config] = None) -> Config:
        """Merge environment settings into a runtime Config object.

        If a base Config is provided (e.g., loaded from YAML), environment
        variables take precedence.
        """
        if base is None:
            base = Config()

        updates = {
            "program_name": self.program_name,
            "sessions_dir": self.sessions_dir,
            "rate_limit_max": self.rate_limit_max,
            "rate_limit_window_seconds": self.rate_limit_window_seconds,
            "http_timeout_seconds": self.http_timeout_seconds,
        }
        merged = {**base.model_dump(), **{k: v for k, v in updates.items() if v is not None}}
        try:
            return Config.model_validate(merged)
        except ValidationError as exc:
            raise ConfigError(f"Invalid SERVICECTL_* environment settings: {exc}", cause=exc) from exc
