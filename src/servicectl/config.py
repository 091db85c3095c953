import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError


class ServiceConfig(BaseModel):
    """A remote service whose OpenAPI document becomes a command namespace."""

    name: str
    url: Optional[str] = Field(default=None, description="Service base URL")
    openapi_url: Optional[str] = Field(default=None, description="Explicit OpenAPI document URL")
    openapi_path: Optional[str] = Field(default=None, description="Local OpenAPI document")
    headers: Dict[str, str] = Field(default_factory=dict)
    enabled: bool = True

    @model_validator(mode="after")
    def validate_location(self):
        if not (self.url or self.openapi_url or self.openapi_path):
            raise ValueError(f"Service '{self.name}' needs url, openapi_url or openapi_path")
        return self


class ToolSourceConfig(BaseModel):
    """A tool manifest whose tools become a command namespace."""

    namespace: str = "mcp"
    manifest: str
    enabled: bool = True
    use_fallback_tools: bool = False


class Config(BaseModel):
    """Main configuration for servicectl."""

    program_name: str = Field(default="servicectl", description="Prefix used in usage and examples")
    services: List[ServiceConfig] = Field(default_factory=list)
    tool_sources: List[ToolSourceConfig] = Field(default_factory=list)
    sessions_dir: str = Field(default="~/.servicectl/sessions")
    confirm_destructive: bool = True
    rate_limit_max: int = Field(default=0, description="Executions per window per command; 0 disables")
    rate_limit_window_seconds: float = 60.0
    http_timeout_seconds: float = 10.0

    @field_validator("rate_limit_max")
    def validate_rate_limit(cls, v):
        if v < 0:
            raise ValueError("rate_limit_max must be >= 0")
        return v

    @field_validator("http_timeout_seconds", "rate_limit_window_seconds")
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v

    @classmethod
    def from_file(cls, path: Path) -> "Config":
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path, "r") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {path}", cause=exc) from exc

        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration in {path}: {exc}", cause=exc) from exc

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """Load configuration using precedence: explicit path -> home file -> cwd file -> defaults."""
        if path is not None:
            return cls.from_file(Path(path))

        home_cfg = cls.default_config_path()
        if home_cfg.exists():
            return cls.from_file(home_cfg)

        local = Path("servicectl.yaml")
        if local.exists():
            return cls.from_file(local)

        return cls()

    def save_to_file(self, path: Path):
        """Save configuration to a YAML file."""
        # Bare filenames land under ~/.servicectl
        if not path.is_absolute():
            path = Path(os.path.expanduser("~/.servicectl")) / path
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(self.model_dump(exclude_unset=True), f, default_flow_style=False, indent=2)

    def get_service(self, name: str) -> Optional[ServiceConfig]:
        for service in self.services:
            if service.name == name:
                return service
        return None

    @staticmethod
    def default_config_path() -> Path:
        """Return the default per-user config path under ~/.servicectl."""
        return Path(os.path.expanduser("~/.servicectl/servicectl.yaml"))
