"""
Configuration loading for the SpaceNexus cache service.

Loads non-secret settings from config.yaml, secrets from environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from spacenexus.cache import CLEANUP_INTERVAL_SECONDS, CacheTTL


class SourceConfig(BaseModel):
    """One upstream JSON source served through the cache."""

    key: str = Field(min_length=1)
    label: str
    url: str
    params: dict[str, str] = Field(default_factory=dict)
    # A CacheTTL name, or milliseconds
    ttl: Union[int, str] = "DEFAULT"

    @field_validator("ttl")
    @classmethod
    def validate_ttl_name(cls, value: Union[int, str]) -> Union[int, str]:
        if isinstance(value, int):
            return value
        name = value.upper()
        if name not in CacheTTL.__members__:
            allowed = ", ".join(CacheTTL.__members__)
            raise ValueError(f"Unknown TTL '{value}' (expected one of: {allowed})")
        return name

    @property
    def ttl_ms(self) -> int:
        if isinstance(self.ttl, int):
            return self.ttl
        return int(CacheTTL[self.ttl])


class AppConfig(BaseModel):
    """Application configuration. Secrets come from env vars, rest from YAML."""

    # Secrets (from environment only)
    api_key: Optional[str] = None

    # Cache settings
    cleanup_interval: float = Field(default=CLEANUP_INTERVAL_SECONDS, ge=0)

    # Upstream settings
    upstream_timeout: float = Field(default=10.0, gt=0)

    sources: list[SourceConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_unique_keys(self) -> "AppConfig":
        keys = [source.key for source in self.sources]
        duplicates = [k for k in keys if keys.count(k) > 1]
        if duplicates:
            raise ValueError(f"Duplicate source keys: {set(duplicates)}")
        return self

    def get_source(self, key: str) -> SourceConfig | None:
        """Look up a source config by key."""
        for source in self.sources:
            if source.key == key:
                return source
        return None


def load_config(config_path: str | None = None) -> AppConfig:
    """
    Load configuration from YAML file + environment variables.

    Args:
        config_path: Path to config.yaml. If None, reads CONFIG_PATH env var
                     (default: config.yaml in current directory).

    Returns:
        Validated AppConfig instance.
    """
    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", "config.yaml")

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    # Secrets never come from YAML
    config_data = {**raw, "api_key": os.environ.get("API_KEY")}

    return AppConfig(**config_data)
