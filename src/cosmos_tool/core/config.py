"""Configuration management for Cosmos Tool.

Handles TOML config files, environment variables, named account profiles,
and configuration precedence resolution.

Precedence order (highest to lowest):
1. CLI flags (--endpoint, --database, --container, --token, --timeout)
2. Stored query metadata (database and container only)
3. Environment variables (COSMOS_ENDPOINT, COSMOS_DATABASE, ...)
4. Named profile (--profile or COSMOS_PROFILE env var)
5. Config file defaults
6. Built-in defaults
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from pydantic import BaseModel, field_validator

from cosmos_tool.core.exceptions import ConfigError

if TYPE_CHECKING:
    from collections.abc import Mapping

CONFIG_DIR = Path.home() / ".config" / "cosmos-tool"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "config.toml"
DEFAULT_QUERIES_DIR = CONFIG_DIR / "queries"

_COSMOS_ENV_VARS: dict[str, str] = {
    "COSMOS_ENDPOINT": "endpoint",
    "COSMOS_DATABASE": "database",
    "COSMOS_CONTAINER": "container",
    "COSMOS_TOKEN": "token",  # pragma: allowlist secret
}

_PROFILE_DEFAULTS: dict[str, Any] = {
    "endpoint": None,
    "database": None,
    "container": None,
    "token": None,
}

_GLOBAL_DEFAULTS: dict[str, Any] = {
    "default_timeout": 30.0,
    "default_format": "json",
    "range_workers": 4,
    "step_workers": 4,
    "queries_dir": DEFAULT_QUERIES_DIR,
}


def _validate_endpoint(v: str | None) -> str | None:
    if v is None:
        return v
    parsed = urlparse(v)
    if parsed.scheme not in ("https", "http") or not parsed.hostname:
        msg = f"Invalid endpoint: '{v}'. Expected an https:// account URL"
        raise ValueError(msg)
    return v.rstrip("/")


class AccountProfile(BaseModel):
    endpoint: str | None = None
    database: str | None = None
    container: str | None = None
    token: str | None = None

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str | None) -> str | None:
        return _validate_endpoint(v)


class AppConfig(BaseModel):
    default_timeout: float = 30.0
    default_format: str = "json"
    default_profile: str | None = None
    range_workers: int = 4
    step_workers: int = 4
    queries_dir: Path | None = None
    profiles: dict[str, AccountProfile] = {}

    @field_validator("range_workers", "step_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        if v < 1:
            msg = f"Invalid worker count: {v}. Must be at least 1"
            raise ValueError(msg)
        return v


class ResolvedConfig(BaseModel):
    endpoint: str | None = None
    database: str | None = None
    container: str | None = None
    token: str | None = None
    default_timeout: float = 30.0
    default_format: str = "json"
    range_workers: int = 4
    step_workers: int = 4
    queries_dir: Path = DEFAULT_QUERIES_DIR
    active_profile: str | None = None
    sources: dict[str, str] = {}

    def require_endpoint(self) -> str:
        if not self.endpoint:
            msg = "No Cosmos DB endpoint configured. Use --endpoint or set COSMOS_ENDPOINT"
            raise ConfigError(msg)
        return self.endpoint

    def require_database(self) -> str:
        if not self.database:
            msg = "No database selected. Use --database or set COSMOS_DATABASE"
            raise ConfigError(msg)
        return self.database

    def require_container(self) -> str:
        if not self.container:
            msg = "No container selected. Use --container or set COSMOS_CONTAINER"
            raise ConfigError(msg)
        return self.container

    def require_token(self) -> str:
        if not self.token:
            msg = "No access token configured. Use --token or set COSMOS_TOKEN"
            raise ConfigError(msg)
        return self.token


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from TOML file.

    Returns default AppConfig if file doesn't exist.
    Raises ConfigError on malformed TOML or invalid config.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return AppConfig()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Malformed TOML in {config_path}: {e}"
        raise ConfigError(msg) from e

    try:
        return AppConfig.model_validate(data)
    except Exception as e:
        msg = f"Invalid configuration in {config_path}: {e}"
        raise ConfigError(msg) from e


def resolve_config(
    config: AppConfig,
    profile_name: str | None = None,
    query_defaults: Mapping[str, str | None] | None = None,
    query_name: str | None = None,
    **cli_overrides: Any,
) -> ResolvedConfig:
    """Resolve configuration using precedence chain.

    CLI > stored query > env > profile > config defaults > built-in defaults.
    """
    sources: dict[str, str] = {}
    resolved: dict[str, Any] = {}

    # Layer 1: Built-in defaults
    resolved.update(_PROFILE_DEFAULTS)
    resolved.update(_GLOBAL_DEFAULTS)
    for key in resolved:
        sources[key] = "default"

    # Layer 2: Config file global defaults
    for key in config.model_fields_set & _GLOBAL_DEFAULTS.keys():
        value = getattr(config, key)
        if value is not None:
            resolved[key] = value
            sources[key] = "config"

    # Layer 3: Named profile
    effective_profile = profile_name
    if not effective_profile:
        effective_profile = os.environ.get("COSMOS_PROFILE")
    if not effective_profile:
        effective_profile = config.default_profile

    if effective_profile:
        if effective_profile not in config.profiles:
            available = (
                ", ".join(sorted(config.profiles.keys())) if config.profiles else "none"
            )
            msg = f"Unknown profile: '{effective_profile}'. Available profiles: {available}"
            raise ConfigError(msg)
        profile = config.profiles[effective_profile]
        for key in profile.model_fields_set:
            value = getattr(profile, key)
            if value is not None:
                resolved[key] = value
                sources[key] = f"profile: {effective_profile}"

    # Layer 4: Environment variables
    for env_var, field_name in _COSMOS_ENV_VARS.items():
        value = os.environ.get(env_var)
        if value:
            if field_name == "endpoint":
                try:
                    value = _validate_endpoint(value)
                except ValueError as e:
                    msg = f"Invalid {env_var} value: {e}"
                    raise ConfigError(msg) from None
            resolved[field_name] = value
            sources[field_name] = f"env: {env_var}"

    # Layer 5: Stored query metadata
    if query_defaults:
        label = f"query: {query_name}" if query_name else "query"
        for key in ("database", "container"):
            value = query_defaults.get(key)
            if value:
                resolved[key] = value
                sources[key] = label

    # Layer 6: CLI flags (highest priority)
    cli_to_field = {
        "endpoint": "endpoint",
        "database": "database",
        "container": "container",
        "token": "token",  # pragma: allowlist secret
        "timeout": "default_timeout",
    }
    for cli_name, field_name in cli_to_field.items():
        value = cli_overrides.get(cli_name)
        if value is not None:
            if field_name == "endpoint":
                try:
                    value = _validate_endpoint(value)
                except ValueError as e:
                    raise ConfigError(str(e)) from None
            resolved[field_name] = value
            sources[field_name] = f"cli: --{cli_name}"

    resolved["active_profile"] = effective_profile
    resolved["sources"] = sources
    return ResolvedConfig(**resolved)
