"""
DocTrack Configuration — Load and validate doctrack.yaml at startup.

Values come from the YAML file (auto-discovered from the CWD upwards) and
are then overridden by DOCTRACK_* environment variables.

Usage:
    from doctrack.engine.config import load_config, get_config
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from doctrack.engine.errors import ConfigError

CONFIG_FILENAME = "doctrack.yaml"

# Development-only signing secrets; refused when environment == "prod".
DEV_JWT_SECRET = "doctrack-dev-access-secret"
DEV_JWT_REFRESH_SECRET = "doctrack-dev-refresh-secret"


# ---------------------------------------------------------------------------
# Pydantic models for doctrack.yaml
# ---------------------------------------------------------------------------

class DatabaseConfig(BaseModel):
    url: str = "sqlite:///doctrack.db"
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True
    echo: bool = False

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


class SecurityConfig(BaseModel):
    jwt_secret: str = DEV_JWT_SECRET
    jwt_refresh_secret: str = DEV_JWT_REFRESH_SECRET
    algorithm: str = "HS256"
    access_token_minutes: int = 15
    refresh_token_days: int = 7
    bcrypt_rounds: int = 10
    require_auth: bool = True
    password_min_length: int = 6

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_rounds(cls, v: int) -> int:
        if not 4 <= v <= 31:
            raise ValueError(f"bcrypt_rounds must be between 4 and 31, got {v}")
        return v


class LogAsyncQueueConfig(BaseModel):
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class LoggingConfig(BaseModel):
    level: str = "INFO"
    enabled: bool = True
    directory: str = "logs"
    async_queue: LogAsyncQueueConfig = LogAsyncQueueConfig()


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 5000
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])


class FrontendConfig(BaseModel):
    base_url: str = "http://localhost:5173"


class ServiceConfig(BaseModel):
    """Root model for doctrack.yaml."""
    name: str = "Document Tracking System"
    version: str = "1.0.0"
    environment: str = "dev"

    database: DatabaseConfig = DatabaseConfig()
    security: SecurityConfig = SecurityConfig()
    logging: LoggingConfig = LoggingConfig()
    server: ServerConfig = ServerConfig()
    frontend: FrontendConfig = FrontendConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v

    @property
    def debug(self) -> bool:
        return self.environment == "dev"


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_config: Optional[ServiceConfig] = None

# env var → (section, key)
ENV_OVERRIDES = {
    "DOCTRACK_DATABASE_URL": ("database", "url"),
    "DOCTRACK_JWT_SECRET": ("security", "jwt_secret"),
    "DOCTRACK_JWT_REFRESH_SECRET": ("security", "jwt_refresh_secret"),
    "DOCTRACK_FRONTEND_URL": ("frontend", "base_url"),
    "DOCTRACK_LOG_DIR": ("logging", "directory"),
    "DOCTRACK_ENVIRONMENT": (None, "environment"),
}


def _find_project_root() -> Path:
    """Find the project root by looking for doctrack.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_FILENAME).exists():
            return parent
    return current


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is None:
            continue
        if section is None:
            data[key] = value
        else:
            data[section] = data.get(section) or {}
            data[section][key] = value
    return data


def _check_secrets(config: ServiceConfig) -> None:
    if config.environment != "prod":
        return
    if config.security.jwt_secret == DEV_JWT_SECRET or (
        config.security.jwt_refresh_secret == DEV_JWT_REFRESH_SECRET
    ):
        raise ConfigError(
            "Development JWT secrets cannot be used in prod; "
            "set DOCTRACK_JWT_SECRET and DOCTRACK_JWT_REFRESH_SECRET"
        )
    if config.security.jwt_secret == config.security.jwt_refresh_secret:
        raise ConfigError("Access and refresh tokens must be signed with different secrets")


def load_config(config_path: Optional[str] = None) -> ServiceConfig:
    """
    Load and validate doctrack.yaml.

    Args:
        config_path: Explicit path to doctrack.yaml. If None, auto-discovers.

    Returns:
        Validated ServiceConfig instance.

    Raises:
        ConfigError: the file is malformed or fails validation.
    """
    global _config

    if config_path is None:
        config_path = str(_find_project_root() / CONFIG_FILENAME)

    raw: Dict[str, Any] = {}
    path = Path(config_path)
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            try:
                raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"{path} must contain a mapping at the top level")

    # Flatten the optional top-level "service" key (name / version / environment)
    service = raw.pop("service", {}) or {}
    for key in ("name", "version", "environment"):
        if key in service and key not in raw:
            raw[key] = service[key]

    # an empty section (`database:` with nothing under it) keeps its defaults
    raw = {key: value for key, value in raw.items() if value is not None}
    raw = _apply_env_overrides(raw)

    try:
        config = ServiceConfig(**raw)
    except ValueError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    _check_secrets(config)
    _config = config
    return _config


def get_config() -> ServiceConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: ServiceConfig) -> None:
    """Install an already-built config (tests, embedded use)."""
    global _config
    _config = config
