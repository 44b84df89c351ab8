"""
Process configuration read from environment variables.

- APP_ENV          development | production (read once per process)
- CORS_ORIGINS     comma separated list of allowed browser origins
- CORS_DEV_ORIGIN  origin of the local UI dev server
- CORS_MAX_AGE     preflight cache lifetime in seconds
- LOG_LEVEL        stdlib logging level name
"""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass
from typing import Mapping

from .errors import ConfigurationError

DEFAULT_DEV_ORIGIN = "http://localhost:8080"


class Environment(str, enum.Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


_ENVIRONMENT_ALIASES = {
    "development": Environment.DEVELOPMENT,
    "dev": Environment.DEVELOPMENT,
    "production": Environment.PRODUCTION,
    "prod": Environment.PRODUCTION,
}


@dataclass(frozen=True)
class CorsConfig:
    origins: tuple[str, ...] = ()
    dev_origin: str = DEFAULT_DEV_ORIGIN
    max_age: int = 600


@dataclass(frozen=True)
class Settings:
    environment: Environment
    cors: CorsConfig
    log_level: str = "INFO"


def _environ(environ: Mapping[str, str] | None) -> Mapping[str, str]:
    return os.environ if environ is None else environ


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}.") from exc


def _env_list(environ: Mapping[str, str], name: str) -> tuple[str, ...]:
    raw = environ.get(name, "")
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def parse_environment(value: str) -> Environment:
    key = (value or "").strip().lower()
    if not key:
        return Environment.DEVELOPMENT
    try:
        return _ENVIRONMENT_ALIASES[key]
    except KeyError:
        raise ConfigurationError(
            f"APP_ENV must be one of development/production, got {value!r}."
        ) from None


def load_environment(environ: Mapping[str, str] | None = None) -> Environment:
    return parse_environment(_environ(environ).get("APP_ENV", ""))


def load_cors_config(environ: Mapping[str, str] | None = None) -> CorsConfig:
    env = _environ(environ)
    max_age = _env_int(env, "CORS_MAX_AGE", 600)
    if max_age < 0:
        raise ConfigurationError("CORS_MAX_AGE must not be negative.")
    return CorsConfig(
        origins=_env_list(env, "CORS_ORIGINS"),
        dev_origin=env.get("CORS_DEV_ORIGIN", "").strip() or DEFAULT_DEV_ORIGIN,
        max_age=max_age,
    )


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """
    Read and validate all settings. Raises ConfigurationError on bad input.
    """
    env = _environ(environ)
    return Settings(
        environment=load_environment(env),
        cors=load_cors_config(env),
        log_level=env.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    )
