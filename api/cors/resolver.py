"""
Origin resolution for CORS policies.

Rule:
- development: configured origins plus the local UI dev server origin
- production: exactly the configured origins; none configured is a fatal
  configuration error, never an implicit allow-all

Decisions carry the origins as configured. Matching is exact after
normalization of both sides: scheme and host are lowercased, the
default port (80/http, 443/https) and a trailing slash are dropped. Scheme
matters (`http://a` != `https://a`), there are no wildcards and a
subdomain does not match its parent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping
from urllib.parse import urlsplit

from core.config import CorsConfig, Environment, load_cors_config
from core.errors import ConfigurationError

from .policies import CorsPolicy, CorsPolicyType, get_policy

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_origin(origin: str) -> str:
    raw = (origin or "").strip()
    if raw == "*":
        raise ValueError("Wildcard origins are not supported.")

    parts = urlsplit(raw)
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise ValueError(f"Origin must use http or https: {origin!r}.")
    if not parts.hostname or parts.username or parts.password:
        raise ValueError(f"Origin must be scheme://host[:port]: {origin!r}.")
    if parts.path not in ("", "/") or parts.query or parts.fragment:
        raise ValueError(f"Origin must not carry a path, query or fragment: {origin!r}.")

    try:
        port = parts.port
    except ValueError as exc:
        raise ValueError(f"Origin has an invalid port: {origin!r}.") from exc

    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    if port is None or port == _DEFAULT_PORTS[scheme]:
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


def _normalize_all(origins: Iterable[str]) -> frozenset[str]:
    normalized = set()
    for origin in origins:
        try:
            normalized.add(normalize_origin(origin))
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
    return frozenset(normalized)


def resolve_origins(environment: Environment, config: CorsConfig) -> frozenset[str]:
    """
    Allowed origins as configured. Every entry is validated here; the
    normalized form is only used for matching.
    """
    _normalize_all(config.origins)
    configured = frozenset(config.origins)
    if environment is Environment.DEVELOPMENT:
        _normalize_all([config.dev_origin])
        return configured | {config.dev_origin}
    if not configured:
        raise ConfigurationError("CORS_ORIGINS must list at least one origin in production.")
    return configured


@dataclass(frozen=True)
class CorsDecision:
    policy_name: str
    origins: frozenset[str]
    headers: frozenset[str]
    methods: frozenset[str]
    max_age: int = 600
    _normalized: frozenset[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_normalized", _normalize_all(self.origins))

    def allows_origin(self, origin: str | None) -> bool:
        if not origin:
            return False
        try:
            return normalize_origin(origin) in self._normalized
        except ValueError:
            return False

    def allows_method(self, method: str | None) -> bool:
        return bool(method) and method.upper() in self.methods

    def allows_headers(self, headers: Iterable[str]) -> bool:
        requested = {h.strip().lower() for h in headers if h and h.strip()}
        return requested <= self.headers


def parse_header_list(value: str | None) -> list[str]:
    return [item.strip().lower() for item in (value or "").split(",") if item.strip()]


class CorsPolicyResolver:
    """
    Turns a policy name plus environment/configuration into a decision.

    Nothing is cached: every call evaluates the origin rule against the
    configuration it is given.
    """

    def __init__(self, registry: Mapping[str, CorsPolicy]) -> None:
        self._registry = registry

    @property
    def policy_names(self) -> tuple[str, ...]:
        return tuple(self._registry)

    def policy(self, policy_name: str | CorsPolicyType) -> CorsPolicy:
        return get_policy(self._registry, policy_name)

    def resolve(
        self,
        policy_name: str | CorsPolicyType,
        environment: Environment,
        config: CorsConfig,
    ) -> CorsDecision:
        policy = self.policy(policy_name)
        return CorsDecision(
            policy_name=policy.name,
            origins=resolve_origins(environment, config),
            headers=policy.headers,
            methods=policy.methods,
            max_age=config.max_age,
        )


def validate_cors_config(
    resolver: CorsPolicyResolver,
    environment: Environment,
    config: CorsConfig,
) -> None:
    """
    Startup check: every registered policy must resolve. Raises ConfigurationError.
    """
    for name in resolver.policy_names:
        decision = resolver.resolve(name, environment, config)
        logger.info(
            "cors_policy_ready policy=%s environment=%s origins=%s",
            name,
            environment.value,
            ",".join(sorted(decision.origins)),
        )


class CorsSettingsSource:
    """
    Supplies the CORS configuration per request.

    The environment is fixed for the process. Origins are re-read on each
    call so edits take effect without a restart; an invalid re-read keeps the
    last valid configuration.
    """

    def __init__(
        self,
        environment: Environment,
        initial: CorsConfig,
        loader: Callable[[], CorsConfig] | None = None,
    ) -> None:
        resolve_origins(environment, initial)
        self.environment = environment
        self._current = initial
        self._loader = loader

    def current(self) -> CorsConfig:
        if self._loader is None:
            return self._current
        try:
            config = self._loader()
            resolve_origins(self.environment, config)
        except ConfigurationError as exc:
            logger.error("cors_config_reload_rejected reason=%s", exc)
            return self._current
        self._current = config
        return config


def environment_cors_source(environment: Environment, initial: CorsConfig) -> CorsSettingsSource:
    return CorsSettingsSource(environment, initial, loader=load_cors_config)
