"""
Named CORS policies.

All policies share the same origin rule (see `resolver.resolve_origins`);
they differ only in the request headers and methods they allow.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from core.errors import UnknownPolicyError

# CORS-safelisted request headers, allowed by every policy.
DEFAULT_HEADERS = frozenset({"accept", "accept-language", "content-language"})


class CorsPolicyType(str, enum.Enum):
    DROPZONE_UPLOAD = "upload-oriented"
    MINIMAL_POST = "minimal-write"
    MINIMAL_GET = "minimal-read"


@dataclass(frozen=True)
class CorsPolicy:
    name: str
    headers: frozenset[str]
    methods: frozenset[str]


def _policy(policy_type: CorsPolicyType, *, headers: tuple[str, ...] = (), methods: tuple[str, ...]) -> CorsPolicy:
    return CorsPolicy(
        name=policy_type.value,
        headers=DEFAULT_HEADERS | {h.lower() for h in headers},
        methods=frozenset(m.upper() for m in methods),
    )


def build_registry() -> Mapping[str, CorsPolicy]:
    policies = (
        _policy(
            CorsPolicyType.DROPZONE_UPLOAD,
            headers=("cache-control", "x-requested-with"),
            methods=("GET", "HEAD", "POST"),
        ),
        _policy(
            CorsPolicyType.MINIMAL_POST,
            headers=("content-type",),
            methods=("GET", "HEAD", "POST", "PUT", "DELETE"),
        ),
        _policy(
            CorsPolicyType.MINIMAL_GET,
            methods=("GET", "HEAD"),
        ),
    )
    return MappingProxyType({p.name: p for p in policies})


def get_policy(registry: Mapping[str, CorsPolicy], name: str | CorsPolicyType) -> CorsPolicy:
    key = name.value if isinstance(name, CorsPolicyType) else str(name)
    try:
        return registry[key]
    except KeyError:
        raise UnknownPolicyError(key) from None
