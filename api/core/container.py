"""
Composition root.

Everything long-lived is built here once per process and handed to its
consumers explicitly: the backing database, the CORS policy resolver and
the per-request CORS configuration source.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cors.policies import build_registry
from cors.resolver import (
    CorsPolicyResolver,
    CorsSettingsSource,
    environment_cors_source,
    validate_cors_config,
)
from store.database import Database

from .config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Container:
    settings: Settings
    database: Database
    cors_resolver: CorsPolicyResolver
    cors_settings: CorsSettingsSource


def build_container(
    settings: Settings,
    *,
    database: Database | None = None,
    reload_cors_from_env: bool = True,
) -> Container:
    """
    Raises ConfigurationError when the CORS configuration cannot be served.
    """
    resolver = CorsPolicyResolver(build_registry())
    validate_cors_config(resolver, settings.environment, settings.cors)

    if reload_cors_from_env:
        cors_settings = environment_cors_source(settings.environment, settings.cors)
    else:
        cors_settings = CorsSettingsSource(settings.environment, settings.cors)

    logger.info("container_ready environment=%s", settings.environment.value)
    return Container(
        settings=settings,
        database=database or Database(),
        cors_resolver=resolver,
        cors_settings=cors_settings,
    )
