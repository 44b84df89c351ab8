"""
Shared fixtures: an isolated in-memory database per test, request-style
stores over it, and API clients for development and production settings.
"""

from __future__ import annotations

from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient

from core.config import CorsConfig, Environment, Settings
from main import create_app
from store.database import Database
from store.entities import Entity, Relation
from store.unit_of_work import EntityStore

OPS_ORIGIN = "https://ops.example.com"
DEV_ORIGIN = "http://localhost:8080"


@dataclass(kw_only=True)
class Node(Entity, entity_name="test-node"):
    label: str = ""
    parent: Relation[Node] | None = None


@pytest.fixture
def database() -> Database:
    return Database(name="test")


@pytest.fixture
def store(database: Database) -> EntityStore:
    return EntityStore(database)


@pytest.fixture
def new_store(database: Database):
    """
    Factory for additional stores over the same database (one per "request").
    """

    def factory() -> EntityStore:
        return EntityStore(database)

    return factory


@pytest.fixture
def dev_settings() -> Settings:
    return Settings(
        environment=Environment.DEVELOPMENT,
        cors=CorsConfig(origins=(OPS_ORIGIN,), dev_origin=DEV_ORIGIN),
        log_level="DEBUG",
    )


@pytest.fixture
def prod_settings() -> Settings:
    return Settings(
        environment=Environment.PRODUCTION,
        cors=CorsConfig(origins=(OPS_ORIGIN,), dev_origin=DEV_ORIGIN),
    )


@pytest.fixture
def client(dev_settings: Settings, database: Database):
    app = create_app(dev_settings, database=database, reload_cors_from_env=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def prod_client(prod_settings: Settings):
    app = create_app(prod_settings, reload_cors_from_env=False)
    with TestClient(app) as test_client:
        yield test_client
