"""Shared graph fixtures for simulation tests."""

import pytest

from builders import edge, node
from sdcanvas.types import DatabaseTable, SystemGraph


@pytest.fixture
def simple_graph() -> SystemGraph:
    """user -> lb -> (api1, api2) -> db"""
    return SystemGraph.model_validate({
        "nodes": [
            node("user", "user", label="Clients"),
            node("lb", "loadBalancer", label="LB"),
            node("api1", "apiServer", label="API 1"),
            node("api2", "apiServer", label="API 2"),
            node("db", "postgresql", label="Primary"),
        ],
        "edges": [
            edge("e-user-lb", "user", "lb"),
            edge("e-lb-api1", "lb", "api1"),
            edge("e-lb-api2", "lb", "api2"),
            edge("e-api1-db", "api1", "db", connectionType="database"),
            edge("e-api2-db", "api2", "db", connectionType="database"),
        ],
    })


@pytest.fixture
def cyclic_graph() -> SystemGraph:
    """user -> a -> b -> a"""
    return SystemGraph.model_validate({
        "nodes": [
            node("user", "user"),
            node("a", "apiServer"),
            node("b", "apiServer"),
        ],
        "edges": [
            edge("e-user-a", "user", "a"),
            edge("e-a-b", "a", "b"),
            edge("e-b-a", "b", "a"),
        ],
    })


@pytest.fixture
def cached_graph() -> SystemGraph:
    """user -> api -> redis -> db, with a hot cache key."""
    return SystemGraph.model_validate({
        "nodes": [
            node("user", "user"),
            node("api", "apiServer"),
            node("cache", "redis", keys=[
                {"id": "k1", "pattern": "user:{id}", "ttl": 60, "estimatedCardinality": 10},
            ]),
            node("db", "postgresql"),
        ],
        "edges": [
            edge("e-user-api", "user", "api"),
            edge("e-api-cache", "api", "cache", connectionType="cache"),
            edge("e-cache-db", "cache", "db", connectionType="database"),
        ],
    })


@pytest.fixture
def users_table() -> DatabaseTable:
    """users(id, email, name) with a single-column index on email."""
    return DatabaseTable.model_validate({
        "id": "t-users",
        "name": "users",
        "estimatedRows": 1000,
        "columns": [
            {"id": "c-id", "name": "id", "type": "uuid", "isPrimaryKey": True},
            {"id": "c-email", "name": "email", "type": "varchar"},
            {"id": "c-name", "name": "name", "type": "varchar"},
        ],
        "indexes": [
            {"id": "i-email", "name": "idx_users_email", "columns": ["c-email"]},
        ],
    })
