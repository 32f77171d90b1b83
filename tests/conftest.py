"""
Shared pytest fixtures.

Provides settings, an in-memory execution store, a fixed clock and helpers
that build CSV, JSON and SQLite sources under tmp_path.
"""
import json
import os
import sqlite3
from datetime import datetime, timezone

import pytest

# Keep the API's default store out of the working directory
os.environ.setdefault("IMPORTER_DATABASE_URL", "sqlite:///:memory:")

from importer.config import Settings
from importer.store import ExecutionRepository, create_session_factory, create_store_engine, init_db


FIXED_NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def settings():
    """Settings with small limits and an in-memory store."""
    return Settings(
        database_url="sqlite:///:memory:",
        progress_interval=10,
        preview_limit=10,
        api_max_retries=0,
    )


@pytest.fixture()
def fixed_clock():
    return lambda: FIXED_NOW


# ── Execution store ──────────────────────────────────────────────────

@pytest.fixture()
def store_engine():
    """In-memory SQLite engine with all store tables."""
    engine = create_store_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(store_engine):
    return create_session_factory(store_engine)


@pytest.fixture()
def repository(session_factory):
    return ExecutionRepository(session_factory)


# ── Source builders ──────────────────────────────────────────────────

@pytest.fixture()
def write_csv(tmp_path):
    """Write CSV text to a file and return its path."""
    def _write(content: str, name: str = "data.csv", encoding: str = "utf-8") -> str:
        path = tmp_path / name
        path.write_bytes(content.encode(encoding))
        return str(path)
    return _write


@pytest.fixture()
def write_json(tmp_path):
    """Write a JSON document to a file and return its path."""
    def _write(payload, name: str = "data.json") -> str:
        path = tmp_path / name
        path.write_text(json.dumps(payload))
        return str(path)
    return _write


@pytest.fixture()
def sqlite_source(tmp_path):
    """
    SQLite database with customers, orders and a migrations bookkeeping table.

    customers: 3 rows; orders: 4 rows (customer 3 has none, one order
    points at missing customer 99).
    """
    path = tmp_path / "source.db"
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE customers (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            email VARCHAR(255),
            created_at DATETIME
        );
        CREATE TABLE orders (
            id INTEGER PRIMARY KEY,
            customer_id INTEGER REFERENCES customers(id),
            total NUMERIC,
            placed_on DATE
        );
        CREATE TABLE migrations (id INTEGER PRIMARY KEY, name TEXT);

        INSERT INTO customers VALUES (1, 'Acme', 'ops@acme.test', '2024-01-01 10:00:00');
        INSERT INTO customers VALUES (2, 'Globex', 'it@globex.test', '2024-02-01 09:30:00');
        INSERT INTO customers VALUES (3, 'Initech', NULL, '2024-03-01 08:15:00');

        INSERT INTO orders VALUES (10, 1, 100.5, '2024-04-01');
        INSERT INTO orders VALUES (11, 1, 20, '2024-04-02');
        INSERT INTO orders VALUES (12, 2, 75, '2024-04-03');
        INSERT INTO orders VALUES (13, 99, 5, '2024-04-04');

        INSERT INTO migrations VALUES (1, '2024_01_01_create_customers');
        """
    )
    conn.commit()
    conn.close()
    return str(path)
