"""Tests for the (user_id, date) uniqueness migration."""
import pytest
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

import aggregator
from migrations.migrate_001_add_user_date_unique import has_user_date_unique, migrate


@pytest.fixture
def legacy_engine(tmp_path):
    """A store created before the unique index and updated_at existed."""
    engine = create_engine(f"sqlite:///{tmp_path / 'legacy.db'}")
    with engine.begin() as conn:
        conn.execute(text("""
            CREATE TABLE date_entries (
                id INTEGER PRIMARY KEY,
                user_id TEXT NOT NULL,
                date TEXT NOT NULL,
                total_time_ms INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP
            )
        """))
        conn.execute(text("""
            INSERT INTO date_entries (user_id, date, total_time_ms) VALUES
                ('alice', '2024-01-01', 5000),
                ('alice', '2024-01-01', 3000),
                ('alice', '2024-01-02', 100),
                ('bob', '2024-01-01', 700),
                ('bob', '2024-01-01', 300),
                ('bob', '2024-01-01', 1)
        """))
    yield engine
    engine.dispose()


def totals(engine):
    with engine.connect() as conn:
        rows = conn.execute(text(
            "SELECT user_id, date, total_time_ms FROM date_entries ORDER BY user_id, date"
        )).fetchall()
    return [tuple(row) for row in rows]


def test_duplicates_are_summed_into_one_row(legacy_engine):
    migrate(legacy_engine)

    assert totals(legacy_engine) == [
        ("alice", "2024-01-01", 8000),
        ("alice", "2024-01-02", 100),
        ("bob", "2024-01-01", 1001),
    ]


def test_unique_index_and_updated_at_added(legacy_engine):
    migrate(legacy_engine)

    with legacy_engine.connect() as conn:
        assert has_user_date_unique(conn)
    columns = [c["name"] for c in inspect(legacy_engine).get_columns("date_entries")]
    assert "updated_at" in columns

    with pytest.raises(IntegrityError):
        with legacy_engine.begin() as conn:
            conn.execute(text(
                "INSERT INTO date_entries (user_id, date, total_time_ms) VALUES ('alice', '2024-01-01', 1)"
            ))


def test_migration_is_idempotent(legacy_engine):
    migrate(legacy_engine)
    migrate(legacy_engine)

    assert len(totals(legacy_engine)) == 3


def test_missing_table_is_skipped(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    migrate(engine)
    assert not inspect(engine).has_table("date_entries")
    engine.dispose()


def test_unique_store_without_timestamps_accepts_upserts(tmp_path):
    """A store that already has the unique key still gets the timestamp columns."""
    engine = create_engine(f"sqlite:///{tmp_path / 'keyed.db'}")
    with engine.begin() as conn:
        conn.execute(text("""
            CREATE TABLE date_entries (
                id INTEGER PRIMARY KEY,
                user_id TEXT NOT NULL,
                date TEXT NOT NULL,
                total_time_ms INTEGER NOT NULL DEFAULT 0,
                UNIQUE (user_id, date)
            )
        """))
        conn.execute(text(
            "INSERT INTO date_entries (user_id, date, total_time_ms) VALUES ('alice', '2024-01-01', 1000)"
        ))

    migrate(engine)

    columns = [c["name"] for c in inspect(engine).get_columns("date_entries")]
    assert "created_at" in columns
    assert "updated_at" in columns

    with Session(engine) as session:
        assert aggregator.apply_delta(session, "alice", "2024-01-01", 5000) == 6000
        assert aggregator.apply_delta(session, "bob", "2024-01-01", 250) == 250

    assert totals(engine) == [("alice", "2024-01-01", 6000), ("bob", "2024-01-01", 250)]
    engine.dispose()
