"""
Migration: Enforce one date_entries row per (user_id, date).

Stores populated before the unique constraint existed can hold several rows
for the same user and day. This migration:
1. Adds created_at / updated_at if missing (and widens the total on PostgreSQL)
2. Folds duplicate (user_id, date) rows into the lowest id, summing their totals
3. Deletes the folded rows
4. Creates the unique index on (user_id, date)
"""
import logging
from sqlalchemy import inspect, text

logger = logging.getLogger(__name__)

INDEX_NAME = "uniq_date_entries_user_date"

# Optional in older stores, written by every upsert
TIMESTAMP_COLUMNS = ("created_at", "updated_at")


def is_postgres(engine):
    """Check if database is PostgreSQL."""
    return "postgresql" in str(engine.url).lower()


def has_user_date_unique(conn) -> bool:
    """True if a unique constraint or index already covers (user_id, date)."""
    inspector = inspect(conn)
    wanted = {"user_id", "date"}
    for constraint in inspector.get_unique_constraints("date_entries"):
        if set(constraint["column_names"]) == wanted:
            return True
    for index in inspector.get_indexes("date_entries"):
        if index.get("unique") and set(index["column_names"]) == wanted:
            return True
    return False


def migrate(engine):
    """Run migration."""
    with engine.connect() as conn:
        trans = conn.begin()

        try:
            if not inspect(conn).has_table("date_entries"):
                logger.info("date_entries table does not exist, skipping migration")
                trans.rollback()
                return

            if is_postgres(engine):
                migrate_postgres(conn)
            else:
                migrate_sqlite(conn)

            trans.commit()
            logger.info("Migration 001 completed successfully")
        except Exception as e:
            trans.rollback()
            logger.error(f"Migration 001 failed: {str(e)}")
            raise


def merge_duplicates(conn) -> int:
    """Sum duplicate rows into the lowest id per pair and delete the rest."""
    result = conn.execute(text("""
        SELECT user_id, date, COUNT(*) AS count
        FROM date_entries
        GROUP BY user_id, date
        HAVING COUNT(*) > 1
    """))
    duplicates = result.fetchall()
    if not duplicates:
        return 0

    for dup in duplicates:
        logger.warning(f"Merging {dup[2]} rows for user_id: {dup[0]}, date: {dup[1]}")

    conn.execute(text("""
        UPDATE date_entries
        SET total_time_ms = (
            SELECT SUM(d.total_time_ms)
            FROM date_entries d
            WHERE d.user_id = date_entries.user_id AND d.date = date_entries.date
        )
        WHERE id IN (
            SELECT MIN(id)
            FROM date_entries
            GROUP BY user_id, date
            HAVING COUNT(*) > 1
        )
    """))
    conn.execute(text("""
        DELETE FROM date_entries
        WHERE id NOT IN (
            SELECT MIN(id)
            FROM date_entries
            GROUP BY user_id, date
        )
    """))
    return len(duplicates)


def migrate_postgres(conn):
    """PostgreSQL migration."""
    logger.info("Running PostgreSQL migration...")

    for column in TIMESTAMP_COLUMNS:
        conn.execute(text(f"ALTER TABLE date_entries ADD COLUMN IF NOT EXISTS {column} TIMESTAMPTZ"))

    result = conn.execute(text("""
        SELECT data_type
        FROM information_schema.columns
        WHERE table_name = 'date_entries' AND column_name = 'total_time_ms'
    """))
    row = result.fetchone()
    if row and row[0] != "bigint":
        logger.info("Widening total_time_ms to BIGINT...")
        conn.execute(text("ALTER TABLE date_entries ALTER COLUMN total_time_ms TYPE BIGINT"))

    if has_user_date_unique(conn):
        logger.info("Unique constraint on (user_id, date) already exists, skipping merge")
        return

    merged = merge_duplicates(conn)
    logger.info(f"Merged {merged} duplicate (user_id, date) pairs")

    logger.info("Creating unique index on (user_id, date)...")
    conn.execute(text(f"""
        CREATE UNIQUE INDEX IF NOT EXISTS {INDEX_NAME}
        ON date_entries (user_id, date)
    """))


def migrate_sqlite(conn):
    """SQLite migration (ALTER TABLE limitations)."""
    logger.info("Running SQLite migration...")

    result = conn.execute(text("PRAGMA table_info(date_entries)"))
    columns = [row[1] for row in result.fetchall()]
    for column in TIMESTAMP_COLUMNS:
        if column not in columns:
            logger.info(f"Adding {column} column...")
            conn.execute(text(f"ALTER TABLE date_entries ADD COLUMN {column} TIMESTAMP"))

    if has_user_date_unique(conn):
        logger.info("Unique constraint on (user_id, date) already exists, skipping merge")
        return

    merged = merge_duplicates(conn)
    logger.info(f"Merged {merged} duplicate (user_id, date) pairs")

    logger.info("Creating unique index on (user_id, date)...")
    conn.execute(text(f"""
        CREATE UNIQUE INDEX IF NOT EXISTS {INDEX_NAME}
        ON date_entries (user_id, date)
    """))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    from db import engine
    migrate(engine)
