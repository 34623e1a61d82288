"""Daily aggregation of client-reported time deltas.

Each ``(user_id, date)`` pair owns one row in ``date_entries``. Deltas are
only ever added to ``total_time_ms``; the stored value is never overwritten
with an absolute number coming from a client.
"""
import logging
import math
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import DateTime, bindparam, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from dates import current_date
from db import dialect_name
from errors import InternalError, InvalidInput, StorageError, TimerError, Unauthorized
from models import DailyTimeEntry

logger = logging.getLogger(__name__)

# Dialects that understand INSERT ... ON CONFLICT ... DO UPDATE ... RETURNING
UPSERT_DIALECTS = ("postgresql", "sqlite")

_UPSERT_SQL = text("""
    INSERT INTO date_entries (user_id, date, total_time_ms, created_at, updated_at)
    VALUES (:user_id, :date, :delta, :now, :now)
    ON CONFLICT (user_id, date) DO UPDATE
    SET total_time_ms = date_entries.total_time_ms + EXCLUDED.total_time_ms,
        updated_at = EXCLUDED.updated_at
    RETURNING total_time_ms
""").bindparams(bindparam("now", type_=DateTime(timezone=True)))


def validate_delta(delta_ms) -> int:
    """Return the delta as whole milliseconds or raise InvalidInput."""
    if isinstance(delta_ms, bool) or not isinstance(delta_ms, (int, float)):
        raise InvalidInput()
    if not math.isfinite(delta_ms) or delta_ms < 0:
        raise InvalidInput()
    return int(delta_ms)


def _require_user(user_id: str | None) -> str:
    if not user_id:
        raise Unauthorized()
    return user_id


@contextmanager
def _storage_guard(session: Session, action: str):
    """Translate persistence faults into the error taxonomy."""
    try:
        yield
    except TimerError:
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error {action}: {str(e)}")
        raise StorageError() from e
    except Exception as e:
        session.rollback()
        logger.exception(f"Unexpected error {action}")
        raise InternalError() from e


def _read_total(session: Session, user_id: str, day: str) -> int | None:
    return session.exec(
        select(DailyTimeEntry.total_time_ms)
        .where(DailyTimeEntry.user_id == user_id)
        .where(DailyTimeEntry.date == day)
    ).first()


def get_today(session: Session, user_id: str | None, day: str | None = None) -> int:
    """Stored total for the user and day, or 0 when nothing was recorded yet."""
    user_id = _require_user(user_id)
    day = day or current_date()

    with _storage_guard(session, "fetching daily time"):
        total = _read_total(session, user_id, day)
    return total or 0


def apply_delta(session: Session, user_id: str | None, day: str | None, delta_ms) -> int:
    """Add ``delta_ms`` to the user's total for ``day`` and return the new total.

    PostgreSQL and SQLite get a single atomic upsert whose conflict branch adds
    to the stored total, so overlapping callers always sum. Other dialects
    fall back to insert-then-increment, see ``_apply_delta_merge``.
    """
    user_id = _require_user(user_id)
    delta = validate_delta(delta_ms)
    day = day or current_date()

    with _storage_guard(session, "applying daily time"):
        if dialect_name(session.get_bind()) in UPSERT_DIALECTS:
            total = _apply_delta_upsert(session, user_id, day, delta)
        else:
            total = _apply_delta_merge(session, user_id, day, delta)

    logger.info(f"Added {delta}ms for user_id: {user_id} on {day} (total {total}ms)")
    return total


def _apply_delta_upsert(session: Session, user_id: str, day: str, delta: int) -> int:
    result = session.execute(
        _UPSERT_SQL,
        {"user_id": user_id, "date": day, "delta": delta, "now": datetime.now(UTC)},
    )
    total = result.scalar_one()
    session.commit()
    return total


def _apply_delta_merge(session: Session, user_id: str, day: str, delta: int) -> int:
    """Read, insert when absent, and recover from a concurrent insert.

    A uniqueness conflict on insert means another caller created the row
    between the read and the write; the delta is then applied as an
    in-database increment instead.
    """
    now = datetime.now(UTC)

    if _read_total(session, user_id, day) is None:
        session.add(
            DailyTimeEntry(
                user_id=user_id,
                date=day,
                total_time_ms=delta,
                created_at=now,
                updated_at=now,
            )
        )
        try:
            session.commit()
            return delta
        except IntegrityError:
            session.rollback()
            logger.info(f"Row for user_id: {user_id} on {day} created concurrently, incrementing")

    session.execute(
        update(DailyTimeEntry)
        .where(DailyTimeEntry.user_id == user_id)
        .where(DailyTimeEntry.date == day)
        .values(total_time_ms=DailyTimeEntry.total_time_ms + delta, updated_at=now)
    )
    session.commit()

    total = _read_total(session, user_id, day)
    if total is None:
        raise StorageError()
    return total
