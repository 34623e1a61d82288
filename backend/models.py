from datetime import UTC, datetime

from sqlalchemy import BigInteger
from sqlmodel import Field, SQLModel, UniqueConstraint


class DailyTimeEntry(SQLModel, table=True):
    __tablename__ = "date_entries"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uniq_date_entries_user_date"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)  # Opaque subject from the identity provider
    date: str = Field(index=True)  # YYYY-MM-DD in the reference timezone
    # Client deltas are unbounded, so wider than a 32-bit INTEGER
    total_time_ms: int = Field(default=0, ge=0, sa_type=BigInteger, nullable=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = Field(default=None)
