"""Calendar day used to book time, shared by the server and the client."""
import os
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

REFERENCE_TIMEZONE = os.getenv("TIMER_TIMEZONE", "UTC")


def _zone(name: str):
    if name.upper() == "UTC":
        return UTC
    return ZoneInfo(name)


def current_date(tz: str | None = None) -> str:
    """Today's date (YYYY-MM-DD) in the reference timezone."""
    return datetime.now(_zone(tz or REFERENCE_TIMEZONE)).date().isoformat()
