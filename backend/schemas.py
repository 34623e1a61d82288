import math

from pydantic import BaseModel, StrictFloat, StrictInt, field_validator


class AddTimeRequest(BaseModel):
    additional_time_ms: StrictInt | StrictFloat

    @field_validator("additional_time_ms")
    @classmethod
    def validate_additional_time(cls, v):
        # Any JSON number is accepted; it must be finite and not negative
        if not math.isfinite(v) or v < 0:
            raise ValueError("additional_time_ms must be a non-negative number")
        return v


class TodayResponse(BaseModel):
    date: str  # YYYY-MM-DD format
    total_time_ms: int


class ErrorResponse(BaseModel):
    error: str
