"""Error taxonomy shared by the aggregator and the HTTP layer."""


class TimerError(Exception):
    """Base error; carries the HTTP status and the message shown to callers."""

    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.public_message
        super().__init__(self.message)


class Unauthorized(TimerError):
    status_code = 401
    public_message = "Unauthorized"


class InvalidInput(TimerError):
    status_code = 400
    public_message = "Invalid additional_time_ms"


class StorageError(TimerError):
    status_code = 500
    public_message = "Database error"


class InternalError(TimerError):
    status_code = 500
    public_message = "Internal server error"
