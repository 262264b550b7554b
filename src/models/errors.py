"""Exceptions raised by the analytics engine and its storage boundary."""


class AnalyticsError(Exception):
    """Base class for analytics errors."""


class QueryValidationError(AnalyticsError):
    """Raised when a raw filter request cannot become a predicate (e.g. no team)."""


class PayloadError(AnalyticsError):
    """Raised when a stored feedback payload cannot be parsed into a record."""

    def __init__(self, record_id: str, message: str):
        super().__init__(f"Malformed payload for record {record_id}: {message}")
        self.record_id = record_id
