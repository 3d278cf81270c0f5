"""Read ingestion exception hierarchy.

All ingestion-specific exceptions derive from :class:`ReadIngestError` so
callers can catch them uniformly.
"""


class ReadIngestError(Exception):
    """Base class for read ingestion errors."""


class UserError(ReadIngestError):
    """A failure the caller has to fix; retrying will not help."""


class NotFoundError(UserError):
    """Raised when an input path holds no files to read."""


class ReadsIOError(UserError):
    """Raised when listing or parsing input fails.

    The original exception is available as ``__cause__``.
    """


class MalformedRecordError(ReadIngestError):
    """Raised when a single raw record cannot be decoded.

    Loaders drop the offending record and keep going.
    """


__all__ = [
    "ReadIngestError",
    "UserError",
    "NotFoundError",
    "ReadsIOError",
    "MalformedRecordError",
]
