"""Exception hierarchy."""


class GreenwaveError(Exception):
    """Base class for all greenwave errors."""


class SourceError(GreenwaveError):
    """The event store query failed (timeout, dropped connection, bad SQL)."""


class SourceUnavailable(SourceError):
    """No connection to the event store has been established yet."""
