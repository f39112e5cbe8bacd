from typing import Any, Optional


class StatsError(Exception):
    """Base for conditions the engine reports instead of aborting a run."""


class MalformedRecord(StatsError):
    """A visit row with an invalid page count or an inconsistent page range."""

    def __init__(self, message: str, record: Optional[Any] = None):
        super().__init__(message)
        self.record = record


class SourceUnavailable(StatsError):
    """A statistics source that could not be read (missing, locked, corrupt or timed out)."""

    def __init__(self, source_id: str, reason: str):
        super().__init__(f"{source_id}: {reason}")
        self.source_id = source_id
        self.reason = reason
