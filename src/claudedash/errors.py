"""Exception types raised across the transcript engine."""

from __future__ import annotations


class ClaudeDashError(Exception):
    """Base class for claudedash errors."""


class SessionNotFoundError(ClaudeDashError, LookupError):
    """No message in the corpus carries the requested session id."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class MalformedRecordError(ClaudeDashError, ValueError):
    """A transcript line is not valid JSON or lacks a required field."""


class TranscriptReadError(ClaudeDashError, OSError):
    """A transcript file exists but could not be read."""


class AggregationError(ClaudeDashError):
    """Statistics could not be computed and no earlier snapshot exists."""
