"""Shared data models — the contract between parser, aggregator, and consumers.

The parser produces Message objects and folds them into Session summaries.
The aggregator produces ClaudeStats. Every model has a to_dict() whose keys
are the field names the UI deserializes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts is not None else None


@dataclass(frozen=True)
class Message:
    """A single user or assistant turn extracted from a JSONL line.

    Token fields stay None when the line carries no usage block; sums treat
    None as 0.
    """

    uuid: str
    parent_uuid: str | None
    session_id: str
    role: str  # user, assistant
    content: str
    timestamp: datetime
    project_key: str  # encoded directory name, e.g. "-Users-me-work-foo"
    model: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_read_tokens: int | None = None
    cache_creation_tokens: int | None = None
    tool_call_count: int = 0
    cwd: str | None = None

    @property
    def total_tokens(self) -> int:
        return (self.input_tokens or 0) + (self.output_tokens or 0)

    def to_dict(self) -> dict:
        return {
            "uuid": self.uuid,
            "parent_uuid": self.parent_uuid,
            "session_id": self.session_id,
            "role": self.role,
            "content": self.content,
            "model": self.model,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "timestamp": _iso(self.timestamp),
        }


@dataclass
class Session:
    """Running summary over the messages sharing a session_id.

    Updated one message at a time by SessionIndex.add(); see parser.py.
    """

    id: str
    project_key: str
    project_path: str
    project_name: str
    started_at: datetime
    last_activity: datetime
    first_message: str = "No messages"
    message_count: int = 0
    total_tokens: int = 0
    model: str | None = None
    # Bookkeeping for incremental updates, not part of the wire contract
    first_user_at: datetime | None = None
    model_at: datetime | None = None
    has_cwd: bool = False

    @property
    def duration_ms(self) -> int:
        return int((self.last_activity - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_path": self.project_path,
            "project_name": self.project_name,
            "first_message": self.first_message,
            "message_count": self.message_count,
            "total_tokens": self.total_tokens,
            "model": self.model,
            "started_at": _iso(self.started_at),
            "last_activity": _iso(self.last_activity),
        }


@dataclass
class DailyActivity:
    date: str  # YYYY-MM-DD under the configured day boundary
    message_count: int = 0
    session_count: int = 0
    tool_call_count: int = 0

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "message_count": self.message_count,
            "session_count": self.session_count,
            "tool_call_count": self.tool_call_count,
        }


@dataclass
class ModelUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0
    cost_usd: float = 0.0

    def to_dict(self) -> dict:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cache_read_tokens": self.cache_read_tokens,
            "cache_creation_tokens": self.cache_creation_tokens,
            "cost_usd": self.cost_usd,
        }


@dataclass(frozen=True)
class LongestSession:
    session_id: str
    duration: int  # milliseconds
    message_count: int
    timestamp: datetime  # session start

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "duration": self.duration,
            "message_count": self.message_count,
            "timestamp": _iso(self.timestamp),
        }


@dataclass
class ClaudeStats:
    """Top-level aggregate returned by getClaudeStats."""

    total_sessions: int
    total_messages: int
    last_computed: datetime
    first_session_date: datetime | None
    daily_activity: list[DailyActivity] = field(default_factory=list)
    model_usage: dict[str, ModelUsage] = field(default_factory=dict)
    longest_session: LongestSession | None = None
    tokens_today: int = 0
    messages_today: int = 0
    sessions_today: int = 0
    discarded_lines: int = 0

    def to_dict(self) -> dict:
        return {
            "total_sessions": self.total_sessions,
            "total_messages": self.total_messages,
            "last_computed": _iso(self.last_computed),
            "first_session_date": _iso(self.first_session_date),
            "daily_activity": [d.to_dict() for d in self.daily_activity],
            "model_usage": {k: v.to_dict() for k, v in self.model_usage.items()},
            "longest_session": (
                self.longest_session.to_dict() if self.longest_session else None
            ),
            "tokens_today": self.tokens_today,
            "messages_today": self.messages_today,
            "sessions_today": self.sessions_today,
            "discarded_lines": self.discarded_lines,
        }
