"""Query façade — the four read operations the dashboard UI calls.

Every call first brings the aggregator up to date, then reads from one
published IndexState, so a single answer never mixes two generations.
"""

from __future__ import annotations

from claudedash.config import DashConfig
from claudedash.errors import SessionNotFoundError
from claudedash.models import ClaudeStats, Message, Session
from claudedash.paths import encode_project_path
from claudedash.stats import StatsAggregator
from claudedash.store import TranscriptStore


def _recency_key(session: Session):
    # Sorted ascending on this key: newest activity first, then id
    return (-session.last_activity.timestamp(), session.id)


class QueryService:
    def __init__(self, aggregator: StatsAggregator):
        self.aggregator = aggregator

    @classmethod
    def from_config(cls, config: DashConfig) -> QueryService:
        """Build the store, aggregator and service for a loaded config."""
        return cls(StatsAggregator(TranscriptStore(config.log_dir), config))

    def close(self) -> None:
        self.aggregator.close()

    def get_claude_stats(self) -> ClaudeStats:
        state = self.aggregator.refresh()
        return state.snapshot.to_stats(self.aggregator.today())

    def get_recent_sessions(self, limit: int) -> list[Session]:
        """Up to `limit` sessions across all projects, most recent first."""
        if limit <= 0:
            return []
        index = self.aggregator.refresh().index
        return sorted(index.sessions.values(), key=_recency_key)[:limit]

    def get_project_sessions(self, project_path: str) -> list[Session]:
        """Sessions recorded for one project path, most recent first."""
        if not project_path or not project_path.strip():
            return []
        wanted = project_path.rstrip("/") or "/"
        encoded = encode_project_path(project_path)
        index = self.aggregator.refresh().index
        matches = [
            s
            for s in index.sessions.values()
            if (s.project_path.rstrip("/") or "/") == wanted or s.project_key == encoded
        ]
        return sorted(matches, key=_recency_key)

    def get_session_messages(self, session_id: str) -> list[Message]:
        """Messages of a session ordered by timestamp, then uuid.

        Raises SessionNotFoundError if no message carries the id.
        """
        index = self.aggregator.refresh().index
        messages = index.session_messages(session_id)
        if not messages:
            raise SessionNotFoundError(session_id)
        return messages

    def get_session_tree(self, session_id: str) -> list[tuple[int, Message]]:
        """(depth, message) pairs in depth-first order, for branch-aware views."""
        index = self.aggregator.refresh().index
        if session_id not in index.sessions:
            raise SessionNotFoundError(session_id)
        return list(index.walk(session_id))
