"""JSONL parser — decodes Claude Code transcript lines and indexes them by session.

Each line is decoded on its own: a broken line is counted and skipped, never
fatal for the file. SessionIndex keeps the messages in an arena keyed by uuid,
with parent/children maps for the conversation forest, and maintains the
per-session summaries incrementally as messages arrive.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Iterator
from datetime import datetime, timezone

from claudedash.errors import MalformedRecordError
from claudedash.models import Message, Session
from claudedash.paths import decode_project_path, project_name_from_path

logger = logging.getLogger(__name__)

ROLES = ("user", "assistant")


def parse_line(line: str, project_key: str) -> Message | None:
    """Decode one transcript line.

    Returns None for records that are not conversational turns (summary,
    system, file-history-snapshot, ...). Raises MalformedRecordError when the
    line is not a JSON object or a required field is missing.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedRecordError(f"Invalid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise MalformedRecordError("Record is not a JSON object")

    message_data = data.get("message")
    if not isinstance(message_data, dict):
        message_data = {}

    # The line type is the variant tag; message.role is the fallback
    role = data.get("type") or message_data.get("role")
    if not role:
        raise MalformedRecordError("Missing required field: type/role")
    if role not in ROLES:
        return None

    uuid = data.get("uuid")
    if not uuid or not isinstance(uuid, str):
        raise MalformedRecordError("Missing required field: uuid")
    session_id = data.get("sessionId")
    if not session_id or not isinstance(session_id, str):
        raise MalformedRecordError("Missing required field: sessionId")
    timestamp = _parse_timestamp(data.get("timestamp"))

    parent_uuid = data.get("parentUuid")
    if not isinstance(parent_uuid, str) or not parent_uuid:
        parent_uuid = None

    usage = message_data.get("usage")
    if not isinstance(usage, dict):
        usage = {}

    model = message_data.get("model")
    if not isinstance(model, str) or not model:
        model = None

    cwd = data.get("cwd")
    if not isinstance(cwd, str) or not cwd:
        cwd = None

    content, tool_call_count = _extract_content(message_data.get("content"))

    return Message(
        uuid=uuid,
        parent_uuid=parent_uuid,
        session_id=session_id,
        role=role,
        content=content,
        timestamp=timestamp,
        project_key=project_key,
        model=model,
        input_tokens=_optional_int(usage.get("input_tokens")),
        output_tokens=_optional_int(usage.get("output_tokens")),
        cache_read_tokens=_optional_int(usage.get("cache_read_input_tokens")),
        cache_creation_tokens=_optional_int(usage.get("cache_creation_input_tokens")),
        tool_call_count=tool_call_count,
        cwd=cwd,
    )


def _extract_content(content) -> tuple[str, int]:
    """Return (text, tool_use block count) for a message content field."""
    if isinstance(content, str):
        return content, 0
    if not isinstance(content, list):
        return "", 0
    texts: list[str] = []
    tool_calls = 0
    for item in content:
        if not isinstance(item, dict):
            continue
        item_type = item.get("type")
        if item_type == "text":
            text = item.get("text")
            if isinstance(text, str):
                texts.append(text)
        elif item_type == "tool_use":
            tool_calls += 1
    return "\n".join(texts), tool_calls


def _optional_int(value) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if value >= 0 else None


def _parse_timestamp(ts) -> datetime:
    """Parse an ISO 8601 timestamp string into an aware datetime (UTC if naive)."""
    if not ts or not isinstance(ts, str):
        raise MalformedRecordError("Missing required field: timestamp")
    try:
        parsed = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except ValueError as e:
        raise MalformedRecordError(f"Bad timestamp: {ts!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def summarize_first_message(content: str, max_len: int = 100) -> str:
    """Collapse a prompt to one line and cut it at max_len characters."""
    text = content.strip().replace("\n", " ")
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


def _sort_key(message: Message) -> tuple[datetime, str]:
    return (message.timestamp, message.uuid)


class SessionIndex:
    """Arena of messages addressed by uuid, grouped into sessions.

    parents maps uuid -> parent uuid, children maps uuid -> child uuids in
    insertion order. Messages never reference each other directly.
    """

    def __init__(self, first_message_length: int = 100):
        self.first_message_length = first_message_length
        self.messages: dict[str, Message] = {}
        self.parents: dict[str, str | None] = {}
        self.children: dict[str, list[str]] = {}
        self.sessions: dict[str, Session] = {}
        self.session_members: dict[str, list[str]] = {}
        self.discarded = 0
        self.ignored = 0
        self.duplicates = 0

    def __len__(self) -> int:
        return len(self.messages)

    def copy(self) -> SessionIndex:
        """Independent index sharing the (immutable) Message objects."""
        clone = SessionIndex(self.first_message_length)
        clone.messages = dict(self.messages)
        clone.parents = dict(self.parents)
        clone.children = {k: list(v) for k, v in self.children.items()}
        clone.sessions = {k: dataclasses.replace(v) for k, v in self.sessions.items()}
        clone.session_members = {k: list(v) for k, v in self.session_members.items()}
        clone.discarded = self.discarded
        clone.ignored = self.ignored
        clone.duplicates = self.duplicates
        return clone

    def add_line(self, line: str, project_key: str) -> Message | None:
        """Parse and index one raw line. Returns the message if one was added."""
        if not line.strip():
            return None
        try:
            message = parse_line(line, project_key)
        except MalformedRecordError as e:
            self.discarded += 1
            logger.debug("Discarding line in %s: %s", project_key, e)
            return None
        if message is None:
            self.ignored += 1
            return None
        return message if self.add(message) else None

    def add(self, message: Message) -> bool:
        """Index a message and fold it into its session summary."""
        if message.uuid in self.messages:
            self.duplicates += 1
            return False

        self.messages[message.uuid] = message
        self.parents[message.uuid] = message.parent_uuid
        if message.parent_uuid is not None:
            self.children.setdefault(message.parent_uuid, []).append(message.uuid)
        self.session_members.setdefault(message.session_id, []).append(message.uuid)
        self._update_session(message)
        return True

    def _update_session(self, message: Message) -> None:
        ts = message.timestamp
        session = self.sessions.get(message.session_id)
        if session is None:
            project_path = message.cwd or decode_project_path(message.project_key)
            session = Session(
                id=message.session_id,
                project_key=message.project_key,
                project_path=project_path,
                project_name=project_name_from_path(project_path),
                started_at=ts,
                last_activity=ts,
                has_cwd=message.cwd is not None,
            )
            self.sessions[message.session_id] = session
        elif message.cwd and not session.has_cwd:
            session.project_path = message.cwd
            session.project_name = project_name_from_path(message.cwd)
            session.has_cwd = True

        session.message_count += 1
        session.total_tokens += message.total_tokens
        if ts < session.started_at:
            session.started_at = ts
        if ts > session.last_activity:
            session.last_activity = ts

        if message.role == "user" and (
            session.first_user_at is None or ts < session.first_user_at
        ):
            session.first_message = summarize_first_message(
                message.content, self.first_message_length
            )
            session.first_user_at = ts

        if message.model and (session.model_at is None or ts >= session.model_at):
            session.model = message.model
            session.model_at = ts

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def session_messages(self, session_id: str) -> list[Message]:
        """Messages of a session ordered by (timestamp, uuid); [] if unknown."""
        members = self.session_members.get(session_id, [])
        return sorted((self.messages[u] for u in members), key=_sort_key)

    def children_of(self, uuid: str) -> list[Message]:
        return sorted(
            (self.messages[c] for c in self.children.get(uuid, [])),
            key=_sort_key,
        )

    def roots(self, session_id: str) -> list[Message]:
        """Messages whose parent is absent or outside the session."""
        return [
            m
            for m in self.session_messages(session_id)
            if m.parent_uuid is None
            or m.parent_uuid not in self.messages
            or self.messages[m.parent_uuid].session_id != session_id
        ]

    def branch_points(self, session_id: str) -> list[str]:
        """uuids in the session that have more than one child."""
        return [
            m.uuid
            for m in self.session_messages(session_id)
            if len(self.children.get(m.uuid, [])) > 1
        ]

    def walk(self, session_id: str) -> Iterator[tuple[int, Message]]:
        """Depth-first walk of the session forest, yielding (depth, message).

        Every message of the session is yielded exactly once, even when the
        parent links are inconsistent.
        """
        visited: set[str] = set()
        starts = self.roots(session_id) + self.session_messages(session_id)
        for start in starts:
            if start.uuid in visited:
                continue
            stack = [(0, start)]
            while stack:
                depth, message = stack.pop()
                if message.uuid in visited:
                    continue
                visited.add(message.uuid)
                yield depth, message
                kids = [
                    c
                    for c in self.children_of(message.uuid)
                    if c.session_id == session_id and c.uuid not in visited
                ]
                for child in reversed(kids):
                    stack.append((depth + 1, child))
