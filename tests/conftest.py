"""Shared test fixtures for claudedash tests."""

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from claudedash.config import DashConfig
from claudedash.service import QueryService
from claudedash.stats import StatsAggregator
from claudedash.store import TranscriptStore

# Reporting "now" for tests that depend on the current day
NOW = datetime(2026, 1, 16, 15, 0, 0, tzinfo=timezone.utc)

APP_KEY = "-Users-test-work-my-app"
OTHER_KEY = "-Users-test-work-other"


def _line(
    uuid,
    session_id="sess-001",
    role="user",
    timestamp="2026-01-15T10:00:00.000Z",
    parent=None,
    content="hello",
    model=None,
    usage=None,
    cwd=None,
    tools=0,
    **extra,
):
    """Build one transcript line the way Claude Code writes it."""
    if tools:
        content = [{"type": "text", "text": content}] + [
            {"type": "tool_use", "id": f"tool-{uuid}-{i}", "name": "Read", "input": {}}
            for i in range(tools)
        ]
    message = {"role": role, "content": content}
    if model:
        message["model"] = model
    if usage is not None:
        message["usage"] = usage
    record = {
        "type": role,
        "uuid": uuid,
        "parentUuid": parent,
        "sessionId": session_id,
        "timestamp": timestamp,
        "message": message,
    }
    if cwd:
        record["cwd"] = cwd
    record.update(extra)
    return json.dumps(record)


@pytest.fixture
def make_line():
    """Factory for a JSON transcript line."""
    return _line


@pytest.fixture
def projects_dir(tmp_path):
    """An empty ~/.claude/projects lookalike."""
    d = tmp_path / "projects"
    d.mkdir()
    return d


@pytest.fixture
def write_transcript(projects_dir):
    """Write (or append) lines to <projects_dir>/<project_key>/<name>."""

    def write(project_key, name, lines, trailing_newline=True, append=False) -> Path:
        project = projects_dir / project_key
        project.mkdir(exist_ok=True)
        path = project / name
        text = "\n".join(lines)
        if trailing_newline and lines:
            text += "\n"
        with open(path, "a" if append else "w") as f:
            f.write(text)
        return path

    return write


@pytest.fixture
def config(projects_dir):
    return DashConfig(
        log_dir=projects_dir,
        port=8787,
        day_boundary="utc",
        scan_workers=2,
        query_timeout=None,
        first_message_length=100,
    )


@pytest.fixture
def aggregator(config):
    agg = StatsAggregator(TranscriptStore(config.log_dir), config, clock=lambda: NOW)
    yield agg
    agg.close()


@pytest.fixture
def service(aggregator):
    return QueryService(aggregator)


@pytest.fixture
def sample_corpus(write_transcript):
    """Two projects, three sessions, one malformed line.

    my-app / sess-001: 4 messages on 2026-01-15, 710 tokens, 90s long.
    my-app / sess-002: 2 messages on 2026-01-16, 30 tokens, 600s long.
    other  / sess-003: 2 messages on 2026-01-16, no tokens, no model, no cwd.
    """
    cwd = "/Users/test/work/my-app"
    write_transcript(
        APP_KEY,
        "sess-001.jsonl",
        [
            json.dumps({"type": "summary", "summary": "Parser fix", "leafUuid": "a2"}),
            _line("u1", "sess-001", "user", "2026-01-15T10:00:00.000Z",
                  content="Fix the bug in parser.py", cwd=cwd),
            _line("a1", "sess-001", "assistant", "2026-01-15T10:00:05.000Z", parent="u1",
                  content="Looking at it.", model="claude-sonnet-4-5", cwd=cwd, tools=1,
                  usage={"input_tokens": 120, "output_tokens": 340,
                         "cache_read_input_tokens": 1000}),
            _line("u2", "sess-001", "user", "2026-01-15T10:01:00.000Z", parent="a1",
                  content="Thanks", cwd=cwd),
            _line("a2", "sess-001", "assistant", "2026-01-15T10:01:30.000Z", parent="u2",
                  content="Done.", model="claude-sonnet-4-5", cwd=cwd,
                  usage={"input_tokens": 200, "output_tokens": 50}),
        ],
    )
    write_transcript(
        APP_KEY,
        "sess-002.jsonl",
        [
            _line("u3", "sess-002", "user", "2026-01-16T09:00:00.000Z",
                  content="Add tests", cwd=cwd),
            _line("a3", "sess-002", "assistant", "2026-01-16T09:10:00.000Z", parent="u3",
                  content="Added.", model="claude-opus-4-1", cwd=cwd, tools=2,
                  usage={"input_tokens": 10, "output_tokens": 20}),
        ],
    )
    write_transcript(
        OTHER_KEY,
        "sess-003.jsonl",
        [
            _line("u4", "sess-003", "user", "2026-01-16T12:00:00.000Z", content="Hi"),
            "{not json",
            _line("a4", "sess-003", "assistant", "2026-01-16T12:00:30.000Z", parent="u4",
                  content="Hello"),
        ],
    )
