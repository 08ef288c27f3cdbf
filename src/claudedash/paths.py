"""Locations under ~/.claude and the project directory name encoding."""

from __future__ import annotations

from pathlib import Path

CLAUDE_HOME = Path("~/.claude")


def claude_projects_dir() -> Path:
    """Return the expanded ~/.claude/projects directory."""
    return (CLAUDE_HOME / "projects").expanduser()


def encode_project_path(path: str) -> str:
    """Encode a project path the way Claude names its project directories.

    e.g. '/Users/kasun/work/foo' -> '-Users-kasun-work-foo'
    """
    return path.rstrip("/").replace("/", "-") if path != "/" else "-"


def decode_project_path(encoded: str) -> str:
    """Best-effort inverse of encode_project_path.

    Lossy: a dash inside a directory name decodes to a separator, so the
    'cwd' recorded on transcript lines is preferred when available.
    """
    return encoded.replace("-", "/")


def project_name_from_path(project_path: str) -> str:
    """Last path segment of a project path ('/a/b/foo' -> 'foo')."""
    stripped = project_path.rstrip("/")
    if not stripped:
        return project_path
    return stripped.rsplit("/", 1)[-1]
