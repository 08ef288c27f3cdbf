"""Transcript store — finds Claude Code JSONL transcripts and reads their lines.

Pure read access. Files are append-only and owned by Claude Code; this module
only stats them and reads complete lines from a byte offset, so a line that is
still being written is picked up by a later read.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from claudedash.errors import TranscriptReadError
from claudedash.paths import claude_projects_dir

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranscriptFile:
    """A transcript file as seen by the last stat call."""

    path: Path
    project_key: str  # name of the project directory under the root
    size: int
    mtime: float


@dataclass(frozen=True)
class FileCursor:
    """How far a file has been consumed. offset is always at a line start."""

    size: int
    mtime: float
    offset: int


@dataclass(frozen=True)
class RawRecord:
    path: Path
    project_key: str
    line: str


@dataclass
class FileDelta:
    """Complete lines appended to a file since its cursor."""

    file: TranscriptFile
    lines: list[str]
    offset: int
    failed: bool = False

    @property
    def cursor(self) -> FileCursor:
        return FileCursor(size=self.file.size, mtime=self.file.mtime, offset=self.offset)


@dataclass
class ScanResult:
    """Result of comparing the files on disk against known cursors."""

    files: list[TranscriptFile] = field(default_factory=list)
    changed: list[TranscriptFile] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    truncated: list[str] = field(default_factory=list)

    @property
    def needs_rebuild(self) -> bool:
        """Data already indexed disappeared, so the index must start over."""
        return bool(self.removed or self.truncated)

    @property
    def has_changes(self) -> bool:
        return bool(self.changed or self.needs_rebuild)


class TranscriptStore:
    """Read-only view over a ~/.claude/projects style directory tree."""

    def __init__(self, root: Path | None = None):
        self.root = Path(root).expanduser() if root is not None else claude_projects_dir()

    def list_projects(self) -> list[str]:
        """Names of the project directories under the root, sorted."""
        if not self.root.is_dir():
            logger.debug("Transcript root %s does not exist", self.root)
            return []
        try:
            return sorted(p.name for p in self.root.iterdir() if p.is_dir())
        except OSError as e:
            logger.warning("Cannot list %s: %s", self.root, e)
            return []

    def list_files(self, project_key: str | None = None) -> list[TranscriptFile]:
        """All JSONL transcripts in scope, excluding subagent logs, sorted by path."""
        keys = [project_key] if project_key is not None else self.list_projects()
        results: list[TranscriptFile] = []
        for key in keys:
            project_dir = self.root / key
            if not project_dir.is_dir():
                logger.debug("Project directory %s does not exist", project_dir)
                continue
            try:
                results.extend(self._project_files(project_dir, key))
            except OSError as e:
                logger.warning("Skipping project %s: %s", project_dir, e)
        results.sort(key=lambda f: str(f.path))
        return results

    def _project_files(self, project_dir: Path, key: str) -> list[TranscriptFile]:
        files = []
        for jsonl_file in project_dir.rglob("*.jsonl"):
            if "subagents" in jsonl_file.relative_to(project_dir).parts:
                continue
            try:
                st = jsonl_file.stat()
            except OSError as e:
                logger.warning("Skipping %s: %s", jsonl_file, e)
                continue
            files.append(
                TranscriptFile(
                    path=jsonl_file,
                    project_key=key,
                    size=st.st_size,
                    mtime=st.st_mtime,
                )
            )
        return files

    def read_lines(self, path: Path, offset: int = 0) -> tuple[list[str], int]:
        """Read complete lines starting at offset.

        Returns (lines, new_offset). A trailing line without its newline is
        left unread and new_offset points at its first byte.
        """
        try:
            with open(path, "rb") as f:
                f.seek(offset)
                data = f.read()
        except OSError as e:
            raise TranscriptReadError(f"Cannot read {path}: {e}") from e

        end = data.rfind(b"\n")
        if end == -1:
            return [], offset
        chunk = data[: end + 1]
        lines = [
            raw.decode("utf-8", errors="replace").rstrip("\r")
            for raw in chunk.split(b"\n")[:-1]
        ]
        return lines, offset + len(chunk)

    def iter_records(self, project_key: str | None = None) -> Iterator[RawRecord]:
        """Lazily yield every complete line in scope, oldest-first per file."""
        for tf in self.list_files(project_key):
            try:
                lines, _ = self.read_lines(tf.path)
            except TranscriptReadError as e:
                logger.warning("%s", e)
                continue
            for line in lines:
                yield RawRecord(path=tf.path, project_key=tf.project_key, line=line)

    def scan(self, cursors: dict[str, FileCursor]) -> ScanResult:
        """Stat every transcript and compare against the known cursors."""
        result = ScanResult(files=self.list_files())
        seen: set[str] = set()
        for tf in result.files:
            key = str(tf.path)
            seen.add(key)
            cursor = cursors.get(key)
            if cursor is None:
                result.changed.append(tf)
            elif tf.size < cursor.offset:
                result.truncated.append(key)
            elif tf.size != cursor.size or tf.mtime != cursor.mtime:
                result.changed.append(tf)
        result.removed = sorted(k for k in cursors if k not in seen)
        return result

    def read_deltas(
        self,
        files: list[TranscriptFile],
        cursors: dict[str, FileCursor],
        workers: int = 4,
    ) -> list[FileDelta]:
        """Read new lines from each file, one worker per project directory.

        Unreadable files come back with failed=True and their offset unchanged.
        """
        by_project: dict[str, list[TranscriptFile]] = defaultdict(list)
        for tf in files:
            by_project[tf.project_key].append(tf)

        def read_project(project_files: list[TranscriptFile]) -> list[FileDelta]:
            deltas = []
            for tf in project_files:
                start = cursors[str(tf.path)].offset if str(tf.path) in cursors else 0
                try:
                    lines, offset = self.read_lines(tf.path, start)
                except TranscriptReadError as e:
                    logger.warning("%s", e)
                    deltas.append(FileDelta(file=tf, lines=[], offset=start, failed=True))
                    continue
                deltas.append(FileDelta(file=tf, lines=lines, offset=offset))
            return deltas

        if not by_project:
            return []

        deltas: list[FileDelta] = []
        with ThreadPoolExecutor(max_workers=max(1, min(workers, len(by_project)))) as pool:
            for project_deltas in pool.map(read_project, by_project.values()):
                deltas.extend(project_deltas)
        deltas.sort(key=lambda d: str(d.file.path))
        return deltas
