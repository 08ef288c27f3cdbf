"""Tests for transcript discovery and line reading."""

from __future__ import annotations

import os

import pytest

from claudedash.errors import TranscriptReadError
from claudedash.store import FileCursor, TranscriptStore


class TestDiscovery:
    def test_missing_root_is_empty(self, tmp_path):
        store = TranscriptStore(tmp_path / "nope")
        assert store.list_projects() == []
        assert store.list_files() == []
        assert list(store.iter_records()) == []

    def test_lists_projects_sorted(self, projects_dir):
        (projects_dir / "-b").mkdir()
        (projects_dir / "-a").mkdir()
        (projects_dir / "stray.txt").touch()
        assert TranscriptStore(projects_dir).list_projects() == ["-a", "-b"]

    def test_finds_jsonl_files_only(self, projects_dir):
        project = projects_dir / "-p"
        project.mkdir()
        (project / "a.jsonl").write_text("")
        (project / "b.jsonl").write_text("x\n")
        (project / "notes.txt").write_text("")
        files = TranscriptStore(projects_dir).list_files()
        assert [f.path.name for f in files] == ["a.jsonl", "b.jsonl"]
        assert files[1].size == 2
        assert all(f.project_key == "-p" for f in files)

    def test_excludes_subagents(self, projects_dir):
        project = projects_dir / "-p"
        (project / "sess" / "subagents").mkdir(parents=True)
        (project / "main.jsonl").write_text("")
        (project / "sess" / "subagents" / "agent.jsonl").write_text("")
        files = TranscriptStore(projects_dir).list_files()
        assert [f.path.name for f in files] == ["main.jsonl"]

    def test_scoped_to_one_project(self, projects_dir):
        for key in ("-p1", "-p2"):
            (projects_dir / key).mkdir()
            (projects_dir / key / "s.jsonl").write_text("")
        store = TranscriptStore(projects_dir)
        assert [f.project_key for f in store.list_files("-p2")] == ["-p2"]
        assert store.list_files("-missing") == []

    def test_project_vanishing_mid_walk_is_skipped(self, projects_dir, monkeypatch):
        for key in ("-p1", "-p2"):
            (projects_dir / key).mkdir()
            (projects_dir / key / "s.jsonl").write_text("")
        real_rglob = type(projects_dir).rglob

        def rglob(self, pattern):
            if self.name == "-p1":
                raise FileNotFoundError(f"{self} removed")
            return real_rglob(self, pattern)

        monkeypatch.setattr(type(projects_dir), "rglob", rglob)
        files = TranscriptStore(projects_dir).list_files()
        assert [f.project_key for f in files] == ["-p2"]


class TestReadLines:
    def test_reads_complete_lines(self, tmp_path):
        path = tmp_path / "t.jsonl"
        path.write_text("one\ntwo\n")
        lines, offset = TranscriptStore(tmp_path).read_lines(path)
        assert lines == ["one", "two"]
        assert offset == 8

    def test_partial_trailing_line_deferred(self, tmp_path):
        path = tmp_path / "t.jsonl"
        path.write_text("one\ntw")
        store = TranscriptStore(tmp_path)
        lines, offset = store.read_lines(path)
        assert lines == ["one"]
        assert offset == 4

        with open(path, "a") as f:
            f.write("o\nthree\n")
        lines, offset = store.read_lines(path, offset)
        assert lines == ["two", "three"]
        assert offset == path.stat().st_size

    def test_no_newline_at_all(self, tmp_path):
        path = tmp_path / "t.jsonl"
        path.write_text("partial")
        assert TranscriptStore(tmp_path).read_lines(path) == ([], 0)

    def test_crlf_and_invalid_utf8(self, tmp_path):
        path = tmp_path / "t.jsonl"
        path.write_bytes(b"a\r\n\xff\xfe\n")
        lines, _ = TranscriptStore(tmp_path).read_lines(path)
        assert lines[0] == "a"
        assert len(lines) == 2

    def test_unreadable_file_raises(self, tmp_path):
        with pytest.raises(TranscriptReadError):
            TranscriptStore(tmp_path).read_lines(tmp_path / "missing.jsonl")

    def test_iter_records_in_file_order(self, write_transcript, projects_dir):
        write_transcript("-p", "a.jsonl", ["1", "2"])
        write_transcript("-p", "b.jsonl", ["3"])
        records = list(TranscriptStore(projects_dir).iter_records())
        assert [r.line for r in records] == ["1", "2", "3"]
        assert records[0].project_key == "-p"


class TestScan:
    def test_everything_new_without_cursors(self, write_transcript, projects_dir):
        write_transcript("-p", "a.jsonl", ["1"])
        scan = TranscriptStore(projects_dir).scan({})
        assert len(scan.changed) == 1
        assert scan.has_changes
        assert not scan.needs_rebuild

    def test_unchanged_file_not_reported(self, write_transcript, projects_dir):
        path = write_transcript("-p", "a.jsonl", ["1"])
        st = path.stat()
        cursors = {str(path): FileCursor(size=st.st_size, mtime=st.st_mtime, offset=st.st_size)}
        assert not TranscriptStore(projects_dir).scan(cursors).has_changes

    def test_grown_file_reported(self, write_transcript, projects_dir):
        path = write_transcript("-p", "a.jsonl", ["1"])
        st = path.stat()
        cursors = {str(path): FileCursor(size=st.st_size, mtime=st.st_mtime, offset=st.st_size)}
        write_transcript("-p", "a.jsonl", ["2"], append=True)
        scan = TranscriptStore(projects_dir).scan(cursors)
        assert [f.path for f in scan.changed] == [path]

    def test_touched_file_reported(self, write_transcript, projects_dir):
        path = write_transcript("-p", "a.jsonl", ["1"])
        st = path.stat()
        cursors = {str(path): FileCursor(size=st.st_size, mtime=st.st_mtime, offset=st.st_size)}
        os.utime(path, (st.st_atime + 10, st.st_mtime + 10))
        assert TranscriptStore(projects_dir).scan(cursors).has_changes

    def test_truncated_and_removed_force_rebuild(self, write_transcript, projects_dir):
        path = write_transcript("-p", "a.jsonl", ["1"])
        cursors = {
            str(path): FileCursor(size=100, mtime=0.0, offset=100),
            str(projects_dir / "-p" / "gone.jsonl"): FileCursor(size=1, mtime=0.0, offset=1),
        }
        scan = TranscriptStore(projects_dir).scan(cursors)
        assert scan.truncated == [str(path)]
        assert scan.removed == [str(projects_dir / "-p" / "gone.jsonl")]
        assert scan.needs_rebuild


class TestReadDeltas:
    def test_reads_from_cursor_offset(self, write_transcript, projects_dir):
        path = write_transcript("-p", "a.jsonl", ["1", "2"])
        write_transcript("-q", "b.jsonl", ["x"])
        store = TranscriptStore(projects_dir)
        cursors = {str(path): FileCursor(size=2, mtime=0.0, offset=2)}
        deltas = store.read_deltas(store.list_files(), cursors, workers=2)
        assert [d.lines for d in deltas] == [["2"], ["x"]]
        assert deltas[0].cursor.offset == path.stat().st_size
        assert not any(d.failed for d in deltas)

    def test_unreadable_file_marked_failed(self, write_transcript, projects_dir):
        path = write_transcript("-p", "a.jsonl", ["1"])
        store = TranscriptStore(projects_dir)
        files = store.list_files()
        path.unlink()
        deltas = store.read_deltas(files, {}, workers=1)
        assert deltas[0].failed
        assert deltas[0].lines == []
        assert deltas[0].offset == 0

    def test_no_files(self, projects_dir):
        assert TranscriptStore(projects_dir).read_deltas([], {}) == []
