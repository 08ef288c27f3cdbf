"""Statistics aggregation over the session index, with a refresh-on-change cache.

compute_stats() is a pure fold from a SessionIndex to a StatsSnapshot.
StatsAggregator owns the index, the per-file read cursors and the snapshot,
and replaces all three together whenever the transcripts change.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime, timezone

from claudedash.config import DashConfig
from claudedash.cost import estimate_cost
from claudedash.errors import AggregationError
from claudedash.models import ClaudeStats, DailyActivity, LongestSession, ModelUsage
from claudedash.parser import SessionIndex
from claudedash.store import FileCursor, TranscriptStore

logger = logging.getLogger(__name__)


class CacheState(enum.Enum):
    STALE = "stale"
    COMPUTING = "computing"
    FRESH = "fresh"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def day_of(ts: datetime, boundary: str = "utc") -> str:
    """Calendar day (YYYY-MM-DD) of a timestamp under the reporting boundary."""
    if boundary == "local":
        return ts.astimezone().date().isoformat()
    return ts.astimezone(timezone.utc).date().isoformat()


@dataclass(frozen=True)
class StatsSnapshot:
    """Everything getClaudeStats needs except the "today" counters.

    Those depend on the date at query time and are filled in by to_stats().
    """

    total_sessions: int
    total_messages: int
    last_computed: datetime
    first_session_date: datetime | None
    daily_activity: tuple[DailyActivity, ...]
    daily_tokens: dict[str, int]
    model_usage: dict[str, ModelUsage]
    longest_session: LongestSession | None
    discarded_lines: int = 0

    def to_stats(self, today: str) -> ClaudeStats:
        """Build a ClaudeStats for the given reporting day.

        Returns fresh objects so callers cannot mutate the cached snapshot.
        """
        today_bucket = next((d for d in self.daily_activity if d.date == today), None)
        return ClaudeStats(
            total_sessions=self.total_sessions,
            total_messages=self.total_messages,
            last_computed=self.last_computed,
            first_session_date=self.first_session_date,
            daily_activity=[DailyActivity(**vars(d)) for d in self.daily_activity],
            model_usage={k: ModelUsage(**vars(v)) for k, v in self.model_usage.items()},
            longest_session=self.longest_session,
            tokens_today=self.daily_tokens.get(today, 0),
            messages_today=today_bucket.message_count if today_bucket else 0,
            sessions_today=today_bucket.session_count if today_bucket else 0,
            discarded_lines=self.discarded_lines,
        )


def compute_stats(
    index: SessionIndex,
    *,
    now: datetime | None = None,
    day_boundary: str = "utc",
) -> StatsSnapshot:
    """Fold every indexed message into daily, per-model and session totals."""
    daily: dict[str, DailyActivity] = {}
    day_sessions: dict[str, set[str]] = defaultdict(set)
    daily_tokens: dict[str, int] = defaultdict(int)
    usage: dict[str, ModelUsage] = {}

    for message in index.messages.values():
        day = day_of(message.timestamp, day_boundary)
        bucket = daily.get(day)
        if bucket is None:
            bucket = daily[day] = DailyActivity(date=day)
        bucket.message_count += 1
        bucket.tool_call_count += message.tool_call_count
        day_sessions[day].add(message.session_id)
        daily_tokens[day] += message.total_tokens

        if message.model is None:
            continue
        mu = usage.get(message.model)
        if mu is None:
            mu = usage[message.model] = ModelUsage()
        mu.input_tokens += message.input_tokens or 0
        mu.output_tokens += message.output_tokens or 0
        mu.cache_read_tokens += message.cache_read_tokens or 0
        mu.cache_creation_tokens += message.cache_creation_tokens or 0

    for day, bucket in daily.items():
        bucket.session_count = len(day_sessions[day])

    for model, mu in usage.items():
        mu.cost_usd = estimate_cost(
            mu.input_tokens,
            mu.output_tokens,
            mu.cache_read_tokens,
            mu.cache_creation_tokens,
            model=model,
        )

    sessions = list(index.sessions.values())
    longest = None
    if sessions:
        # Longest duration wins; ties go to the earliest start, then the id
        best = min(sessions, key=lambda s: (-s.duration_ms, s.started_at, s.id))
        longest = LongestSession(
            session_id=best.id,
            duration=best.duration_ms,
            message_count=best.message_count,
            timestamp=best.started_at,
        )

    return StatsSnapshot(
        total_sessions=len(sessions),
        total_messages=len(index.messages),
        last_computed=now or utc_now(),
        first_session_date=min((s.started_at for s in sessions), default=None),
        daily_activity=tuple(daily[d] for d in sorted(daily)),
        daily_tokens=dict(daily_tokens),
        model_usage={k: usage[k] for k in sorted(usage)},
        longest_session=longest,
        discarded_lines=index.discarded,
    )


def total_tokens(stats: ClaudeStats) -> int:
    """Input plus output tokens across all models."""
    return sum(m.input_tokens + m.output_tokens for m in stats.model_usage.values())


def primary_model(stats: ClaudeStats) -> str | None:
    """The model with the most output tokens, or None without usage."""
    if not stats.model_usage:
        return None
    return max(stats.model_usage.items(), key=lambda kv: (kv[1].output_tokens, kv[0]))[0]


@dataclass(frozen=True)
class IndexState:
    """One published generation: index, read cursors and the stats folded from them."""

    index: SessionIndex
    cursors: dict[str, FileCursor] = field(default_factory=dict)
    snapshot: StatsSnapshot | None = None


class StatsAggregator:
    """Owns the session index and the ClaudeStats cache.

    States: stale -> computing -> fresh, or computing -> stale on failure.
    At most one computation runs at a time on a private worker thread; callers
    arriving meanwhile wait on the same future. A finished computation is
    published by swapping a single IndexState reference under the lock.
    """

    def __init__(
        self,
        store: TranscriptStore,
        config: DashConfig | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.day_boundary = config.day_boundary if config else "utc"
        self.scan_workers = config.scan_workers if config else 4
        self.query_timeout = config.query_timeout if config else None
        self.first_message_length = config.first_message_length if config else 100
        self.clock = clock
        self.computations = 0

        self._lock = threading.Lock()
        self._state: IndexState | None = None
        self._status = CacheState.STALE
        self._inflight: Future | None = None
        self._forced = False
        self._rebuild = False
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="claudedash-stats"
        )

    @property
    def status(self) -> CacheState:
        with self._lock:
            return self._status

    @property
    def current(self) -> IndexState | None:
        """The last published state, without checking for new data."""
        with self._lock:
            return self._state

    def today(self) -> str:
        return day_of(self.clock(), self.day_boundary)

    def invalidate(self, rebuild: bool = False) -> None:
        """Mark the cache stale so the next query recomputes.

        With rebuild=True the next pass re-reads every transcript from scratch.
        """
        with self._lock:
            self._forced = True
            self._rebuild = self._rebuild or rebuild
            if self._status is CacheState.FRESH:
                self._status = CacheState.STALE

    def refresh(self, timeout: float | None = None) -> IndexState:
        """Return an up-to-date state, recomputing first if transcripts changed.

        Raises AggregationError only when no state was ever published.
        """
        future = self._start_if_stale()
        if future is None:
            with self._lock:
                return self._state

        wait = timeout if timeout is not None else self.query_timeout
        try:
            return future.result(timeout=wait)
        except FutureTimeoutError:
            state = self.current
            if state is not None:
                logger.warning("Statistics still computing after %ss; serving last snapshot", wait)
                return state
            raise AggregationError("Timed out waiting for the first statistics computation")
        except Exception as e:
            state = self.current
            if state is not None:
                return state
            raise AggregationError(f"Statistics computation failed: {e}") from e

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> StatsAggregator:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _start_if_stale(self) -> Future | None:
        with self._lock:
            if self._inflight is not None:
                return self._inflight
            state = self._state
            forced = self._forced

        if state is not None and not forced:
            try:
                changed = self.store.scan(state.cursors).has_changes
            except Exception:
                logger.exception("Change detection failed; serving last snapshot")
                self.invalidate()
                return None
            if not changed:
                return None
            logger.debug("New transcript data detected")

        with self._lock:
            if self._inflight is None:
                self._status = CacheState.COMPUTING
                self._inflight = self._executor.submit(self._compute)
            return self._inflight

    def _compute(self) -> IndexState:
        with self._lock:
            base = self._state
            requested = self._rebuild
            rebuild = requested or base is None
            self._forced = False
            self._rebuild = False

        try:
            scan = self.store.scan({} if rebuild else base.cursors)
            if not rebuild and scan.needs_rebuild:
                logger.info(
                    "Transcripts removed or truncated (%d files); rebuilding index",
                    len(scan.removed) + len(scan.truncated),
                )
                rebuild = True
                scan = self.store.scan({})

            if rebuild:
                index = SessionIndex(self.first_message_length)
                cursors: dict[str, FileCursor] = {}
            else:
                index = base.index.copy()
                cursors = dict(base.cursors)

            deltas = self.store.read_deltas(scan.changed, cursors, self.scan_workers)
            failed = 0
            for delta in deltas:
                if delta.failed:
                    # Old cursor stays, so the next scan reports the file again
                    failed += 1
                    continue
                for line in delta.lines:
                    index.add_line(line, delta.file.project_key)
                cursors[str(delta.file.path)] = delta.cursor

            snapshot = compute_stats(index, now=self.clock(), day_boundary=self.day_boundary)
            new_state = IndexState(index=index, cursors=cursors, snapshot=snapshot)
        except Exception:
            logger.exception("Statistics computation failed")
            with self._lock:
                self._status = CacheState.STALE
                self._inflight = None
                self._forced = True
                self._rebuild = self._rebuild or requested
            raise

        with self._lock:
            self._state = new_state
            self._inflight = None
            self.computations += 1
            if failed:
                self._status = CacheState.STALE
                self._forced = True
            else:
                self._status = CacheState.FRESH
        if failed:
            logger.warning("%d transcripts could not be read; retrying on next query", failed)
        logger.debug(
            "Indexed %d messages in %d sessions (%d lines discarded)",
            len(index), len(index.sessions), index.discarded,
        )
        return new_state
