"""Time and database profilers for the request lifecycle.

The time profiler is started when the bootstrap pipeline sets up its
profilers and stopped when the request concludes; every pipeline step marks
a named milestone on it. Milestones are mirrored as events on the current
OpenTelemetry span so traces show the same breakdown as the profiler.

The database profiler collects one record per executed SQL statement. It is
bound to the request context, which is how the SQL listeners attached to the
shared engines find the profiler of the request that ran the query.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Self

from opentelemetry import trace

from src.core.constants import MILLISECONDS_PER_SECOND


@dataclass(frozen=True, slots=True)
class Milestone:
    """A named point in time recorded by the time profiler."""

    key: str
    description: str
    timestamp: float

    def offset_ms(self, start: float) -> float:
        """Milliseconds elapsed between ``start`` and this milestone."""
        return round((self.timestamp - start) * MILLISECONDS_PER_SECOND, 3)


class TimeProfiler:
    """Wall-clock profiler annotated with named milestones.

    Timestamps come from ``time.perf_counter`` so a caller-supplied start
    must use the same clock.
    """

    def __init__(self) -> None:
        self._start: float | None = None
        self._end: float | None = None
        self._milestones: list[Milestone] = []

    def begin(self, start: float | None = None) -> Self:
        """Start profiling.

        Args:
            start: ``perf_counter`` timestamp to count from; now when omitted.

        Returns:
            Self: The profiler, for chaining.

        Raises:
            RuntimeError: If the profiler was already started.
        """
        if self._start is not None:
            msg = "Time profiler already started"
            raise RuntimeError(msg)
        self._start = time.perf_counter() if start is None else start
        return self

    def add_milestone(self, key: str, description: str) -> Self:
        """Record a milestone at the current time.

        Args:
            key: Short milestone identifier (e.g. ``env_init``).
            description: Human-readable description.

        Returns:
            Self: The profiler, for chaining.

        Raises:
            RuntimeError: If the profiler is not running.
        """
        if not self.is_running:
            msg = "Time profiler is not running"
            raise RuntimeError(msg)

        milestone = Milestone(key, description, time.perf_counter())
        self._milestones.append(milestone)

        span = trace.get_current_span()
        if span.is_recording():
            span.add_event(key, {"description": description})
        return self

    def end(self) -> Self:
        """Stop profiling.

        Returns:
            Self: The profiler, for chaining.

        Raises:
            RuntimeError: If the profiler is not running.
        """
        if not self.is_running:
            msg = "Time profiler is not running"
            raise RuntimeError(msg)
        self._end = time.perf_counter()
        return self

    @property
    def is_running(self) -> bool:
        """Whether ``begin`` was called and ``end`` was not."""
        return self._start is not None and self._end is None

    @property
    def milestones(self) -> list[Milestone]:
        """Milestones in the order they were recorded."""
        return list(self._milestones)

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds from start to end (or to now while running)."""
        if self._start is None:
            return 0.0
        stop = self._end if self._end is not None else time.perf_counter()
        return round((stop - self._start) * MILLISECONDS_PER_SECOND, 3)

    def summary(self) -> dict[str, float]:
        """Milestone offsets from the start, in milliseconds."""
        if self._start is None:
            return {}
        return {m.key: m.offset_ms(self._start) for m in self._milestones}


@dataclass(frozen=True, slots=True)
class QueryRecord:
    """One executed SQL statement."""

    statement: str
    duration_ms: float
    shard: str
    parameters: object = None


@dataclass
class DatabaseProfiler:
    """Collects executed queries for a single request."""

    queries: list[QueryRecord] = field(default_factory=list)

    def add_query(
        self,
        statement: str,
        duration_ms: float,
        shard: str = "default",
        parameters: object = None,
    ) -> None:
        """Record an executed statement."""
        self.queries.append(QueryRecord(statement, duration_ms, shard, parameters))

    @property
    def query_count(self) -> int:
        """Number of statements recorded."""
        return len(self.queries)

    @property
    def total_ms(self) -> float:
        """Total time spent in recorded statements, in milliseconds."""
        return round(sum(q.duration_ms for q in self.queries), 3)
