"""Coalescing, batching and retrying of watch events on their way to a sink."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Sequence


@dataclass
class Entry:
    """One journal record of a file-system change."""

    ts: datetime = datetime.min
    op: str = ""
    path: str = ""
    is_dir: bool = False
    size: int = 0


class Aggregator:
    """Keeps the last event per path until the caller flushes."""

    def __init__(self) -> None:
        self._entries: dict[str, Entry] = {}

    def add(self, event: Any) -> None:
        """Record an event (with path, op, ts, is_dir and size) replacing any earlier one for its path."""
        self._entries[event.path] = Entry(
            ts=event.ts,
            op=str(event.op),
            path=event.path,
            is_dir=event.is_dir,
            size=event.size,
        )

    def flush(self) -> list[Entry]:
        """Return the collected entries ordered by timestamp and start afresh."""
        entries = sorted(self._entries.values(), key=lambda entry: entry.ts)
        self._entries = {}
        return entries


class EventSink(ABC):
    """Consumer of flushed entries."""

    @abstractmethod
    def handle(self, entries: Sequence[Entry]) -> None:
        """Process a batch of entries; raise on failure."""


class FuncSink(EventSink):
    """Wraps a plain callable as a sink."""

    def __init__(self, fn: Callable[[Sequence[Entry]], None]) -> None:
        self._fn = fn

    def handle(self, entries: Sequence[Entry]) -> None:
        self._fn(entries)


class SinkError(Exception):
    """A sink in a fan-out failed."""


class MultiSink(EventSink):
    """Passes each batch to several sinks in turn, stopping at the first failure."""

    def __init__(self, sinks: Iterable[EventSink]) -> None:
        self._sinks = list(sinks)

    def handle(self, entries: Sequence[Entry]) -> None:
        for sink in self._sinks:
            try:
                sink.handle(entries)
            except Exception as exc:
                raise SinkError(f"sink failed: {exc}") from exc


def _close_sink(sink: Any) -> None:
    close = getattr(sink, "close", None)
    if callable(close):
        close()


class Writer:
    """Holds pending entries and retries failed writes with exponential backoff.

    Times are monotonic seconds; backoffs are seconds.
    """

    def __init__(
        self,
        sink: EventSink,
        logger: Optional[logging.Logger] = None,
        base_backoff: float = 0.5,
        max_backoff: float = 5.0,
    ) -> None:
        self._sink = sink
        self._logger = logger or logging.getLogger(__name__)
        self._base_backoff = base_backoff if base_backoff > 0 else 0.5
        self._max_backoff = max_backoff if max_backoff > 0 else 5.0
        self._pending: list[Entry] = []
        self._next_try: Optional[float] = None
        self._backoff = 0.0

    @property
    def pending(self) -> tuple[Entry, ...]:
        """Entries waiting to be written."""
        return tuple(self._pending)

    @property
    def backoff(self) -> float:
        """Current retry delay in seconds; 0 when the last write succeeded."""
        return self._backoff

    def enqueue(self, entries: Iterable[Entry]) -> None:
        """Add entries to the pending buffer."""
        self._pending.extend(entries)

    def flush(self, now: Optional[float] = None) -> None:
        """Write pending entries unless a backoff period is still running."""
        if not self._pending:
            return
        if now is None:
            now = time.monotonic()
        if self._next_try is not None and now < self._next_try:
            return
        try:
            self._sink.handle(list(self._pending))
        except Exception as exc:
            if self._backoff == 0:
                self._backoff = self._base_backoff
            else:
                self._backoff = min(self._backoff * 2, self._max_backoff)
            self._next_try = now + self._backoff
            self._logger.error(
                "journal append failed: %s (retry_in=%ss, pending=%d)",
                exc,
                self._backoff,
                len(self._pending),
            )
            return
        self._pending.clear()
        self._backoff = 0.0
        self._next_try = None

    def close(self) -> None:
        """Try a last flush, then close the sink if it can be closed."""
        if self._pending:
            self.flush(time.monotonic())
        _close_sink(self._sink)


class BufferedSink(EventSink):
    """Collects entries and forwards them once max_batch is reached or window seconds pass."""

    def __init__(self, sink: EventSink, window: float = 5.0, max_batch: int = 512) -> None:
        self._sink = sink
        self._window = window if window > 0 else 5.0
        self._max_batch = max_batch if max_batch > 0 else 512
        self._lock = threading.Lock()
        self._buffer: list[Entry] = []
        self._first_at: Optional[float] = None

    def handle(self, entries: Sequence[Entry]) -> None:
        now = time.monotonic()
        with self._lock:
            if entries:
                self._buffer.extend(entries)
                if self._first_at is None:
                    self._first_at = now

            should_flush = len(self._buffer) >= self._max_batch or (
                self._first_at is not None and now - self._first_at >= self._window
            )
            if not should_flush or not self._buffer:
                return

            pending = self._buffer
            self._buffer = []
            self._first_at = None

        try:
            self._sink.handle(pending)
        except Exception:
            with self._lock:
                self._buffer = pending + self._buffer
                if self._first_at is None:
                    self._first_at = now
            raise

    def close(self) -> None:
        """Forward whatever is still buffered."""
        with self._lock:
            pending = self._buffer
            self._buffer = []
            self._first_at = None
        if pending:
            self._sink.handle(pending)