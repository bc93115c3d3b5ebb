"""In-memory runtime state of scheduled jobs.

┌──────────────────────────────────────────────────────────────────────────────┐
│  JOB REGISTRY                                                                 │
│                                                                               │
│   writers (short, never across I/O)          readers                          │
│   ─────────────────────────────────          ───────                          │
│   register() / remove() / clear()            snapshot()  ──► status API      │
│   begin_firing()  ─┐                         get()                            │
│   end_firing()    ─┤  ReadWriteLock                                           │
│   refresh_next_run()                                                          │
│                                                                               │
│   in-flight accounting (separate condition)                                   │
│   begin_firing() ++   end_firing() --   close()   wait_idle()                │
└──────────────────────────────────────────────────────────────────────────────┘

Entries are only mutated while the write lock is held and only copied
while the read lock is held, so a reader never sees a half-updated entry.
No lock is held while a firing fetches or dispatches; the ``firing`` flag
marks a job as in flight instead.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any


class FiringOutcome(str, Enum):
    """How a single firing ended."""

    DISPATCHED = "dispatched"
    EMPTY = "empty"
    FETCH_FAILED = "fetch_failed"
    DISPATCH_FAILED = "dispatch_failed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_failure(self) -> bool:
        return self in (
            FiringOutcome.FETCH_FAILED,
            FiringOutcome.DISPATCH_FAILED,
            FiringOutcome.FAILED,
        )


class ReadWriteLock:
    """Writer-preferring readers-writer lock.

    Any number of readers may hold the lock together; a writer holds it
    alone. Waiting writers block new readers so a steady stream of status
    queries cannot starve a firing's update.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass
class JobRuntimeEntry:
    """Runtime state of one scheduled job."""

    name: str
    next_run: datetime | None = None
    prev_run: datetime | None = None
    active: bool = False
    firing: bool = False
    fire_count: int = 0
    failure_count: int = 0
    last_outcome: FiringOutcome | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "prev_run": self.prev_run.isoformat() if self.prev_run else None,
            "active": self.active,
            "firing": self.firing,
            "fire_count": self.fire_count,
            "failure_count": self.failure_count,
            "last_outcome": self.last_outcome.value if self.last_outcome else None,
            "last_error": self.last_error,
        }


class JobRegistry:
    """Thread-safe mapping from job name to :class:`JobRuntimeEntry`."""

    def __init__(self) -> None:
        self._entries: dict[str, JobRuntimeEntry] = {}
        self._rw = ReadWriteLock()
        # Lock order: _idle before _rw
        self._idle = threading.Condition()
        self._in_flight = 0
        self._closed = False

    # === Registration ===

    def register(self, name: str, next_run: datetime | None = None) -> bool:
        """Create or replace the entry for *name*.

        Returns:
            True if an entry with that name already existed
        """
        with self._rw.write():
            replaced = name in self._entries
            self._entries[name] = JobRuntimeEntry(name=name, next_run=next_run)
            return replaced

    def remove(self, name: str) -> None:
        with self._rw.write():
            self._entries.pop(name, None)

    def clear(self) -> None:
        with self._rw.write():
            self._entries.clear()

    def set_active(self, active: bool) -> None:
        with self._rw.write():
            for entry in self._entries.values():
                entry.active = active

    def refresh_next_run(self, name: str, next_run: datetime | None) -> None:
        with self._rw.write():
            entry = self._entries.get(name)
            if entry is not None:
                entry.next_run = next_run

    # === Firing lifecycle ===

    def begin_firing(self, name: str, fired_at: datetime, next_run: datetime | None) -> bool:
        """Mark *name* as in flight.

        Returns False (and changes nothing) when the registry is closed, the
        job is unknown, or the job is already firing.
        """
        with self._idle:
            if self._closed:
                return False
            with self._rw.write():
                entry = self._entries.get(name)
                if entry is None or entry.firing:
                    return False
                entry.firing = True
                entry.prev_run = fired_at
                entry.next_run = next_run
                entry.fire_count += 1
            self._in_flight += 1
            return True

    def end_firing(
        self,
        name: str,
        outcome: FiringOutcome,
        *,
        next_run: datetime | None = None,
        error: str | None = None,
    ) -> None:
        """Record the outcome of a firing started with :meth:`begin_firing`."""
        with self._idle:
            with self._rw.write():
                entry = self._entries.get(name)
                if entry is not None:
                    entry.firing = False
                    entry.last_outcome = outcome
                    entry.last_error = error
                    if outcome.is_failure:
                        entry.failure_count += 1
                    if next_run is not None:
                        entry.next_run = next_run
            self._in_flight -= 1
            self._idle.notify_all()

    def close(self) -> None:
        """Refuse all further firings."""
        with self._idle:
            self._closed = True

    @property
    def closed(self) -> bool:
        with self._idle:
            return self._closed

    @property
    def in_flight(self) -> int:
        with self._idle:
            return self._in_flight

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no firing is in flight.

        Returns:
            False if *timeout* elapsed first
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._in_flight == 0, timeout=timeout)

    # === Reads ===

    def get(self, name: str) -> JobRuntimeEntry | None:
        with self._rw.read():
            entry = self._entries.get(name)
            return replace(entry) if entry is not None else None

    def snapshot(self) -> list[JobRuntimeEntry]:
        """Copies of all entries, in registration order."""
        with self._rw.read():
            return [replace(entry) for entry in self._entries.values()]

    def names(self) -> list[str]:
        with self._rw.read():
            return list(self._entries)

    def __len__(self) -> int:
        with self._rw.read():
            return len(self._entries)

    def __contains__(self, name: object) -> bool:
        with self._rw.read():
            return name in self._entries
