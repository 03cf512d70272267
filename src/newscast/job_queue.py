"""Priority queue with a concurrency gate.

Holds briefs waiting for generation and admits them while fewer than
``max_concurrent`` are active. Admission is attempted whenever an entry is
enqueued and whenever an active job releases its slot, so the queue drains
without polling.
"""

import bisect
import itertools
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .jobs import Priority

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueEntry:
    """A brief waiting for a concurrency slot."""

    brief_id: str
    priority: Priority
    enqueued_at: float
    seq: int

    @property
    def sort_key(self) -> tuple[int, float, int]:
        return (self.priority.rank, self.enqueued_at, self.seq)


class JobQueue:
    """Ordered holding area bounded by a concurrency ceiling.

    Queue and active-set mutations happen under one lock so two admissions can
    never both claim the last slot. ``on_admit`` is called outside the lock,
    once per admitted entry, in admission order.
    """

    def __init__(
        self,
        on_admit: Callable[[QueueEntry], None],
        max_concurrent: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._on_admit = on_admit
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: list[QueueEntry] = []
        self._active: set[str] = set()
        self._seq = itertools.count()

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def is_tracked(self, brief_id: str) -> bool:
        """True if the brief is queued or active."""
        with self._lock:
            return brief_id in self._active or any(e.brief_id == brief_id for e in self._entries)

    def enqueue(self, brief_id: str, priority: Priority = Priority.NORMAL) -> Optional[QueueEntry]:
        """Queue a brief for generation.

        Args:
            brief_id: Brief to generate
            priority: Queue priority

        Returns:
            The new entry, or None if the brief is already queued or active
        """
        with self._lock:
            if brief_id in self._active or any(e.brief_id == brief_id for e in self._entries):
                logger.info(f"Brief {brief_id} already queued or running, ignoring enqueue")
                return None

            entry = QueueEntry(
                brief_id=brief_id,
                priority=Priority(priority),
                enqueued_at=self._clock(),
                seq=next(self._seq),
            )
            bisect.insort(self._entries, entry, key=lambda e: e.sort_key)

        logger.info(f"Queued brief {brief_id} at {entry.priority.value} priority")
        self.try_admit_next()
        return entry

    def try_admit_next(self) -> list[QueueEntry]:
        """Admit queue heads while capacity remains.

        Returns:
            Entries admitted by this call
        """
        admitted = []
        with self._lock:
            while self._entries and len(self._active) < self.max_concurrent:
                entry = self._entries.pop(0)
                self._active.add(entry.brief_id)
                admitted.append(entry)

        for entry in admitted:
            logger.info(f"Admitted brief {entry.brief_id} ({self.active_count}/{self.max_concurrent} active)")
            self._on_admit(entry)
        return admitted

    def release(self, brief_id: str) -> None:
        """Free the slot held by a finished job and admit the next entry."""
        with self._lock:
            self._active.discard(brief_id)
        self.try_admit_next()

    def remove(self, brief_id: str) -> bool:
        """Drop a queued (not yet admitted) entry.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            for index, entry in enumerate(self._entries):
                if entry.brief_id == brief_id:
                    del self._entries[index]
                    return True
        return False

    def clear(self) -> int:
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
        return dropped

    def status(self) -> dict[str, Any]:
        now = self._clock()
        with self._lock:
            return {
                "queueLength": len(self._entries),
                "activeJobs": len(self._active),
                "maxConcurrent": self.max_concurrent,
                "entries": [
                    {
                        "briefId": e.brief_id,
                        "priority": e.priority.value,
                        "waitingSeconds": round(now - e.enqueued_at, 3),
                    }
                    for e in self._entries
                ],
            }
