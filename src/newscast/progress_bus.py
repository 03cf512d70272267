"""Per-job progress fan-out.

Observers subscribe to a single job id and receive a snapshot on every state
or progress change. A subscription ends after it delivers a terminal snapshot
and is removed from the registry when closed, so stream teardown never leaves
listeners behind.
"""

import asyncio
import logging
from typing import Any, Optional

from .jobs import Job, TERMINAL_STATES

logger = logging.getLogger(__name__)

_TERMINAL_VALUES = {s.value for s in TERMINAL_STATES}


class Subscription:
    """Bounded mailbox of job snapshots for one observer."""

    def __init__(self, bus: "ProgressBus", job_id: str, max_pending: int):
        self.bus = bus
        self.job_id = job_id
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._finished = False

    def deliver(self, snapshot: dict[str, Any]) -> None:
        if self.closed:
            return
        if self._queue.full():
            # Slow observer: drop the oldest snapshot, the newest is what matters
            self._queue.get_nowait()
        self._queue.put_nowait(snapshot)

    async def get(self, timeout: Optional[float] = None) -> dict[str, Any]:
        """Wait for the next snapshot.

        Raises:
            asyncio.TimeoutError: If no snapshot arrives within timeout
        """
        return await asyncio.wait_for(self._queue.get(), timeout)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.bus.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> dict[str, Any]:
        if self._finished:
            self.close()
            raise StopAsyncIteration
        snapshot = await self._queue.get()
        if snapshot.get("state") in _TERMINAL_VALUES:
            self._finished = True
        return snapshot


class ProgressBus:
    """Observer registry keyed by job id."""

    def __init__(self, max_pending: int = 100):
        self.max_pending = max_pending
        self._subscribers: dict[str, set[Subscription]] = {}

    def subscribe(self, job_id: str) -> Subscription:
        subscription = Subscription(self, job_id, self.max_pending)
        self._subscribers.setdefault(job_id, set()).add(subscription)
        logger.debug(f"Subscribed to job {job_id} ({self.subscriber_count(job_id)} observers)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        observers = self._subscribers.get(subscription.job_id)
        if not observers:
            return
        observers.discard(subscription)
        if not observers:
            del self._subscribers[subscription.job_id]

    def publish(self, job: Job) -> int:
        """Send the job's current snapshot to its observers.

        Returns:
            Number of observers notified
        """
        observers = self._subscribers.get(job.id)
        if not observers:
            return 0

        snapshot = job.snapshot()
        for subscription in list(observers):
            subscription.deliver(snapshot)
        return len(observers)

    def subscriber_count(self, job_id: Optional[str] = None) -> int:
        if job_id is not None:
            return len(self._subscribers.get(job_id, ()))
        return sum(len(s) for s in self._subscribers.values())
