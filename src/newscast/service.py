"""Generation service: the enqueue and status surface of the pipeline.

Owns the job registry, the priority queue and the asyncio tasks running
admitted jobs. All public methods are synchronous and must be called from
the thread running the event loop passed to ``start``.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Any, Optional

from .brief_store import BriefStore
from .exceptions import BriefNotFoundError
from .job_queue import JobQueue, QueueEntry
from .jobs import Job, Priority
from .models import BriefStatus
from .progress_bus import ProgressBus
from .runner import JobRunner

logger = logging.getLogger(__name__)


class GenerationService:
    """Accepts briefs for generation and tracks their jobs.

    At most one job per brief is in flight. A finished job stays readable
    through ``get_status`` until it falls out of the bounded history.
    """

    def __init__(
        self,
        store: BriefStore,
        runner: JobRunner,
        bus: ProgressBus,
        max_concurrent: int = 3,
        max_chunk_retries: int = 3,
        history_size: int = 200,
    ):
        self.store = store
        self.runner = runner
        self.bus = bus
        self.max_chunk_retries = max_chunk_retries
        self.history_size = history_size
        self.queue = JobQueue(self._on_admit, max_concurrent=max_concurrent)

        self._jobs: dict[str, Job] = {}  # In-flight jobs by job id
        self._by_brief: dict[str, Job] = {}
        self._deferred: dict[str, Job] = {}  # Resubmitted while the previous job unwinds
        self._history: OrderedDict[str, Job] = OrderedDict()
        self._tasks: set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @classmethod
    def from_config(cls, cfg, store: BriefStore, runner: JobRunner, bus: ProgressBus) -> "GenerationService":
        return cls(
            store,
            runner,
            bus,
            max_concurrent=cfg.operational.max_concurrent_jobs,
            max_chunk_retries=cfg.operational.max_chunk_retries,
            history_size=cfg.operational.job_history_size,
        )

    @property
    def running(self) -> bool:
        return self._loop is not None

    def start(self) -> None:
        """Bind the service to the running event loop."""
        self._loop = asyncio.get_running_loop()
        logger.info(f"Generation service started (max {self.queue.max_concurrent} concurrent jobs)")

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Stop accepting work, drop queued jobs and wait for running ones.

        Args:
            timeout: Seconds to wait for running jobs before cancelling their tasks
        """
        if self._loop is None:
            return
        self._loop = None

        dropped = 0
        for job in list(self._jobs.values()):
            if self._dequeue(job):
                job.fail("Generation service shut down before the job started")
                self.bus.publish(job)
                self.store.record_failure(job.brief_id, job.error)
                self._finish(job)
                dropped += 1

        tasks = list(self._tasks)
        logger.info(f"Stopping generation service: {dropped} queued job(s) dropped, {len(tasks)} running")
        if not tasks:
            return

        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(f"Cancelled {len(pending)} job task(s) that did not finish in time")

    def submit(
        self,
        brief_id: str,
        priority: Priority = Priority.NORMAL,
        webhook_url: Optional[str] = None,
        publish_immediately: bool = False,
    ) -> Job:
        """Queue a brief for generation.

        Args:
            brief_id: Brief to generate
            priority: Queue priority
            webhook_url: Receiver for the completion or failure notification
            publish_immediately: Publish the brief on success instead of leaving it a draft

        Returns:
            The new job, or the existing one if the brief is queued or running

        Raises:
            BriefNotFoundError: If the brief does not exist
            ValidationError: If the brief is malformed
            RuntimeError: If the service has not been started
        """
        if self._loop is None:
            raise RuntimeError("Generation service is not running")

        existing = self._by_brief.get(brief_id)
        if existing is not None and not existing.is_terminal:
            logger.info(f"Brief {brief_id} already has job {existing.id} ({existing.state.value})")
            return existing

        brief = self.store.get_brief(brief_id)
        if brief is None:
            raise BriefNotFoundError(brief_id)
        brief.validate()

        job = Job(
            brief_id=brief_id,
            max_retries=self.max_chunk_retries,
            webhook_url=webhook_url,
            priority=Priority(priority),
            publish_immediately=publish_immediately,
        )
        self._jobs[job.id] = job
        self._by_brief[brief_id] = job
        self.bus.publish(job)

        logger.info(f"Submitted brief {brief_id} as job {job.id} ({job.priority.value})")
        if existing is not None:
            # Previous job is finished but still holds the slot
            self._deferred[brief_id] = job
        else:
            self.queue.enqueue(brief_id, job.priority)
        return job

    def _on_admit(self, entry: QueueEntry) -> None:
        job = self._by_brief.get(entry.brief_id)
        if job is None or job.is_terminal or self._loop is None:
            # Cancelled between admission and dispatch
            self.queue.release(entry.brief_id)
            return
        task = self._loop.create_task(self._run_job(job), name=f"job-{job.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_job(self, job: Job) -> None:
        released = False

        def release(finished: Job) -> None:
            nonlocal released
            if released:
                return
            released = True
            self._release(finished)

        try:
            await self.runner.run(job, on_terminal=release)
        except asyncio.CancelledError:
            if not job.is_terminal:
                job.fail("Generation service shut down before the job finished")
                self.bus.publish(job)
                self.store.record_failure(job.brief_id, job.error)
            raise
        finally:
            release(job)

    def _release(self, job: Job) -> None:
        self._finish(job)
        self.queue.release(job.brief_id)
        waiting = self._deferred.pop(job.brief_id, None)
        if waiting is not None and not waiting.is_terminal:
            self.queue.enqueue(waiting.brief_id, waiting.priority)

    def _dequeue(self, job: Job) -> bool:
        """Drop a job that has not started. Returns True if it was waiting."""
        if self.queue.remove(job.brief_id):
            return True
        if self._deferred.get(job.brief_id) is job:
            del self._deferred[job.brief_id]
            return True
        return False

    def _finish(self, job: Job) -> None:
        self._jobs.pop(job.id, None)
        if self._by_brief.get(job.brief_id) is job:
            del self._by_brief[job.brief_id]
        if self.history_size > 0:
            self._history[job.id] = job
            while len(self._history) > self.history_size:
                self._history.popitem(last=False)

    def cancel(self, job_id: str) -> bool:
        """Cancel a queued or running job.

        Queued jobs are removed from the queue. Running jobs stop at their
        next checkpoint without making further provider calls.

        Returns:
            True if the job was cancelled, False if unknown or already finished
        """
        job = self._jobs.get(job_id)
        if job is None or job.is_terminal:
            return False

        was_queued = self._dequeue(job)
        job.cancel()
        self.bus.publish(job)
        self.store.set_status(job.brief_id, BriefStatus.CANCELLED)
        if was_queued:
            self._finish(job)

        logger.info(f"Cancelled job {job_id} for brief {job.brief_id} ({'queued' if was_queued else 'running'})")
        return True

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id) or self._history.get(job_id)

    def get_status(self, job_id: str) -> Optional[dict[str, Any]]:
        job = self.get_job(job_id)
        return job.snapshot() if job else None

    def active_jobs(self) -> list[dict[str, Any]]:
        """Snapshots of queued and running jobs."""
        return [job.snapshot() for job in self._jobs.values() if not job.is_terminal]

    def recent_jobs(self, limit: int = 50) -> list[dict[str, Any]]:
        """Snapshots of finished jobs, newest first."""
        finished = list(self._history.values())[-limit:] if limit > 0 else []
        return [job.snapshot() for job in reversed(finished)]

    def queue_status(self) -> dict[str, Any]:
        return self.queue.status()
