"""Periodic sweepers: recurring briefs, failed-brief retries, temp-file cleanup.

Each sweeper is an asyncio ticker loop that can be started and stopped on
its own. A tick holds an inter-process file lock so two daemons sharing a
state directory never sweep at the same time; a tick that cannot take the
lock is skipped. Exceptions raised by a tick are logged and the loop
carries on.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

import fasteners

from .brief_store import BriefStore
from .exceptions import ValidationError
from .jobs import Priority
from .models import BriefMetadata, BriefStatus, ContentBrief, TemplateKind
from .object_store import LocalObjectStore
from .schedule import next_occurrence
from .service import GenerationService

logger = logging.getLogger(__name__)

# Item categories each template draws from when a recurrence refills it.
# Templates not listed take the latest items of any category.
TEMPLATE_CATEGORIES: dict[TemplateKind, list[str]] = {
    TemplateKind.TECH_UPDATE: ["Technology", "Science"],
    TemplateKind.BUSINESS_REPORT: ["Business", "Economy", "Markets"],
    TemplateKind.SPORT_HIGHLIGHTS: ["Sports"],
}

TEMPLATE_TITLES: dict[TemplateKind, str] = {
    TemplateKind.MORNING_BRIEF: "Morning Brief - {date}",
    TemplateKind.EVENING_DIGEST: "Evening Digest - {date}",
    TemplateKind.WEEKLY_ANALYSIS: "Weekly Analysis - Week {week}",
    TemplateKind.BREAKING_NEWS: "Breaking News - {date}",
    TemplateKind.TECH_UPDATE: "Tech Update - {date}",
    TemplateKind.BUSINESS_REPORT: "Business Report - {date}",
    TemplateKind.SPORT_HIGHLIGHTS: "Sport Highlights - {date}",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_title(brief: ContentBrief, when: datetime) -> str:
    """Title for the next brief in a recurring series.

    Args:
        brief: Brief that just fired
        when: Trigger instant of the new brief (in the recurrence timezone)

    Returns:
        Title such as ``Morning Brief - 2024-03-01``
    """
    pattern = TEMPLATE_TITLES.get(brief.template)
    if pattern is None:
        # Custom series keep their own name
        base = brief.title.rsplit(" - ", 1)[0]
        pattern = f"{base} - {{date}}"
    return pattern.format(date=when.strftime("%Y-%m-%d"), week=when.strftime("%U/%Y"))


class PeriodicSweeper:
    """Base ticker loop. Subclasses implement ``run_once``."""

    name = "sweeper"

    def __init__(
        self,
        interval_seconds: float,
        lock_path: Optional[Path] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.interval_seconds = interval_seconds
        self.lock_path = lock_path
        self._clock = clock
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, now: datetime) -> int:
        raise NotImplementedError

    async def tick(self) -> Optional[int]:
        """Run one sweep under the inter-process lock.

        Returns:
            Result of ``run_once``, or None if the sweep was skipped or raised
        """
        lock = None
        if self.lock_path is not None:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            lock = fasteners.InterProcessLock(str(self.lock_path))
            if not lock.acquire(blocking=False):
                logger.info(f"{self.name}: another process holds {self.lock_path}, skipping tick")
                return None
        try:
            return await self.run_once(self._clock())
        except Exception as e:
            logger.error(f"{self.name}: sweep failed: {e}", exc_info=True)
            return None
        finally:
            if lock is not None:
                lock.release()

    async def _loop(self) -> None:
        logger.info(f"{self.name} started (every {self.interval_seconds:g}s)")
        while not self._stopping.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info(f"{self.name} stopped")

    def start(self) -> None:
        if self.running:
            logger.info(f"{self.name} already running")
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        """Stop the loop after the current tick finishes."""
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None


class RecurrenceSweeper(PeriodicSweeper):
    """Fires scheduled briefs that are due and schedules their successors."""

    name = "recurrence-sweeper"

    def __init__(
        self,
        store: BriefStore,
        service: GenerationService,
        interval_seconds: float = 60.0,
        lock_path: Optional[Path] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        super().__init__(interval_seconds, lock_path, clock)
        self.store = store
        self.service = service

    async def run_once(self, now: datetime) -> int:
        """Fire every due brief.

        Returns:
            Number of briefs submitted
        """
        due = self.store.list_due(now)
        if due:
            logger.info(f"{len(due)} scheduled brief(s) due")

        submitted = 0
        for brief in due:
            self.store.set_status(brief.id, BriefStatus.PROCESSING)
            try:
                self.service.submit(brief.id, priority=Priority.NORMAL)
                submitted += 1
            except ValidationError as e:
                logger.warning(f"Scheduled brief {brief.id} rejected: {e}")
                self.store.record_failure(brief.id, str(e))

            if brief.recurrence is not None and brief.recurrence.enabled:
                self.schedule_next(brief, now)
        return submitted

    def schedule_next(self, brief: ContentBrief, now: datetime) -> Optional[ContentBrief]:
        """Create the next brief of a recurring series.

        Returns:
            The new scheduled brief, or None if no items were available
        """
        try:
            when = next_occurrence(brief.recurrence, now)
        except ValidationError as e:
            logger.error(f"Brief {brief.id} has an invalid recurrence: {e}")
            return None

        item_ids = self.store.latest_item_ids(
            TEMPLATE_CATEGORIES.get(brief.template),
            limit=brief.metadata.max_items,
        )
        if not item_ids and not brief.has_override:
            logger.warning(f"No items available for the next '{brief.title}', series paused")
            return None

        sibling = ContentBrief(
            id="",
            title=generate_title(brief, when),
            template=brief.template,
            voice=brief.voice,
            item_ids=item_ids,
            status=BriefStatus.SCHEDULED,
            script_override=brief.script_override,
            description=brief.description,
            scheduled_for=when,
            recurrence=brief.recurrence,
            metadata=BriefMetadata(
                parent_brief_id=brief.id,
                max_items=brief.metadata.max_items,
                template_vars=dict(brief.metadata.template_vars),
            ),
        )
        self.store.create_brief(sibling)
        logger.info(f"Scheduled '{sibling.title}' ({sibling.id}) for {when.isoformat()}")
        return sibling


class RetrySweeper(PeriodicSweeper):
    """Re-submits failed briefs at low priority until the retry ceiling."""

    name = "retry-sweeper"

    def __init__(
        self,
        store: BriefStore,
        service: GenerationService,
        ceiling: int = 3,
        interval_seconds: float = 900.0,
        lock_path: Optional[Path] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        super().__init__(interval_seconds, lock_path, clock)
        self.store = store
        self.service = service
        self.ceiling = ceiling

    async def run_once(self, now: datetime) -> int:
        """Retry every failed brief still under the ceiling.

        Returns:
            Number of briefs re-submitted
        """
        retried = 0
        for brief in self.store.list_retryable(self.ceiling):
            retry_count = self.store.record_retry(brief.id, now)
            if retry_count is None:
                # Claimed by someone else since listing
                continue
            try:
                self.service.submit(brief.id, priority=Priority.LOW)
            except ValidationError as e:
                logger.warning(f"Retry of brief {brief.id} rejected: {e}")
                self.store.record_failure(brief.id, str(e))
                continue
            retried += 1
            logger.info(f"Retrying brief {brief.id} (attempt {retry_count}/{self.ceiling})")
        return retried


class CleanupSweeper(PeriodicSweeper):
    """Removes temp files left behind by interrupted uploads."""

    name = "cleanup-sweeper"

    def __init__(
        self,
        object_store: LocalObjectStore,
        max_age_minutes: int = 60,
        interval_seconds: float = 86400.0,
        lock_path: Optional[Path] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        super().__init__(interval_seconds, lock_path, clock)
        self.object_store = object_store
        self.max_age_minutes = max_age_minutes

    async def run_once(self, now: datetime) -> int:
        cleaned = await asyncio.to_thread(self.object_store.cleanup_temp_files, self.max_age_minutes)
        if cleaned:
            logger.info(f"Cleaned up {cleaned} orphaned temp file(s)")
        return cleaned
