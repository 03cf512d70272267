"""Tests for the recurrence, retry and cleanup sweepers."""

import asyncio
import os
import time
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
from zoneinfo import ZoneInfo

from newscast.exceptions import PermanentProviderError, ValidationError
from newscast.jobs import JobState, Priority
from newscast.models import (
    BriefMetadata,
    BriefStatus,
    ContentItem,
    RecurrenceDescriptor,
    RecurrenceType,
    TemplateKind,
)
from newscast.object_store import LocalObjectStore
from newscast.progress_bus import ProgressBus
from newscast.runner import JobRunner
from newscast.service import GenerationService
from newscast.sweepers import (
    CleanupSweeper,
    PeriodicSweeper,
    RecurrenceSweeper,
    RetrySweeper,
    generate_title,
)

from conftest import (
    FakeObjectStore,
    FakeProvider,
    GatedProvider,
    create_test_brief,
    create_test_items,
    no_sleep,
    settle,
    wait_idle,
)

RIYADH = ZoneInfo("Asia/Riyadh")
NOW = datetime(2024, 3, 1, 3, 30, tzinfo=timezone.utc)  # 06:30 in Riyadh
DAILY_6AM = RecurrenceDescriptor(type=RecurrenceType.DAILY, time="06:00", timezone="Asia/Riyadh")


def scheduled_brief(store, item_ids, **overrides):
    fields = dict(
        status=BriefStatus.SCHEDULED,
        scheduled_for=datetime(2024, 3, 1, 3, 0, tzinfo=timezone.utc),
        recurrence=DAILY_6AM,
    )
    fields.update(overrides)
    return store.create_brief(create_test_brief(item_ids, **fields))


def failed_brief(store, retry_count=0):
    items = create_test_items(1)
    store.add_items(items)
    return store.create_brief(create_test_brief(
        [items[0].id],
        status=BriefStatus.FAILED,
        last_error="provider down",
        metadata=BriefMetadata(retry_count=retry_count),
    ))


class TestGenerateTitle:
    """Tests for recurring brief titles."""

    def test_dated_template_title(self):
        brief = create_test_brief(template=TemplateKind.MORNING_BRIEF)
        assert generate_title(brief, datetime(2024, 3, 2, 6, 0, tzinfo=RIYADH)) == "Morning Brief - 2024-03-02"

    def test_weekly_title_uses_week_number(self):
        brief = create_test_brief(template=TemplateKind.WEEKLY_ANALYSIS)
        assert generate_title(brief, datetime(2024, 3, 3, 10, 0, tzinfo=RIYADH)) == "Weekly Analysis - Week 09/2024"

    def test_custom_series_keeps_its_name(self):
        """Custom briefs should replace only the date suffix of their own title."""
        brief = create_test_brief(template=TemplateKind.CUSTOM, title="Council Watch - 2024-03-01")
        assert generate_title(brief, datetime(2024, 3, 8, 9, 0, tzinfo=RIYADH)) == "Council Watch - 2024-03-08"


class TestRecurrenceSweeper:
    """Tests for RecurrenceSweeper.run_once."""

    def test_fires_due_brief_and_schedules_sibling(self, store):
        items = create_test_items(3)
        store.add_items(items)
        brief = scheduled_brief(store, ["item-1"])
        service = MagicMock()
        sweeper = RecurrenceSweeper(store, service)

        submitted = asyncio.run(sweeper.run_once(NOW))

        assert submitted == 1
        service.submit.assert_called_once_with(brief.id, priority=Priority.NORMAL)
        assert store.get_brief(brief.id).status == BriefStatus.PROCESSING

        (sibling,) = store.list_briefs(BriefStatus.SCHEDULED)
        assert sibling.id != brief.id
        assert sibling.scheduled_for == datetime(2024, 3, 2, 6, 0, tzinfo=RIYADH)
        assert sibling.title == "Morning Brief - 2024-03-02"
        assert sibling.metadata.parent_brief_id == brief.id
        assert sibling.item_ids == ["item-3", "item-2", "item-1"]
        assert sibling.recurrence == DAILY_6AM

    def test_future_brief_not_fired(self, store):
        items = create_test_items(1)
        store.add_items(items)
        scheduled_brief(store, ["item-1"], scheduled_for=datetime(2024, 3, 1, 5, 0, tzinfo=timezone.utc))
        service = MagicMock()

        assert asyncio.run(RecurrenceSweeper(store, service).run_once(NOW)) == 0
        service.submit.assert_not_called()

    def test_rejected_brief_marked_failed(self, store):
        """A ValidationError at submission should fail the brief with its message."""
        items = create_test_items(1)
        store.add_items(items)
        brief = scheduled_brief(store, ["item-1"], recurrence=None)
        service = MagicMock()
        service.submit.side_effect = ValidationError("Brief title is required")

        assert asyncio.run(RecurrenceSweeper(store, service).run_once(NOW)) == 0

        stored = store.get_brief(brief.id)
        assert stored.status == BriefStatus.FAILED
        assert stored.last_error == "Brief title is required"

    def test_category_filtered_items(self, store):
        """Category templates should refill from their own categories."""
        store.add_items([
            ContentItem(id="t1", title="Chip launch", category="Technology",
                        published_at=datetime(2024, 3, 1, 1, 0, tzinfo=timezone.utc)),
            ContentItem(id="g1", title="Parade", category="General",
                        published_at=datetime(2024, 3, 1, 2, 0, tzinfo=timezone.utc)),
        ])
        scheduled_brief(store, ["t1"], template=TemplateKind.TECH_UPDATE, title="Tech Update")

        asyncio.run(RecurrenceSweeper(store, MagicMock()).run_once(NOW))

        (sibling,) = store.list_briefs(BriefStatus.SCHEDULED)
        assert sibling.item_ids == ["t1"]

    def test_no_items_means_no_sibling(self, store):
        scheduled_brief(store, ["ghost"])
        service = MagicMock()

        asyncio.run(RecurrenceSweeper(store, service).run_once(NOW))

        service.submit.assert_called_once()
        assert store.list_briefs(BriefStatus.SCHEDULED) == []

    def test_disabled_recurrence_not_rescheduled(self, store):
        items = create_test_items(1)
        store.add_items(items)
        disabled = RecurrenceDescriptor(type=RecurrenceType.DAILY, time="06:00", enabled=False)
        scheduled_brief(store, ["item-1"], recurrence=disabled)

        asyncio.run(RecurrenceSweeper(store, MagicMock()).run_once(NOW))

        assert store.list_briefs(BriefStatus.SCHEDULED) == []


class TestRetrySweeper:
    """Tests for RetrySweeper.run_once."""

    def test_retries_failed_brief_at_low_priority(self, store):
        brief = failed_brief(store)
        service = MagicMock()

        retried = asyncio.run(RetrySweeper(store, service, ceiling=3).run_once(NOW))

        assert retried == 1
        service.submit.assert_called_once_with(brief.id, priority=Priority.LOW)
        stored = store.get_brief(brief.id)
        assert stored.status == BriefStatus.PROCESSING
        assert stored.metadata.retry_count == 1
        assert stored.metadata.last_retry_at == NOW

    def test_ceiling_reached(self, store):
        """A brief at the ceiling stays failed with no further action."""
        brief = failed_brief(store, retry_count=3)
        service = MagicMock()

        assert asyncio.run(RetrySweeper(store, service, ceiling=3).run_once(NOW)) == 0

        service.submit.assert_not_called()
        assert store.get_brief(brief.id).status == BriefStatus.FAILED

    def test_not_picked_twice(self, store):
        """A claimed brief is no longer failed, so a second sweep skips it."""
        failed_brief(store)
        service = MagicMock()
        sweeper = RetrySweeper(store, service, ceiling=3)

        asyncio.run(sweeper.run_once(NOW))
        asyncio.run(sweeper.run_once(NOW))

        assert service.submit.call_count == 1

    def test_rejected_retry_marked_failed(self, store):
        brief = failed_brief(store)
        service = MagicMock()
        service.submit.side_effect = ValidationError("Voice setting stability=2 is outside [0, 1]")

        assert asyncio.run(RetrySweeper(store, service).run_once(NOW)) == 0

        stored = store.get_brief(brief.id)
        assert stored.status == BriefStatus.FAILED
        assert stored.metadata.retry_count == 1


def make_service(store, provider, max_concurrent=3, webhook_sender=None):
    bus = ProgressBus()
    options = {"webhook_sender": webhook_sender} if webhook_sender is not None else {}
    runner = JobRunner(store, provider, FakeObjectStore(), bus, sleep=no_sleep, **options)
    return GenerationService(store, runner, bus, max_concurrent=max_concurrent)


class TestSweepersWithService:
    """Sweepers driving a real generation service."""

    def test_scheduled_brief_generated(self, store):
        items = create_test_items(2)
        store.add_items(items)
        brief = scheduled_brief(store, [i.id for i in items], recurrence=None)

        async def scenario():
            service = make_service(store, FakeProvider())
            service.start()
            fired = await RecurrenceSweeper(store, service).run_once(NOW)
            await wait_idle(service)
            return fired

        assert asyncio.run(scenario()) == 1
        generated = store.get_brief(brief.id)
        assert generated.status == BriefStatus.DRAFT
        assert generated.audio_url is not None
        assert store.list_due(NOW) == []

    def test_retry_reruns_failed_brief(self, store, stored_brief):
        """A brief that failed once should complete on the retry sweep."""
        provider = FakeProvider(script={0: PermanentProviderError("voice rejected")})

        async def scenario():
            service = make_service(store, provider)
            service.start()
            first = service.submit(stored_brief.id)
            await wait_idle(service)
            assert first.state == JobState.FAILED
            assert store.get_brief(stored_brief.id).status == BriefStatus.FAILED

            retried = await RetrySweeper(store, service).run_once(NOW)
            await wait_idle(service)
            return retried

        assert asyncio.run(scenario()) == 1
        assert len(provider.calls) == 2

        brief = store.get_brief(stored_brief.id)
        assert brief.status == BriefStatus.DRAFT
        assert brief.metadata.retry_count == 1
        assert brief.audio_url is not None

    def test_retry_tick_during_failure_webhook(self, store, stored_brief):
        """A retry sweep that runs while the failed job is still delivering its webhook."""
        provider = FakeProvider(script={0: PermanentProviderError("voice rejected")})
        retried = []

        async def scenario():
            async def sender(url, payload, timeout=10.0):
                if payload["event"] == "failed":
                    retried.append(await RetrySweeper(store, service).run_once(NOW))
                return True

            service = make_service(store, provider, webhook_sender=sender)
            service.start()
            service.submit(stored_brief.id, webhook_url="https://hooks.test/done")
            await wait_idle(service)

        asyncio.run(scenario())

        assert retried == [1]
        assert len(provider.calls) == 2

        brief = store.get_brief(stored_brief.id)
        assert brief.status == BriefStatus.DRAFT
        assert brief.metadata.retry_count == 1
        assert store.list_retryable(3) == []

    def test_stop_fails_queued_scheduled_briefs(self, store):
        """Briefs fired by the sweeper but still queued at shutdown become retryable."""
        items = create_test_items(2)
        store.add_items(items)
        briefs = [
            scheduled_brief(store, [i.id for i in items], recurrence=None, title=f"Brief {n}")
            for n in range(2)
        ]

        async def scenario():
            service = make_service(store, GatedProvider(), max_concurrent=1)
            service.start()
            fired = await RecurrenceSweeper(store, service).run_once(NOW)
            await settle()
            await service.stop(timeout=0.05)
            return fired

        assert asyncio.run(scenario()) == 2

        statuses = {b.id: store.get_brief(b.id).status for b in briefs}
        assert statuses == {b.id: BriefStatus.FAILED for b in briefs}
        assert {b.id for b in store.list_retryable(3)} == {b.id for b in briefs}
        assert store.list_due(NOW) == []


class TestCleanupSweeper:
    """Tests for CleanupSweeper."""

    def test_removes_old_temp_files(self, tmp_path):
        object_store = LocalObjectStore(tmp_path / "public", "https://cdn.test")
        folder = tmp_path / "public" / "briefs"
        folder.mkdir(parents=True)
        old = folder / ".a.mp3.123.tmp"
        old.write_bytes(b"partial")
        stale = time.time() - 2 * 3600
        os.utime(old, (stale, stale))
        fresh = folder / ".b.mp3.456.tmp"
        fresh.write_bytes(b"partial")

        cleaned = asyncio.run(CleanupSweeper(object_store, max_age_minutes=60).run_once(NOW))

        assert cleaned == 1
        assert not old.exists()
        assert fresh.exists()


class CountingSweeper(PeriodicSweeper):
    name = "counting-sweeper"

    def __init__(self, error=None, **kwargs):
        super().__init__(**kwargs)
        self.error = error
        self.runs = 0

    async def run_once(self, now):
        self.runs += 1
        if self.error is not None:
            raise self.error
        return self.runs


class TestPeriodicSweeper:
    """Tests for the ticker loop and its lock."""

    def test_start_and_stop(self, tmp_path):
        async def scenario():
            sweeper = CountingSweeper(interval_seconds=0.01, lock_path=tmp_path / "locks" / "count.lock")
            sweeper.start()
            await asyncio.sleep(0.1)
            assert sweeper.running
            await sweeper.stop()
            return sweeper

        sweeper = asyncio.run(scenario())

        assert sweeper.runs >= 2
        assert not sweeper.running

    def test_tick_absorbs_errors(self):
        sweeper = CountingSweeper(error=RuntimeError("db locked"), interval_seconds=1)
        assert asyncio.run(sweeper.tick()) is None
        assert sweeper.runs == 1

    def test_tick_skipped_when_lock_held(self, tmp_path):
        """A tick should not run while another process holds the lock."""
        sweeper = CountingSweeper(interval_seconds=1, lock_path=tmp_path / "count.lock")
        with patch("newscast.sweepers.fasteners.InterProcessLock") as mock_lock_class:
            mock_lock_class.return_value.acquire.return_value = False
            assert asyncio.run(sweeper.tick()) is None

        assert sweeper.runs == 0
        mock_lock_class.return_value.release.assert_not_called()

    def test_tick_releases_lock(self, tmp_path):
        sweeper = CountingSweeper(interval_seconds=1, lock_path=tmp_path / "count.lock")
        with patch("newscast.sweepers.fasteners.InterProcessLock") as mock_lock_class:
            mock_lock_class.return_value.acquire.return_value = True
            assert asyncio.run(sweeper.tick()) == 1

        mock_lock_class.return_value.release.assert_called_once()
