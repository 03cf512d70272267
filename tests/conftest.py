"""Shared test fixtures and utilities for all tests."""

import asyncio
from datetime import datetime, timezone

import pytest

from newscast.brief_store import BriefStore
from newscast.models import BriefStatus, ContentBrief, ContentItem, TemplateKind, VoiceConfig


class FakeProvider:
    """Speech provider that returns canned bytes or raises scripted errors.

    ``script`` maps a call number (0-based) to an exception to raise on that
    call; every other call returns ``b"<chunk text>|"`` encoded.
    """

    name = "fake"

    def __init__(self, max_input_chars=4000, script=None, on_call=None):
        self.max_input_chars = max_input_chars
        self.script = script or {}
        self.on_call = on_call
        self.calls = []

    async def synthesize(self, text, voice_id, voice_settings, model):
        call_number = len(self.calls)
        self.calls.append({"text": text, "voice_id": voice_id, "settings": voice_settings, "model": model})
        if self.on_call is not None:
            self.on_call(call_number)
        error = self.script.get(call_number)
        if error is not None:
            raise error
        return f"{text}|".encode()


class GatedProvider(FakeProvider):
    """Provider whose calls wait until the test opens the gate.

    The gate is created on the first call so it belongs to the running loop.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.gate = None

    async def synthesize(self, text, voice_id, voice_settings, model):
        if self.gate is None:
            self.gate = asyncio.Event()
        self.calls.append({"text": text})
        await self.gate.wait()
        return b"audio"


class FakeObjectStore:
    """In-memory object store with optional scripted failures."""

    def __init__(self, failures=None, base_url="https://cdn.test"):
        self.failures = list(failures or [])
        self.base_url = base_url
        self.objects = {}
        self.deleted = []
        self.store_calls = 0

    async def store(self, data, path, content_type="audio/mpeg", visibility="public"):
        self.store_calls += 1
        if self.failures:
            raise self.failures.pop(0)
        self.objects[path] = data
        return f"{self.base_url}/{path}"

    async def delete(self, path, visibility="public"):
        self.deleted.append(path)
        return self.objects.pop(path, None) is not None

    def cleanup_temp_files(self, max_age_minutes=60):
        return 0


async def no_sleep(delay):
    """Stand-in for asyncio.sleep that records nothing and returns at once."""
    return None


async def wait_idle(service, timeout=5.0):
    """Wait until the service has no queued or running jobs and no tasks."""
    async def _poll():
        while service.active_jobs() or service._tasks:
            await asyncio.sleep(0.005)
    await asyncio.wait_for(_poll(), timeout)


async def settle():
    for _ in range(20):
        await asyncio.sleep(0)


def create_test_items(count=3, category="General"):
    return [
        ContentItem(
            id=f"item-{i}",
            title=f"Headline {i}",
            summary=f"Summary of story {i}.",
            category=category,
            published_at=datetime(2024, 3, 1, 6, i, tzinfo=timezone.utc),
        )
        for i in range(1, count + 1)
    ]


def create_test_brief(item_ids=None, **overrides):
    fields = dict(
        id="",
        title="Morning Brief",
        template=TemplateKind.MORNING_BRIEF,
        voice=VoiceConfig(voice_id="voice-1"),
        item_ids=list(item_ids) if item_ids is not None else ["item-1"],
        status=BriefStatus.DRAFT,
    )
    fields.update(overrides)
    return ContentBrief(**fields)


@pytest.fixture
def store(tmp_path):
    brief_store = BriefStore(tmp_path / "db" / "newscast.sqlite3")
    brief_store.init_schema()
    yield brief_store
    brief_store.close()


@pytest.fixture
def stored_brief(store):
    """A draft morning brief with three items, persisted."""
    items = create_test_items(3)
    store.add_items(items)
    return store.create_brief(create_test_brief([item.id for item in items]))
