"""SQLite persistence for briefs and content items.

Timestamps are stored as UTC ISO-8601 strings so that range queries can
compare them lexically. Structured fields (voice, recurrence, metadata,
item extras) are stored as JSON columns.
"""

import json
import logging
import sqlite3
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from .models import (
    BriefMetadata,
    BriefStatus,
    ContentBrief,
    ContentItem,
    RecurrenceDescriptor,
    TemplateKind,
    VoiceConfig,
)

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS items (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    summary TEXT NOT NULL DEFAULT '',
    category TEXT NOT NULL DEFAULT 'General',
    author TEXT,
    published_at TEXT,
    extras TEXT NOT NULL DEFAULT '{}'
);

CREATE TABLE IF NOT EXISTS briefs (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    template TEXT NOT NULL,
    status TEXT NOT NULL CHECK(status IN ('draft', 'scheduled', 'processing', 'published', 'failed', 'cancelled')),
    voice TEXT NOT NULL,
    script_override TEXT,
    description TEXT,
    scheduled_for TEXT,
    recurrence TEXT,
    metadata TEXT NOT NULL DEFAULT '{}',
    script TEXT,
    audio_url TEXT,
    duration_seconds INTEGER,
    byte_size INTEGER,
    last_error TEXT,
    published_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS brief_items (
    brief_id TEXT NOT NULL REFERENCES briefs(id) ON DELETE CASCADE,
    item_id TEXT NOT NULL,
    order_index INTEGER NOT NULL,
    PRIMARY KEY (brief_id, order_index)
);

CREATE INDEX IF NOT EXISTS idx_briefs_status_scheduled ON briefs(status, scheduled_for);
CREATE INDEX IF NOT EXISTS idx_items_category_published ON items(category, published_at);
"""


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BriefStore:
    """Record store for briefs and their items.

    One connection is shared by the process; every statement runs under a
    lock and commits immediately, giving per-row atomic updates.
    """

    def __init__(self, db_path: Union[Path, str]):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.Lock()

    def init_schema(self) -> None:
        with self._lock:
            self._conn.executescript(SCHEMA)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def add_items(self, items: Iterable[ContentItem]) -> int:
        """Insert or replace content items.

        Returns:
            Number of items written
        """
        rows = [
            (
                item.id,
                item.title,
                item.summary,
                item.category,
                item.author,
                _iso(item.published_at),
                json.dumps(item.extras),
            )
            for item in items
        ]
        with self._lock, self._conn:
            self._conn.executemany(
                """
                INSERT OR REPLACE INTO items (id, title, summary, category, author, published_at, extras)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows)

    def get_items(self, brief_id: str) -> list[ContentItem]:
        """Items of a brief in brief order. Dangling references are skipped."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT i.* FROM brief_items bi
                JOIN items i ON i.id = bi.item_id
                WHERE bi.brief_id = ?
                ORDER BY bi.order_index
                """,
                (brief_id,),
            ).fetchall()
        return [self._row_to_item(row) for row in rows]

    def latest_item_ids(self, categories: Optional[list[str]] = None, limit: int = 10) -> list[str]:
        """Most recently published item ids, optionally restricted to categories.

        Falls back to all categories when the restricted query finds nothing.
        """
        with self._lock:
            rows = []
            if categories:
                placeholders = ", ".join("?" for _ in categories)
                rows = self._conn.execute(
                    f"""
                    SELECT id FROM items WHERE category IN ({placeholders})
                    ORDER BY published_at DESC LIMIT ?
                    """,
                    (*categories, limit),
                ).fetchall()
            if not rows:
                rows = self._conn.execute(
                    "SELECT id FROM items ORDER BY published_at DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        return [row["id"] for row in rows]

    # ------------------------------------------------------------------
    # Briefs
    # ------------------------------------------------------------------

    def create_brief(self, brief: ContentBrief) -> ContentBrief:
        """Validate and insert a brief together with its item links.

        Raises:
            ValidationError: If the brief is malformed
        """
        brief.validate()
        if not brief.id:
            brief.id = uuid.uuid4().hex
        now = _now()
        brief.created_at = brief.created_at or now
        brief.updated_at = now

        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO briefs (
                    id, title, template, status, voice, script_override, description,
                    scheduled_for, recurrence, metadata, script, audio_url, duration_seconds,
                    byte_size, last_error, published_at, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    brief.id,
                    brief.title,
                    TemplateKind(brief.template).value,
                    BriefStatus(brief.status).value,
                    json.dumps(brief.voice.to_dict()),
                    brief.script_override,
                    brief.description,
                    _iso(brief.scheduled_for),
                    json.dumps(brief.recurrence.to_dict()) if brief.recurrence else None,
                    json.dumps(brief.metadata.to_dict()),
                    brief.script,
                    brief.audio_url,
                    brief.duration_seconds,
                    brief.byte_size,
                    brief.last_error,
                    _iso(brief.published_at),
                    _iso(brief.created_at),
                    _iso(brief.updated_at),
                ),
            )
            self._conn.executemany(
                "INSERT INTO brief_items (brief_id, item_id, order_index) VALUES (?, ?, ?)",
                [(brief.id, item_id, index) for index, item_id in enumerate(brief.item_ids)],
            )

        logger.info(f"Created brief {brief.id} '{brief.title}' ({brief.status.value})")
        return brief

    def get_brief(self, brief_id: str) -> Optional[ContentBrief]:
        with self._lock:
            row = self._conn.execute("SELECT * FROM briefs WHERE id = ?", (brief_id,)).fetchone()
            if row is None:
                return None
            item_rows = self._conn.execute(
                "SELECT item_id FROM brief_items WHERE brief_id = ? ORDER BY order_index",
                (brief_id,),
            ).fetchall()
        return self._row_to_brief(row, [r["item_id"] for r in item_rows])

    def list_briefs(self, status: Optional[BriefStatus] = None) -> list[ContentBrief]:
        with self._lock:
            if status is None:
                ids = self._conn.execute("SELECT id FROM briefs ORDER BY created_at").fetchall()
            else:
                ids = self._conn.execute(
                    "SELECT id FROM briefs WHERE status = ? ORDER BY created_at",
                    (BriefStatus(status).value,),
                ).fetchall()
        return [b for b in (self.get_brief(r["id"]) for r in ids) if b is not None]

    def list_due(self, now: datetime) -> list[ContentBrief]:
        """Scheduled briefs whose trigger instant has passed."""
        with self._lock:
            ids = self._conn.execute(
                """
                SELECT id FROM briefs
                WHERE status = 'scheduled' AND scheduled_for IS NOT NULL AND scheduled_for <= ?
                ORDER BY scheduled_for
                """,
                (_iso(now),),
            ).fetchall()
        return [b for b in (self.get_brief(r["id"]) for r in ids) if b is not None]

    def list_retryable(self, ceiling: int) -> list[ContentBrief]:
        """Failed briefs whose retry counter is still below the ceiling."""
        failed = self.list_briefs(BriefStatus.FAILED)
        return [b for b in failed if b.metadata.retry_count < ceiling]

    def _update(self, brief_id: str, **fields: Any) -> bool:
        fields["updated_at"] = _iso(_now())
        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self._lock, self._conn:
            cursor = self._conn.execute(
                f"UPDATE briefs SET {assignments} WHERE id = ?",
                (*fields.values(), brief_id),
            )
        return cursor.rowcount > 0

    def set_status(self, brief_id: str, status: BriefStatus) -> bool:
        return self._update(brief_id, status=BriefStatus(status).value)

    def save_script(self, brief_id: str, script: str) -> bool:
        return self._update(brief_id, script=script)

    def record_success(
        self,
        brief_id: str,
        audio_url: str,
        duration_seconds: int,
        byte_size: int,
        publish: bool,
    ) -> bool:
        """Write a finished artifact onto the brief."""
        status = BriefStatus.PUBLISHED if publish else BriefStatus.DRAFT
        return self._update(
            brief_id,
            audio_url=audio_url,
            duration_seconds=duration_seconds,
            byte_size=byte_size,
            status=status.value,
            last_error=None,
            published_at=_iso(_now()) if publish else None,
        )

    def record_failure(self, brief_id: str, error: str) -> bool:
        return self._update(brief_id, status=BriefStatus.FAILED.value, last_error=error)

    def record_retry(self, brief_id: str, now: datetime) -> Optional[int]:
        """Claim a failed brief for another attempt.

        Increments the retry counter, stamps the retry time and moves the
        brief to processing in a single transaction. Only briefs still in
        failed status are claimed.

        Returns:
            New retry count, or None if the brief was not in failed status
        """
        with self._lock, self._conn:
            row = self._conn.execute(
                "SELECT metadata FROM briefs WHERE id = ? AND status = 'failed'",
                (brief_id,),
            ).fetchone()
            if row is None:
                return None
            metadata = BriefMetadata.from_dict(json.loads(row["metadata"]))
            metadata.retry_count += 1
            metadata.last_retry_at = now
            self._conn.execute(
                """
                UPDATE briefs SET metadata = ?, status = 'processing', updated_at = ?
                WHERE id = ? AND status = 'failed'
                """,
                (json.dumps(metadata.to_dict()), _iso(_now()), brief_id),
            )
        return metadata.retry_count

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> ContentItem:
        return ContentItem(
            id=row["id"],
            title=row["title"],
            summary=row["summary"],
            category=row["category"],
            author=row["author"],
            published_at=_parse(row["published_at"]),
            extras=json.loads(row["extras"] or "{}"),
        )

    @staticmethod
    def _row_to_brief(row: sqlite3.Row, item_ids: list[str]) -> ContentBrief:
        recurrence = json.loads(row["recurrence"]) if row["recurrence"] else None
        try:
            template = TemplateKind(row["template"])
        except ValueError:
            logger.warning(f"Brief {row['id']} has unknown template '{row['template']}', using custom")
            template = TemplateKind.CUSTOM
        return ContentBrief(
            id=row["id"],
            title=row["title"],
            template=template,
            voice=VoiceConfig.from_dict(json.loads(row["voice"])),
            item_ids=item_ids,
            status=BriefStatus(row["status"]),
            script_override=row["script_override"],
            description=row["description"],
            scheduled_for=_parse(row["scheduled_for"]),
            recurrence=RecurrenceDescriptor.from_dict(recurrence) if recurrence else None,
            metadata=BriefMetadata.from_dict(json.loads(row["metadata"] or "{}")),
            script=row["script"],
            audio_url=row["audio_url"],
            duration_seconds=row["duration_seconds"],
            byte_size=row["byte_size"],
            last_error=row["last_error"],
            published_at=_parse(row["published_at"]),
            created_at=_parse(row["created_at"]),
            updated_at=_parse(row["updated_at"]),
        )
