#!/usr/bin/env python3
"""Register content items and create a brief.

Items are read from a JSON file holding a list of objects with at least
``id`` and ``title`` (optional: summary, category, author, published_at,
extras). The brief references the items in file order.

Usage:
    ./scripts/create_brief.py --items items.json --title "Morning Brief" --template morning_brief
    ./scripts/create_brief.py --items items.json --title "Daily Tech" --template tech_update \\
        --schedule-at 2024-03-01T06:00:00+03:00 --recurrence daily --time 06:00

Exit codes:
    0: Brief created
    1: Invalid input
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from newscast.brief_store import BriefStore
from newscast.config import config
from newscast.exceptions import ValidationError
from newscast.models import (
    BriefMetadata,
    BriefStatus,
    ContentBrief,
    ContentItem,
    RecurrenceDescriptor,
    RecurrenceType,
    TemplateKind,
)
from newscast.voice_synth import VOICE_PRESETS, default_voice

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def load_items(path: Path) -> list[ContentItem]:
    """Parse a JSON item file.

    Raises:
        ValidationError: If the file is not a list of item objects
    """
    with open(path, "r") as f:
        raw = json.load(f)
    if not isinstance(raw, list):
        raise ValidationError(f"{path} must contain a JSON list of items")

    items = []
    for entry in raw:
        if not isinstance(entry, dict) or not entry.get("id") or not entry.get("title"):
            raise ValidationError(f"Every item needs an id and a title: {entry!r}")
        published = entry.get("published_at")
        items.append(ContentItem(
            id=str(entry["id"]),
            title=entry["title"],
            summary=entry.get("summary", ""),
            category=entry.get("category", "General"),
            author=entry.get("author"),
            published_at=datetime.fromisoformat(published) if published else None,
            extras={k: str(v) for k, v in (entry.get("extras") or {}).items()},
        ))
    return items


def build_brief(args: argparse.Namespace, item_ids: list[str], override: Optional[str]) -> ContentBrief:
    """Assemble a brief from parsed command-line arguments."""
    voice = VOICE_PRESETS[args.voice_preset] if args.voice_preset else default_voice(config)

    recurrence = None
    if args.recurrence:
        recurrence = RecurrenceDescriptor(
            type=RecurrenceType(args.recurrence),
            time=args.time,
            days_of_week=tuple(int(d) for d in args.days.split(",")) if args.days else (),
            timezone=args.timezone,
            interval_days=args.interval_days,
        )

    scheduled_for = datetime.fromisoformat(args.schedule_at) if args.schedule_at else None
    if scheduled_for is not None and scheduled_for.tzinfo is None:
        raise ValidationError("--schedule-at needs a UTC offset, e.g. 2024-03-01T06:00:00+03:00")

    return ContentBrief(
        id="",
        title=args.title,
        template=TemplateKind(args.template),
        voice=voice,
        item_ids=item_ids,
        status=BriefStatus.SCHEDULED if scheduled_for else BriefStatus.DRAFT,
        script_override=override,
        description=args.description,
        scheduled_for=scheduled_for,
        recurrence=recurrence,
        metadata=BriefMetadata(max_items=args.max_items),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Register content items and create a newscast brief",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--items", type=Path, help="JSON file with content items")
    parser.add_argument("--title", required=True, help="Brief title")
    parser.add_argument(
        "--template",
        choices=[t.value for t in TemplateKind],
        default=TemplateKind.CUSTOM.value,
        help="Narration template (default: custom)",
    )
    parser.add_argument("--description", help="Free-text description")
    parser.add_argument("--override-file", type=Path, help="Text file used verbatim as the script")
    parser.add_argument("--voice-preset", choices=sorted(VOICE_PRESETS), help="Named voice preset")
    parser.add_argument("--max-items", type=int, default=10, help="Items per recurring brief (default: 10)")
    parser.add_argument("--schedule-at", help="ISO-8601 trigger instant with UTC offset")
    parser.add_argument("--recurrence", choices=[r.value for r in RecurrenceType], help="Repeat the brief")
    parser.add_argument("--time", default="06:00", help="Recurrence time HH:MM (default: 06:00)")
    parser.add_argument("--days", help="Weekly recurrence weekdays, comma separated (0=Sunday)")
    parser.add_argument("--interval-days", type=int, default=1, help="Custom recurrence interval")
    parser.add_argument("--timezone", default=config.branding.station_tz, help="Recurrence timezone")
    return parser


def main() -> int:
    args = build_parser().parse_args()

    try:
        items = load_items(args.items) if args.items else []
        override = args.override_file.read_text() if args.override_file else None
        brief = build_brief(args, [item.id for item in items], override)

        store = BriefStore(config.paths.db_path)
        store.init_schema()
        if items:
            store.add_items(items)
        brief = store.create_brief(brief)
        store.close()
    except (ValidationError, ValueError, OSError) as e:
        logger.error(f"Could not create brief: {e}")
        return 1

    print(brief.id)
    return 0


if __name__ == "__main__":
    sys.exit(main())
