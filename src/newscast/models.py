"""Content brief data model.

A ContentBrief is the durable description of a desired audio artifact. It is
owned by the record store; the runner writes the generation outcome back onto
it and the sweepers keep their bookkeeping in its typed metadata.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import ValidationError

_TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")


class BriefStatus(str, Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    PUBLISHED = "published"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TemplateKind(str, Enum):
    MORNING_BRIEF = "morning_brief"
    EVENING_DIGEST = "evening_digest"
    WEEKLY_ANALYSIS = "weekly_analysis"
    BREAKING_NEWS = "breaking_news"
    TECH_UPDATE = "tech_update"
    BUSINESS_REPORT = "business_report"
    SPORT_HIGHLIGHTS = "sport_highlights"
    CUSTOM = "custom"


class RecurrenceType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"


@dataclass
class ContentItem:
    """Single source item (article) narrated inside a brief."""

    id: str
    title: str
    summary: str = ""
    category: str = "General"  # Topic key used for grouping
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    extras: dict[str, str] = field(default_factory=dict)  # location, score, impact, ...


@dataclass
class VoiceConfig:
    """Provider voice id plus expressiveness parameters."""

    voice_id: str
    model: str = "eleven_flash_v2_5"
    stability: float = 0.5
    similarity_boost: float = 0.75
    style: float = 0.0
    use_speaker_boost: bool = True

    def provider_settings(self) -> dict[str, Any]:
        return {
            "stability": self.stability,
            "similarity_boost": self.similarity_boost,
            "style": self.style,
            "use_speaker_boost": self.use_speaker_boost,
        }

    def to_dict(self) -> dict[str, Any]:
        return {"voice_id": self.voice_id, "model": self.model, **self.provider_settings()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VoiceConfig":
        return cls(
            voice_id=data["voice_id"],
            model=data.get("model", "eleven_flash_v2_5"),
            stability=float(data.get("stability", 0.5)),
            similarity_boost=float(data.get("similarity_boost", 0.75)),
            style=float(data.get("style", 0.0)),
            use_speaker_boost=bool(data.get("use_speaker_boost", True)),
        )


@dataclass(frozen=True)
class RecurrenceDescriptor:
    """When a brief should automatically re-fire.

    Weekdays use 0=Sunday .. 6=Saturday, the convention the descriptors are
    stored with. ``interval_days`` only applies to the custom type.
    """

    type: RecurrenceType
    time: str  # HH:MM in the descriptor timezone
    days_of_week: tuple[int, ...] = ()
    timezone: str = "Asia/Riyadh"
    enabled: bool = True
    interval_days: int = 1

    @property
    def hour_minute(self) -> tuple[int, int]:
        match = _TIME_PATTERN.match(self.time)
        if not match:
            raise ValidationError(f"Invalid recurrence time '{self.time}' (expected HH:MM)")
        return int(match.group(1)), int(match.group(2))

    @property
    def zone(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValidationError(f"Unknown timezone '{self.timezone}'") from e

    def validate(self) -> None:
        # Both properties raise ValidationError on malformed values
        _ = self.hour_minute
        _ = self.zone
        bad_days = [d for d in self.days_of_week if not 0 <= d <= 6]
        if bad_days:
            raise ValidationError(f"Weekdays must be 0-6 (Sunday=0), got {bad_days}")
        if self.type == RecurrenceType.CUSTOM and self.interval_days < 1:
            raise ValidationError("Custom recurrence needs a positive interval_days")

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "time": self.time,
            "days_of_week": list(self.days_of_week),
            "timezone": self.timezone,
            "enabled": self.enabled,
            "interval_days": self.interval_days,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecurrenceDescriptor":
        try:
            kind = RecurrenceType(data["type"])
        except (KeyError, ValueError) as e:
            raise ValidationError(f"Invalid recurrence type: {data.get('type')!r}") from e
        return cls(
            type=kind,
            time=str(data.get("time", "")),
            days_of_week=tuple(int(d) for d in data.get("days_of_week") or ()),
            timezone=data.get("timezone") or "Asia/Riyadh",
            enabled=bool(data.get("enabled", True)),
            interval_days=int(data.get("interval_days") or 1),
        )


@dataclass
class BriefMetadata:
    """Typed bookkeeping the sweepers and templates depend on."""

    retry_count: int = 0
    last_retry_at: Optional[datetime] = None
    parent_brief_id: Optional[str] = None
    max_items: int = 10
    template_vars: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "retry_count": self.retry_count,
            "last_retry_at": self.last_retry_at.isoformat() if self.last_retry_at else None,
            "parent_brief_id": self.parent_brief_id,
            "max_items": self.max_items,
            "template_vars": dict(self.template_vars),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "BriefMetadata":
        data = data or {}
        last_retry = data.get("last_retry_at")
        return cls(
            retry_count=int(data.get("retry_count", 0)),
            last_retry_at=datetime.fromisoformat(last_retry) if last_retry else None,
            parent_brief_id=data.get("parent_brief_id"),
            max_items=int(data.get("max_items", 10)),
            template_vars=dict(data.get("template_vars") or {}),
        )


@dataclass
class ContentBrief:
    """Durable description of a narrated artifact."""

    id: str
    title: str
    template: TemplateKind
    voice: VoiceConfig
    item_ids: list[str] = field(default_factory=list)
    status: BriefStatus = BriefStatus.DRAFT
    script_override: Optional[str] = None
    description: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    recurrence: Optional[RecurrenceDescriptor] = None
    metadata: BriefMetadata = field(default_factory=BriefMetadata)

    # Outcome of the latest generation
    script: Optional[str] = None
    audio_url: Optional[str] = None
    duration_seconds: Optional[int] = None
    byte_size: Optional[int] = None
    last_error: Optional[str] = None
    published_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def has_override(self) -> bool:
        return bool(self.script_override and self.script_override.strip())

    def validate(self) -> None:
        """Reject briefs that can never produce narration.

        Raises:
            ValidationError: If the brief is malformed
        """
        if not self.title or not self.title.strip():
            raise ValidationError("Brief title is required")
        if not self.item_ids and not self.has_override:
            raise ValidationError(
                f"Brief {self.id} has no content items and no override script"
            )
        for name, value in self.voice.provider_settings().items():
            if name == "use_speaker_boost":
                continue
            if not 0.0 <= value <= 1.0:
                raise ValidationError(f"Voice setting {name}={value} is outside [0, 1]")
        if self.recurrence is not None:
            self.recurrence.validate()
