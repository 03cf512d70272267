"""Narration script compilation from a content brief.

Turns a brief plus its resolved items into a single narration string using
one of the newsroom templates. Pure: no network, storage or clock access
(brand and date are passed in by the caller).
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from .models import ContentBrief, ContentItem, TemplateKind

logger = logging.getLogger(__name__)

_ORDINALS = ["first", "second", "third", "fourth", "fifth"]


@dataclass(frozen=True)
class IntroContext:
    """Values available to introduction and conclusion rules."""

    brand: str
    date: str
    narrator: Optional[str] = None
    urgency: Optional[str] = None
    period: Optional[str] = None
    market_status: Optional[str] = None
    custom_intro: Optional[str] = None
    custom_conclusion: Optional[str] = None


@dataclass(frozen=True)
class ScriptTemplate:
    """The four text-producing rules of a narration template."""

    introduction: Callable[[IntroContext], str]
    item_segment: Callable[[ContentItem, int], str]
    transition: Callable[[str, str], str]
    conclusion: Callable[[IntroContext], str]


def _lines(*parts: Optional[str]) -> str:
    """Join non-empty parts into one paragraph, one part per line."""
    return "\n".join(p.strip() for p in parts if p and p.strip())


def _ordinal(index: int) -> str:
    return _ORDINALS[index] if index < len(_ORDINALS) else f"number {index + 1}"


def _extra(item: ContentItem, key: str, label: str) -> Optional[str]:
    value = item.extras.get(key)
    return f"{label}: {value}." if value else None


SCRIPT_TEMPLATES: dict[TemplateKind, ScriptTemplate] = {
    TemplateKind.MORNING_BRIEF: ScriptTemplate(
        introduction=lambda ctx: _lines(
            f"Good morning and welcome to the {ctx.brand} morning brief for {ctx.date}.",
            "Here are the stories you need to know to start your day.",
        ),
        item_segment=lambda item, i: _lines(
            f"The {_ordinal(i)} story: {item.title}.",
            item.summary,
        ),
        transition=lambda from_topic, to_topic: f"Now, from {from_topic} news, we move to {to_topic}.",
        conclusion=lambda ctx: _lines(
            f"That's the morning brief from {ctx.brand}.",
            "Have a great day, and we'll see you for the evening digest.",
        ),
    ),
    TemplateKind.EVENING_DIGEST: ScriptTemplate(
        introduction=lambda ctx: _lines(
            f"Good evening, and welcome to the {ctx.brand} evening digest.",
            f"Here is what mattered today, {ctx.date}.",
        ),
        item_segment=lambda item, i: _lines(
            f"In detail: {item.title}.",
            item.summary,
            f"Reported by {item.author}." if item.author else None,
        ),
        transition=lambda from_topic, to_topic: f"From {from_topic}, we turn to {to_topic}.",
        conclusion=lambda ctx: _lines(
            "That brings us to the end of tonight's digest.",
            "Thank you for listening, and good night.",
        ),
    ),
    TemplateKind.WEEKLY_ANALYSIS: ScriptTemplate(
        introduction=lambda ctx: _lines(
            f"Welcome to the {ctx.brand} weekly analysis.",
            "We take a closer look at the week's biggest stories and what they could mean next.",
            f"With you is {ctx.narrator or f'the {ctx.brand} news team'}.",
        ),
        item_segment=lambda item, i: _lines(
            f"Analysis {i + 1}: {item.title}.",
            _extra(item, "context", "Context"),
            f"The details: {item.summary}" if item.summary else None,
            f"Expected impact: {item.extras.get('impact') or 'developments are still unfolding.'}",
        ),
        transition=lambda from_topic, to_topic: f"Having covered {from_topic}, let's turn to {to_topic}.",
        conclusion=lambda ctx: _lines(
            "Thank you for listening to our weekly analysis.",
            "Join us next week for more in-depth coverage.",
        ),
    ),
    TemplateKind.BREAKING_NEWS: ScriptTemplate(
        introduction=lambda ctx: _lines(
            f"Breaking news from {ctx.brand}.",
            "This is an urgent update." if ctx.urgency else None,
            "We interrupt with the latest developments.",
        ),
        item_segment=lambda item, i: _lines(
            f"{item.title}.",
            item.summary,
            f"Reporting from {item.extras['location']}." if item.extras.get("location") else None,
        ),
        transition=lambda from_topic, to_topic: "",
        conclusion=lambda ctx: _lines(
            "We will bring you more details as they come in.",
            f"Stay with {ctx.brand} for the latest updates.",
        ),
    ),
    TemplateKind.TECH_UPDATE: ScriptTemplate(
        introduction=lambda ctx: _lines(
            f"Welcome to the {ctx.brand} tech update.",
            "The latest in technology and innovation.",
        ),
        item_segment=lambda item, i: _lines(
            f"Tech story {i + 1}: {item.title}.",
            item.summary,
            _extra(item, "impact", "Market impact"),
        ),
        transition=lambda from_topic, to_topic: f"From {from_topic} to {to_topic}.",
        conclusion=lambda ctx: _lines(
            f"That was the {ctx.brand} tech update.",
            "For more technology news, follow us throughout the day.",
        ),
    ),
    TemplateKind.BUSINESS_REPORT: ScriptTemplate(
        introduction=lambda ctx: _lines(
            f"Welcome to the {ctx.brand} business report.",
            "The key moves in local and global markets.",
            f"Market status: {ctx.market_status}." if ctx.market_status else None,
        ),
        item_segment=lambda item, i: _lines(
            f"In business news: {item.title}.",
            item.summary,
            _extra(item, "market_impact", "Impact on the markets"),
        ),
        transition=lambda from_topic, to_topic: f"From {from_topic} to {to_topic}.",
        conclusion=lambda ctx: _lines(
            "That's all for today's business report.",
            "Join us next time for more market analysis.",
        ),
    ),
    TemplateKind.SPORT_HIGHLIGHTS: ScriptTemplate(
        introduction=lambda ctx: _lines(
            f"Hello sports fans, this is the {ctx.brand} sports roundup.",
            f"The top results and moments from {ctx.period or 'today'}.",
        ),
        item_segment=lambda item, i: _lines(
            f"In sports: {item.title}.",
            item.summary,
            _extra(item, "score", "Final score"),
        ),
        transition=lambda from_topic, to_topic: f"From {from_topic} to {to_topic}.",
        conclusion=lambda ctx: _lines(
            "Those were the sports highlights.",
            f"Follow {ctx.brand} for more from the world of sport.",
        ),
    ),
    TemplateKind.CUSTOM: ScriptTemplate(
        introduction=lambda ctx: ctx.custom_intro or f"Welcome to {ctx.brand}.",
        item_segment=lambda item, i: _lines(f"{item.title}.", item.summary),
        transition=lambda from_topic, to_topic: f"From {from_topic} to {to_topic}.",
        conclusion=lambda ctx: ctx.custom_conclusion or "Thank you for listening.",
    ),
}


# Markup that reads awkwardly aloud
_MARKDOWN_LINK = re.compile(r"\[([^\]]*)\]\([^)]*\)")
_HTML_TAG = re.compile(r"<[^>]+>")
_URL = re.compile(r"(?:https?://|www\.)\S+", re.IGNORECASE)
_MARKUP_TOKENS = re.compile(r"[*_`#~|]+")
_BLANK_RUN = re.compile(r"\n\s*\n+")
_INLINE_SPACE = re.compile(r"[ \t]+")


def normalize_override_text(text: str) -> str:
    """Light cleanup of a hand-written script before narration.

    Collapses runs of blank lines, strips HTML tags, markdown tokens and URLs.

    Args:
        text: Override script as entered by an editor

    Returns:
        Narration-ready text
    """
    cleaned = _MARKDOWN_LINK.sub(r"\1", text)
    cleaned = _HTML_TAG.sub("", cleaned)
    cleaned = _URL.sub("", cleaned)
    cleaned = _MARKUP_TOKENS.sub("", cleaned)

    lines = [_INLINE_SPACE.sub(" ", line).strip() for line in cleaned.splitlines()]
    cleaned = "\n".join(lines)
    cleaned = _BLANK_RUN.sub("\n\n", cleaned)
    return cleaned.strip()


def group_items_by_topic(items: list[ContentItem]) -> dict[str, list[ContentItem]]:
    """Bucket items by category, preserving first-appearance and item order."""
    grouped: dict[str, list[ContentItem]] = {}
    for item in items:
        grouped.setdefault(item.category or "General", []).append(item)
    return grouped


def _format_date(day: date) -> str:
    return f"{day.strftime('%A, %B')} {day.day}, {day.year}"


def compile_script(
    brief: ContentBrief,
    items: list[ContentItem],
    *,
    brand: str = "Newscast",
    today: Optional[date] = None,
) -> str:
    """Compile the narration text for a brief.

    Args:
        brief: Brief being narrated
        items: Resolved items, in the brief's order
        brand: Brand name spoken in introductions
        today: Date read in the introduction (in the newsroom timezone)

    Returns:
        Narration text (never empty for a template brief)
    """
    if brief.has_override:
        return normalize_override_text(brief.script_override)

    template = SCRIPT_TEMPLATES.get(brief.template)
    if template is None:
        logger.warning(f"Unknown template '{brief.template}', using custom")
        template = SCRIPT_TEMPLATES[TemplateKind.CUSTOM]

    template_vars = brief.metadata.template_vars
    context = IntroContext(
        brand=brand,
        date=_format_date(today) if today else "",
        narrator=template_vars.get("narrator"),
        urgency=template_vars.get("urgency"),
        period=template_vars.get("period"),
        market_status=template_vars.get("market_status"),
        custom_intro=template_vars.get("custom_intro"),
        custom_conclusion=template_vars.get("custom_conclusion"),
    )

    parts = [template.introduction(context)]

    previous_topic = None
    for topic, topic_items in group_items_by_topic(items).items():
        if previous_topic is not None:
            parts.append(template.transition(previous_topic, topic))
        for index, item in enumerate(topic_items):
            parts.append(template.item_segment(item, index))
        previous_topic = topic

    parts.append(template.conclusion(context))

    return "\n\n".join(p.strip() for p in parts if p and p.strip())
