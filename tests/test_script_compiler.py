"""Tests for narration script compilation.

Test coverage:
- Override text normalization
- Topic grouping and transitions
- Per-template introductions and segments
- Unknown template fallback
- Zero-item briefs
"""

from datetime import date

from newscast.models import BriefMetadata, ContentItem, TemplateKind
from newscast.script_compiler import (
    SCRIPT_TEMPLATES,
    compile_script,
    group_items_by_topic,
    normalize_override_text,
)

from conftest import create_test_brief

TODAY = date(2024, 3, 1)


def _item(item_id, title, category, summary=None, **extras):
    return ContentItem(
        id=item_id,
        title=title,
        summary=summary if summary is not None else f"{title} summary.",
        category=category,
        extras=extras,
    )


class TestNormalizeOverrideText:
    """Tests for normalize_override_text."""

    def test_strips_markup_urls_and_blank_runs(self):
        """Markdown, HTML and URLs should be removed and blank runs collapsed."""
        text = "# Title\n\n\n\nSee [the report](http://x.test) and <b>bold</b> at https://example.com now."
        assert normalize_override_text(text) == "Title\n\nSee the report and bold at now."

    def test_trims_whitespace(self):
        """Surrounding whitespace should be removed."""
        assert normalize_override_text("  \n Hello listeners.  \n\n") == "Hello listeners."

    def test_plain_text_unchanged(self):
        """Clean narration passes through untouched."""
        text = "First paragraph.\n\nSecond paragraph."
        assert normalize_override_text(text) == text


class TestGroupItemsByTopic:
    """Tests for group_items_by_topic."""

    def test_first_appearance_order(self):
        """Groups should follow first appearance and keep item order within a group."""
        items = [
            _item("a", "A", "Politics"),
            _item("b", "B", "Sports"),
            _item("c", "C", "Politics"),
        ]
        grouped = group_items_by_topic(items)
        assert list(grouped) == ["Politics", "Sports"]
        assert [i.id for i in grouped["Politics"]] == ["a", "c"]


class TestCompileScript:
    """Tests for compile_script."""

    def test_override_short_circuits_template(self):
        """An override script should be returned normalized, ignoring items."""
        brief = create_test_brief(script_override="**Hello** listeners.")
        script = compile_script(brief, [_item("a", "Ignored", "General")], today=TODAY)
        assert script == "Hello listeners."

    def test_morning_brief_groups_and_transitions(self):
        """Items should be grouped by topic with transitions between groups only."""
        items = [
            _item("a", "Budget passes", "Politics"),
            _item("b", "Home win", "Sports"),
            _item("c", "Minister resigns", "Politics"),
        ]
        brief = create_test_brief(["a", "b", "c"])

        script = compile_script(brief, items, brand="Newscast", today=TODAY)

        assert script.split("\n\n") == [
            "Good morning and welcome to the Newscast morning brief for Friday, March 1, 2024.\n"
            "Here are the stories you need to know to start your day.",
            "The first story: Budget passes.\nBudget passes summary.",
            "The second story: Minister resigns.\nMinister resigns summary.",
            "Now, from Politics news, we move to Sports.",
            "The first story: Home win.\nHome win summary.",
            "That's the morning brief from Newscast.\n"
            "Have a great day, and we'll see you for the evening digest.",
        ]

    def test_no_transition_before_first_group(self):
        """The first topic group should not be preceded by a transition."""
        brief = create_test_brief(["a"])
        script = compile_script(brief, [_item("a", "Only story", "Tech")], today=TODAY)
        assert "we move to" not in script

    def test_breaking_news_has_no_transitions(self):
        """Empty transitions should be skipped, not left as blank paragraphs."""
        items = [_item("a", "Quake", "World", location="Jeddah"), _item("b", "Flood", "Local")]
        brief = create_test_brief(["a", "b"], template=TemplateKind.BREAKING_NEWS)

        script = compile_script(brief, items, brand="Newscast", today=TODAY)

        assert "\n\n\n" not in script
        assert "Reporting from Jeddah." in script
        assert script.startswith("Breaking news from Newscast.")

    def test_zero_items_gives_intro_and_conclusion(self):
        """A template brief with no items should still narrate intro and conclusion."""
        brief = create_test_brief([], template=TemplateKind.CUSTOM)
        assert compile_script(brief, [], brand="Newscast", today=TODAY) == (
            "Welcome to Newscast.\n\nThank you for listening."
        )

    def test_custom_template_vars(self):
        """Custom briefs should use their own intro and conclusion when given."""
        brief = create_test_brief(
            [],
            template=TemplateKind.CUSTOM,
            metadata=BriefMetadata(template_vars={"custom_intro": "Hi all.", "custom_conclusion": "Bye."}),
        )
        assert compile_script(brief, [], today=TODAY) == "Hi all.\n\nBye."

    def test_unknown_template_falls_back_to_custom(self):
        """An unrecognized template kind should compile with the custom template."""
        brief = create_test_brief(["a"], template="podcast")
        script = compile_script(brief, [_item("a", "Story", "General")], brand="Newscast", today=TODAY)
        assert script == "Welcome to Newscast.\n\nStory.\nStory summary.\n\nThank you for listening."

    def test_weekly_analysis_uses_extras(self):
        """Analysis segments should read context and impact from item extras."""
        items = [_item("a", "Rates rise", "Economy", context="Inflation is high", impact="Loans cost more")]
        brief = create_test_brief(["a"], template=TemplateKind.WEEKLY_ANALYSIS)

        script = compile_script(brief, items, brand="Newscast", today=TODAY)

        assert "Analysis 1: Rates rise." in script
        assert "Context: Inflation is high." in script
        assert "Expected impact: Loans cost more" in script

    def test_every_template_kind_compiles(self):
        """Every template kind should produce non-empty narration."""
        items = [_item("a", "Story", "General")]
        for kind in TemplateKind:
            assert kind in SCRIPT_TEMPLATES
            brief = create_test_brief(["a"], template=kind)
            assert "Story" in compile_script(brief, items, today=TODAY)
