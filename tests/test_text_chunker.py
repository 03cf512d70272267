"""Tests for narration chunking.

Test coverage:
- Sentence-boundary accumulation
- Word-level fallback for long sentences
- Oversized single words
- Content preservation
"""

import pytest

from newscast.text_chunker import chunk_text, split_sentences


class TestSplitSentences:
    """Tests for split_sentences."""

    def test_keeps_terminal_punctuation(self):
        """Sentences should keep their ending punctuation."""
        assert split_sentences("One. Two! Three? Four") == ["One.", "Two!", "Three?", "Four"]

    def test_arabic_question_mark_is_a_boundary(self):
        """The Arabic question mark should end a sentence."""
        assert split_sentences("ماذا حدث؟ هذا ما حدث.") == ["ماذا حدث؟", "هذا ما حدث."]

    def test_blank_text(self):
        """Whitespace-only text has no sentences."""
        assert split_sentences("   \n ") == []


class TestChunkText:
    """Tests for chunk_text."""

    def test_short_text_is_one_chunk(self):
        """Text under the limit should come back as a single chunk."""
        assert chunk_text("Hello there. How are you?", 100) == ["Hello there. How are you?"]

    def test_sentences_accumulate_until_limit(self):
        """Sentences should be packed greedily without crossing the limit."""
        text = "Aaaa aaaa. Bbbb bbbb. Cccc cccc."
        assert chunk_text(text, 21) == ["Aaaa aaaa. Bbbb bbbb.", "Cccc cccc."]

    def test_long_sentence_splits_on_words(self):
        """A sentence over the limit should fall back to word boundaries."""
        chunks = chunk_text("one two three four five six", 9)
        assert chunks == ["one two", "three", "four five", "six"]
        assert all(len(c) <= 9 for c in chunks)

    def test_trailing_word_piece_joins_next_sentence(self):
        """The last piece of a split sentence should stay open for the next sentence."""
        chunks = chunk_text("alpha beta gamma delta. Hi.", 16)
        assert chunks == ["alpha beta gamma", "delta. Hi."]

    def test_oversized_word_is_its_own_chunk(self):
        """A word longer than the limit should be emitted whole, not truncated."""
        word = "x" * 25
        chunks = chunk_text(f"short {word} tail", 10)
        assert word in chunks
        assert chunks == ["short", word, "tail"]

    def test_no_empty_chunks(self):
        """Chunking should never produce empty strings."""
        chunks = chunk_text("First.   \n\n  Second.  Third.", 8)
        assert chunks
        assert all(c.strip() for c in chunks)

    def test_empty_text(self):
        """Empty input yields no chunks."""
        assert chunk_text("", 100) == []

    def test_rejects_non_positive_limit(self):
        """A zero limit is a caller error."""
        with pytest.raises(ValueError, match="max_chars must be positive"):
            chunk_text("Hello.", 0)

    def test_joining_reproduces_input_modulo_whitespace(self):
        """Chunks joined by spaces should contain exactly the input words in order."""
        text = (
            "The council met on Tuesday.  It approved the budget!\n"
            "Critics disagreed? " + "word " * 60 + "End."
        )
        chunks = chunk_text(text, 50)
        assert " ".join(chunks).split() == text.split()
        assert all(len(c) <= 50 for c in chunks)

    def test_limit_respected_for_provider_sized_text(self):
        """A long script should split into chunks within a 4000-character limit."""
        sentence = "This sentence is part of a long narration script. "
        chunks = chunk_text(sentence * 200, 4000)
        assert len(chunks) == 3
        assert all(len(c) <= 4000 for c in chunks)
