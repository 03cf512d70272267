"""Split narration text into provider-sized chunks.

Chunks prefer sentence boundaries and fall back to word boundaries when a
single sentence is longer than the provider limit. A single word longer than
the limit is emitted on its own rather than truncated.
"""

import re

# Sentence-ending punctuation followed by whitespace; the punctuation stays
# with the sentence it ends. Arabic question mark included for source briefs.
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?؟])\s+")


def split_sentences(text: str) -> list[str]:
    """Split text into sentences, keeping terminal punctuation.

    Args:
        text: Narration text

    Returns:
        Non-empty sentences with surrounding whitespace stripped
    """
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text) if s.strip()]


def _split_words(sentence: str, max_chars: int) -> list[str]:
    """Greedy word accumulation for a sentence that exceeds max_chars."""
    pieces = []
    current = ""

    for word in sentence.split():
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= max_chars:
            current = candidate
            continue

        if current:
            pieces.append(current)
        # An over-long word becomes its own piece
        current = word

    if current:
        pieces.append(current)

    return pieces


def chunk_text(text: str, max_chars: int) -> list[str]:
    """Split text into ordered chunks no longer than max_chars.

    Sentences are accumulated greedily into the current chunk until the next
    one would overflow it. Joining the result with single spaces reproduces
    the input modulo whitespace.

    Args:
        text: Narration text
        max_chars: Provider input-size limit

    Returns:
        Ordered list of non-empty chunks

    Raises:
        ValueError: If max_chars is not positive
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")

    chunks = []
    current = ""

    for sentence in split_sentences(text):
        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) <= max_chars:
            current = candidate
            continue

        if current:
            chunks.append(current)
            current = ""

        if len(sentence) <= max_chars:
            current = sentence
            continue

        # No natural break inside the sentence: fall back to words, and keep
        # the trailing piece open so following sentences can join it
        pieces = _split_words(sentence, max_chars)
        chunks.extend(pieces[:-1])
        current = pieces[-1]

    if current:
        chunks.append(current)

    return chunks
