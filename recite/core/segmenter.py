"""Split answer text into recitable segments.

WHY: A long answer is memorized piece by piece. The segmenter decides
where those pieces begin and end, and every other component (plan
builder, checker, display) agrees on segment positions because they all
call the same pure function with the same delimiter string.

HOW: Builds a regex character class from the configured delimiters plus
a fixed fallback set (commas, semicolons, enumeration comma, in ASCII and
full-width) and splits on any run of them.

RULES:
- Delimiter characters are discarded, never part of a segment
- Segments are whitespace-trimmed; empty segments are dropped
- Empty text → empty list (not an error)
- Empty or missing delimiters → DEFAULT_SENTENCE_DELIMITERS
- Pure: same text + same delimiters → same list, every call
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import List, Optional

from recite.config import DEFAULT_SENTENCE_DELIMITERS, FALLBACK_DELIMITERS


@lru_cache(maxsize=64)
def _split_pattern(delimiters: str) -> re.Pattern:
    chars = []
    for ch in delimiters + FALLBACK_DELIMITERS:
        if ch not in chars and not ch.isspace():
            chars.append(ch)
    char_class = "".join(re.escape(ch) for ch in chars)
    return re.compile("[{}]+".format(char_class))


def segment(text: Optional[str], delimiters: Optional[str] = None) -> List[str]:
    """Split text into ordered, non-empty, trimmed segments.

    Args:
        text: The answer text.
        delimiters: Sentence delimiter characters from settings.

    Returns:
        Segments in text order.
    """
    if not text:
        return []
    pattern = _split_pattern(delimiters or DEFAULT_SENTENCE_DELIMITERS)
    parts = (part.strip() for part in pattern.split(text))
    return [part for part in parts if part]


def chunk(items: List[str], size: int) -> List[List[str]]:
    """Consecutive groups of ``size`` items; the last group may be shorter."""
    return [items[i:i + size] for i in range(0, len(items), size)]
