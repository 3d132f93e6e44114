"""Character-set Dice similarity between recited and expected text.

WHY: Speech-to-text output is noisy, and typed recitations drop
punctuation. Exact string equality would fail
almost every recitation; character-set overlap degrades gracefully.

HOW: Each string becomes a set of characters (duplicates collapsed) and
the score is the Dice coefficient 2·|A∩B| / (|A|+|B|).

RULES:
- Result is in [0, 1]
- Symmetric: similarity(a, b) == similarity(b, a)
- Either input empty → 0.0 (empty vs empty is not a match)
- similarity(a, a) == 1.0 for any non-empty a
"""

from __future__ import annotations


def similarity(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    set_a = set(a)
    set_b = set(b)
    return 2 * len(set_a & set_b) / (len(set_a) + len(set_b))
