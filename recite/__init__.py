"""Recite: spaced, grouped recitation trainer with audio playback.

WHY: Memorizing long-form answers to fixed questions works best when the
answer is heard in small groups, repeated, bookended by full reads, and
then checked against what the learner actually recites. This package
turns a question/answer record into a resumable playback plan, drives it
through a speech synthesizer, and scores recited text against the answer.

HOW: Three layers: core (segmenter, similarity scorer, plan builder,
recitation checker), player (the asyncio playback scheduler), and the
collaborators around them (speech backends, JSON document store, HTTP
API, CLI). Each layer is independently testable.

RULES:
- Core modules are pure: same input, same output, no I/O
- The scheduler is the only code that advances the plan cursor
- Speech engines and storage sit behind narrow interfaces
"""

__version__ = "0.1.0"
