"""Core algorithms: segmentation, similarity, plan building, checking.

WHY: These modules hold the trainer's actual logic and must stay free of
I/O so they can be tested exhaustively and reused by every front end.

HOW: models.py defines the data structures, segmenter.py and
similarity.py are the leaf functions, plan.py builds playback plans, and
checker.py scores recitations.

RULES:
- No module here performs I/O or touches the event loop
- Everything is deterministic for a given input
"""
