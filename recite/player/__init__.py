"""Playback of study plans through a speech synthesizer."""

from recite.player.scheduler import (
    PlaybackConfigurationError,
    PlaybackScheduler,
    PlayerState,
    PlayerStatus,
)

__all__ = [
    "PlaybackConfigurationError",
    "PlaybackScheduler",
    "PlayerState",
    "PlayerStatus",
]
