"""
Core utilities for the Story Player.
"""

from .cache import CacheManager, NullCacheManager
from .errors import (
    AudioOutputError,
    BatchExhaustedError,
    PlaybackBlocked,
    RequestCancelled,
    ServiceError,
    StoryPlayerError,
)
from .state import PlayerState, StoryRecord

__all__ = [
    "CacheManager",
    "NullCacheManager",
    "PlayerState",
    "StoryRecord",
    "StoryPlayerError",
    "ServiceError",
    "RequestCancelled",
    "PlaybackBlocked",
    "AudioOutputError",
    "BatchExhaustedError",
]
