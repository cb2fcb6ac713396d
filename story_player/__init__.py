"""
Story Player - Browse and play narrated, illustrated short stories.

This package loads story batches from a story backend, shows them as a
gallery and plays each one fullscreen with synchronized subtitles.
"""

__version__ = "0.1.0"

from .config import PlayerConfig
from .app import StoryPlayerApp
from .core.cache import CacheManager
from .core.state import PlayerState, StoryRecord

__all__ = [
    "PlayerConfig",
    "StoryPlayerApp",
    "CacheManager",
    "PlayerState",
    "StoryRecord",
]
