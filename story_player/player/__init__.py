"""
Player components: segmentation, subtitles, playback, unlock, loading and navigation.
"""

from .audio import AudioHandle, AudioPlatform, FfplayAudio, FfplayPlatform
from .controller import PlaybackController, highlight_delays
from .loader import StoryBatchLoader, image_data_url
from .navigation import Navigator
from .scheduler import Scheduler, TimerSet
from .segmenter import Line, Word, segment_lines, segment_text, segment_words
from .subtitles import SubtitleRenderer, SubtitleTrack
from .unlock import AudioUnlockManager
from .view import GalleryView, LoaderIndicator, PlayerSurface

__all__ = [
    "AudioHandle",
    "AudioPlatform",
    "FfplayAudio",
    "FfplayPlatform",
    "PlaybackController",
    "highlight_delays",
    "StoryBatchLoader",
    "image_data_url",
    "Navigator",
    "Scheduler",
    "TimerSet",
    "Line",
    "Word",
    "segment_lines",
    "segment_text",
    "segment_words",
    "SubtitleRenderer",
    "SubtitleTrack",
    "AudioUnlockManager",
    "GalleryView",
    "LoaderIndicator",
    "PlayerSurface",
]
