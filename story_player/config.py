"""
Configuration dataclass for the Story Player.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
import os


TIMING_POLICIES = ("uniform", "timepoints")


@dataclass
class PlayerConfig:
    """
    Configuration for the Story Player.

    All settings can be overridden via CLI arguments or by passing
    values directly when instantiating.
    """

    # Backend settings
    api_url: Optional[str] = None
    lang: str = "en"
    request_timeout: float = 60.0

    # Caching options
    cache_dir: Path = field(default_factory=lambda: Path("cache"))
    use_cache: bool = True
    clear_cache: bool = False
    session_keep: int = 3

    # Batch loading
    batch_size: int = 4
    max_rounds: int = 5

    # Subtitle settings
    max_line_chars: int = 12
    visible_lines: int = 2
    fallback_duration_sec: float = 15.0
    timing_policy: str = "uniform"  # uniform/timepoints

    # Navigation settings
    nav_cooldown_sec: float = 0.25
    swipe_threshold_px: float = 50.0
    wrap_at_end: bool = True

    # Audio output
    require_gesture_unlock: bool = False
    ffplay_bin: str = "ffplay"
    ffprobe_bin: str = "ffprobe"

    def __post_init__(self):
        """Normalize paths and fill the backend URL from the environment."""
        if isinstance(self.cache_dir, str):
            self.cache_dir = Path(self.cache_dir)
        self.cache_dir = self.cache_dir.resolve()

        if self.api_url is None:
            self.api_url = os.environ.get("STORY_API_URL", "http://localhost:3000")
        self.api_url = self.api_url.rstrip("/")

        if self.timing_policy not in TIMING_POLICIES:
            raise ValueError(
                f"Unknown timing policy: {self.timing_policy}. Available: {list(TIMING_POLICIES)}"
            )
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

    def to_dict(self) -> dict:
        """Convert config to dictionary (for serialization)."""
        return {
            "api_url": self.api_url,
            "lang": self.lang,
            "request_timeout": self.request_timeout,
            "cache_dir": str(self.cache_dir),
            "use_cache": self.use_cache,
            "clear_cache": self.clear_cache,
            "session_keep": self.session_keep,
            "batch_size": self.batch_size,
            "max_rounds": self.max_rounds,
            "max_line_chars": self.max_line_chars,
            "visible_lines": self.visible_lines,
            "fallback_duration_sec": self.fallback_duration_sec,
            "timing_policy": self.timing_policy,
            "nav_cooldown_sec": self.nav_cooldown_sec,
            "swipe_threshold_px": self.swipe_threshold_px,
            "wrap_at_end": self.wrap_at_end,
            "require_gesture_unlock": self.require_gesture_unlock,
            "ffplay_bin": self.ffplay_bin,
            "ffprobe_bin": self.ffprobe_bin,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PlayerConfig":
        """Create config from dictionary."""
        return cls(**data)
