"""
Audio unlock - satisfies the platform's gesture requirement for playback.
"""

from typing import Optional

from ..core.errors import AudioOutputError, PlaybackBlocked
from .audio import AudioHandle, AudioPlatform


class AudioUnlockManager:
    """
    Tracks whether the autoplay gate has been satisfied.

    The first user gesture resumes the audio context and plays a silent
    clip; after one success this is never attempted again. A playback
    attempt the platform rejected is parked as the single pending retry
    and replayed by the next gesture.
    """

    name = "audio_unlock"

    def __init__(self, platform: AudioPlatform):
        self.platform = platform
        self.unlocked = False
        self._pending: Optional[AudioHandle] = None

    @property
    def pending_retry(self) -> Optional[AudioHandle]:
        return self._pending

    def ensure_unlocked(self) -> bool:
        """Run the one-time unlock action. Returns the unlocked state."""
        if self.unlocked:
            return True
        try:
            self.platform.resume()
            self.platform.play_silence()
        except AudioOutputError as e:
            print(f"[{self.name}] unlock failed: {e}")
            return False
        self.unlocked = True
        print(f"[{self.name}] audio unlocked")
        return True

    def register_retry(self, handle: AudioHandle) -> None:
        """Park ``handle`` until the next gesture, replacing any older retry."""
        self._pending = handle

    def cancel_retry(self, handle: AudioHandle) -> None:
        if self._pending is handle:
            self._pending = None

    async def handle_gesture(self) -> None:
        """A pointer-down, touch-start or click happened somewhere on the page."""
        self.ensure_unlocked()
        handle, self._pending = self._pending, None
        if handle is None or handle.stopped:
            return
        try:
            await handle.play()
        except PlaybackBlocked:
            print(f"[{self.name}] playback still blocked, waiting for the next gesture")
            self._pending = handle
        except AudioOutputError as e:
            print(f"[{self.name}] retry failed: {e}")
