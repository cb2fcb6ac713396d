"""
Playback control - speech loading, audio lifecycle and highlight timing.
"""

import base64
import binascii
from typing import Any, Dict, List, Optional, Sequence

from ..config import PlayerConfig
from ..core.errors import AudioOutputError, PlaybackBlocked, RequestCancelled, ServiceError
from ..core.state import PlayerState, StoryRecord
from ..services.api import CancelSignal
from .audio import AudioHandle, AudioPlatform
from .scheduler import Scheduler, TimerSet
from .segmenter import segment_text
from .subtitles import SubtitleRenderer
from .unlock import AudioUnlockManager
from .view import PlayerSurface


IDLE = "idle"
LOADING = "loading"
PLAYING = "playing"


def highlight_delays(
    word_count: int,
    duration: float,
    timepoints: Sequence[Any] = (),
    policy: str = "uniform",
) -> List[float]:
    """
    Compute when each word is highlighted, in seconds after playback start.

    The audio duration is divided evenly across the words. With the
    "timepoints" policy a word uses the literal ``timeSeconds`` of its
    matching timepoint instead, when there is one.
    """
    if word_count <= 0:
        return []
    per_word = duration / word_count
    delays = [idx * per_word for idx in range(word_count)]
    if policy == "timepoints":
        for idx, point in enumerate(list(timepoints)[:word_count]):
            seconds = point.get("timeSeconds") if isinstance(point, dict) else None
            if isinstance(seconds, (int, float)) and seconds >= 0:
                delays[idx] = float(seconds)
    return delays


class PlaybackController:
    """
    Plays the current story: one speech request, one audio handle and one
    highlight schedule at a time.

    Every story load mints a new session token. Speech responses, timer
    callbacks and audio events compare the token they captured with the
    current one and do nothing once a newer session has started.
    """

    name = "playback"

    def __init__(
        self,
        state: PlayerState,
        api,
        platform: AudioPlatform,
        unlock: AudioUnlockManager,
        subtitles: SubtitleRenderer,
        surface: PlayerSurface,
        config: PlayerConfig,
        scheduler: Optional[Scheduler] = None,
    ):
        self.state = state
        self.api = api
        self.platform = platform
        self.unlock = unlock
        self.subtitles = subtitles
        self.surface = surface
        self.config = config
        self.timers = TimerSet(scheduler or Scheduler())
        self.audio: Optional[AudioHandle] = None
        self.status = IDLE
        self._speech_signal: Optional[CancelSignal] = None

    async def open_story(self, story_id: str) -> None:
        """Open the fullscreen player on ``story_id`` and start playing it."""
        idx = self.state.index_of(story_id)
        if idx is None:
            return
        self.state.current_index = idx
        self.surface.open()
        self.unlock.ensure_unlocked()
        await self.play_current()

    async def play_current(self) -> None:
        """Load speech for the current story and play it."""
        idx = self.state.find_playable_from(self.state.current_index)
        if idx is None:
            self.close_story()
            return
        self.state.current_index = idx
        record = self.state.stories[idx]

        self.stop_current_audio()
        token = self.state.mint_token()
        signal = CancelSignal()
        self._speech_signal = signal

        self.surface.background_image = record.image_url
        self.surface.ken_burns = True
        self.surface.story_loader = True
        self.subtitles.clear()
        self.status = LOADING

        try:
            payload = await self.api.generate_speech(record.story, signal)
            audio = self._decode_audio(payload)
        except RequestCancelled:
            return
        except ServiceError as e:
            if not self.state.is_current(token):
                return
            print(f"[{self.name}] speech failed for story {idx}: {e}")
            await self._recover(idx)
            return

        if not self.state.is_current(token):
            return
        self.surface.story_loader = False
        self.subtitles.show()
        await self._start_playback(audio, payload.get("timepoints") or [], record, token)

    def stop_current_audio(self) -> None:
        """Cancel speech, stop audio and clear every highlight, synchronously."""
        if self._speech_signal is not None:
            self._speech_signal.cancel()
            self._speech_signal = None
        if self.audio is not None:
            self.unlock.cancel_retry(self.audio)
            self.audio.stop()
            self.audio = None
        self.timers.clear()
        self.subtitles.reset()
        self.subtitles.hide()
        self.status = IDLE

    def close_story(self) -> None:
        """Leave fullscreen and put the last loaded batch back on top of the feed."""
        self.surface.close()
        self.stop_current_audio()
        self.state.mint_token()
        self.state.promote_last_batch()

    async def _recover(self, failed_idx: int) -> None:
        fallback = self.state.find_playable_from(0)
        if fallback is None or fallback == failed_idx:
            print(f"[{self.name}] no playable story left, closing")
            self.close_story()
            return
        self.state.current_index = fallback
        await self.play_current()

    @staticmethod
    def _decode_audio(payload: Dict[str, Any]) -> bytes:
        try:
            audio = base64.b64decode(payload.get("audioContent") or "", validate=True)
        except (binascii.Error, AttributeError) as e:
            raise ServiceError(f"Speech audio could not be decoded: {e}") from e
        if not audio:
            raise ServiceError("Speech response contained no audio")
        return audio

    async def _start_playback(
        self,
        audio: bytes,
        timepoints: List[Any],
        record: StoryRecord,
        token: int,
    ) -> None:
        handle = self.platform.create_handle(audio)
        self.audio = handle
        handle.on_started = lambda: self._begin_highlights(token, timepoints)
        handle.on_ended = lambda: self._on_ended(token)

        self.subtitles.load(segment_text(record.story, self.config.max_line_chars))
        self.status = PLAYING

        try:
            await handle.play()
        except PlaybackBlocked:
            print(f"[{self.name}] autoplay blocked, waiting for a user gesture")
            if self.state.is_current(token):
                self.unlock.register_retry(handle)
        except AudioOutputError as e:
            print(f"[{self.name}] audio unavailable ({e}), showing subtitles only")
            if self.state.is_current(token):
                duration = handle.duration or self.config.fallback_duration_sec
                self._schedule_highlights(token, duration, timepoints)
                self.timers.schedule(duration, self._on_ended, token)

    def _begin_highlights(self, token: int, timepoints: List[Any]) -> None:
        if not self.state.is_current(token) or self.audio is None:
            return
        if timepoints:
            self._schedule_highlights(token, self.audio.duration, timepoints)
            return

        handle = self.audio

        def on_metadata() -> None:
            if self.state.is_current(token) and self.audio is handle:
                self._schedule_highlights(token, handle.duration, timepoints)

        handle.add_metadata_listener(on_metadata)

    def _schedule_highlights(self, token: int, duration: Optional[float], timepoints: List[Any]) -> None:
        track = self.subtitles.track
        if track is None or not track.words:
            return
        if not duration:
            duration = self.config.fallback_duration_sec
        delays = highlight_delays(len(track.words), duration, timepoints, self.config.timing_policy)
        for idx, delay in enumerate(delays):
            self.timers.schedule(delay, self.subtitles.highlight_word, idx, token)

    def _on_ended(self, token: int) -> None:
        if not self.state.is_current(token):
            return
        self.surface.ken_burns = False
        self.subtitles.reset()
        self.subtitles.hide()
        self.timers.clear()
        self.status = IDLE
