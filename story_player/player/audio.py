"""
Audio output - one playable handle per story, backed by ffplay.
"""

from __future__ import annotations

import asyncio
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional

from ..core.errors import AudioOutputError, PlaybackBlocked


class AudioHandle(ABC):
    """
    A decoded story audio clip attached to the shared output.

    ``on_started`` fires when sound actually starts and ``on_ended`` when
    playback finishes on its own. Metadata listeners fire once the clip
    duration is known. ``stop()`` pauses, detaches every callback and
    releases transient resources.
    """

    def __init__(self):
        self.on_started: Optional[Callable[[], None]] = None
        self.on_ended: Optional[Callable[[], None]] = None
        self.stopped = False
        self._duration: Optional[float] = None
        self._metadata_listeners: List[Callable[[], None]] = []

    @property
    def duration(self) -> Optional[float]:
        return self._duration

    def add_metadata_listener(self, listener: Callable[[], None]) -> None:
        if self._duration is not None:
            listener()
        else:
            self._metadata_listeners.append(listener)

    def _set_duration(self, duration: float) -> None:
        self._duration = duration
        listeners, self._metadata_listeners = self._metadata_listeners, []
        for listener in listeners:
            listener()

    def _started(self) -> None:
        if not self.stopped and self.on_started is not None:
            self.on_started()

    def _finish(self) -> None:
        if not self.stopped and self.on_ended is not None:
            self.on_ended()

    @abstractmethod
    async def play(self) -> None:
        """
        Start playback.

        Raises:
            PlaybackBlocked: If the platform needs a user gesture first
            AudioOutputError: If the output could not be started
        """

    @abstractmethod
    def stop(self) -> None:
        """Stop playback and release the clip. Safe to call twice."""


class AudioPlatform(ABC):
    """
    The device audio output and its autoplay gate.

    With ``require_gesture`` the gate stays closed until ``resume()`` is
    called from a user gesture.
    """

    def __init__(self, require_gesture: bool = False):
        self.require_gesture = require_gesture
        self._resumed = not require_gesture

    @property
    def locked(self) -> bool:
        return not self._resumed

    def resume(self) -> None:
        """Resume a suspended audio context."""
        self._resumed = True

    @abstractmethod
    def play_silence(self) -> None:
        """Play and discard a near-silent clip."""

    @abstractmethod
    def create_handle(self, audio: bytes) -> AudioHandle:
        """Decode ``audio`` into a new handle."""


class FfplayAudio(AudioHandle):
    """Plays a clip through ``ffplay`` from a temporary file."""

    def __init__(self, platform: "FfplayPlatform", audio: bytes, suffix: str = ".mp3"):
        super().__init__()
        self.platform = platform
        with tempfile.NamedTemporaryFile(suffix=suffix, prefix="story_", delete=False) as f:
            f.write(audio)
            self.path = Path(f.name)
        self._process: Optional[asyncio.subprocess.Process] = None
        self._watcher: Optional[asyncio.Future] = None

    async def play(self) -> None:
        if self.stopped:
            return
        if self.platform.locked:
            raise PlaybackBlocked("Audio playback needs a user gesture")
        if self._duration is None:
            duration = await self._probe_duration()
            if self.stopped:
                return
            # 0.0 tells listeners the length is unknown
            self._set_duration(duration or 0.0)

        cmd = [
            self.platform.ffplay_bin,
            "-nodisp",
            "-autoexit",
            "-loglevel", "quiet",
            str(self.path),
        ]
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd, stdout=asyncio.subprocess.DEVNULL, stderr=asyncio.subprocess.DEVNULL
            )
        except FileNotFoundError as e:
            raise AudioOutputError(f"{self.platform.ffplay_bin} is not installed") from e
        if self.stopped:
            self._process.terminate()
            await self._process.wait()
            return
        self._watcher = asyncio.ensure_future(self._wait_for_exit())
        self._started()

    async def _probe_duration(self) -> Optional[float]:
        cmd = [
            self.platform.ffprobe_bin,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(self.path),
        ]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError:
            print(f"[audio] {self.platform.ffprobe_bin} not found, duration unknown")
            return None
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            print(f"[audio] ffprobe stderr: {stderr.decode(errors='replace').strip()}")
            return None
        try:
            return float(stdout.decode().strip())
        except ValueError:
            print(f"[audio] invalid ffprobe duration: {stdout!r}")
            return None

    async def _wait_for_exit(self) -> None:
        await self._process.wait()
        self._finish()

    def stop(self) -> None:
        if self.stopped:
            return
        self.stopped = True
        self.on_started = None
        self.on_ended = None
        self._metadata_listeners = []
        if self._watcher is not None:
            self._watcher.cancel()
            self._watcher = None
        if self._process is not None and self._process.returncode is None:
            self._process.terminate()
        self._process = None
        self.path.unlink(missing_ok=True)


class FfplayPlatform(AudioPlatform):
    """Audio platform that shells out to ffplay/ffprobe."""

    def __init__(self, ffplay_bin: str = "ffplay", ffprobe_bin: str = "ffprobe", require_gesture: bool = False):
        super().__init__(require_gesture=require_gesture)
        self.ffplay_bin = ffplay_bin
        self.ffprobe_bin = ffprobe_bin

    def play_silence(self) -> None:
        cmd = [
            self.ffplay_bin,
            "-nodisp",
            "-autoexit",
            "-loglevel", "quiet",
            "-f", "lavfi",
            "-t", "0.05",
            "anullsrc=r=44100:cl=mono",
        ]
        try:
            subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except FileNotFoundError as e:
            raise AudioOutputError(f"{self.ffplay_bin} is not installed") from e

    def create_handle(self, audio: bytes) -> AudioHandle:
        return FfplayAudio(self, audio)
