import base64
import inspect
from io import BytesIO
from typing import Any, Callable, Dict, List, Optional

from PIL import Image

from story_player.app import StoryPlayerApp
from story_player.config import PlayerConfig
from story_player.core.errors import AudioOutputError, PlaybackBlocked
from story_player.core.state import PlayerState, StoryRecord
from story_player.player.audio import AudioHandle, AudioPlatform
from story_player.player.scheduler import Scheduler


def make_png_b64(color: tuple = (200, 120, 40)) -> str:
    buffer = BytesIO()
    Image.new("RGB", (4, 4), color).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


PNG_B64 = make_png_b64()
AUDIO_B64 = base64.b64encode(b"ID3 fake mp3 frames").decode("ascii")


def make_config(**overrides: Any) -> PlayerConfig:
    values: Dict[str, Any] = {"api_url": "http://story.test", "use_cache": False}
    values.update(overrides)
    return PlayerConfig(**values)


def unique_ideas(page_size: int = 4) -> Callable[[bool], List[Dict[str, str]]]:
    """Idea source that never repeats a prompt."""
    counter = {"n": 0}

    def next_page(refresh: bool) -> List[Dict[str, str]]:
        page = []
        for _ in range(page_size):
            counter["n"] += 1
            n = counter["n"]
            page.append({"prompt": f"prompt {n}", "story": f"Story number {n} is here."})
        return page

    return next_page


class FakeApi:
    """Async backend double. Each source may return a value, raise, or return an awaitable."""

    def __init__(self, ideas=None, image=None, speech=None):
        self.ideas_fn = ideas or unique_ideas()
        self.image_fn = image or (lambda prompt: {"base64": PNG_B64, "cached": False})
        self.speech_fn = speech or (lambda text, signal: {"audioContent": AUDIO_B64, "timepoints": []})
        self.idea_calls: List[bool] = []
        self.image_calls: List[str] = []
        self.speech_calls: List[tuple] = []

    @staticmethod
    async def _resolve(result: Any) -> Any:
        if inspect.isawaitable(result):
            return await result
        return result

    async def get_story_ideas(self, refresh: bool = False):
        self.idea_calls.append(refresh)
        return await self._resolve(self.ideas_fn(refresh))

    async def generate_image(self, prompt: str):
        self.image_calls.append(prompt)
        return await self._resolve(self.image_fn(prompt))

    async def generate_speech(self, text: str, signal):
        self.speech_calls.append((text, signal))
        return await self._resolve(self.speech_fn(text, signal))


class FakeAudio(AudioHandle):
    def __init__(self, platform: "FakePlatform", audio: bytes, duration: Optional[float]):
        super().__init__()
        self.platform = platform
        self.audio = audio
        self.probe_duration = duration
        self.play_calls = 0
        self.playing = False

    async def play(self) -> None:
        self.play_calls += 1
        if self.stopped:
            return
        if self.platform.locked:
            raise PlaybackBlocked("gesture required")
        if self.platform.fail_output:
            raise AudioOutputError("no output device")
        self.playing = True
        self._started()
        if self.probe_duration is not None and self._duration is None:
            self._set_duration(self.probe_duration)

    def stop(self) -> None:
        self.stopped = True
        self.playing = False
        self.on_started = None
        self.on_ended = None

    def finish(self) -> None:
        self._finish()


class FakePlatform(AudioPlatform):
    def __init__(self, require_gesture: bool = False, duration: Optional[float] = 2.0):
        super().__init__(require_gesture=require_gesture)
        self.duration = duration
        self.block = False
        self.fail_output = False
        self.silence_error: Optional[Exception] = None
        self.silence_calls = 0
        self.handles: List[FakeAudio] = []

    @property
    def locked(self) -> bool:
        return self.block or super().locked

    def play_silence(self) -> None:
        self.silence_calls += 1
        if self.silence_error is not None:
            raise self.silence_error

    def create_handle(self, audio: bytes) -> FakeAudio:
        handle = FakeAudio(self, audio, self.duration)
        self.handles.append(handle)
        return handle


class _ManualHandle:
    def __init__(self, when: float, callback: Callable[..., Any], args: tuple):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler(Scheduler):
    """Scheduler whose timers only fire when the test advances time."""

    def __init__(self):
        super().__init__()
        self.now = 0.0
        self.handles: List[_ManualHandle] = []

    def call_later(self, delay, callback, *args):
        handle = _ManualHandle(self.now + max(0.0, delay), callback, args)
        self.handles.append(handle)
        return handle

    def pending(self) -> List[_ManualHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = sorted((h for h in self.pending() if h.when <= target), key=lambda h: h.when)
            if not due:
                break
            handle = due[0]
            self.now = handle.when
            handle.fired = True
            handle.callback(*handle.args)
        self.now = target


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def ready_record(n: int, story: str = "One two three four.") -> StoryRecord:
    record = StoryRecord(prompt=f"ready {n}", story=story)
    record.attach_image(f"data:image/png;base64,{PNG_B64}")
    return record


def add_ready_stories(state: PlayerState, count: int, story: str = "One two three four.") -> List[StoryRecord]:
    records = [ready_record(n, story) for n in range(count)]
    for record in records:
        state.insert_placeholder(record)
    state.add_stories(records)
    state.last_batch = [record.id for record in records]
    return records


def build_app(config: Optional[PlayerConfig] = None, api: Optional[FakeApi] = None,
              platform: Optional[FakePlatform] = None) -> StoryPlayerApp:
    """App wired to fakes; the scheduler and clock are exposed on the app for tests."""
    scheduler = ManualScheduler()
    clock = FakeClock()
    app = StoryPlayerApp(
        config or make_config(),
        api=api or FakeApi(),
        platform=platform or FakePlatform(),
        scheduler=scheduler,
        clock=clock,
    )
    app.test_scheduler = scheduler
    app.test_clock = clock
    return app
