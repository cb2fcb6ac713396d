"""
Application wiring and the interactive terminal front-end.
"""

import asyncio
import sys
import time
from typing import Any, Callable, Dict, Optional, Set, TextIO

from .config import PlayerConfig
from .core.cache import CacheManager, NullCacheManager
from .core.errors import BatchExhaustedError
from .core.state import PlayerState
from .player import (
    AudioPlatform,
    AudioUnlockManager,
    FfplayPlatform,
    GalleryView,
    LoaderIndicator,
    Navigator,
    PlaybackController,
    PlayerSurface,
    Scheduler,
    StoryBatchLoader,
    SubtitleRenderer,
)
from .player.segmenter import has_latin
from .services import AsyncStoryApi, StoryApiClient


HELP_TEXT = """Commands:
  o N    open story N from the gallery
  j      next story        (also: down, next)
  k      previous story    (also: up, prev)
  esc    close the player  (also: x)
  r      load more stories
  n      forget cached ideas and load new stories on top
  g      show the gallery
  q      quit
"""

_KEY_COMMANDS = {
    "j": "ArrowDown",
    "down": "ArrowDown",
    "next": "ArrowDown",
    "k": "ArrowUp",
    "up": "ArrowUp",
    "prev": "ArrowUp",
    "esc": "Escape",
    "x": "Escape",
}


def render_subtitles(renderer: SubtitleRenderer) -> str:
    """Render the visible subtitle lines, marking the current word with brackets."""
    if not renderer.visible or renderer.track is None:
        return ""
    rows = []
    for line in renderer.track.lines:
        if not line.visible:
            continue
        out = ""
        for pos, unit in enumerate(line.words):
            if pos > 0 and (has_latin(unit.text) or has_latin(line.words[pos - 1].text)):
                out += " "
            out += f"[{unit.text}]" if unit.current else unit.text
        rows.append(("> " if line.active else "  ") + out)
    return "\n".join(rows)


class StoryPlayerApp:
    """
    Wires the player components around a shared ``PlayerState``.

    Example:
        ```python
        config = PlayerConfig(api_url="http://localhost:3000")
        app = StoryPlayerApp(config)
        asyncio.run(app.run_terminal())
        ```
    """

    def __init__(
        self,
        config: PlayerConfig,
        api: Any = None,
        platform: Optional[AudioPlatform] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config

        if config.clear_cache:
            cache = CacheManager(config.cache_dir, config.session_keep)
            cache.clear()
            self.cache = CacheManager(config.cache_dir, config.session_keep)
        elif config.use_cache:
            self.cache = CacheManager(config.cache_dir, config.session_keep)
            self.cache.load_last_session()
        else:
            self.cache = NullCacheManager()

        self.state = PlayerState()
        self.api = api or AsyncStoryApi(StoryApiClient(config, self.cache))
        self.platform = platform or FfplayPlatform(
            ffplay_bin=config.ffplay_bin,
            ffprobe_bin=config.ffprobe_bin,
            require_gesture=config.require_gesture_unlock,
        )

        self.indicator = LoaderIndicator()
        self.surface = PlayerSurface()
        self.gallery = GalleryView(self.state)
        self.subtitles = SubtitleRenderer(self.state, config.visible_lines)
        self.unlock = AudioUnlockManager(self.platform)
        self.controller = PlaybackController(
            self.state,
            self.api,
            self.platform,
            self.unlock,
            self.subtitles,
            self.surface,
            config,
            scheduler=scheduler,
        )
        self.loader = StoryBatchLoader(self.state, self.api, self.indicator, config)
        self.navigator = Navigator(
            self.state,
            self.controller,
            self.loader,
            self.unlock,
            self.surface,
            config,
            clock=clock,
        )
        self._tasks: Set[asyncio.Future] = set()
        self._last_subtitle = ""

    async def load_more(self, insert: str = "append", force_refresh: bool = False) -> bool:
        """Load a batch, reporting exhaustion instead of raising."""
        try:
            await self.loader.load_batch(insert, force_refresh=force_refresh)
        except BatchExhaustedError as e:
            print(f"ERROR: {e}. {self.indicator.text}")
            return False
        return True

    async def open_tile(self, position: int) -> bool:
        """Open the gallery tile at 1-based ``position``."""
        tiles = [tile for tile in self.gallery.tiles() if not tile.loading]
        if not 1 <= position <= len(tiles):
            print(f"No story #{position} in the gallery")
            return False
        await self.controller.open_story(tiles[position - 1].id)
        return True

    def print_gallery(self) -> None:
        tiles = self.gallery.tiles()
        if not tiles:
            print("Gallery is empty")
            return
        for position, tile in enumerate(tiles, start=1):
            flags = " (cached)" if tile.cached else ""
            if tile.loading:
                flags += " (loading)"
            print(f"{position:2d}. {tile.prompt[:60]}{flags}")

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache.get_stats()

    async def dispatch(self, command: str) -> bool:
        """
        Handle one terminal command.

        Returns:
            False when the session should end
        """
        parts = command.strip().split()
        if not parts:
            return True
        verb = parts[0].lower()

        if verb in ("q", "quit", "exit"):
            return False
        # every command counts as a user gesture
        await self.navigator.pointer_down()
        if verb in ("h", "help", "?"):
            print(HELP_TEXT)
        elif verb in ("g", "list"):
            self.print_gallery()
        elif verb in ("r", "more"):
            self._spawn(self.load_more())
        elif verb in ("n", "new"):
            self.cache.clear_sessions()
            self._spawn(self.load_more("prepend", force_refresh=True))
        elif verb in ("o", "open"):
            if len(parts) < 2 or not parts[1].isdigit():
                print("Usage: o N")
            else:
                self._spawn(self.open_tile(int(parts[1])))
        elif verb in _KEY_COMMANDS:
            self._spawn(self.navigator.handle_key(_KEY_COMMANDS[verb]))
        else:
            print(f"Unknown command: {verb} (h for help)")
        return True

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _on_subtitles(self, renderer: SubtitleRenderer) -> None:
        text = render_subtitles(renderer)
        if text and text != self._last_subtitle:
            print(text)
        self._last_subtitle = text

    async def run_terminal(self, input_stream: TextIO = sys.stdin) -> int:
        """Run the interactive terminal session until quit or end of input."""
        self.subtitles.on_change = self._on_subtitles
        print(f"Story Player - backend {self.config.api_url}")
        if await self.load_more():
            self.print_gallery()
        print(HELP_TEXT)

        try:
            while True:
                line = await asyncio.to_thread(input_stream.readline)
                if not line:
                    break
                if not await self.dispatch(line):
                    break
        finally:
            self.controller.close_story()
            for task in list(self._tasks):
                task.cancel()
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)
        return 0
