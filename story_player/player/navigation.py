"""
Navigation - turns keys, wheel and swipes into next/previous story moves.
"""

import time
from typing import Callable, Optional

from ..config import PlayerConfig
from ..core.errors import BatchExhaustedError
from ..core.state import PlayerState
from .controller import PlaybackController
from .loader import StoryBatchLoader
from .unlock import AudioUnlockManager
from .view import PlayerSurface


NEXT_KEYS = ("ArrowDown", "ArrowRight")
PREVIOUS_KEYS = ("ArrowUp", "ArrowLeft")
CLOSE_KEYS = ("Escape",)


class Navigator:
    """
    Moves between stories in the fullscreen player.

    ``advance`` and ``retreat`` share a cooldown so a burst of wheel or
    swipe events results in a single move. Reaching the last story of a
    batch prefetches the next batch before moving on.
    """

    name = "navigation"

    def __init__(
        self,
        state: PlayerState,
        controller: PlaybackController,
        loader: StoryBatchLoader,
        unlock: AudioUnlockManager,
        surface: PlayerSurface,
        config: PlayerConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.state = state
        self.controller = controller
        self.loader = loader
        self.unlock = unlock
        self.surface = surface
        self.config = config
        self.clock = clock
        self._last_move: Optional[float] = None
        self._touch_start_y: Optional[float] = None
        self._prefetching = False

    def _acquire(self) -> bool:
        now = self.clock()
        if self._last_move is not None and now - self._last_move < self.config.nav_cooldown_sec:
            return False
        self._last_move = now
        return True

    async def advance(self) -> bool:
        """
        Move to the next story.

        A move that has to wait for a prefetch is dropped when the player
        was closed or another story started while the batch was loading.

        Returns:
            True if a new story started loading
        """
        if self._prefetching or not self._acquire():
            return False

        batch_size = self.config.batch_size
        if self.state.current_index % batch_size == batch_size - 1 and not self.loader.is_loading:
            token = self.state.token
            self._prefetching = True
            try:
                await self.loader.load_batch("append", force_refresh=True)
            except BatchExhaustedError as e:
                print(f"[{self.name}] prefetch failed: {e}")
            finally:
                self._prefetching = False
            if not self.state.is_current(token) or not self.surface.fullscreen:
                return False

        if self.state.current_index < len(self.state.stories) - 1:
            self.state.current_index += 1
        elif self.config.wrap_at_end:
            first = self.state.find_playable_from(0)
            if first is None or first == self.state.current_index:
                return False
            self.state.current_index = first
        else:
            return False

        self.unlock.ensure_unlocked()
        await self.controller.play_current()
        return True

    async def retreat(self) -> bool:
        """Move to the previous story. Returns True if one started loading."""
        if not self._acquire():
            return False
        if self.state.current_index <= 0:
            return False
        self.state.current_index -= 1
        self.unlock.ensure_unlocked()
        await self.controller.play_current()
        return True

    async def handle_key(self, key: str) -> None:
        if not self.surface.fullscreen:
            return
        if key in CLOSE_KEYS:
            self.controller.close_story()
        elif key in NEXT_KEYS:
            await self.advance()
        elif key in PREVIOUS_KEYS:
            await self.retreat()

    async def handle_wheel(self, delta_y: float) -> None:
        if not self.surface.fullscreen:
            return
        if delta_y > 0:
            await self.advance()
        elif delta_y < 0:
            await self.retreat()

    async def touch_start(self, y: float) -> None:
        await self.unlock.handle_gesture()
        self._touch_start_y = y

    async def touch_end(self, y: float) -> None:
        start, self._touch_start_y = self._touch_start_y, None
        if start is None or not self.surface.fullscreen:
            return
        dy = start - y
        if abs(dy) <= self.config.swipe_threshold_px:
            return
        if dy > 0:
            await self.advance()
        else:
            await self.retreat()

    async def pointer_down(self) -> None:
        """A click or touch anywhere on the page."""
        await self.unlock.handle_gesture()
