"""
View models for the gallery, the loading indicator and the fullscreen player.

Front-ends draw these; they hold no story data of their own.
"""

from dataclasses import dataclass
from typing import List, Optional

from ..core.state import PlayerState


LOADING_TEXT = "Loading stories..."
LOAD_FAILED_TEXT = "Failed to load stories, please retry."


@dataclass
class LoaderIndicator:
    visible: bool = False
    text: str = LOADING_TEXT

    def show(self) -> None:
        self.visible = True
        self.text = LOADING_TEXT

    def hide(self) -> None:
        self.visible = False

    def fail(self, text: str = LOAD_FAILED_TEXT) -> None:
        self.visible = True
        self.text = text


@dataclass
class PlayerSurface:
    """The fullscreen story surface."""

    fullscreen: bool = False
    background_image: Optional[str] = None
    ken_burns: bool = False
    story_loader: bool = False

    def open(self) -> None:
        self.fullscreen = True

    def close(self) -> None:
        self.fullscreen = False
        self.ken_burns = False
        self.story_loader = False


@dataclass(frozen=True)
class GalleryTile:
    id: str
    prompt: str
    loading: bool
    cached: bool


class GalleryView:
    """Projection of the feed ordering into gallery tiles."""

    def __init__(self, state: PlayerState):
        self.state = state

    def tiles(self) -> List[GalleryTile]:
        tiles = []
        for story_id in self.state.feed:
            record = self.state.lookup(story_id)
            if record is None:
                continue
            tiles.append(
                GalleryTile(
                    id=record.id,
                    prompt=record.prompt,
                    loading=not record.playable,
                    cached=record.cached,
                )
            )
        return tiles
