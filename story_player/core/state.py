"""
Player state: story records, the session token and the feed ordering.
"""

import uuid
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Set


INSERT_MODES = ("append", "prepend")


def _new_story_id() -> str:
    return uuid.uuid4().hex


@dataclass
class StoryRecord:
    """
    One story: the image prompt, the story text and its generated image.

    ``image_url`` is set once when the image arrives and never replaced.
    """

    prompt: str
    story: str
    id: str = field(default_factory=_new_story_id)
    image_url: Optional[str] = None
    failed: bool = False
    cached: bool = False

    @property
    def playable(self) -> bool:
        return bool(self.image_url)

    def attach_image(self, image_url: str, cached: bool = False) -> None:
        if self.image_url is not None:
            raise ValueError(f"Story {self.id} already has an image")
        if not image_url:
            raise ValueError("image_url must not be empty")
        self.image_url = image_url
        self.cached = cached


class PlayerState:
    """
    Single owner of the mutable player state.

    Components receive this object explicitly instead of sharing globals:
    the story list, the current index, the session token, the prompts
    already shown, the gallery feed ordering and the last loaded batch.
    """

    def __init__(self):
        self.stories: List[StoryRecord] = []
        self.current_index = 0
        self.feed: List[str] = []
        self.last_batch: List[str] = []
        self.is_loading = False
        self._token = 0
        self._used_prompts: Set[str] = set()
        self._records: Dict[str, StoryRecord] = {}

    # --- Session token ---

    @property
    def token(self) -> int:
        return self._token

    def mint_token(self) -> int:
        """Start a new playback session, invalidating every older token."""
        self._token += 1
        return self._token

    def is_current(self, token: int) -> bool:
        return token == self._token

    # --- Story list ---

    def add_stories(self, records: Iterable[StoryRecord], insert: str = "append") -> None:
        """
        Add loaded records to the story list.

        Raises:
            ValueError: If a record has no image or the insert mode is unknown
        """
        if insert not in INSERT_MODES:
            raise ValueError(f"Unknown insert mode: {insert}. Available: {list(INSERT_MODES)}")
        records = list(records)
        for record in records:
            if not record.playable:
                raise ValueError(f"Story {record.id} has no image and cannot be listed")
            self._records[record.id] = record
        if insert == "prepend":
            self.stories = records + self.stories
        else:
            self.stories.extend(records)

    def index_of(self, story_id: str) -> Optional[int]:
        for idx, record in enumerate(self.stories):
            if record.id == story_id:
                return idx
        return None

    def current(self) -> Optional[StoryRecord]:
        if 0 <= self.current_index < len(self.stories):
            return self.stories[self.current_index]
        return None

    def find_playable_from(self, start: int) -> Optional[int]:
        """
        Find the first playable index at or after ``start``, wrapping to the beginning.

        Returns:
            The index, or None when no record is playable
        """
        total = len(self.stories)
        if total == 0:
            return None
        start = max(0, min(start, total))
        for idx in list(range(start, total)) + list(range(0, start)):
            if self.stories[idx].playable:
                return idx
        return None

    # --- Used prompts ---

    @property
    def used_prompts(self) -> FrozenSet[str]:
        return frozenset(self._used_prompts)

    def is_prompt_used(self, prompt: str) -> bool:
        return prompt in self._used_prompts

    def mark_prompt_used(self, prompt: str) -> None:
        self._used_prompts.add(prompt)

    # --- Feed ordering ---

    def lookup(self, story_id: str) -> Optional[StoryRecord]:
        return self._records.get(story_id)

    def insert_placeholder(self, record: StoryRecord, insert: str = "append") -> None:
        """Put a provisional record into the feed while its image is generated."""
        self._records[record.id] = record
        if insert == "prepend":
            self.feed.insert(0, record.id)
        else:
            self.feed.append(record.id)

    def remove_from_feed(self, story_id: str) -> None:
        if story_id in self.feed:
            self.feed.remove(story_id)
        if self.index_of(story_id) is None:
            self._records.pop(story_id, None)

    def promote_last_batch(self) -> None:
        """Move the last loaded batch to the top of the feed, keeping its order."""
        batch = [story_id for story_id in self.last_batch if story_id in self.feed]
        if not batch:
            return
        rest = [story_id for story_id in self.feed if story_id not in batch]
        self.feed = batch + rest
