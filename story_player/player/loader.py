"""
Story batch loading - fetches ideas and images until a full batch is ready.
"""

import asyncio
import base64
import binascii
from io import BytesIO
from typing import Any, Dict, List, Optional

from PIL import Image

from ..config import PlayerConfig
from ..core.errors import BatchExhaustedError, ServiceError
from ..core.state import PlayerState, StoryRecord
from .view import LoaderIndicator


def image_data_url(base64_data: Any) -> str:
    """
    Turn a base64 image payload into a data URL.

    Raises:
        ServiceError: If the payload is empty or does not decode to an image
    """
    if not isinstance(base64_data, str) or not base64_data:
        raise ServiceError("Image payload is empty")
    try:
        raw = base64.b64decode(base64_data, validate=True)
        with Image.open(BytesIO(raw)) as img:
            image_format = img.format
            img.verify()
    except (binascii.Error, OSError, SyntaxError) as e:
        raise ServiceError(f"Image payload could not be decoded: {e}") from e
    mime = Image.MIME.get(image_format or "", "image/png")
    return f"data:{mime};base64,{base64_data}"


class StoryBatchLoader:
    """
    Loads one batch of stories into the player state.

    Each round fetches story ideas, drops prompts already shown, shows a
    placeholder per fresh idea and generates the images in parallel.
    Failed placeholders disappear; surplus successes beyond the batch size
    are discarded. Rounds repeat until the batch is full or the round
    limit is reached.
    """

    name = "batch_loader"

    def __init__(self, state: PlayerState, api, indicator: LoaderIndicator, config: PlayerConfig):
        self.state = state
        self.api = api
        self.indicator = indicator
        self.config = config

    @property
    def is_loading(self) -> bool:
        return self.state.is_loading

    async def load_batch(self, insert: str = "append", force_refresh: bool = False) -> Optional[List[StoryRecord]]:
        """
        Load a batch of playable stories.

        Args:
            insert: "append" or "prepend" the batch in the story list and feed
            force_refresh: Ask for freshly generated ideas from the first round

        Returns:
            The loaded records, or None if a load was already in progress

        Raises:
            BatchExhaustedError: If no story could be loaded in any round
        """
        if self.state.is_loading:
            print(f"[{self.name}] load already in progress, skipping")
            return None

        self.state.is_loading = True
        self.indicator.show()
        target = self.config.batch_size
        batch: List[StoryRecord] = []

        try:
            for round_no in range(1, self.config.max_rounds + 1):
                if len(batch) >= target:
                    break
                refresh = force_refresh or round_no > 1

                try:
                    ideas = await self.api.get_story_ideas(refresh=refresh)
                except ServiceError as e:
                    print(f"[{self.name}] round {round_no}: story ideas failed: {e}")
                    continue

                fresh = self._fresh_ideas(ideas)
                print(f"[{self.name}] round {round_no}: {len(fresh)} fresh ideas")
                for record in await self._render_round(fresh, insert):
                    if len(batch) < target:
                        batch.append(record)
                        self.state.mark_prompt_used(record.prompt)
                    else:
                        self.state.remove_from_feed(record.id)

            if not batch:
                self.indicator.fail()
                raise BatchExhaustedError(
                    f"No playable stories after {self.config.max_rounds} rounds"
                )

            self.state.add_stories(batch, insert)
            self.state.last_batch = [record.id for record in batch]
            self.indicator.hide()
            print(f"[{self.name}] loaded {len(batch)} stories")
            return batch
        finally:
            self.state.is_loading = False

    def _fresh_ideas(self, ideas: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        fresh = []
        seen = set()
        for idea in ideas or []:
            if not isinstance(idea, dict):
                continue
            prompt = idea.get("prompt")
            if not prompt or prompt in seen or self.state.is_prompt_used(prompt):
                continue
            seen.add(prompt)
            fresh.append(idea)
        return fresh

    async def _render_round(self, ideas: List[Dict[str, Any]], insert: str) -> List[StoryRecord]:
        records = [
            StoryRecord(prompt=idea["prompt"], story=idea.get("story") or "")
            for idea in ideas
        ]
        for record in records:
            self.state.insert_placeholder(record, insert)

        await asyncio.gather(*(self._load_image(record) for record in records))
        return [record for record in records if record.playable and not record.failed]

    async def _load_image(self, record: StoryRecord) -> None:
        try:
            data = await self.api.generate_image(record.prompt)
            image_url = image_data_url((data or {}).get("base64"))
        except ServiceError as e:
            print(f"[{self.name}] image failed for \"{record.prompt[:50]}\": {e}")
            record.failed = True
            self.state.remove_from_feed(record.id)
            return
        record.attach_image(image_url, cached=bool(data.get("cached")))
