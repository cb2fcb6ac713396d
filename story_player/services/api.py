"""
HTTP client for the story backend (story ideas, images and speech).
"""

from __future__ import annotations

import asyncio
import json
import threading
from typing import Any, Callable, Dict, List, Optional

import requests

from ..config import PlayerConfig
from ..core.cache import CacheManager
from ..core.errors import RequestCancelled, ServiceError


class CancelSignal:
    """
    Cooperative cancellation for one in-flight request.

    Cancelling closes the attached HTTP response so a streaming read stops,
    and fires the registered callbacks once.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._response: Optional[requests.Response] = None
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            response, self._response = self._response, None
            callbacks, self._callbacks = self._callbacks, []
        if response is not None:
            response.close()
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def attach(self, response: requests.Response) -> None:
        with self._lock:
            if not self._event.is_set():
                self._response = response
                return
        response.close()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled("request cancelled")


class StoryApiClient:
    """
    Blocking client for the story backend.

    Responses are cached through the cache manager: images by prompt,
    speech by story text, and story ideas in the session file.
    """

    IDEAS_PATH = "/api/get-story-ideas"
    IMAGE_PATH = "/api/generate-image"
    SPEECH_PATH = "/api/generate-speech"
    CHUNK_SIZE = 16384

    def __init__(
        self,
        config: PlayerConfig,
        cache: CacheManager,
        session: Optional[requests.Session] = None,
    ):
        self.config = config
        self.cache = cache
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": "StoryPlayer/0.1"})

    def get_story_ideas(self, refresh: bool = False) -> List[Dict[str, str]]:
        """
        Fetch a page of story ideas.

        Args:
            refresh: Ask the backend to generate new ideas instead of reusing cached ones

        Returns:
            List of ``{"prompt", "story"}`` dictionaries

        Raises:
            ServiceError: If the backend fails and no cached ideas are available
        """
        page_size = self.config.batch_size
        if not refresh and len(self.cache.session_stories) >= page_size:
            print("[api] using cached session stories")
            return self.cache.sample_session_stories(page_size)

        params = {"lang": self.config.lang}
        if refresh:
            params["refresh"] = "true"

        try:
            data = self._get_json(self.IDEAS_PATH, params=params)
            stories = data.get("stories")
            if not isinstance(stories, list):
                raise ServiceError(f"Story ideas response missing 'stories': {data}")
        except ServiceError as e:
            if self.cache.session_stories:
                print(f"[api] story ideas failed ({e}), using cached stories")
                return self.cache.sample_session_stories(page_size)
            raise

        ideas = [
            {"prompt": s["prompt"], "story": s.get("story") or ""}
            for s in stories
            if isinstance(s, dict) and isinstance(s.get("prompt"), str) and s["prompt"]
        ]
        self.cache.add_session_stories(ideas)
        return ideas

    def generate_image(self, prompt: str) -> Dict[str, Any]:
        """
        Generate (or load from cache) the image for a prompt.

        Returns:
            Dict with ``base64`` image data and a ``cached`` flag

        Raises:
            ServiceError: If the backend fails or returns no image payload
        """
        if not prompt:
            raise ValueError("prompt must not be empty")

        cached = self.cache.get_cached_image(prompt)
        if cached:
            return {"base64": cached, "cached": True}

        data = self._post_json(self.IMAGE_PATH, {"prompt": prompt})
        base64_data = data.get("base64")
        if not isinstance(base64_data, str) or not base64_data:
            raise ServiceError("Image response did not contain image data")

        self.cache.save_image(prompt, base64_data)
        return {"base64": base64_data, "cached": bool(data.get("cached"))}

    def generate_speech(self, text: str, signal: Optional[CancelSignal] = None) -> Dict[str, Any]:
        """
        Synthesize (or load from cache) speech for a story.

        Args:
            text: Story text to speak
            signal: Cancels the request while it is in flight

        Returns:
            Dict with base64 ``audioContent`` and a ``timepoints`` list

        Raises:
            RequestCancelled: If ``signal`` was cancelled
            ServiceError: If the backend fails or returns no audio
        """
        signal = signal or CancelSignal()
        signal.raise_if_cancelled()

        cached = self.cache.get_cached_speech(text)
        if cached and cached.get("audioContent"):
            return cached

        url = f"{self.config.api_url}{self.SPEECH_PATH}"
        try:
            resp = self.session.post(
                url,
                json={"text": text},
                params={"lang": self.config.lang},
                timeout=self.config.request_timeout,
                stream=True,
            )
        except requests.RequestException as e:
            signal.raise_if_cancelled()
            raise ServiceError(f"Speech request failed: {e}") from e

        signal.attach(resp)
        try:
            signal.raise_if_cancelled()
            if resp.status_code != 200:
                raise ServiceError(f"Speech request failed ({resp.status_code}): {resp.text[:200]}")
            chunks = []
            for chunk in resp.iter_content(chunk_size=self.CHUNK_SIZE):
                signal.raise_if_cancelled()
                chunks.append(chunk)
        except requests.RequestException as e:
            signal.raise_if_cancelled()
            raise ServiceError(f"Speech download failed: {e}") from e
        finally:
            resp.close()
        signal.raise_if_cancelled()

        data = self._decode_json(b"".join(chunks), self.SPEECH_PATH)
        audio = data.get("audioContent")
        if not isinstance(audio, str) or not audio:
            raise ServiceError("Speech response did not contain audio")
        timepoints = data.get("timepoints") or []
        if not isinstance(timepoints, list):
            timepoints = []

        self.cache.save_speech(text, audio, timepoints)
        return {"audioContent": audio, "timepoints": timepoints}

    def _get_json(self, path: str, params: Optional[dict] = None) -> Dict[str, Any]:
        url = f"{self.config.api_url}{path}"
        try:
            resp = self.session.get(url, params=params, timeout=self.config.request_timeout)
        except requests.RequestException as e:
            raise ServiceError(f"GET {path} failed: {e}") from e
        if resp.status_code != 200:
            raise ServiceError(f"GET {path} failed ({resp.status_code}): {resp.text[:200]}")
        return self._decode_json(resp.content, path)

    def _post_json(self, path: str, payload: dict) -> Dict[str, Any]:
        url = f"{self.config.api_url}{path}"
        try:
            resp = self.session.post(url, json=payload, timeout=self.config.request_timeout)
        except requests.RequestException as e:
            raise ServiceError(f"POST {path} failed: {e}") from e
        if resp.status_code != 200:
            raise ServiceError(f"POST {path} failed ({resp.status_code}): {resp.text[:200]}")
        return self._decode_json(resp.content, path)

    @staticmethod
    def _decode_json(body: bytes, path: str) -> Dict[str, Any]:
        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ServiceError(f"Invalid JSON from {path}: {e}") from e
        if not isinstance(data, dict):
            raise ServiceError(f"Unexpected payload from {path}: {type(data).__name__}")
        return data


class AsyncStoryApi:
    """
    Awaitable facade over ``StoryApiClient``.

    Blocking calls run in worker threads. A cancelled speech signal
    releases the awaiting coroutine immediately with ``RequestCancelled``.
    """

    def __init__(self, client: StoryApiClient):
        self.client = client

    async def get_story_ideas(self, refresh: bool = False) -> List[Dict[str, str]]:
        return await asyncio.to_thread(self.client.get_story_ideas, refresh)

    async def generate_image(self, prompt: str) -> Dict[str, Any]:
        return await asyncio.to_thread(self.client.generate_image, prompt)

    async def generate_speech(self, text: str, signal: CancelSignal) -> Dict[str, Any]:
        signal.raise_if_cancelled()
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(
            asyncio.to_thread(self.client.generate_speech, text, signal)
        )
        signal.add_callback(lambda: loop.call_soon_threadsafe(task.cancel))
        try:
            return await task
        except asyncio.CancelledError:
            if signal.cancelled:
                raise RequestCancelled("speech request cancelled") from None
            raise
