import asyncio
import json
import threading
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import MagicMock, Mock

import requests

from story_player.config import PlayerConfig
from story_player.core.cache import CacheManager, NullCacheManager
from story_player.core.errors import RequestCancelled, ServiceError
from story_player.services.api import AsyncStoryApi, CancelSignal, StoryApiClient

IDEAS = [
    {"prompt": "a fox", "story": "The fox ran."},
    {"prompt": "a cat", "story": "The cat sat."},
    {"prompt": "", "story": "no prompt"},
    "not a dict",
]


def _json_response(payload, status: int = 200) -> Mock:
    resp = Mock()
    resp.status_code = status
    resp.content = json.dumps(payload).encode("utf-8")
    resp.text = json.dumps(payload)
    return resp


def _stream_response(payload, status: int = 200) -> Mock:
    body = json.dumps(payload).encode("utf-8")
    resp = Mock()
    resp.status_code = status
    resp.text = body.decode("utf-8")
    resp.iter_content.return_value = [body[:5], body[5:]]
    return resp


class TestStoryApiClient(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = TemporaryDirectory()
        self.config = PlayerConfig(api_url="http://story.test/", lang="zh", batch_size=2)
        self.cache = CacheManager(Path(self._tmp.name))
        self.session = MagicMock()
        self.client = StoryApiClient(self.config, self.cache, session=self.session)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_story_ideas_are_filtered_and_saved(self) -> None:
        self.session.get.return_value = _json_response({"stories": IDEAS})

        ideas = self.client.get_story_ideas(refresh=True)

        self.assertEqual([i["prompt"] for i in ideas], ["a fox", "a cat"])
        self.session.get.assert_called_once_with(
            "http://story.test/api/get-story-ideas",
            params={"lang": "zh", "refresh": "true"},
            timeout=60.0,
        )
        self.assertEqual(len(self.cache.session_stories), 2)

    def test_story_ideas_reuse_session_without_refresh(self) -> None:
        self.cache.add_session_stories(IDEAS[:2])

        ideas = self.client.get_story_ideas(refresh=False)

        self.assertEqual(len(ideas), 2)
        self.session.get.assert_not_called()

    def test_story_ideas_fall_back_to_session_on_failure(self) -> None:
        self.cache.add_session_stories(IDEAS[:1])
        self.session.get.side_effect = requests.ConnectionError("down")

        ideas = self.client.get_story_ideas(refresh=True)

        self.assertEqual(ideas, [{"prompt": "a fox", "story": "The fox ran."}])

    def test_story_ideas_fail_without_session(self) -> None:
        self.session.get.return_value = _json_response({"error": "boom"}, status=500)

        with self.assertRaises(ServiceError):
            self.client.get_story_ideas(refresh=True)

    def test_story_ideas_reject_malformed_payload(self) -> None:
        self.session.get.return_value = _json_response({"ideas": []})

        with self.assertRaises(ServiceError):
            self.client.get_story_ideas(refresh=True)

    def test_generate_image_caches_payload(self) -> None:
        self.session.post.return_value = _json_response({"base64": "QUJD"})

        first = self.client.generate_image("a fox")
        second = self.client.generate_image("a fox")

        self.assertEqual(first, {"base64": "QUJD", "cached": False})
        self.assertEqual(second, {"base64": "QUJD", "cached": True})
        self.session.post.assert_called_once()

    def test_generate_image_without_payload_fails(self) -> None:
        self.session.post.return_value = _json_response({"cached": False})

        with self.assertRaises(ServiceError):
            self.client.generate_image("a fox")

    def test_generate_speech_streams_and_caches(self) -> None:
        timepoints = [{"markName": "0", "timeSeconds": 0.0}]
        resp = _stream_response({"audioContent": "QUJD", "timepoints": timepoints})
        self.session.post.return_value = resp

        result = self.client.generate_speech("The fox ran.", CancelSignal())

        self.assertEqual(result, {"audioContent": "QUJD", "timepoints": timepoints})
        _, kwargs = self.session.post.call_args
        self.assertEqual(kwargs["json"], {"text": "The fox ran."})
        self.assertEqual(kwargs["params"], {"lang": "zh"})
        self.assertTrue(kwargs["stream"])
        resp.close.assert_called()
        self.assertEqual(self.client.generate_speech("The fox ran."), result)
        self.session.post.assert_called_once()

    def test_generate_speech_without_audio_fails(self) -> None:
        self.session.post.return_value = _stream_response({"timepoints": []})

        with self.assertRaises(ServiceError):
            self.client.generate_speech("The fox ran.")

    def test_cancelled_signal_skips_request(self) -> None:
        signal = CancelSignal()
        signal.cancel()

        with self.assertRaises(RequestCancelled):
            self.client.generate_speech("The fox ran.", signal)
        self.session.post.assert_not_called()

    def test_cancel_during_download(self) -> None:
        signal = CancelSignal()
        resp = _stream_response({"audioContent": "QUJD"})

        def chunks(chunk_size):
            yield b'{"audio'
            signal.cancel()
            yield b'Content": "QUJD"}'

        resp.iter_content.side_effect = chunks
        self.session.post.return_value = resp

        with self.assertRaises(RequestCancelled):
            self.client.generate_speech("The fox ran.", signal)
        self.assertIsNone(self.cache.get_cached_speech("The fox ran."))


class TestCancelSignal(unittest.TestCase):
    def test_cancel_closes_response_and_fires_callbacks_once(self) -> None:
        signal = CancelSignal()
        resp = Mock()
        calls = []
        signal.attach(resp)
        signal.add_callback(lambda: calls.append("x"))

        signal.cancel()
        signal.cancel()

        resp.close.assert_called_once()
        self.assertEqual(calls, ["x"])
        self.assertTrue(signal.cancelled)

    def test_late_attach_and_callback_run_immediately(self) -> None:
        signal = CancelSignal()
        signal.cancel()
        resp = Mock()
        calls = []

        signal.attach(resp)
        signal.add_callback(lambda: calls.append("x"))

        resp.close.assert_called_once()
        self.assertEqual(calls, ["x"])


class TestAsyncStoryApi(unittest.IsolatedAsyncioTestCase):
    async def test_cancel_releases_waiting_coroutine(self) -> None:
        released = threading.Event()

        def blocking_speech(text, signal):
            released.wait(5)
            signal.raise_if_cancelled()
            return {"audioContent": "QUJD", "timepoints": []}

        client = Mock()
        client.generate_speech.side_effect = blocking_speech
        api = AsyncStoryApi(client)
        signal = CancelSignal()

        task = asyncio.ensure_future(api.generate_speech("The fox ran.", signal))
        await asyncio.sleep(0.05)
        signal.cancel()
        try:
            with self.assertRaises(RequestCancelled):
                await asyncio.wait_for(task, timeout=1)
        finally:
            released.set()

    async def test_results_pass_through(self) -> None:
        config = PlayerConfig(api_url="http://story.test")
        session = MagicMock()
        session.post.return_value = _json_response({"base64": "QUJD", "cached": True})
        api = AsyncStoryApi(StoryApiClient(config, NullCacheManager(), session=session))

        result = await api.generate_image("a fox")

        self.assertEqual(result, {"base64": "QUJD", "cached": True})


if __name__ == "__main__":
    unittest.main()
