import unittest

from story_player.core.state import PlayerState, StoryRecord


def _record(prompt: str, image: bool = True) -> StoryRecord:
    record = StoryRecord(prompt=prompt, story=f"{prompt} story.")
    if image:
        record.attach_image("data:image/png;base64,AAAA")
    return record


class TestStoryRecord(unittest.TestCase):
    def test_image_is_set_once(self) -> None:
        record = _record("a")

        self.assertTrue(record.playable)
        with self.assertRaises(ValueError):
            record.attach_image("data:image/png;base64,BBBB")

    def test_empty_image_is_rejected(self) -> None:
        record = _record("a", image=False)

        with self.assertRaises(ValueError):
            record.attach_image("")
        self.assertFalse(record.playable)


class TestPlayerState(unittest.TestCase):
    def setUp(self) -> None:
        self.state = PlayerState()

    def test_tokens_invalidate_older_sessions(self) -> None:
        first = self.state.mint_token()
        second = self.state.mint_token()

        self.assertFalse(self.state.is_current(first))
        self.assertTrue(self.state.is_current(second))

    def test_add_stories_rejects_records_without_image(self) -> None:
        with self.assertRaises(ValueError):
            self.state.add_stories([_record("a", image=False)])
        with self.assertRaises(ValueError):
            self.state.add_stories([_record("b")], insert="middle")
        self.assertEqual(self.state.stories, [])

    def test_prepend_puts_batch_first(self) -> None:
        old = [_record("a"), _record("b")]
        new = [_record("c"), _record("d")]
        self.state.add_stories(old)
        self.state.add_stories(new, insert="prepend")

        self.assertEqual([r.prompt for r in self.state.stories], ["c", "d", "a", "b"])
        self.assertEqual(self.state.index_of(old[0].id), 2)

    def test_find_playable_from_wraps(self) -> None:
        records = [_record("a"), _record("b"), _record("c")]
        self.state.add_stories(records)
        records[2].image_url = None

        self.assertEqual(self.state.find_playable_from(1), 1)
        self.assertEqual(self.state.find_playable_from(2), 0)
        self.assertIsNone(PlayerState().find_playable_from(0))

    def test_current(self) -> None:
        self.assertIsNone(self.state.current())
        record = _record("a")
        self.state.add_stories([record])

        self.assertIs(self.state.current(), record)

    def test_used_prompts(self) -> None:
        self.state.mark_prompt_used("a")

        self.assertTrue(self.state.is_prompt_used("a"))
        self.assertEqual(self.state.used_prompts, frozenset({"a"}))

    def test_placeholders_and_feed_removal(self) -> None:
        a, b = _record("a", image=False), _record("b", image=False)
        self.state.insert_placeholder(a)
        self.state.insert_placeholder(b, insert="prepend")

        self.assertEqual(self.state.feed, [b.id, a.id])
        self.state.remove_from_feed(b.id)
        self.assertEqual(self.state.feed, [a.id])
        self.assertIsNone(self.state.lookup(b.id))
        self.assertIs(self.state.lookup(a.id), a)

    def test_promote_last_batch_keeps_order(self) -> None:
        records = [_record(p) for p in "abcdef"]
        for record in records:
            self.state.insert_placeholder(record)
        self.state.last_batch = [records[4].id, records[5].id]

        self.state.promote_last_batch()

        order = [self.state.lookup(story_id).prompt for story_id in self.state.feed]
        self.assertEqual(order, ["e", "f", "a", "b", "c", "d"])


if __name__ == "__main__":
    unittest.main()
