"""
Subtitle rendering - line/word units with a sliding window of visible lines.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from ..core.state import PlayerState
from .segmenter import Word, has_latin


@dataclass
class SubtitleWord:
    word: Word
    index: int
    current: bool = False
    spoken: bool = False

    @property
    def text(self) -> str:
        return self.word.text


@dataclass
class SubtitleLine:
    index: int
    words: List[SubtitleWord] = field(default_factory=list)
    visible: bool = False
    active: bool = False

    @property
    def text(self) -> str:
        """Line text with a space around any word that contains Latin letters."""
        out = ""
        for pos, unit in enumerate(self.words):
            if pos > 0 and (has_latin(unit.text) or has_latin(self.words[pos - 1].text)):
                out += " "
            out += unit.text
        return out


@dataclass
class SubtitleTrack:
    lines: List[SubtitleLine]
    words: List[SubtitleWord]

    @classmethod
    def build(cls, words: Sequence[Word]) -> "SubtitleTrack":
        line_count = max((w.line_index for w in words), default=-1) + 1
        lines = [SubtitleLine(index=i) for i in range(line_count)]
        units = []
        for idx, word in enumerate(words):
            unit = SubtitleWord(word=word, index=idx)
            lines[word.line_index].words.append(unit)
            units.append(unit)
        return cls(lines=lines, words=units)


class SubtitleRenderer:
    """
    Drives the visual state of the subtitle surface.

    Exactly one word is current, every earlier word is spoken, and at most
    ``visible_lines`` lines are shown around the active one. Highlights
    carry the session token they were scheduled under and are ignored once
    that session is no longer current.
    """

    def __init__(self, state: PlayerState, visible_lines: int = 2):
        self.state = state
        self.visible_lines = visible_lines
        self.track: Optional[SubtitleTrack] = None
        self.visible = False
        self.current_line: Optional[int] = None
        self.on_change: Optional[Callable[["SubtitleRenderer"], None]] = None

    def load(self, words: Sequence[Word]) -> SubtitleTrack:
        """Build fresh line and word units; every line starts hidden."""
        self.track = SubtitleTrack.build(words)
        self.current_line = None
        self._notify()
        return self.track

    def window(self, target_line: int) -> Tuple[int, int]:
        """Return the ``[start, end)`` range of lines visible around ``target_line``."""
        line_count = len(self.track.lines) if self.track else 0
        start = 0 if target_line == 0 else max(0, target_line - 1)
        if start + self.visible_lines > line_count:
            start = max(0, line_count - self.visible_lines)
        return start, start + self.visible_lines

    def highlight_word(self, index: int, token: int) -> bool:
        """
        Make word ``index`` current for the session identified by ``token``.

        Returns:
            True if the visual state changed
        """
        if not self.state.is_current(token):
            return False
        if self.track is None:
            return False

        for unit in self.track.words:
            unit.current = False
            unit.spoken = False

        if not 0 <= index < len(self.track.words):
            for line in self.track.lines:
                line.active = False
            self.current_line = None
            self._notify()
            return True

        for unit in self.track.words[:index]:
            unit.spoken = True
        target = self.track.words[index]
        target.current = True

        line_index = target.word.line_index
        start, end = self.window(line_index)
        for line in self.track.lines:
            line.active = line.index == line_index
            line.visible = start <= line.index < end
        self.current_line = line_index
        self._notify()
        return True

    def reset(self) -> None:
        """Clear every current/spoken/active flag."""
        if self.track is not None:
            for unit in self.track.words:
                unit.current = False
                unit.spoken = False
            for line in self.track.lines:
                line.active = False
        self.current_line = None
        self._notify()

    def clear(self) -> None:
        self.track = None
        self.current_line = None
        self.visible = False
        self._notify()

    def show(self) -> None:
        self.visible = True
        self._notify()

    def hide(self) -> None:
        self.visible = False
        self._notify()

    def visible_lines_text(self) -> List[str]:
        if not self.track or not self.visible:
            return []
        return [line.text for line in self.track.lines if line.visible]

    def _notify(self) -> None:
        if self.on_change is not None:
            self.on_change(self)
