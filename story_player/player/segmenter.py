"""
Text segmentation - splits story text into subtitle lines and timed words.
"""

import re
from dataclasses import dataclass
from typing import List, Sequence


MAX_LINE_CHARS = 12

_SENTENCE_SPLIT = re.compile(r"([。！？.!?])")
_TERMINATORS = frozenset("。！？.!?")
_CLAUSE_SPLIT = re.compile(r"([，,])")
_LATIN = re.compile(r"[a-zA-Z]")
_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = frozenset("。！？，、,.!?")


@dataclass(frozen=True)
class Line:
    text: str


@dataclass(frozen=True)
class Word:
    text: str
    start_char: int
    end_char: int
    line_index: int


def is_cjk(char: str) -> bool:
    """True for CJK unified ideographs (including extension A)."""
    code = ord(char)
    return 0x4E00 <= code <= 0x9FFF or 0x3400 <= code <= 0x4DBF


def has_latin(text: str) -> bool:
    return bool(_LATIN.search(text))


class _LineBuffer:
    """Accumulates text until appending more would overflow the line."""

    def __init__(self, max_chars: int):
        self.max_chars = max_chars
        self.text = ""
        self.lines: List[Line] = []

    def flush(self) -> None:
        if self.text:
            self.lines.append(Line(self.text))
            self.text = ""

    def add_word(self, word: str) -> None:
        if self.text and len(self.text) + len(word) + 1 > self.max_chars:
            self.flush()
            self.text = word
        else:
            self.text = f"{self.text} {word}" if self.text else word

    def add_chunk(self, chunk: str) -> None:
        if self.text and len(self.text) + len(chunk) > self.max_chars:
            self.flush()
            self.text = chunk
        else:
            self.text += chunk


def segment_lines(text: str, max_chars: int = MAX_LINE_CHARS) -> List[Line]:
    """
    Split story text into subtitle lines.

    Sentence terminators (``. ! ? 。！？``) close the current line and stay
    attached to it. Latin text is packed word by word, other scripts chunk
    by chunk (splitting on commas when a chunk is longer than a line); a
    line is flushed before an append would make it longer than ``max_chars``.

    Args:
        text: Raw story text
        max_chars: Maximum characters per line

    Returns:
        Ordered lines; a single line holding ``text`` when nothing else is produced
    """
    buffer = _LineBuffer(max_chars)

    for part in _SENTENCE_SPLIT.split(text):
        part = part.strip()
        if not part:
            continue

        if part in _TERMINATORS:
            buffer.text += part
            buffer.flush()
        elif has_latin(part):
            for word in _WHITESPACE.split(part):
                buffer.add_word(word)
        elif len(part) > max_chars:
            for sub_part in _CLAUSE_SPLIT.split(part):
                if sub_part:
                    buffer.add_chunk(sub_part)
        else:
            buffer.add_chunk(part)

    buffer.flush()
    return buffer.lines or [Line(text)]


def segment_words(lines: Sequence[Line]) -> List[Word]:
    """
    Split lines into highlightable words.

    Every CJK ideograph is a word of its own. Any other non-space,
    non-punctuation characters form runs split on spaces. Punctuation
    closes the run it ends, or is attached to the previous word of the
    same line; with nothing to attach to it is dropped. Character offsets
    run continuously across lines.
    """
    words: List[Word] = []
    char_index = 0

    for line_index, line in enumerate(lines):
        line_words: List[Word] = []
        run = ""
        run_start = char_index

        def flush_run(end: int) -> None:
            nonlocal run
            if run:
                line_words.append(Word(run, run_start, end, line_index))
                run = ""

        for char in line.text:
            if is_cjk(char):
                flush_run(char_index)
                line_words.append(Word(char, char_index, char_index + 1, line_index))
                char_index += 1
                run_start = char_index
            elif char.isspace():
                flush_run(char_index)
                char_index += 1
                run_start = char_index
            elif char in _PUNCTUATION:
                char_index += 1
                if run:
                    run += char
                    flush_run(char_index)
                elif line_words:
                    last = line_words[-1]
                    line_words[-1] = Word(last.text + char, last.start_char, last.end_char + 1, line_index)
                run_start = char_index
            else:
                if not run:
                    run_start = char_index
                run += char
                char_index += 1

        flush_run(char_index)
        words.extend(line_words)

    return words


def segment_text(text: str, max_chars: int = MAX_LINE_CHARS) -> List[Word]:
    """Shortcut for ``segment_words(segment_lines(text))``."""
    if not text.strip():
        return []
    return segment_words(segment_lines(text, max_chars))
