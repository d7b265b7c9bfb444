"""
Incremental Turn Parser Module

Reconstructs structured turns from a stream of text fragments as they arrive.
The grammar knows two turn shapes:

- Dialogue: ``Name [mood]: text`` (one or two name tokens, optional mood)
- Code: a ```` ``` ```` fenced block (optional language tag) or a
  ``[code]...[/code]`` block; the closer may be omitted at end of input

A turn is emitted only once something after it has arrived that settles
where it ends. A match reaching the end of the buffered input stays pending,
because the next fragment may still extend it; ``finish()`` resolves whatever
is left once the stream is over.

Usage:
    parser = TurnParser()
    for fragment in fragments:
        for turn in parser.feed(fragment):
            handle(turn)
    for turn in parser.finish():
        handle(turn)
"""

import re
from typing import Iterator, Optional

from conversation_model.errors import MalformedInputError
from conversation_model.logger import get_logger
from .messages import CodeTurn, DialogueTurn, Turn

logger = get_logger(__name__)

_NAME = r"[^\s:\[\]`]+"
_SPEAKER = rf"{_NAME}(?:[ \t]+{_NAME})?"
_MOOD = r"\[[^\]\n]*\]"
_CODE_START = r"```|\[code\]"

# Dialogue header at the start of a line, used to end the previous turn's text
_HEADER = rf"[ \t]*{_SPEAKER}(?:[ \t]*{_MOOD})?[ \t]*:"

# One line of dialogue text, stopping short of any code block marker
_LINE = rf"(?:(?!{_CODE_START})[^\n])*"

DIALOGUE_PATTERN = re.compile(
    rf"\s*(?P<speaker>{_SPEAKER})"
    rf"(?:[ \t]*\[(?P<mood>[^\]\n]*)\])?"
    rf"[ \t]*:[ \t]*"
    rf"(?P<text>{_LINE}(?:\n(?![ \t]*\n)(?!{_HEADER}){_LINE})*)"
    rf"\s*"
)

CODE_PATTERN = re.compile(
    r"\s*(?:"
    r"```[^\n`]*(?:\n|\Z)(?P<fenced>.*?)(?:```|\Z)"
    r"|\[code\](?P<tagged>.*?)(?:\[/code\]|\Z)"
    r")\s*",
    re.DOTALL,
)


def _dialogue_turn(match: "re.Match[str]") -> DialogueTurn:
    speaker = " ".join(match.group("speaker").split())
    mood = match.group("mood")
    mood = mood.strip() if mood and mood.strip() else None
    return DialogueTurn(speaker=speaker, text=match.group("text").strip(), mood=mood)


def _code_turn(match: "re.Match[str]") -> CodeTurn:
    body = match.group("fenced")
    if body is None:
        body = match.group("tagged")
    return CodeTurn(code=body.strip("\r\n").rstrip())


_GRAMMAR = (
    (DIALOGUE_PATTERN, _dialogue_turn),
    (CODE_PATTERN, _code_turn),
)


class TurnParser:
    """
    Parses turns incrementally from a growing text buffer.

    The buffer only loses text that has been consumed by an emitted turn;
    everything else carries over to the next feed.
    """

    def __init__(self):
        self._buffer = ""
        self._cursor = 0
        self._finished = False

    @property
    def remaining(self) -> str:
        """Buffered input not yet consumed by an emitted turn."""
        return self._buffer[self._cursor:]

    def feed(self, fragment: str) -> Iterator[Turn]:
        """
        Append a fragment and return the turns it completes.

        The fragment is buffered immediately; the returned iterator parses
        lazily from the consumption cursor.

        Args:
            fragment: Next piece of backend output

        Returns:
            Iterator over newly completed turns
        """
        if self._finished:
            raise RuntimeError("feed() called after finish()")

        if self._cursor:
            self._buffer = self._buffer[self._cursor:]
            self._cursor = 0
        self._buffer += fragment
        return self._drain(final=False)

    def finish(self) -> Iterator[Turn]:
        """
        Declare the stream finished and parse the rest of the buffer.

        Raises:
            MalformedInputError: If non-whitespace input remains that no
                turn matches (raised when iteration reaches it)
        """
        self._finished = True
        return self._drain(final=True)

    def _drain(self, final: bool) -> Iterator[Turn]:
        while True:
            turn = self._parse_next(final)
            if turn is None:
                break
            yield turn

        if final and self.remaining.strip():
            snippet = self.remaining[:40]
            logger.debug(f"Unparseable remainder: {snippet!r}")
            raise MalformedInputError(f"Unrecognized input: {snippet!r}")

    def _parse_next(self, final: bool) -> Optional[Turn]:
        for pattern, build in _GRAMMAR:
            match = pattern.match(self._buffer, self._cursor)
            if match is None:
                continue
            if not final and match.end() >= len(self._buffer):
                # Trailing input could still extend this turn
                return None
            self._cursor = match.end()
            return build(match)
        return None
