"""
Voice Module

Speech output for dialogue turns:
- Voice: base class that speaks rewritten text and reports progress in the
  coordinates of the original text
- ConsoleVoice: prints text word by word at a speaking rate
- speech_function: adapts a voice into the conversation's speech callback

When speech is interrupted the voice returns only the part that was actually
spoken, so the history records what the listener heard.
"""

import asyncio
import dataclasses
import json
import re
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Optional, TextIO, Union

from conversation_model.config import VoiceConfig, settings
from conversation_model.core.messages import DialogueTurn
from conversation_model.core.phonetic import PhoneticReplacer
from conversation_model.logger import get_logger
from .conversation import SpeechFunction

logger = get_logger(__name__)

IndexReached = Callable[[int, int], None]
IndexListener = Callable[[str, int, int], None]

_SENTENCE_END = (".", "?", "!")
_WORD = re.compile(r"\S+")


def truncate_spoken(text: str, progress: int) -> str:
    """
    Cut text at the point speech reached.

    A cut that does not fall on the end of a sentence is marked with '--'.
    """
    if progress >= len(text):
        return text
    spoken = text[:progress].rstrip()
    if spoken and not spoken.endswith(_SENTENCE_END):
        spoken += "--"
    return spoken


def load_pronunciations(path: Union[str, Path]) -> Dict[str, str]:
    """
    Load a JSON object of pattern -> replacement pairs.

    Raises:
        ValueError: If the file does not hold an object of strings
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, dict) or not all(
        isinstance(key, str) and isinstance(value, str) for key, value in data.items()
    ):
        raise ValueError(f"Pronunciation file {path} must contain a JSON object of strings")
    return data


class Voice(ABC):
    """
    Abstract speech synthesis voice.

    Subclasses implement `_say_impl`, speaking text that has already been
    through the phonetic replacer and reporting word boundaries in that
    rewritten text. The base class maps them back to the original text.
    """

    def __init__(
        self,
        replacer: Optional[PhoneticReplacer] = None,
        index_listener: Optional[IndexListener] = None,
    ):
        self._replacer = replacer or PhoneticReplacer.NULL
        self._index_listener = index_listener

    async def say(self, text: str, cancel: asyncio.Event) -> str:
        """
        Speak text until done or until `cancel` is set.

        Args:
            text: The text to speak
            cancel: Interrupts speech when set

        Returns:
            The text that was spoken, truncated (with '--' when cut mid
            sentence) if speech was interrupted
        """
        mapping = self._replacer.replace(text)
        progress = 0

        def index_reached(index: int, length: int) -> None:
            nonlocal progress
            start = mapping.map_output_index(index)
            end = mapping.map_output_index(index + length)
            progress = start
            if self._index_listener is not None:
                self._index_listener(text, start, end - start)

        await self._say_impl(mapping.replaced, index_reached, cancel)

        spoken = truncate_spoken(text, progress)
        if spoken != text:
            logger.info(f"Speech interrupted after {progress}/{len(text)} characters")
        return spoken

    @abstractmethod
    async def _say_impl(self, text: str, index_reached: IndexReached, cancel: asyncio.Event) -> None:
        """
        Speak rewritten text.

        Implementations call `index_reached(offset, length)` as each word
        starts, and `index_reached(len(text), 0)` once finished uninterrupted.
        """


class ConsoleVoice(Voice):
    """
    A voice that "speaks" by printing words at a fixed rate.

    Usage:
        voice = ConsoleVoice(words_per_second=4)
        spoken = await voice.say("Hello there.", asyncio.Event())
    """

    def __init__(
        self,
        replacer: Optional[PhoneticReplacer] = None,
        index_listener: Optional[IndexListener] = None,
        config: Optional[VoiceConfig] = None,
        words_per_second: Optional[float] = None,
        stream: Optional[TextIO] = None,
    ):
        super().__init__(replacer, index_listener)
        self._config = config or settings.voice
        self._delay = 1.0 / (words_per_second or self._config.words_per_second)
        self._stream = stream or sys.stdout

    async def _say_impl(self, text: str, index_reached: IndexReached, cancel: asyncio.Event) -> None:
        interrupted = False
        for number, word in enumerate(_WORD.finditer(text)):
            if cancel.is_set():
                interrupted = True
                break

            index_reached(word.start(), len(word.group()))
            self._stream.write(("" if number == 0 else " ") + word.group())
            self._stream.flush()

            try:
                await asyncio.wait_for(cancel.wait(), timeout=self._delay)
            except asyncio.TimeoutError:
                pass

        if interrupted or cancel.is_set():
            self._stream.write("--\n")
        else:
            index_reached(len(text), 0)
            self._stream.write("\n")
        self._stream.flush()


def speech_function(voice: Voice) -> SpeechFunction:
    """
    Adapt a voice into a conversation speech callback.

    The returned callback speaks the turn's text and returns the turn with
    the text actually spoken, or None when nothing was spoken.
    """
    async def speak(turn: DialogueTurn, cancel: asyncio.Event) -> Optional[DialogueTurn]:
        spoken = await voice.say(turn.text, cancel)
        if not spoken:
            return None
        return dataclasses.replace(turn, text=spoken)

    return speak
