"""
Tests for Voice Module

Tests truncation of interrupted speech, index reporting through phonetic
replacement, the console voice and pronunciation files.
"""

import asyncio
import io
import json

import pytest

from conversation_model.core.messages import DialogueTurn
from conversation_model.core.phonetic import PhoneticReplacer
from conversation_model.realtime.voice import (
    ConsoleVoice,
    Voice,
    load_pronunciations,
    speech_function,
    truncate_spoken,
)


class WordVoice(Voice):
    """Voice that reports words instantly and stops after a number of them."""

    def __init__(self, stop_after=None, **kwargs):
        super().__init__(**kwargs)
        self.stop_after = stop_after
        self.spoken_text = None

    async def _say_impl(self, text, index_reached, cancel):
        self.spoken_text = text
        offset = 0
        for number, word in enumerate(text.split(" ")):
            if self.stop_after is not None and number == self.stop_after:
                cancel.set()
                return
            index_reached(offset, len(word))
            offset += len(word) + 1
        index_reached(len(text), 0)


class TestTruncateSpoken:
    """Tests for cutting text at the spoken position."""

    def test_complete(self):
        assert truncate_spoken("Hello there.", 12) == "Hello there."

    def test_mid_sentence_is_marked(self):
        assert truncate_spoken("Hello there friend", 12) == "Hello there--"

    def test_sentence_boundary_is_not_marked(self):
        assert truncate_spoken("Hello. Goodbye.", 7) == "Hello."

    def test_nothing_spoken(self):
        assert truncate_spoken("Hello", 0) == ""


class TestVoice:
    """Tests for the voice base class."""

    @pytest.mark.asyncio
    async def test_uninterrupted_returns_full_text(self):
        """Speech that finishes returns the original text."""
        voice = WordVoice()

        assert await voice.say("Good morning.", asyncio.Event()) == "Good morning."

    @pytest.mark.asyncio
    async def test_speaks_replaced_text(self):
        """The implementation receives the phonetically rewritten text."""
        voice = WordVoice(replacer=PhoneticReplacer({"Dr.": "Doctor"}))

        await voice.say("Dr. Smith", asyncio.Event())

        assert voice.spoken_text == "Doctor Smith"

    @pytest.mark.asyncio
    async def test_interruption_truncates_in_original_coordinates(self):
        """Interrupted speech is cut in the original text, not the rewritten one."""
        voice = WordVoice(stop_after=3, replacer=PhoneticReplacer({"Dr.": "Doctor"}))

        spoken = await voice.say("Dr. Smith is here", asyncio.Event())

        assert spoken == "Dr. Smith--"

    @pytest.mark.asyncio
    async def test_index_listener_receives_original_positions(self):
        """Word boundaries are reported against the original text."""
        events = []
        voice = WordVoice(
            replacer=PhoneticReplacer({"Dr.": "Doctor"}),
            index_listener=lambda text, start, length: events.append((text, start, length)),
        )

        await voice.say("Dr. Smith is here", asyncio.Event())

        text = "Dr. Smith is here"
        assert events[0] == (text, 0, 3)
        assert events[1] == (text, 4, 5)
        assert events[-1] == (text, len(text), 0)


class TestConsoleVoice:
    """Tests for the console voice."""

    @pytest.mark.asyncio
    async def test_prints_words(self):
        """Words are written to the stream followed by a newline."""
        stream = io.StringIO()
        voice = ConsoleVoice(words_per_second=1000, stream=stream)

        spoken = await voice.say("Hello  there,\nfriend.", asyncio.Event())

        assert spoken == "Hello  there,\nfriend."
        assert stream.getvalue() == "Hello there, friend.\n"

    @pytest.mark.asyncio
    async def test_cancel_interrupts(self):
        """Setting the cancel event stops speech between words."""
        stream = io.StringIO()
        voice = ConsoleVoice(words_per_second=0.5, stream=stream)
        cancel = asyncio.Event()

        task = asyncio.ensure_future(voice.say("One two three four.", cancel))
        await asyncio.sleep(0.05)
        cancel.set()
        spoken = await asyncio.wait_for(task, timeout=1.0)

        assert spoken == ""
        assert stream.getvalue() == "One--\n"


class TestSpeechFunction:
    """Tests for the conversation speech callback adapter."""

    @pytest.mark.asyncio
    async def test_returns_turn_with_spoken_text(self):
        speak = speech_function(WordVoice(stop_after=2))
        turn = DialogueTurn(speaker="Alice", text="Nice to see you", mood="warm")

        updated = await speak(turn, asyncio.Event())

        # The word being spoken when interrupted is not counted
        assert updated == DialogueTurn(speaker="Alice", text="Nice--", mood="warm")

    @pytest.mark.asyncio
    async def test_nothing_spoken_discards_turn(self):
        speak = speech_function(WordVoice(stop_after=0))

        assert await speak(DialogueTurn(speaker="Alice", text="Hi"), asyncio.Event()) is None


class TestLoadPronunciations:
    """Tests for pronunciation files."""

    def test_load(self, pronunciation_file):
        assert load_pronunciations(pronunciation_file) == {"SQL": "sequel", "Dr.": "Doctor"}

    def test_rejects_non_string_values(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"SQL": 1}), encoding="utf-8")

        with pytest.raises(ValueError):
            load_pronunciations(path)

    def test_rejects_lists(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[]", encoding="utf-8")

        with pytest.raises(ValueError):
            load_pronunciations(path)
