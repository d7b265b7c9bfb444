"""
Pytest Configuration and Fixtures

This module provides shared fixtures and fakes for all tests.
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ["APP_ENV"] = "test"
os.environ["BACKEND_URL"] = "http://127.0.0.1:9"
os.environ["CANCEL_GRACE_PERIOD_S"] = "0.01"

from conversation_model.config import ConversationConfig
from conversation_model.core.messages import CodeTurn, DialogueTurn, Message
from conversation_model.errors import ExecutionError
from conversation_model.realtime.backend import Backend

# Script entry that blocks the stream until the round is cancelled
HOLD = object()


class ScriptedBackend(Backend):
    """
    Backend that replays one scripted response per request.

    A script is a list of fragments (HOLD pauses until cancellation), or an
    exception instance to raise. With `ignore_cancel`, fragments keep coming
    after cancellation, like a backend that is slow to stop.
    """

    def __init__(self, *scripts, ignore_cancel: bool = False, log: Optional[List[str]] = None):
        self.scripts = list(scripts)
        self.requests: List[List[Message]] = []
        self.request_times: List[float] = []
        self.ignore_cancel = ignore_cancel
        self.holding = asyncio.Event()
        self.closed_streams = 0
        self.log = log if log is not None else []

    async def generate(self, messages: Sequence[Message], cancel: asyncio.Event):
        self.requests.append(list(messages))
        self.request_times.append(asyncio.get_running_loop().time())
        self.log.append(f"request:{len(self.requests)}")
        script = self.scripts.pop(0) if self.scripts else []
        if isinstance(script, BaseException):
            raise script

        try:
            for fragment in script:
                if cancel.is_set() and not self.ignore_cancel:
                    return
                if fragment is HOLD:
                    self.holding.set()
                    await cancel.wait()
                    continue
                await asyncio.sleep(0)
                yield fragment
        finally:
            self.closed_streams += 1


class RecordingSpeaker:
    """Speech callback that records turns and returns them unchanged."""

    def __init__(self, log: Optional[List[str]] = None, veto: Sequence[str] = ()):
        self.turns: List[DialogueTurn] = []
        self.log = log if log is not None else []
        self.veto = set(veto)

    async def __call__(self, turn: DialogueTurn, cancel: asyncio.Event) -> Optional[DialogueTurn]:
        self.turns.append(turn)
        self.log.append(f"speak:{turn.speaker}")
        if turn.speaker in self.veto:
            return None
        return turn

    @property
    def speakers(self) -> List[str]:
        return [turn.speaker for turn in self.turns]


class RecordingCodeRunner:
    """Code callback that returns a fixed output or raises ExecutionError."""

    def __init__(self, output: str = "ok", error: Optional[str] = None):
        self.turns: List[CodeTurn] = []
        self.output = output
        self.error = error

    async def __call__(self, turn: CodeTurn, cancel: asyncio.Event) -> str:
        self.turns.append(turn)
        if self.error is not None:
            raise ExecutionError(self.error)
        return self.output


@pytest.fixture
def conversation_config():
    """Conversation settings with a short grace period."""
    return ConversationConfig(
        system_prompt="You are a test narrator.\n",
        grace_period_s=0.01,
        max_parse_retries=None,
        parse_retry_delay_s=0.0,
        user_prefix="User: ",
    )


@pytest.fixture
def speaker():
    """Speech callback that records every dialogue turn."""
    return RecordingSpeaker()


@pytest.fixture
def code_runner():
    """Code callback that always succeeds."""
    return RecordingCodeRunner(output="42")


@pytest.fixture
def pronunciation_file(tmp_path):
    """A JSON pronunciation file."""
    path = tmp_path / "pronunciations.json"
    path.write_text('{"SQL": "sequel", "Dr.": "Doctor"}', encoding="utf-8")
    return path
