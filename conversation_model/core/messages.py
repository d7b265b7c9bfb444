"""
Message and Turn Module

Data types exchanged between the backend, the turn parser and the
conversation orchestrator, plus the plain-text history format that other
components rely on to re-parse or display history.

Usage:
    from conversation_model.core.messages import DialogueTurn, format_dialogue

    turn = DialogueTurn(speaker="Alice", text="Hello!", mood="cheerful")
    format_dialogue(turn)  # 'Alice [cheerful]: Hello!\\n'
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union

COMPLETED_MARKER = "System: Task Status Completed"
FAULTED_MARKER = "System: Task Status Faulted"


class Role(str, Enum):
    """Originator of a message in the history."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    """
    A chunk of tagged content in the chat history.

    Attributes:
        role: Message role (system, user, assistant)
        content: Message content text
    """
    role: Role
    content: str

    def to_dict(self) -> Dict[str, str]:
        """Convert to API-compatible dictionary."""
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class DialogueTurn:
    """A line spoken by a named participant, optionally tagged with a mood."""
    speaker: str
    text: str
    mood: Optional[str] = None

    def __str__(self) -> str:
        return format_dialogue(self).rstrip("\n")


@dataclass(frozen=True)
class CodeTurn:
    """A fenced block of code the backend asks to run."""
    code: str

    def __str__(self) -> str:
        return format_code(self).rstrip("\n")


Turn = Union[DialogueTurn, CodeTurn]


def format_user_input(content: str, prefix: str = "") -> str:
    """Format user input for history, e.g. 'User: hello\\n'."""
    return f"{prefix}{content.strip()}\n"


def format_dialogue(turn: DialogueTurn) -> str:
    """Format a dialogue turn as 'speaker [mood]: text', omitting a blank mood."""
    mood = f" [{turn.mood}]" if turn.mood and turn.mood.strip() else ""
    return f"{turn.speaker}{mood}: {turn.text}\n"


def format_code(turn: CodeTurn) -> str:
    """Format a code turn as a fenced block."""
    return f"```\n{turn.code.strip()}\n```\n"


def format_code_result(output: str, succeeded: bool) -> str:
    """Format code output (or an error description) followed by its status marker."""
    marker = COMPLETED_MARKER if succeeded else FAULTED_MARKER
    return f"{output.strip()}\n{marker}\n"
