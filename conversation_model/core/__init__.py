"""
Core Module

Backend-independent building blocks:
- Messages and turns
- Incremental turn parser
- Phonetic replacer with index mapping
"""

from .messages import (
    COMPLETED_MARKER,
    FAULTED_MARKER,
    CodeTurn,
    DialogueTurn,
    Message,
    Role,
    Turn,
    format_code,
    format_code_result,
    format_dialogue,
    format_user_input,
)
from .parser import TurnParser
from .phonetic import PhoneticReplacer, TextMapping, infer_ignore_case

__all__ = [
    "COMPLETED_MARKER",
    "FAULTED_MARKER",
    "CodeTurn",
    "DialogueTurn",
    "Message",
    "Role",
    "Turn",
    "format_code",
    "format_code_result",
    "format_dialogue",
    "format_user_input",
    "TurnParser",
    "PhoneticReplacer",
    "TextMapping",
    "infer_ignore_case",
]
