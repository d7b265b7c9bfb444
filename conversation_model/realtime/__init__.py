"""
Real-Time Conversation Module

Streaming conversation with interruption support.

Architecture:
- Backend: streams text fragments for a message history
- Conversation: owns history, runs generation rounds, dispatches turns
- Voice: speaks dialogue and reports how much was spoken
- Code Runner: executes code turns in a subprocess

Usage:
    from conversation_model.realtime import Conversation, HttpBackend

    conversation = Conversation(HttpBackend(), speak, run_code)
    await conversation.submit_user_input("Hello!")
"""

from .backend import (
    Backend,
    GenerationState,
    HttpBackend,
    StopSequenceFilter,
    filter_stop_sequences,
)
from .conversation import (
    CodeFunction,
    Conversation,
    ConversationState,
    GenerationRound,
    SpeechFunction,
    TokenListener,
)
from .voice import ConsoleVoice, Voice, load_pronunciations, speech_function, truncate_spoken
from .code_runner import PythonCodeRunner, disabled_code_function

__all__ = [
    # Backends
    "Backend",
    "GenerationState",
    "HttpBackend",
    "StopSequenceFilter",
    "filter_stop_sequences",
    # Conversation
    "CodeFunction",
    "Conversation",
    "ConversationState",
    "GenerationRound",
    "SpeechFunction",
    "TokenListener",
    # Voice
    "ConsoleVoice",
    "Voice",
    "load_pronunciations",
    "speech_function",
    "truncate_spoken",
    # Code
    "PythonCodeRunner",
    "disabled_code_function",
]
