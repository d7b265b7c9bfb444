"""
conversation-model

Conversational core for an agent talking to a streaming text-generation
backend: an incremental turn parser, a conversation orchestrator with
interruption and retry handling, and a phonetic replacer that keeps speech
truncation accurate.
"""

__version__ = "1.0.0"

from conversation_model.config import settings

__all__ = ["settings", "__version__"]
