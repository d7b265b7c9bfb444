"""
Conversation Module

Central orchestrator for a conversation with a streaming backend.
Owns the message history, runs generation rounds, dispatches parsed turns
to the speech and code callbacks, and handles interruption by new input.

Round rules:
- New input cancels the active round, waits for it to settle, then waits a
  grace period before the backend is asked again
- A code turn always schedules another round so the backend sees its output
- A round whose output cannot be parsed is rolled back and run again
"""

import asyncio
import traceback
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from conversation_model.config import ConversationConfig, settings
from conversation_model.core.messages import (
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
from conversation_model.core.parser import TurnParser
from conversation_model.errors import BackendError, MalformedInputError
from conversation_model.logger import get_logger
from .backend import Backend

logger = get_logger(__name__)

SpeechFunction = Callable[[DialogueTurn, asyncio.Event], Awaitable[Optional[DialogueTurn]]]
CodeFunction = Callable[[CodeTurn, asyncio.Event], Awaitable[str]]
TokenListener = Callable[[str], None]


class ConversationState(Enum):
    """High-level conversation state."""
    IDLE = auto()
    GENERATING = auto()
    AWAITING_CANCELLATION = auto()


@dataclass
class GenerationRound:
    """Bookkeeping for one request/response cycle against the backend."""
    cancel: asyncio.Event
    appended: List[Message] = field(default_factory=list)
    turns_dispatched: int = 0
    another_round_required: bool = False

    def raise_if_cancelled(self) -> None:
        if self.cancel.is_set():
            raise asyncio.CancelledError("generation superseded by new input")


class Conversation:
    """
    Coordinates a conversation with a streaming backend.

    Features:
    - Single owner of the message history, guarded by one lock
    - Cooperative cancellation when new input arrives
    - Retry of rounds whose output does not parse
    - Extra rounds after code execution

    Usage:
        conversation = Conversation(backend, speak, run_code)
        await conversation.submit_user_input("Hello!")
    """

    def __init__(
        self,
        backend: Backend,
        speech_function: SpeechFunction,
        code_function: CodeFunction,
        system_prompt: Optional[str] = None,
        config: Optional[ConversationConfig] = None,
        token_listener: Optional[TokenListener] = None,
    ):
        self._config = config or settings.conversation
        self._backend = backend
        self._speech_function = speech_function
        self._code_function = code_function
        self._token_listener = token_listener

        self._messages: List[Message] = [
            Message(Role.SYSTEM, system_prompt if system_prompt is not None else self._config.system_prompt)
        ]
        self._history_lock = asyncio.Lock()
        # Serializes cancel, grace period, append and round start across submissions
        self._submit_lock = asyncio.Lock()

        # State
        self._state = ConversationState.IDLE
        self._cancel = asyncio.Event()
        self._active_work: Optional[asyncio.Task] = None
        self._submission_id = 0

        # Metrics
        self._round_count = 0
        self._parse_retry_count = 0

    # ========================================================================
    # Input
    # ========================================================================

    async def submit_user_input(self, content: str, format_as_user: bool = True) -> None:
        """
        Add a user message to the history and let the backend respond.

        Returns once every round triggered by this input has completed.
        Inputs are appended in arrival order, each after the previous
        generation has settled and the grace period has passed.

        Args:
            content: The message text
            format_as_user: Prefix the message as user-authored; False injects
                it verbatim (e.g. system-style notices)

        Raises:
            asyncio.CancelledError: If newer input superseded this call
            BackendError: If the backend failed
        """
        self._submission_id += 1
        submission_id = self._submission_id
        logger.info(f"Received user message \"{content}\"")

        async with self._submit_lock:
            await self._settle_active()

            prefix = self._config.user_prefix if format_as_user else ""
            await self._append(Message(Role.USER, format_user_input(content, prefix)))

            if submission_id != self._submission_id:
                logger.debug("Input superseded before generation started")
                raise asyncio.CancelledError("superseded by newer input")

            self._cancel = asyncio.Event()
            work = asyncio.ensure_future(self._process_responses(self._cancel))
            self._active_work = work
            self._state = ConversationState.GENERATING

        try:
            await work
        finally:
            # A superseded round leaves the state to whoever is cancelling it
            if self._active_work is work and self._state == ConversationState.GENERATING:
                self._state = ConversationState.IDLE

    async def cancel_active(self) -> None:
        """
        Cancel the active generation, if any, and wait for it to settle.

        Errors raised by the cancelled generation are suppressed. Calling
        this when nothing is generating does nothing.
        """
        async with self._submit_lock:
            await self._settle_active()
            if self._state == ConversationState.AWAITING_CANCELLATION:
                self._state = ConversationState.IDLE

    async def _settle_active(self) -> None:
        """Signal the active generation, wait for it, then wait the grace period."""
        work = self._active_work
        if work is None or work.done():
            return

        logger.info("Cancelling active generation...")
        self._state = ConversationState.AWAITING_CANCELLATION
        self._cancel.set()

        logger.debug("Awaiting active generation...")
        await asyncio.wait({work})
        if not work.cancelled() and work.exception() is not None:
            logger.debug(f"Cancelled generation ended with: {work.exception()!r}")

        # Backends may still be tearing down asynchronously
        await asyncio.sleep(self._config.grace_period_s)
        logger.info("Cancelled active generation")

    # ========================================================================
    # Generation
    # ========================================================================

    async def _process_responses(self, cancel: asyncio.Event) -> None:
        """Run rounds until no further round is required."""
        another_round = True
        retries = 0
        try:
            while another_round:
                generation = GenerationRound(cancel=cancel)
                generation.raise_if_cancelled()
                try:
                    await self._run_round(generation)
                except MalformedInputError as e:
                    await self._rollback(generation)
                    retries += 1
                    self._parse_retry_count += 1
                    limit = self._config.max_parse_retries
                    if limit is not None and retries > limit:
                        raise BackendError(
                            f"Backend output could not be parsed after {retries} attempts"
                        ) from e
                    logger.warning(f"Retrying due to parse failure: {e}")
                    if self._config.parse_retry_delay_s:
                        await asyncio.sleep(self._config.parse_retry_delay_s)
                    continue

                retries = 0
                another_round = generation.another_round_required
        except asyncio.CancelledError:
            logger.info("Generation cancelled")
            raise
        except Exception:
            logger.exception("Processing responses failed")
            raise

    async def _run_round(self, generation: GenerationRound) -> None:
        """Consume one backend stream, dispatching turns as they complete."""
        self._round_count += 1
        async with self._history_lock:
            snapshot = tuple(self._messages)

        parser = TurnParser()
        fragments = self._backend.generate(snapshot, generation.cancel)
        try:
            async for fragment in fragments:
                generation.raise_if_cancelled()
                logger.debug(f"Received token {fragment!r}")
                if self._token_listener is not None:
                    self._token_listener(fragment)
                for turn in parser.feed(fragment):
                    await self._dispatch(turn, generation)
                    generation.raise_if_cancelled()

            generation.raise_if_cancelled()
            logger.debug("Token stream ended")
            for turn in parser.finish():
                await self._dispatch(turn, generation)
                generation.raise_if_cancelled()
        finally:
            closer = getattr(fragments, "aclose", None)
            if closer is not None:
                await closer()

    async def _dispatch(self, turn: Turn, generation: GenerationRound) -> None:
        generation.turns_dispatched += 1
        if isinstance(turn, DialogueTurn):
            await self._handle_dialogue(turn, generation)
        elif isinstance(turn, CodeTurn):
            await self._handle_code(turn, generation)
        else:
            raise TypeError(f"Unknown turn type: {type(turn).__name__}")

    async def _handle_dialogue(self, turn: DialogueTurn, generation: GenerationRound) -> None:
        logger.info(f"Received agent message \"{format_dialogue(turn).rstrip()}\"")

        updated = await self._speech_function(turn, generation.cancel)
        if updated is None:
            logger.debug("Speech function discarded the turn")
            return
        await self._append(Message(Role.ASSISTANT, format_dialogue(updated)), generation)

    async def _handle_code(self, turn: CodeTurn, generation: GenerationRound) -> None:
        generation.another_round_required = True
        await self._append(Message(Role.ASSISTANT, format_code(turn)), generation)

        try:
            output = await self._code_function(turn, generation.cancel)
            result = format_code_result(output, succeeded=True)
        except Exception as e:
            logger.info(f"Code execution failed: {e}")
            description = "".join(traceback.format_exception_only(type(e), e))
            result = format_code_result(description, succeeded=False)

        await self._append(Message(Role.ASSISTANT, result), generation)

    # ========================================================================
    # History
    # ========================================================================

    async def _append(self, message: Message, generation: Optional[GenerationRound] = None) -> None:
        async with self._history_lock:
            self._messages.append(message)
            if generation is not None:
                generation.appended.append(message)

    async def _rollback(self, generation: GenerationRound) -> None:
        """Remove exactly the messages a failed round appended."""
        async with self._history_lock:
            discarded = {id(message) for message in generation.appended}
            self._messages[:] = [message for message in self._messages if id(message) not in discarded]
            generation.appended.clear()
        if discarded:
            logger.debug(f"Discarded {len(discarded)} messages from failed round")

    async def history(self) -> Tuple[Message, ...]:
        """Get a consistent snapshot of the message history."""
        async with self._history_lock:
            return tuple(self._messages)

    # ========================================================================
    # Utility
    # ========================================================================

    async def close(self) -> None:
        """Cancel any active generation and release the backend."""
        await self.cancel_active()
        await self._backend.close()

    @property
    def state(self) -> ConversationState:
        """Get current state."""
        return self._state

    @property
    def message_count(self) -> int:
        """Number of messages currently in the history."""
        return len(self._messages)

    @property
    def stats(self) -> Dict[str, Any]:
        """Get conversation statistics."""
        return {
            "state": self._state.name,
            "message_count": len(self._messages),
            "round_count": self._round_count,
            "parse_retry_count": self._parse_retry_count,
        }
