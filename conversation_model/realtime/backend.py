"""
Streaming Backend Module

Backends turn a message history into a live stream of text fragments:
- Backend: the abstract contract used by the conversation orchestrator
- HttpBackend: OpenAI-compatible streaming chat completions over aiohttp
- StopSequenceFilter: ends a fragment stream at configured stop sequences

Cancellation is cooperative: every backend receives an asyncio.Event and
stops producing fragments once it is set.
"""

import asyncio
import json
import time
import uuid
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import aiohttp

from conversation_model.config import BackendConfig, settings
from conversation_model.core.messages import Message
from conversation_model.errors import BackendError, MalformedInputError
from conversation_model.logger import get_logger

logger = get_logger(__name__)


class GenerationState(Enum):
    """State of a backend generation."""
    IDLE = auto()
    GENERATING = auto()
    COMPLETED = auto()
    CANCELLED = auto()
    ERROR = auto()


class Backend(ABC):
    """
    Abstract base class for streaming backends.

    Implementations must stop promptly once `cancel` is set and must tolerate
    the consumer closing the stream before it is exhausted.
    """

    @abstractmethod
    def generate(
        self,
        messages: Sequence[Message],
        cancel: asyncio.Event,
    ) -> AsyncIterator[str]:
        """
        Request the next response to the given history as a stream.

        Args:
            messages: Snapshot of the conversation history
            cancel: Set when the consumer no longer wants output

        Yields:
            Text fragments in order; boundaries carry no meaning

        Raises:
            BackendError: On transport or inference failure
        """

    async def close(self) -> None:
        """Release backend resources."""


class StopSequenceFilter:
    """
    Incrementally cuts a fragment stream at the first stop sequence.

    Text that could be the beginning of a stop sequence is held back until
    more input shows whether it is one.

    Usage:
        stops = StopSequenceFilter(["User:"])
        stops.push("Hello Us")   # 'Hello '
        stops.push("er: hi")     # '' and stops.stopped is True
    """

    def __init__(self, stop_sequences: Sequence[str]):
        self._stops = [stop for stop in stop_sequences if stop]
        self._pending = ""
        self.stopped = False

    def push(self, fragment: str) -> str:
        """Add a fragment and return the text that is safe to emit."""
        if self.stopped:
            return ""

        text = self._pending + fragment
        cut = self._find_stop(text)
        if cut is not None:
            self.stopped = True
            self._pending = ""
            return text[:cut]

        hold = self._partial_stop_length(text)
        self._pending = text[len(text) - hold:] if hold else ""
        return text[:len(text) - hold]

    def flush(self) -> str:
        """Return any held-back text once the stream has ended."""
        text, self._pending = self._pending, ""
        return "" if self.stopped else text

    def _find_stop(self, text: str) -> Optional[int]:
        positions = [text.find(stop) for stop in self._stops]
        found = [position for position in positions if position >= 0]
        return min(found) if found else None

    def _partial_stop_length(self, text: str) -> int:
        longest = 0
        for stop in self._stops:
            for length in range(min(len(stop) - 1, len(text)), longest, -1):
                if text.endswith(stop[:length]):
                    longest = length
                    break
        return longest


async def filter_stop_sequences(
    fragments: AsyncIterator[str],
    stop_sequences: Sequence[str],
) -> AsyncIterator[str]:
    """
    Wrap a fragment stream so that it ends at the first stop sequence.

    Args:
        fragments: Source stream
        stop_sequences: Sequences that end the stream (excluded from output)

    Yields:
        Fragments up to, but not including, the first stop sequence
    """
    stops = StopSequenceFilter(stop_sequences)
    try:
        async for fragment in fragments:
            text = stops.push(fragment)
            if text:
                yield text
            if stops.stopped:
                logger.debug("Stop sequence reached")
                return

        tail = stops.flush()
        if tail:
            yield tail
    finally:
        closer = getattr(fragments, "aclose", None)
        if closer is not None:
            await closer()


def parse_sse_line(raw: bytes) -> Tuple[Optional[str], bool]:
    """
    Decode one server-sent event line of a streaming chat completion.

    Returns:
        (content, done): the delta content if the line carries one, and
        whether the line is the end-of-stream marker
    """
    line = raw.decode("utf-8", errors="replace").strip()
    if not line.startswith("data:"):
        return None, False

    data_str = line[5:].strip()
    if data_str == "[DONE]":
        return None, True

    try:
        data = json.loads(data_str)
    except json.JSONDecodeError:
        logger.debug(f"Skipping undecodable event: {data_str[:80]!r}")
        return None, False

    if not isinstance(data, dict):
        logger.debug(f"Skipping event without an object payload: {data_str[:80]!r}")
        return None, False

    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None, False

    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return None, False

    content = delta.get("content")
    return (content or None) if isinstance(content, str) else None, False


class HttpBackend(Backend):
    """
    Streaming backend for OpenAI-compatible chat completion servers.

    Features:
    - Server-sent event streaming, one fragment per delta
    - Cooperative cancellation checked on every line
    - Optional stop sequences
    - Token statistics

    Usage:
        backend = HttpBackend()
        async for fragment in backend.generate(messages, cancel):
            print(fragment, end="", flush=True)
        await backend.close()
    """

    def __init__(
        self,
        config: Optional[BackendConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._config = config or settings.backend
        self._session = session
        self._owns_session = session is None

        self._state = GenerationState.IDLE
        self._current_generation_id = ""

        # Metrics
        self._total_tokens = 0
        self._generation_count = 0

    @property
    def _headers(self) -> Dict[str, str]:
        """Get request headers."""
        headers = {"Content-Type": "application/json"}
        if self._config.api_key:
            headers["Authorization"] = f"Bearer {self._config.api_key}"
        return headers

    def _request_body(self, messages: Sequence[Message]) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self._config.model,
            "messages": [message.to_dict() for message in messages],
            "temperature": self._config.temperature,
            "stream": True,
        }
        if self._config.max_tokens >= 0:
            body["max_tokens"] = self._config.max_tokens
        return body

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(
                total=self._config.read_timeout_s,
                connect=self._config.connect_timeout_s,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    def generate(
        self,
        messages: Sequence[Message],
        cancel: asyncio.Event,
    ) -> AsyncIterator[str]:
        stream = self._stream(list(messages), cancel)
        if self._config.stop_sequences:
            return filter_stop_sequences(stream, self._config.stop_sequences)
        return stream

    async def _stream(self, messages: List[Message], cancel: asyncio.Event) -> AsyncIterator[str]:
        self._current_generation_id = f"gen_{uuid.uuid4().hex[:8]}"
        self._state = GenerationState.GENERATING
        url = self._config.chat_url

        start_time = time.time()
        token_count = 0

        logger.info(f"Requesting completion from '{url}' ({self._current_generation_id})")
        try:
            async with self._get_session().post(
                url,
                headers=self._headers,
                json=self._request_body(messages),
            ) as response:
                logger.info(f"Response received from '{url}': {response.status} {response.reason}")
                if response.status >= 400:
                    detail = (await response.text())[:200]
                    self._state = GenerationState.ERROR
                    raise BackendError(f"Backend returned {response.status}: {detail}")

                async for line in response.content:
                    if cancel.is_set():
                        logger.info("Token stream cancelled")
                        self._state = GenerationState.CANCELLED
                        return

                    content, done = parse_sse_line(line)
                    if done:
                        logger.debug("Finished receiving tokens")
                        self._state = GenerationState.COMPLETED
                        return
                    if content:
                        token_count += 1
                        yield content

            self._state = GenerationState.ERROR
            raise MalformedInputError("Unexpected end of token stream.")

        except aiohttp.ClientError as e:
            self._state = GenerationState.ERROR
            raise BackendError(f"Request to '{url}' failed: {e}") from e
        except asyncio.TimeoutError as e:
            self._state = GenerationState.ERROR
            raise BackendError(f"Request to '{url}' timed out") from e

        finally:
            generation_time = (time.time() - start_time) * 1000
            self._total_tokens += token_count
            self._generation_count += 1
            logger.debug(f"Generated {token_count} tokens in {generation_time:.0f}ms")

    async def close(self) -> None:
        """Close the HTTP session if this backend created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    @property
    def state(self) -> GenerationState:
        """Get current state."""
        return self._state

    @property
    def stats(self) -> Dict[str, Any]:
        """Get generation statistics."""
        return {
            "total_tokens": self._total_tokens,
            "generation_count": self._generation_count,
            "avg_tokens": (
                self._total_tokens / self._generation_count
                if self._generation_count > 0 else 0
            ),
        }
