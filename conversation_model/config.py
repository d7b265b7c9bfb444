"""
Configuration Management Module

This module handles all application configuration using environment variables
with sensible defaults. It follows the 12-factor app methodology for configuration.

Usage:
    from conversation_model.config import settings
    print(settings.backend.base_url)

Environment variables are loaded from .env file (if present) and can be
overridden by system environment variables.
"""

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
# This should be called before accessing any environment variables
load_dotenv()


DEFAULT_SYSTEM_PROMPT = (
    "You are the narrator of a conversation between the User and one or more "
    "characters. Every line you write is either dialogue in the form "
    "`Name [mood]: text` (the mood is optional) or a fenced ``` code block "
    "that will be executed. Code output is returned to you followed by "
    "`System: Task Status Completed` or `System: Task Status Faulted`.\n"
)


def get_env(key: str, default: str = "", required: bool = False) -> str:
    """
    Get an environment variable with optional default and validation.

    Args:
        key: The environment variable name
        default: Default value if not set
        required: If True, raises ValueError when not set

    Returns:
        The environment variable value or default

    Raises:
        ValueError: If required=True and the variable is not set
    """
    value = os.getenv(key, default)
    if required and not value:
        raise ValueError(f"Required environment variable '{key}' is not set")
    return value


def get_env_int(key: str, default: int) -> int:
    """Get an environment variable as integer."""
    return int(get_env(key, str(default)))


def get_env_float(key: str, default: float) -> float:
    """Get an environment variable as float."""
    return float(get_env(key, str(default)))


def get_env_bool(key: str, default: bool) -> bool:
    """Get an environment variable as boolean."""
    value = get_env(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


def get_env_list(key: str, default: Optional[List[str]] = None) -> List[str]:
    """Get a comma separated environment variable as a list of strings."""
    value = get_env(key)
    if not value:
        return list(default or [])
    return [item.strip() for item in value.split(",") if item.strip()]


def get_env_optional_int(key: str) -> Optional[int]:
    """Get an environment variable as integer, or None when unset."""
    value = get_env(key).strip()
    return int(value) if value else None


@dataclass
class BackendConfig:
    """
    Streaming backend configuration.

    Attributes:
        base_url: Base address of an OpenAI-compatible chat completions server
        model: Model name sent with each request
        api_key: Optional bearer token
        temperature: Sampling temperature
        max_tokens: Maximum tokens per response (-1 for no limit)
        connect_timeout_s: Connection timeout
        read_timeout_s: Total time allowed for one streamed response
        stop_sequences: Text that ends a response when it appears in the stream
    """
    base_url: str = field(default_factory=lambda: get_env("BACKEND_URL", "http://localhost:1234"))
    model: str = field(default_factory=lambda: get_env("BACKEND_MODEL", "local-model"))
    api_key: Optional[str] = field(default_factory=lambda: get_env("BACKEND_API_KEY") or None)
    temperature: float = field(default_factory=lambda: get_env_float("BACKEND_TEMPERATURE", 0.7))
    max_tokens: int = field(default_factory=lambda: get_env_int("BACKEND_MAX_TOKENS", -1))
    connect_timeout_s: float = field(default_factory=lambda: get_env_float("BACKEND_CONNECT_TIMEOUT_S", 10.0))
    read_timeout_s: float = field(default_factory=lambda: get_env_float("BACKEND_READ_TIMEOUT_S", 300.0))
    stop_sequences: List[str] = field(default_factory=lambda: get_env_list("BACKEND_STOP_SEQUENCES"))

    @property
    def chat_url(self) -> str:
        """Get the full URL for streaming chat completion calls."""
        return f"{self.base_url.rstrip('/')}/v1/chat/completions"

    def validate(self) -> bool:
        """Validate backend settings."""
        if not self.base_url:
            raise ValueError("BACKEND_URL is required")
        if self.connect_timeout_s <= 0 or self.read_timeout_s <= 0:
            raise ValueError("Backend timeouts must be positive")
        return True


@dataclass
class ConversationConfig:
    """
    Conversation orchestration configuration.

    Attributes:
        system_prompt: First message of every conversation
        grace_period_s: Delay after a cancelled round settles before a new one starts
        max_parse_retries: Retries allowed for unparseable rounds (None for unbounded)
        parse_retry_delay_s: Delay before retrying an unparseable round
        user_prefix: Prefix marking user-authored messages in history
    """
    system_prompt: str = field(default_factory=lambda: get_env("SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT))
    grace_period_s: float = field(default_factory=lambda: get_env_float("CANCEL_GRACE_PERIOD_S", 1.0))
    max_parse_retries: Optional[int] = field(default_factory=lambda: get_env_optional_int("MAX_PARSE_RETRIES"))
    parse_retry_delay_s: float = field(default_factory=lambda: get_env_float("PARSE_RETRY_DELAY_S", 0.0))
    user_prefix: str = field(default_factory=lambda: get_env("USER_PREFIX", "User: "))

    def validate(self) -> bool:
        """Validate conversation settings."""
        if self.grace_period_s < 0:
            raise ValueError("CANCEL_GRACE_PERIOD_S cannot be negative")
        if self.max_parse_retries is not None and self.max_parse_retries < 0:
            raise ValueError("MAX_PARSE_RETRIES cannot be negative")
        if self.parse_retry_delay_s < 0:
            raise ValueError("PARSE_RETRY_DELAY_S cannot be negative")
        return True


@dataclass
class CodeRunnerConfig:
    """
    Code execution configuration.

    Attributes:
        enabled: Whether code turns are executed at all
        interpreter: Executable used to run code blocks
        timeout_s: Maximum run time of a single code block
    """
    enabled: bool = field(default_factory=lambda: get_env_bool("CODE_EXECUTION_ENABLED", False))
    interpreter: str = field(default_factory=lambda: get_env("CODE_INTERPRETER", sys.executable))
    timeout_s: float = field(default_factory=lambda: get_env_float("CODE_TIMEOUT_S", 30.0))

    def validate(self) -> bool:
        """Validate code runner settings."""
        if self.timeout_s <= 0:
            raise ValueError("CODE_TIMEOUT_S must be positive")
        return True


@dataclass
class VoiceConfig:
    """
    Console voice configuration.

    Attributes:
        words_per_second: Speaking rate of the console voice
        pronunciation_file: Optional JSON file of pattern -> replacement pairs
    """
    words_per_second: float = field(default_factory=lambda: get_env_float("VOICE_WORDS_PER_SECOND", 3.0))
    pronunciation_file: Optional[str] = field(default_factory=lambda: get_env("VOICE_PRONUNCIATION_FILE") or None)

    @property
    def pronunciation_path(self) -> Optional[Path]:
        """Get the pronunciation file as a Path object."""
        return Path(self.pronunciation_file) if self.pronunciation_file else None

    def validate(self) -> bool:
        """Validate voice settings."""
        if self.words_per_second <= 0:
            raise ValueError("VOICE_WORDS_PER_SECOND must be positive")
        return True


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        file: Optional log file path
    """
    level: str = field(default_factory=lambda: get_env("LOG_LEVEL", "INFO"))
    file: Optional[str] = field(default_factory=lambda: get_env("LOG_FILE") or None)


@dataclass
class Settings:
    """
    Main settings container aggregating all configuration sections.

    Access via the singleton `settings` instance.

    Example:
        from conversation_model.config import settings

        settings.backend.validate()
        grace = settings.conversation.grace_period_s
    """
    backend: BackendConfig = field(default_factory=BackendConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    code: CodeRunnerConfig = field(default_factory=CodeRunnerConfig)
    voice: VoiceConfig = field(default_factory=VoiceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    app_env: str = field(default_factory=lambda: get_env("APP_ENV", "development"))

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    def validate_all(self) -> bool:
        """
        Validate all configuration sections.

        Returns:
            True if all validations pass

        Raises:
            ValueError: If any validation fails
        """
        self.backend.validate()
        self.conversation.validate()
        self.code.validate()
        self.voice.validate()
        return True


# Singleton settings instance
settings = Settings()
