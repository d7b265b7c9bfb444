"""
Tests for Configuration Module

Tests the Settings and configuration management.
"""

import os
import pytest
from unittest.mock import patch


class TestGetEnvCollections:
    """Tests for the list and optional environment helpers."""

    def test_get_env_list(self):
        """Test comma separated lists skip blanks."""
        from conversation_model.config import get_env_list

        with patch.dict(os.environ, {"LIST_VAR": "User:, ###,,"}):
            assert get_env_list("LIST_VAR") == ["User:", "###"]

        assert get_env_list("UNSET_LIST_VAR", ["a"]) == ["a"]

    def test_get_env_optional_int(self):
        """Test optional ints are None when unset."""
        from conversation_model.config import get_env_optional_int

        assert get_env_optional_int("UNSET_OPTIONAL_INT") is None
        with patch.dict(os.environ, {"OPTIONAL_INT": "3"}):
            assert get_env_optional_int("OPTIONAL_INT") == 3


class TestBackendConfig:
    """Tests for backend configuration."""

    def test_chat_url(self):
        """Test chat URL construction."""
        from conversation_model.config import BackendConfig

        config = BackendConfig(base_url="http://localhost:1234/")

        assert config.chat_url == "http://localhost:1234/v1/chat/completions"

    def test_stop_sequences_from_env(self):
        from conversation_model.config import BackendConfig

        with patch.dict(os.environ, {"BACKEND_STOP_SEQUENCES": "User:,</s>"}):
            assert BackendConfig().stop_sequences == ["User:", "</s>"]

    def test_validate_missing_url(self):
        """Test validation fails without a URL."""
        from conversation_model.config import BackendConfig

        with pytest.raises(ValueError, match="BACKEND_URL"):
            BackendConfig(base_url="").validate()

    def test_validate_timeouts(self):
        from conversation_model.config import BackendConfig

        with pytest.raises(ValueError, match="positive"):
            BackendConfig(read_timeout_s=0).validate()


class TestConversationConfig:
    """Tests for conversation configuration."""

    def test_defaults(self):
        """Test defaults when nothing is configured."""
        from conversation_model.config import DEFAULT_SYSTEM_PROMPT, ConversationConfig

        with patch.dict(os.environ, {}, clear=True):
            config = ConversationConfig()

        assert config.grace_period_s == 1.0
        assert config.max_parse_retries is None
        assert config.user_prefix == "User: "
        assert config.system_prompt == DEFAULT_SYSTEM_PROMPT

    def test_validate_negative_grace_period(self):
        from conversation_model.config import ConversationConfig

        with pytest.raises(ValueError, match="CANCEL_GRACE_PERIOD_S"):
            ConversationConfig(grace_period_s=-1).validate()

    def test_validate_negative_retries(self):
        from conversation_model.config import ConversationConfig

        with pytest.raises(ValueError, match="MAX_PARSE_RETRIES"):
            ConversationConfig(max_parse_retries=-1).validate()


class TestCodeAndVoiceConfig:
    """Tests for code runner and voice configuration."""

    def test_code_disabled_by_default(self):
        from conversation_model.config import CodeRunnerConfig

        with patch.dict(os.environ, {}, clear=True):
            assert CodeRunnerConfig().enabled is False

    def test_code_timeout_must_be_positive(self):
        from conversation_model.config import CodeRunnerConfig

        with pytest.raises(ValueError, match="CODE_TIMEOUT_S"):
            CodeRunnerConfig(timeout_s=0).validate()

    def test_pronunciation_path(self):
        from conversation_model.config import VoiceConfig

        assert VoiceConfig(pronunciation_file=None).pronunciation_path is None
        assert VoiceConfig(pronunciation_file="names.json").pronunciation_path.name == "names.json"

    def test_words_per_second_must_be_positive(self):
        from conversation_model.config import VoiceConfig

        with pytest.raises(ValueError, match="positive"):
            VoiceConfig(words_per_second=0).validate()


class TestSettings:
    """Tests for main Settings class."""

    def test_settings_singleton(self):
        """Test settings is accessible."""
        from conversation_model.config import settings

        assert settings is not None
        assert hasattr(settings, "backend")
        assert hasattr(settings, "conversation")
        assert hasattr(settings, "code")
        assert hasattr(settings, "voice")

    def test_test_environment(self):
        """Test the test environment is picked up from env."""
        from conversation_model.config import settings

        assert settings.app_env == "test"
        assert settings.is_development is False
        assert settings.conversation.grace_period_s == 0.01

    def test_validate_all(self):
        from conversation_model.config import Settings

        assert Settings().validate_all() is True
