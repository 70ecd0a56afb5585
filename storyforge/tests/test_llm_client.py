"""Tests for LLMClient provider abstraction."""

import logging
import pytest
from unittest.mock import MagicMock

from storyforge.common.config import LLMConfig
from storyforge.common.errors import ConfigurationError, TransientExternalError
from storyforge.common.llm_client import LLMClient


def _openai_client(content="{}"):
    client = LLMClient(provider="openai", model="gpt-4o-mini")
    fake = MagicMock()
    fake.chat.completions.create.return_value.choices = [
        MagicMock(message=MagicMock(content=content))
    ]
    client._client = fake
    return client, fake


class TestLLMClientInit:
    def test_missing_openai_key_logs_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="storyforge.common.llm_client"):
            client = LLMClient(provider="openai")
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_missing_anthropic_key_logs_info(self, caplog):
        with caplog.at_level(logging.INFO, logger="storyforge.common.llm_client"):
            client = LLMClient(provider="anthropic")
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_unsupported_provider_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="storyforge.common.llm_client"):
            client = LLMClient(provider="unsupported_xyz")
        assert not client.is_available
        assert "Unsupported" in caplog.text

    def test_from_config_uses_provider_model(self):
        cfg = LLMConfig(provider="anthropic")
        client = LLMClient.from_config(cfg)
        assert client.provider == "anthropic"
        assert client.model == cfg.anthropic_model


class TestLLMClientGenerate:
    def test_generate_raises_when_unavailable(self):
        client = LLMClient(provider="openai")
        with pytest.raises(ConfigurationError, match="not available"):
            client.generate("test")

    def test_openai_request_shape(self):
        client, fake = _openai_client('  {"stories": []}  ')

        result = client.generate("prompt", system="sys", max_tokens=4000, temperature=0.2)

        assert result == '{"stories": []}'
        kwargs = fake.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 4000
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert kwargs["messages"][1] == {"role": "user", "content": "prompt"}

    def test_temperature_omitted_when_none(self):
        client, fake = _openai_client()
        client.generate("prompt")
        assert "temperature" not in fake.chat.completions.create.call_args.kwargs

    def test_backend_failure_wrapped(self):
        client, fake = _openai_client()
        fake.chat.completions.create.side_effect = RuntimeError("rate limited")

        with pytest.raises(TransientExternalError) as exc_info:
            client.generate("prompt")
        assert exc_info.value.service == "llm"
        assert "rate limited" in str(exc_info.value)

    def test_anthropic_request_shape(self):
        client = LLMClient(provider="anthropic", model="claude-test")
        fake = MagicMock()
        fake.messages.create.return_value.content = [MagicMock(text=" ok ")]
        client._client = fake

        assert client.generate("prompt", system="sys") == "ok"
        kwargs = fake.messages.create.call_args.kwargs
        assert kwargs["system"] == "sys"
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]
