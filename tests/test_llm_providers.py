"""Tests for LLM provider adapters."""

from unittest.mock import MagicMock

import pytest

from errors import TransientExternalError
from llm import LLMAuthError, LLMError, LLMRateLimitError, LLMTimeoutError
from llm.providers.claude import ClaudeProvider
from llm.providers.openai import OpenAIProvider


class TestClaudeProvider:
    def test_generate(self):
        mock_client = MagicMock()
        mock_resp = MagicMock()
        mock_resp.content = [MagicMock(text='"ok": true}')]
        mock_client.messages.create.return_value = mock_resp

        provider = ClaudeProvider(client=mock_client)
        result = provider.generate(
            messages=[{"role": "user", "content": "hi"}],
            system="Extract entities",
            max_tokens=100,
        )

        assert result == '{"ok": true}'
        mock_client.messages.create.assert_called_once_with(
            model="claude-sonnet-4-20250514",
            max_tokens=100,
            messages=[{"role": "user", "content": "hi"}, {"role": "assistant", "content": "{"}],
            system="Extract entities",
        )

    def test_generate_no_system(self):
        mock_client = MagicMock()
        mock_resp = MagicMock()
        mock_resp.content = [MagicMock(text="response")]
        mock_client.messages.create.return_value = mock_resp

        provider = ClaudeProvider(client=mock_client)
        provider.generate(messages=[{"role": "user", "content": "hi"}])

        call_kwargs = mock_client.messages.create.call_args.kwargs
        assert "system" not in call_kwargs

    def test_auth_error(self):
        from anthropic import AuthenticationError

        mock_client = MagicMock()
        mock_client.messages.create.side_effect = AuthenticationError(
            message="bad key", response=MagicMock(status_code=401), body={}
        )

        provider = ClaudeProvider(client=mock_client)
        with pytest.raises(LLMAuthError):
            provider.generate(messages=[{"role": "user", "content": "hi"}])

    def test_rate_limit_is_transient(self):
        from anthropic import RateLimitError

        mock_client = MagicMock()
        mock_client.messages.create.side_effect = RateLimitError(
            message="rate limited", response=MagicMock(status_code=429), body={}
        )

        provider = ClaudeProvider(client=mock_client)
        with pytest.raises(LLMRateLimitError) as exc_info:
            provider.generate(messages=[{"role": "user", "content": "hi"}])
        assert isinstance(exc_info.value, TransientExternalError)

    def test_connection_error_is_transient(self):
        from anthropic import APIConnectionError

        mock_client = MagicMock()
        mock_client.messages.create.side_effect = APIConnectionError(request=MagicMock())

        provider = ClaudeProvider(client=mock_client)
        with pytest.raises(LLMTimeoutError):
            provider.generate(messages=[{"role": "user", "content": "hi"}])

    def test_api_error(self):
        from anthropic import APIError

        mock_client = MagicMock()
        mock_client.messages.create.side_effect = APIError(
            message="server error", request=MagicMock(), body=None
        )

        provider = ClaudeProvider(client=mock_client)
        with pytest.raises(LLMError):
            provider.generate(messages=[{"role": "user", "content": "hi"}])


class TestOpenAIProvider:
    def test_generate(self):
        mock_client = MagicMock()
        mock_resp = MagicMock()
        mock_resp.choices = [MagicMock(message=MagicMock(content='{"ok": true}'))]
        mock_client.chat.completions.create.return_value = mock_resp

        provider = OpenAIProvider(client=mock_client)
        result = provider.generate(
            messages=[{"role": "user", "content": "hi"}],
            system="Extract entities",
        )

        assert result == '{"ok": true}'
        call_kwargs = mock_client.chat.completions.create.call_args.kwargs
        # System message should be prepended
        assert call_kwargs["messages"][0] == {"role": "system", "content": "Extract entities"}
        assert call_kwargs["messages"][1] == {"role": "user", "content": "hi"}
        assert call_kwargs["response_format"] == {"type": "json_object"}

    def test_generate_no_system(self):
        mock_client = MagicMock()
        mock_resp = MagicMock()
        mock_resp.choices = [MagicMock(message=MagicMock(content="{}"))]
        mock_client.chat.completions.create.return_value = mock_resp

        provider = OpenAIProvider(client=mock_client)
        provider.generate(messages=[{"role": "user", "content": "hi"}])

        call_kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert len(call_kwargs["messages"]) == 1  # No system prepended

    def test_unknown_error_wrapped(self):
        mock_client = MagicMock()
        mock_client.chat.completions.create.side_effect = RuntimeError("boom")

        provider = OpenAIProvider(client=mock_client)
        with pytest.raises(LLMError, match="boom"):
            provider.generate(messages=[{"role": "user", "content": "hi"}])


def test_claude_joins_text_blocks():
    mock_client = MagicMock()
    mock_client.messages.create.return_value = MagicMock(
        content=[MagicMock(text='"a": 1,'), MagicMock(text=' "b": 2}')]
    )
    provider = ClaudeProvider(client=mock_client)
    assert provider.generate(messages=[{"role": "user", "content": "hi"}]) == '{"a": 1, "b": 2}'
