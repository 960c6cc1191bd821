"""Claude (Anthropic) extraction provider."""

from ..base import DEFAULT_TIMEOUT, LLMError, LLMProvider, translate_sdk_error

# Prefilled assistant turn; Claude continues the JSON object from here
JSON_PREFILL = "{"


def _anthropic_errors() -> dict | None:
    try:
        import anthropic
    except ImportError:
        return None
    return {
        "auth": anthropic.AuthenticationError,
        "rate_limit": anthropic.RateLimitError,
        "transient": (anthropic.APITimeoutError, anthropic.APIConnectionError),
        "api": anthropic.APIError,
    }


class ClaudeProvider(LLMProvider):
    """Anthropic Claude provider with prefilled JSON output."""

    provider_name = "claude"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client=None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.model = model or "claude-sonnet-4-20250514"
        if client is None:
            try:
                from anthropic import Anthropic
            except ImportError:
                raise LLMError("anthropic package not installed. Run: pip install anthropic")
            # max_retries=0: the caller's retry policy owns retries
            client = Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self.client = client

    def generate(
        self, messages: list[dict], system: str | None = None, max_tokens: int = 2000
    ) -> str:
        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [*messages, {"role": "assistant", "content": JSON_PREFILL}],
        }
        if system:
            kwargs["system"] = system
        try:
            response = self.client.messages.create(**kwargs)
        except Exception as e:
            translate_sdk_error(e, "Claude", _anthropic_errors())
        text = "".join(getattr(block, "text", "") for block in response.content)
        return JSON_PREFILL + text
