"""OpenAI extraction provider."""

from ..base import DEFAULT_TIMEOUT, LLMError, LLMProvider, translate_sdk_error


def openai_errors() -> dict | None:
    """SDK exception classes keyed for translate_sdk_error, None when openai is missing."""
    try:
        import openai
    except ImportError:
        return None
    return {
        "auth": openai.AuthenticationError,
        "rate_limit": openai.RateLimitError,
        "transient": (openai.APITimeoutError, openai.APIConnectionError),
        "api": openai.APIError,
    }


def build_openai_client(api_key: str | None, timeout: float = DEFAULT_TIMEOUT):
    try:
        from openai import OpenAI
    except ImportError:
        raise LLMError("openai package not installed. Run: pip install openai")
    return OpenAI(api_key=api_key, timeout=timeout, max_retries=0)


class OpenAIProvider(LLMProvider):
    """OpenAI chat provider in JSON-object mode."""

    provider_name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client=None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.model = model or "gpt-4o"
        self.client = client or build_openai_client(api_key, timeout)

    def generate(
        self, messages: list[dict], system: str | None = None, max_tokens: int = 2000
    ) -> str:
        full_messages = [{"role": "system", "content": system}] if system else []
        full_messages.extend(messages)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=full_messages,
                response_format={"type": "json_object"},
                temperature=0.2,
            )
        except Exception as e:
            translate_sdk_error(e, "OpenAI", openai_errors())
        return response.choices[0].message.content or ""
