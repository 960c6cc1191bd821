"""Base LLM provider abstraction."""

from abc import ABC, abstractmethod

from errors import TransientExternalError


class LLMError(Exception):
    """Base LLM error."""


class LLMRateLimitError(LLMError, TransientExternalError):
    """Rate limit hit."""


class LLMTimeoutError(LLMError, TransientExternalError):
    """Request timed out or the connection dropped."""


class LLMAuthError(LLMError):
    """Authentication failure."""


DEFAULT_TIMEOUT = 30.0


def translate_sdk_error(e: Exception, label: str, sdk_errors: dict | None) -> None:
    """Raise the LLMError subclass matching an SDK exception. Always raises.

    sdk_errors maps "auth", "rate_limit", "transient" and "api" to SDK
    exception classes (or tuples of them). None means the SDK is missing.
    """
    if sdk_errors:
        if isinstance(e, sdk_errors["auth"]):
            raise LLMAuthError(f"{label} auth failed: {e}") from e
        if isinstance(e, sdk_errors["rate_limit"]):
            raise LLMRateLimitError(f"{label} rate limit: {e}") from e
        if isinstance(e, sdk_errors["transient"]):
            raise LLMTimeoutError(f"{label} request failed in transit: {e}") from e
        if isinstance(e, sdk_errors["api"]):
            raise LLMError(f"{label} API error: {e}") from e
    raise LLMError(f"{label} error: {e}") from e


class LLMProvider(ABC):
    """Abstract LLM provider interface.

    Providers are used for structured extraction: generate() is expected to
    return a JSON object as text.
    """

    provider_name: str = "base"
    model: str

    @abstractmethod
    def generate(
        self, messages: list[dict], system: str | None = None, max_tokens: int = 2000
    ) -> str:
        """Generate a JSON response from messages.

        Args:
            messages: List of {"role": ..., "content": ...} dicts
            system: Optional system prompt
            max_tokens: Max response tokens

        Returns:
            Generated text
        """
        ...
