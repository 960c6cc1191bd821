"""Provider selection: explicit name, key prefix, or whichever API key is set."""

import os
from dataclasses import dataclass

from .base import DEFAULT_TIMEOUT, LLMError, LLMProvider


@dataclass(frozen=True)
class ProviderSpec:
    env_key: str
    key_prefix: str
    extraction_model: str


# Detection order: first entry whose env key is set wins
PROVIDERS: dict[str, ProviderSpec] = {
    "claude": ProviderSpec("ANTHROPIC_API_KEY", "sk-ant-", "claude-haiku-4-20250514"),
    "openai": ProviderSpec("OPENAI_API_KEY", "sk-", "gpt-4o-mini"),
}


def resolve_provider_name(provider: str | None = None, api_key: str | None = None) -> str:
    """Turn "auto"/None into a concrete provider name.

    An explicit key is matched by prefix (longest first, so Anthropic keys are
    not mistaken for OpenAI ones); otherwise the environment is checked.
    """
    if provider and provider != "auto":
        if provider not in PROVIDERS:
            raise LLMError(f"Unknown provider: {provider}. Use: {', '.join(PROVIDERS)}")
        return provider

    if api_key:
        by_prefix = sorted(PROVIDERS.items(), key=lambda item: len(item[1].key_prefix), reverse=True)
        for name, entry in by_prefix:
            if api_key.startswith(entry.key_prefix):
                return name

    for name, entry in PROVIDERS.items():
        if os.getenv(entry.env_key):
            return name
    env_keys = ", ".join(entry.env_key for entry in PROVIDERS.values())
    raise LLMError(f"No LLM API key found. Set one of: {env_keys}")


def create_llm_provider(
    provider: str | None = None,
    api_key: str | None = None,
    model: str | None = None,
    client=None,
    timeout: float = DEFAULT_TIMEOUT,
) -> LLMProvider:
    """Create an LLM provider instance.

    Args:
        provider: "claude", "openai", "auto", or None (auto-detect)
        api_key: Explicit API key (overrides env var)
        model: Model name (None = provider default)
        client: Pre-built SDK client for testing/DI
        timeout: Per-call timeout in seconds
    """
    name = resolve_provider_name(provider, api_key)
    if not api_key and client is None:
        api_key = os.getenv(PROVIDERS[name].env_key)

    if name == "claude":
        from .providers.claude import ClaudeProvider as provider_cls
    else:
        from .providers.openai import OpenAIProvider as provider_cls
    return provider_cls(api_key=api_key, model=model, client=client, timeout=timeout)


def create_extraction_provider(
    provider: str | None = None,
    api_key: str | None = None,
    model: str | None = None,
    client=None,
    timeout: float = DEFAULT_TIMEOUT,
) -> LLMProvider:
    """Provider for entity extraction, defaulting to the cheap model tier."""
    name = resolve_provider_name(provider, api_key)
    return create_llm_provider(
        provider=name,
        api_key=api_key,
        model=model or PROVIDERS[name].extraction_model,
        client=client,
        timeout=timeout,
    )
