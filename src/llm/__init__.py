"""Multi-provider LLM abstraction layer plus embedding and extraction capabilities."""

from .base import (
    LLMAuthError,
    LLMError,
    LLMProvider,
    LLMRateLimitError,
    LLMTimeoutError,
)
from .embeddings import Embedder, OpenAIEmbedder, create_embedder
from .extraction import DiffContext, EntityExtraction, EntityExtractor
from .factory import create_extraction_provider, create_llm_provider

__all__ = [
    "LLMProvider",
    "create_llm_provider",
    "create_extraction_provider",
    "LLMError",
    "LLMRateLimitError",
    "LLMTimeoutError",
    "LLMAuthError",
    "Embedder",
    "OpenAIEmbedder",
    "create_embedder",
    "EntityExtractor",
    "EntityExtraction",
    "DiffContext",
]
