"""Embedding capability: text to dense vector."""

import os
from abc import ABC, abstractmethod

import structlog

from .base import DEFAULT_TIMEOUT, LLMError, translate_sdk_error

logger = structlog.get_logger()

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
EMBEDDING_DIMENSIONS = 1536


class Embedder(ABC):
    """Turns text into a fixed-size vector suitable for cosine similarity."""

    dimensions: int = EMBEDDING_DIMENSIONS

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        ...


class OpenAIEmbedder(Embedder):
    """OpenAI embeddings endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_EMBEDDING_MODEL,
        client=None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.model = model
        if client:
            self.client = client
            return

        from .providers.openai import build_openai_client

        self.client = build_openai_client(api_key or os.getenv("OPENAI_API_KEY"), timeout)

    def embed(self, text: str) -> list[float]:
        from .providers.openai import openai_errors

        try:
            response = self.client.embeddings.create(model=self.model, input=text[:8000])
            return list(response.data[0].embedding)
        except LLMError:
            raise
        except Exception as e:
            translate_sdk_error(e, "OpenAI embeddings", openai_errors())


def create_embedder(api_key: str | None = None, model: str | None = None) -> Embedder | None:
    """Build the default embedder, or None when no OpenAI key is configured."""
    key = api_key or os.getenv("OPENAI_API_KEY")
    if not key:
        logger.info("embedder_disabled", reason="no OPENAI_API_KEY")
        return None
    try:
        return OpenAIEmbedder(api_key=key, model=model or DEFAULT_EMBEDDING_MODEL)
    except LLMError as e:
        logger.warning("embedder_init_failed", error=str(e))
        return None
