"""Retry utilities with exponential backoff."""

import logging

import structlog
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from errors import TransientExternalError

logger = structlog.stdlib.get_logger(__name__)


def llm_retry(
    max_attempts: int = 2,
    min_wait: float = 1.0,
    max_wait: float = 10.0,
    exceptions: tuple = (TransientExternalError,),
):
    """Retry decorator for LLM and embedding calls.

    Defaults to one retry on transient network errors; the caller degrades
    after that.

    Args:
        max_attempts: Max attempts, including the first call
        min_wait: Min wait between retries (seconds)
        max_wait: Max wait between retries (seconds)
        exceptions: Exception types to retry on
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def retry_from_config(config: dict):
    """Create an LLM retry decorator from the config dict's retry section."""
    retry_config = config.get("retry", {})
    return llm_retry(
        max_attempts=retry_config.get("max_attempts", 2),
        min_wait=retry_config.get("min_wait", 1.0),
        max_wait=retry_config.get("max_wait", 10.0),
    )
