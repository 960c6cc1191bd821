"""Tests for retry decorators."""

from unittest.mock import MagicMock

import pytest

from cli.retry import llm_retry, retry_from_config
from errors import TransientExternalError


def test_retries_transient_then_raises():
    func = MagicMock(side_effect=TransientExternalError("timeout"))
    wrapped = llm_retry(max_attempts=3, min_wait=0, max_wait=0)(func)
    with pytest.raises(TransientExternalError):
        wrapped()
    assert func.call_count == 3


def test_other_errors_not_retried():
    func = MagicMock(side_effect=ValueError("bad"))
    wrapped = llm_retry(min_wait=0, max_wait=0)(func)
    with pytest.raises(ValueError):
        wrapped()
    assert func.call_count == 1


def test_recovers_after_transient():
    func = MagicMock(side_effect=[TransientExternalError("blip"), "ok"])
    assert llm_retry(min_wait=0, max_wait=0)(func)() == "ok"


def test_from_config():
    func = MagicMock(side_effect=TransientExternalError("timeout"))
    policy = retry_from_config({"retry": {"max_attempts": 4, "min_wait": 0, "max_wait": 0}})
    with pytest.raises(TransientExternalError):
        policy(func)()
    assert func.call_count == 4
