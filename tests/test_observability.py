"""Tests for the metrics collector."""

import threading

import pytest

from observability import Metrics, log_run_summary, metrics


def test_counters_and_breakdown():
    m = Metrics()
    m.counter("sync_suggestions", 3)
    m.count_by("sync_suggestions", ["new_task", "update_debt", "new_task"])
    assert m.get_counter("sync_suggestions") == 3
    assert m.get_counter("sync_suggestions.new_task") == 2
    assert m.get_counter("missing") == 0


def test_timer_kept_on_error():
    m = Metrics()
    with pytest.raises(RuntimeError):
        with m.timer("pass"):
            raise RuntimeError("boom")
    assert m.summary()["timers"]["pass"]["count"] == 1


def test_counter_from_threads():
    m = Metrics()

    def bump():
        for _ in range(1000):
            m.counter("n")

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert m.get_counter("n") == 4000


def test_reset():
    m = Metrics()
    m.counter("a")
    with m.timer("t"):
        pass
    m.reset()
    assert m.summary() == {"counters": {}, "timers": {}}


def test_log_run_summary_returns_summary():
    metrics.counter("sync_observations_processed", 2)
    summary = log_run_summary(run_id="abc123")
    assert summary["counters"] == {"sync_observations_processed": 2}
