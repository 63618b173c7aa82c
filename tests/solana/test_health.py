from __future__ import annotations

import logging

import pytest
from conftest import FakeClock

from solkit.core.logs import ToolkitLogger
from solkit.solana.health import HealthMonitor


def slow_check(clock: FakeClock, seconds: float):
    def check() -> int:
        clock.advance(seconds)
        return 1

    return check


def test_initial_state_is_optimistic() -> None:
    monitor = HealthMonitor(lambda: 1)
    assert monitor.is_healthy is True
    assert monitor.state.last_checked_at is None
    assert monitor.running is False


def test_fast_check_is_healthy(clock: FakeClock) -> None:
    monitor = HealthMonitor(slow_check(clock, 0.2), clock=clock)

    state = monitor.tick()

    assert state.is_healthy is True
    assert state.last_checked_at is not None
    assert state.response_time == pytest.approx(0.2)


def test_check_at_threshold_is_unhealthy(clock: FakeClock) -> None:
    log = ToolkitLogger()
    monitor = HealthMonitor(slow_check(clock, 5.0), threshold=5.0, clock=clock, logger=log)

    assert monitor.tick().is_healthy is False
    assert log.latest() is not None and log.latest().level == "warning"


def test_failing_check_is_unhealthy_and_logged(clock: FakeClock) -> None:
    log = ToolkitLogger()

    def check() -> int:
        raise ConnectionError("refused")

    monitor = HealthMonitor(check, clock=clock, logger=log)

    assert monitor.tick().is_healthy is False
    entry = log.latest()
    assert entry is not None
    assert entry.level == "error"
    assert entry.context["error"] == "refused"


def test_check_failures_reach_module_logger(clock: FakeClock, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="solkit.solana.health")

    def check() -> int:
        raise ConnectionError("refused")

    HealthMonitor(check, clock=clock, name="http://node").tick()
    HealthMonitor(slow_check(clock, 6.0), clock=clock, name="http://slow").tick()

    messages = [record.getMessage() for record in caplog.records if record.name == "solkit.solana.health"]
    assert messages == [
        "Health check failed for http://node: refused",
        "Health check for http://slow took 6.000s",
    ]
    assert all(record.levelno == logging.WARNING for record in caplog.records)


def test_health_recovers_on_next_good_check(clock: FakeClock) -> None:
    outcomes = [ConnectionError("down"), None]

    def check() -> None:
        outcome = outcomes.pop(0)
        if outcome is not None:
            raise outcome

    monitor = HealthMonitor(check, clock=clock)
    assert monitor.tick().is_healthy is False
    assert monitor.tick().is_healthy is True


def test_stopped_monitor_tick_changes_nothing(clock: FakeClock) -> None:
    calls: list[int] = []

    def check() -> None:
        calls.append(1)
        raise ConnectionError("down")

    monitor = HealthMonitor(check, clock=clock)
    monitor.stop()

    state = monitor.tick()

    assert calls == []
    assert state.is_healthy is True
    assert state.last_checked_at is None


def test_stop_during_check_discards_result(clock: FakeClock) -> None:
    monitor: HealthMonitor

    def check() -> None:
        monitor.stop()
        raise ConnectionError("late failure")

    monitor = HealthMonitor(check, clock=clock)

    assert monitor.tick().is_healthy is True
    assert monitor.state.last_checked_at is None


def test_start_and_stop_thread() -> None:
    monitor = HealthMonitor(lambda: 1, interval=3600)
    monitor.start()
    assert monitor.running is True
    monitor.stop()
    assert monitor.running is False
    assert monitor.stopped is True
