from __future__ import annotations

from sentinelid.core.circuit_breaker import BreakerConfig, BreakerState, CircuitBreaker
from .helpers.fakes import FakeClock


def test_circuit_breaker_opens_after_threshold():
    b = CircuitBreaker(BreakerConfig(failures=2, window_seconds=60, cooldown_seconds=60))
    assert b.allow() is True
    b.record_failure()
    assert b.allow() is True
    b.record_failure()
    assert b.allow() is False


def test_failures_outside_window_do_not_count():
    clock = FakeClock()
    b = CircuitBreaker(BreakerConfig(failures=2, window_seconds=10, cooldown_seconds=5), time_fn=clock.time)
    b.record_failure()
    clock.advance(11)
    b.record_failure()
    assert b.state() == BreakerState.CLOSED


def test_half_open_lets_one_probe_through():
    clock = FakeClock()
    changes = []
    b = CircuitBreaker(
        BreakerConfig(failures=1, window_seconds=60, cooldown_seconds=30),
        time_fn=clock.time,
        on_state_change=lambda old, new: changes.append((old, new)),
    )
    b.record_failure()
    assert b.state() == BreakerState.OPEN
    clock.advance(30)
    assert b.allow() is True
    assert b.allow() is False

    b.record_failure()
    assert b.state() == BreakerState.OPEN
    clock.advance(30)
    assert b.allow() is True
    b.record_success()
    assert b.state() == BreakerState.CLOSED
    assert changes[0] == (BreakerState.CLOSED, BreakerState.OPEN)
    assert changes[-1] == (BreakerState.HALF_OPEN, BreakerState.CLOSED)


def test_snapshot_reports_cooldown():
    clock = FakeClock()
    b = CircuitBreaker(BreakerConfig(failures=1, window_seconds=60, cooldown_seconds=30), time_fn=clock.time)
    b.record_failure()
    snap = b.snapshot()
    assert snap["state"] == "OPEN"
    assert snap["cooldown_until"] == clock.time() + 30
    assert snap["failure_count_window"] == 1
