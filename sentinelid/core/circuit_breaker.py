from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional


class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class BreakerConfig:
    failures: int = 3
    window_seconds: int = 60
    cooldown_seconds: int = 30


class CircuitBreaker:
    """
    Guards an external dependency. `failures` within `window_seconds` opens
    the breaker; after `cooldown_seconds` one probe call is let through.
    """

    def __init__(
        self,
        cfg: BreakerConfig,
        *,
        time_fn: Callable[[], float] = time.time,
        on_state_change: Optional[Callable[[BreakerState, BreakerState], None]] = None,
    ):
        self.cfg = cfg
        self._time = time_fn
        self._lock = threading.Lock()
        self._fail_times: List[float] = []
        self._state = BreakerState.CLOSED
        self._opened_at: Optional[float] = None
        self._probe_in_flight = False
        self._on_state_change = on_state_change

    def state(self) -> BreakerState:
        with self._lock:
            self._update_state_locked()
            return self._state

    def allow(self) -> bool:
        with self._lock:
            self._update_state_locked()
            if self._state == BreakerState.CLOSED:
                return True
            if self._state == BreakerState.OPEN:
                return False
            if not self._probe_in_flight:
                self._probe_in_flight = True
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            self._fail_times.clear()
            self._opened_at = None
            self._probe_in_flight = False
            self._transition_locked(BreakerState.CLOSED)

    def record_failure(self) -> None:
        with self._lock:
            now = self._time()
            self._probe_in_flight = False
            if self._state == BreakerState.HALF_OPEN:
                self._opened_at = now
                self._transition_locked(BreakerState.OPEN)
                return
            cutoff = now - float(self.cfg.window_seconds)
            self._fail_times = [t for t in self._fail_times if t >= cutoff]
            self._fail_times.append(now)
            if len(self._fail_times) >= int(self.cfg.failures):
                self._opened_at = now
                self._transition_locked(BreakerState.OPEN)

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            self._update_state_locked()
            cutoff = self._time() - float(self.cfg.window_seconds)
            opened_at = self._opened_at
            return {
                "state": self._state.value,
                "opened_at": opened_at,
                "cooldown_until": (opened_at + float(self.cfg.cooldown_seconds)) if opened_at else None,
                "failure_count_window": len([t for t in self._fail_times if t >= cutoff]),
            }

    def _update_state_locked(self) -> None:
        if self._state == BreakerState.OPEN and self._opened_at is not None:
            if (self._time() - self._opened_at) >= float(self.cfg.cooldown_seconds):
                self._probe_in_flight = False
                self._transition_locked(BreakerState.HALF_OPEN)

    def _transition_locked(self, new: BreakerState) -> None:
        old = self._state
        self._state = new
        if old != new and self._on_state_change:
            try:
                self._on_state_change(old, new)
            except Exception:  # noqa: BLE001
                pass
