"""
Save rate limiter for lead capture.

Two limits apply per key:
- at most `max_per_window` saves per window (60 seconds); the counter resets
  once the window has elapsed;
- at least `min_interval` seconds between two saves.

Lead capture checks two keys per save: the session's lead token and the
snapshot's phone. The token can change mid-session (adopting a deduplicated
lead) and HTTP clients may drop it, while the phone can change while the
customer is still typing it; a save must pass both.

The limiter is guarded by a lock, so concurrent requests from the same
customer (duplicate browser tabs) cannot both slip past the limit.
Check-and-record is a single atomic `try_acquire` call.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from domain.time import Clock, require_utc_timestamp, utc_now


@dataclass(slots=True)
class _WindowState:
    window_started_at: datetime
    count: int = 0
    last_save_at: Optional[datetime] = None


class SaveRateLimiter:
    def __init__(
        self,
        max_per_window: int = 10,
        window_seconds: float = 60.0,
        min_interval_seconds: float = 2.0,
        clock: Clock = utc_now,
    ) -> None:
        if max_per_window < 1:
            raise ValueError("max_per_window must be >= 1")
        self._max_per_window = max_per_window
        self._window_seconds = window_seconds
        self._min_interval_seconds = min_interval_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._states: Dict[str, _WindowState] = {}

    def _now(self) -> datetime:
        now = self._clock()
        require_utc_timestamp("now", now)
        return now

    def _state_for(self, key: str, now: datetime) -> _WindowState:
        state = self._states.get(key)
        if state is None:
            state = _WindowState(window_started_at=now)
            self._states[key] = state
        elif (now - state.window_started_at).total_seconds() > self._window_seconds:
            state.window_started_at = now
            state.count = 0
        return state

    def _allowed(self, state: _WindowState, now: datetime) -> bool:
        if state.count >= self._max_per_window:
            return False
        if state.last_save_at is not None:
            elapsed = (now - state.last_save_at).total_seconds()
            if elapsed < self._min_interval_seconds:
                return False
        return True

    def try_acquire(self, *keys: str) -> bool:
        """
        Record a save under every key if all of them allow it; False means skip.

        The keys are checked and recorded together, so a save refused by one
        key does not count against the others.
        """

        with self._lock:
            now = self._now()
            states = [self._state_for(key, now) for key in keys]
            if not all(self._allowed(state, now) for state in states):
                return False
            for state in states:
                state.count += 1
                state.last_save_at = now
            return True

    def record(self, *keys: str) -> None:
        """Count a save that bypassed the check (forced saves)."""

        with self._lock:
            now = self._now()
            for key in keys:
                state = self._state_for(key, now)
                state.count += 1
                state.last_save_at = now

    def forget(self, key: str) -> None:
        with self._lock:
            self._states.pop(key, None)


__all__ = ["SaveRateLimiter"]
