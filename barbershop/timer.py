"""Service timer: per-appointment elapsed time against the booked duration.

Timer state lives in a durable key-value store so it survives reloads.
While running, the stored ``startTime`` is the effective start (shifted back
by any time accumulated before a pause), which keeps elapsed time tied to
the wall clock instead of to how many ticks actually fired.
"""
from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Protocol

from .entities import TimerState, utc_now

logger = logging.getLogger(__name__)


class TimerStore(Protocol):
    def get(self, key: str) -> dict | None: ...

    def set(self, key: str, value: dict) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryTimerStore:
    """Dict-backed store, used in tests and for throwaway sessions."""

    def __init__(self) -> None:
        self._data: dict[str, dict] = {}

    def get(self, key: str) -> dict | None:
        value = self._data.get(key)
        return dict(value) if value is not None else None

    def set(self, key: str, value: dict) -> None:
        self._data[key] = dict(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


def timer_key(appointment_id: int) -> str:
    return f"timer-{appointment_id}"


def format_clock(seconds: int) -> str:
    """Render seconds as mm:ss."""
    minutes, secs = divmod(max(int(seconds), 0), 60)
    return f"{minutes:02d}:{secs:02d}"


class ServiceTimer:
    def __init__(self, store: TimerStore, clock: Callable[[], datetime] = utc_now) -> None:
        self.store = store
        self.clock = clock

    def _load(self, appointment_id: int) -> TimerState | None:
        payload = self.store.get(timer_key(appointment_id))
        if payload is None:
            return None
        return TimerState.from_store(payload)

    def _save(self, appointment_id: int, state: TimerState) -> TimerState:
        self.store.set(timer_key(appointment_id), state.to_store())
        return state

    def _reconcile(self, state: TimerState, now: datetime) -> TimerState:
        if state.is_running and state.start_time is not None:
            elapsed = max(math.floor((now - state.start_time).total_seconds()), 0)
        else:
            elapsed = state.time_elapsed
        return replace(
            state,
            time_elapsed=elapsed,
            is_completed=state.target_seconds > 0 and elapsed >= state.target_seconds,
        )

    def state(self, appointment_id: int, target_seconds: int | None = None) -> TimerState:
        """Current state reconciled against the clock; idle if never started."""
        state = self._load(appointment_id)
        if state is None:
            return TimerState(target_seconds=target_seconds or 0)
        if target_seconds and not state.target_seconds:
            state = replace(state, target_seconds=target_seconds)
        return self._reconcile(state, self.clock())

    def is_active(self, appointment_id: int) -> bool:
        return self._load(appointment_id) is not None

    def start(self, appointment_id: int, target_seconds: int) -> TimerState:
        """Start a fresh timer or resume a paused one.

        A timer that is already running is returned as is, so calling start
        twice never creates a second timer for the same appointment.
        """
        now = self.clock()
        state = self._load(appointment_id)

        if state is not None and state.is_running:
            return self._save(appointment_id, self._reconcile(state, now))

        elapsed = state.time_elapsed if state is not None else 0
        resumed = TimerState(
            is_running=True,
            time_elapsed=elapsed,
            start_time=now - timedelta(seconds=elapsed),
            target_seconds=target_seconds,
        )
        logger.info(
            "%s timer for appointment %s at %ss of %ss",
            "Resuming" if elapsed else "Starting", appointment_id, elapsed, target_seconds,
        )
        return self._save(appointment_id, self._reconcile(resumed, now))

    def tick(self, appointment_id: int) -> TimerState:
        """One-second callback: recompute elapsed and persist it."""
        state = self._load(appointment_id)
        if state is None:
            return TimerState()
        return self._save(appointment_id, self._reconcile(state, self.clock()))

    def pause(self, appointment_id: int) -> TimerState:
        state = self._load(appointment_id)
        if state is None:
            return TimerState()
        current = self._reconcile(state, self.clock())
        paused = replace(current, is_running=False, start_time=None)
        logger.info("Paused timer for appointment %s at %ss", appointment_id, paused.time_elapsed)
        return self._save(appointment_id, paused)

    def stop(self, appointment_id: int) -> TimerState:
        """Discard the timer; the appointment status is not touched."""
        state = self._load(appointment_id)
        self.store.delete(timer_key(appointment_id))
        logger.info("Stopped timer for appointment %s", appointment_id)
        return TimerState(target_seconds=state.target_seconds if state else 0)

    def clear(self, appointment_id: int) -> None:
        """Drop the persisted entry once the appointment is finalized."""
        self.store.delete(timer_key(appointment_id))


def describe(state: TimerState) -> dict[str, object]:
    """Display payload for a timer state."""
    payload = state.to_store()
    payload.update({
        "elapsed": format_clock(state.time_elapsed),
        "remaining": format_clock(state.remaining_seconds),
        "progress": round(state.progress, 1),
        "canFinishEarly": state.can_finish_early,
    })
    return payload
