"""
Debounce/Cooldown State Machine

One instance exists per (session, alert type). It turns a noisy per-tick
condition into at most one alert per cooldown window:

    IDLE --cond--> PENDING --sustained--> FIRED --cooldown expired--> IDLE
                      |
                      +--cond stops--> IDLE

A condition must hold continuously for the sustain duration before the alert
fires; a sustain of zero fires on the first true observation. While FIRED the
condition is ignored until the cooldown expires.
"""

from dataclasses import dataclass
from typing import Optional

from .alerts import AlertSpec

IDLE = "IDLE"
PENDING = "PENDING"
FIRED = "FIRED"


@dataclass
class DebounceTimer:
    """Mutable timer state for one alert type."""
    pending_since: Optional[float] = None
    cooldown_until: Optional[float] = None

    def clear(self) -> None:
        self.pending_since = None
        self.cooldown_until = None


class DebounceStateMachine:
    """Sustain/cooldown debouncer for a single alert type."""

    def __init__(self, alert_type: str, sustain_sec: float, cooldown_sec: float):
        """
        Initialize the state machine.

        Args:
            alert_type: Alert type this machine guards
            sustain_sec: Time the condition must hold before firing
            cooldown_sec: Time after firing before the alert may fire again
        """
        if sustain_sec < 0 or cooldown_sec < 0:
            raise ValueError("sustain and cooldown durations must not be negative")

        self.alert_type = alert_type
        self.sustain_sec = sustain_sec
        self.cooldown_sec = cooldown_sec
        self.timer = DebounceTimer()
        self._state = IDLE

    @classmethod
    def from_spec(cls, spec: AlertSpec) -> "DebounceStateMachine":
        return cls(spec.alert_type, spec.sustain_sec, spec.cooldown_sec)

    @property
    def state(self) -> str:
        return self._state

    def update(self, condition: Optional[bool], now: float) -> bool:
        """
        Advance the machine by one tick.

        Args:
            condition: Current signal value; None (unknown) counts as not true
            now: Current time in seconds

        Returns:
            True when the alert fires on this tick
        """
        if self._state == FIRED:
            if now < self.timer.cooldown_until:
                return False
            # Cooldown expired: re-arm and evaluate this tick from IDLE
            self.timer.clear()
            self._state = IDLE

        active = condition is True

        if self._state == IDLE:
            if not active:
                return False
            self.timer.pending_since = now
            self._state = PENDING

        # PENDING
        if not active:
            self.timer.pending_since = None
            self._state = IDLE
            return False

        if now - self.timer.pending_since >= self.sustain_sec:
            self.timer.pending_since = None
            self.timer.cooldown_until = now + self.cooldown_sec
            self._state = FIRED
            return True

        return False

    def reset(self) -> None:
        """Drop all timers and return to IDLE."""
        self.timer.clear()
        self._state = IDLE

    def __repr__(self) -> str:
        return (f"DebounceStateMachine({self.alert_type!r}, state={self._state}, "
                f"pending_since={self.timer.pending_since}, cooldown_until={self.timer.cooldown_until})")
