"""
Study/break session timer state machine
"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, List, Optional, Union

from studyfocus.models import (
    Rejection,
    SessionConfig,
    SessionEvent,
    SessionRecord,
    SessionState,
    TimerSnapshot,
    TransitionResult,
)
from studyfocus.utils import format_duration, now_local

logger = logging.getLogger(__name__)

# Transitions that do not depend on configuration
_TRANSITIONS = {
    SessionState.IDLE: {
        SessionEvent.START: SessionState.ACTIVE,
    },
    SessionState.ACTIVE: {
        SessionEvent.PAUSE: SessionState.PAUSED,
        SessionEvent.TICK: SessionState.ACTIVE,
        SessionEvent.END: SessionState.IDLE,
        SessionEvent.RESET: SessionState.IDLE,
    },
    SessionState.PAUSED: {
        SessionEvent.RESUME: SessionState.ACTIVE,
        SessionEvent.END: SessionState.IDLE,
        SessionEvent.RESET: SessionState.IDLE,
    },
    SessionState.BREAK: {
        SessionEvent.TICK: SessionState.BREAK,
        SessionEvent.EXPIRE: SessionState.IDLE,
        SessionEvent.RESET: SessionState.IDLE,
    },
    SessionState.COMPLETED: {
        SessionEvent.RESET: SessionState.IDLE,
    },
}


def transition(
    state: SessionState, event: SessionEvent, config: SessionConfig
) -> Union[SessionState, Rejection]:
    """
    Pure transition function of the session state machine.

    Returns the next state, or a Rejection describing why the event
    is not allowed in the current state.
    """
    if state == SessionState.IDLE and event == SessionEvent.START:
        if config.session_duration_seconds <= 0:
            return Rejection(
                state=state,
                event=event,
                reason="Session duration must be greater than zero",
            )

    if state == SessionState.ACTIVE and event == SessionEvent.EXPIRE:
        if config.break_duration_seconds > 0:
            return SessionState.BREAK
        return SessionState.COMPLETED

    target = _TRANSITIONS[state].get(event)
    if target is None:
        return Rejection(
            state=state,
            event=event,
            reason=f"Cannot {event.value} while {state.value}",
        )
    return target


class SessionTimer:
    """
    Drives one study/break cycle.

    Time is measured with a monotonic clock: each tick consumes the whole
    seconds elapsed since the previous reference point, so irregular
    callback timing neither loses nor gains time. A single tick applies at
    most one state transition.
    """

    def __init__(
        self,
        config: SessionConfig,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.state: SessionState = SessionState.IDLE
        self.time_remaining: int = max(0, config.session_duration_seconds)

        self._clock = clock
        self._last_tick: Optional[float] = None
        self._started_at: Optional[datetime] = None
        self.subject: Optional[str] = None
        # finished sessions since the last reset
        self.current_streak: int = 0
        self._listeners: List[Callable[[SessionRecord], None]] = []
        self._lock = threading.RLock()

    # ==================== LISTENERS ====================

    def add_listener(self, callback: Callable[[SessionRecord], None]) -> Callable[[], None]:
        """Register a callback for finished sessions. Returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, record: SessionRecord):
        with self._lock:
            listeners = list(self._listeners)
        for callback in listeners:
            try:
                callback(record)
            except Exception:
                logger.exception("Session listener failed")

    # ==================== COMMANDS ====================

    def start(self, subject: Optional[str] = None) -> TransitionResult:
        """Start a session, optionally tagging it with a subject."""
        return self._run(SessionEvent.START, subject=subject)

    def pause(self) -> TransitionResult:
        return self._run(SessionEvent.PAUSE)

    def resume(self) -> TransitionResult:
        return self._run(SessionEvent.RESUME)

    def end(self) -> TransitionResult:
        """End the session early; the result carries the studied seconds."""
        return self._run(SessionEvent.END)

    def reset(self) -> TransitionResult:
        return self._run(SessionEvent.RESET)

    def tick(self, now: Optional[float] = None) -> TransitionResult:
        """
        Advance the running timer by the whole seconds elapsed since the
        last reference point. When time runs out the active session moves
        to break (or completed) and a break moves back to idle.
        """
        record = None
        with self._lock:
            previous = self.state
            target = transition(previous, SessionEvent.TICK, self.config)
            if isinstance(target, Rejection):
                return self._rejected(target)

            if now is None:
                now = self._clock()
            elapsed = int(now - self._last_tick)
            if elapsed > 0:
                self.time_remaining = max(0, self.time_remaining - elapsed)
                # keep the fractional part for the next tick
                self._last_tick += elapsed

            if self.time_remaining > 0:
                return self._accepted(SessionEvent.TICK, previous)

            result, record = self._expire(now)

        if record is not None:
            self._notify(record)
        return result

    def configure(self, config: SessionConfig) -> bool:
        """
        Replace the session configuration. Only allowed between cycles
        (idle or completed); the timer returns to idle with the new duration.
        """
        with self._lock:
            if self.state not in (SessionState.IDLE, SessionState.COMPLETED):
                logger.info("Ignoring configuration change while %s", self.state.value)
                return False
            self.config = config
            self.state = SessionState.IDLE
            self.time_remaining = max(0, config.session_duration_seconds)
            self._last_tick = None
            self._started_at = None
            return True

    def set_subject(self, subject: Optional[str]):
        """Change the subject; a running session is recorded under the new one."""
        with self._lock:
            self.subject = subject or None

    # ==================== VIEWS ====================

    @property
    def progress_percentage(self) -> float:
        with self._lock:
            if self.state == SessionState.BREAK:
                duration = self.config.break_duration_seconds
            else:
                duration = self.config.session_duration_seconds
            if duration <= 0:
                return 0.0
            progress = (duration - self.time_remaining) / duration * 100
            return max(0.0, min(100.0, progress))

    def snapshot(self) -> TimerSnapshot:
        with self._lock:
            return TimerSnapshot(
                state=self.state,
                time_remaining=self.time_remaining,
                progress_percentage=self.progress_percentage,
                session_duration_seconds=self.config.session_duration_seconds,
                break_duration_seconds=self.config.break_duration_seconds,
                formatted_time=format_duration(self.time_remaining),
                subject=self.subject,
                current_streak=self.current_streak,
            )

    # ==================== INTERNALS ====================

    def _run(self, event: SessionEvent, subject: Optional[str] = None) -> TransitionResult:
        record = None
        with self._lock:
            previous = self.state
            target = transition(previous, event, self.config)
            if isinstance(target, Rejection):
                return self._rejected(target)

            elapsed_study = None
            session = self.config.session_duration_seconds

            if event == SessionEvent.START:
                self.time_remaining = session
                self._last_tick = self._clock()
                self._started_at = now_local()
                if subject:
                    self.subject = subject

            elif event == SessionEvent.PAUSE:
                self._last_tick = None

            elif event == SessionEvent.RESUME:
                # paused time never counts against the session
                self._last_tick = self._clock()

            elif event == SessionEvent.END:
                elapsed_study = session - self.time_remaining
                record = self._session_record(elapsed_study, completed=False)
                self.current_streak += 1
                self.time_remaining = session
                self._clear_cycle()

            elif event == SessionEvent.RESET:
                self.time_remaining = session
                self.current_streak = 0
                self._clear_cycle()

            self.state = target
            logger.debug("Session %s: %s -> %s", event.value, previous.value, target.value)
            result = self._accepted(event, previous, elapsed_study_seconds=elapsed_study)

        if record is not None:
            self._notify(record)
        return result

    def _expire(self, now: float):
        """Apply the zero-crossing transition. Caller holds the lock."""
        previous = self.state
        target = transition(previous, SessionEvent.EXPIRE, self.config)
        record = None
        completed = False
        elapsed_study = None

        if previous == SessionState.ACTIVE:
            completed = True
            elapsed_study = self.config.session_duration_seconds
            record = self._session_record(elapsed_study, completed=True)
            self.current_streak += 1
            if target == SessionState.BREAK:
                self.time_remaining = self.config.break_duration_seconds
                self._last_tick = now
            else:
                self.time_remaining = 0
                self._last_tick = None
            self._started_at = None
        else:
            # break finished
            self.time_remaining = self.config.session_duration_seconds
            self._clear_cycle()

        self.state = target
        logger.info("Timer expired: %s -> %s", previous.value, target.value)
        result = self._accepted(
            SessionEvent.EXPIRE,
            previous,
            session_completed=completed,
            elapsed_study_seconds=elapsed_study,
        )
        return result, record

    def _clear_cycle(self):
        self._last_tick = None
        self._started_at = None

    def _session_record(self, studied_seconds: int, completed: bool) -> SessionRecord:
        ended_at = now_local()
        return SessionRecord(
            started_at=self._started_at or ended_at,
            ended_at=ended_at,
            planned_seconds=self.config.session_duration_seconds,
            studied_seconds=studied_seconds,
            completed=completed,
            subject=self.subject,
        )

    def _accepted(self, event: SessionEvent, previous: SessionState, **extra) -> TransitionResult:
        return TransitionResult(
            accepted=True,
            event=event,
            previous_state=previous,
            state=self.state,
            time_remaining=self.time_remaining,
            **extra,
        )

    def _rejected(self, rejection: Rejection) -> TransitionResult:
        logger.debug("Rejected %s while %s", rejection.event.value, rejection.state.value)
        return TransitionResult(
            accepted=False,
            event=rejection.event,
            previous_state=rejection.state,
            state=rejection.state,
            time_remaining=self.time_remaining,
            reason=rejection.reason,
        )
