from __future__ import annotations

from datetime import datetime, timedelta

from worktimer_app.core.clock import Clock
from worktimer_app.core.events import (
    EngineEvent,
    break_ended_event,
    overtime_notification_event,
    state_changed_event,
    work_completed_event,
)
from worktimer_app.core.states import OPEN_SEGMENT_STATES, SessionState

ZERO = timedelta(0)
WORK_WARNING_THRESHOLD = timedelta(minutes=10)
BREAK_WARNING_THRESHOLD = timedelta(minutes=2)


class TimerEngine:
    """Workday timing state machine.

    All durations are derived from absolute instants on every read, so they stay
    correct across system sleep and late ticks. ``tick()`` only drives the
    autonomous transitions (work completed, break ended, overtime reminder) and
    must be called by the owner on a short cadence.

    Events are queued in an outbox in emission order. ``tick()`` returns and
    clears the outbox; after a command the owner collects them with
    ``drain_events()``.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock

        self._state = SessionState.IDLE
        self._target_work = ZERO
        self._target_break = ZERO
        self._overtime_notify_minutes: float = 0

        self._work_start: datetime | None = None
        self._break_start: datetime | None = None
        self._overtime_start: datetime | None = None
        self._current_segment_start: datetime | None = None
        self._last_overtime_notify: datetime | None = None

        # Closed segments only; the open one is added on read.
        self._accumulated_work = ZERO
        self._accumulated_break = ZERO

        self._session_id = ""
        self._outbox: list[EngineEvent] = []

    # ----- Read-only state -----
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def target_work(self) -> timedelta:
        return self._target_work

    @property
    def target_break(self) -> timedelta:
        return self._target_break

    @property
    def overtime_notify_interval_minutes(self) -> float:
        return self._overtime_notify_minutes

    @property
    def work_start(self) -> datetime | None:
        return self._work_start

    @property
    def break_start(self) -> datetime | None:
        return self._break_start

    @property
    def overtime_start(self) -> datetime | None:
        return self._overtime_start

    @property
    def current_segment_start(self) -> datetime | None:
        return self._current_segment_start

    @property
    def last_overtime_notify(self) -> datetime | None:
        return self._last_overtime_notify

    @property
    def accumulated_work(self) -> timedelta:
        return self._accumulated_work

    @property
    def accumulated_break(self) -> timedelta:
        return self._accumulated_break

    @property
    def session_id(self) -> str:
        return self._session_id

    @session_id.setter
    def session_id(self, value: str) -> None:
        self._session_id = str(value or "")

    # ----- Derived quantities -----
    def _live_elapsed(self, state: SessionState, now: datetime) -> timedelta:
        if self._state == state and self._current_segment_start is not None:
            return now - self._current_segment_start
        return ZERO

    def _remaining_work(self, now: datetime) -> timedelta:
        return self._target_work - (self._accumulated_work + self._live_elapsed(SessionState.WORKING, now))

    def _remaining_break(self, now: datetime) -> timedelta:
        return self._target_break - (self._accumulated_break + self._live_elapsed(SessionState.BREAK, now))

    def _elapsed_overtime(self, now: datetime) -> timedelta:
        if self._state != SessionState.OVERTIME or self._overtime_start is None:
            return ZERO
        return now - self._overtime_start

    @property
    def remaining_work(self) -> timedelta:
        """Target minus work done. Negative once the target is passed."""
        return self._remaining_work(self._clock.now())

    @property
    def remaining_break(self) -> timedelta:
        return self._remaining_break(self._clock.now())

    @property
    def elapsed_overtime(self) -> timedelta:
        return self._elapsed_overtime(self._clock.now())

    @property
    def total_work_done(self) -> timedelta:
        return self._accumulated_work + self._live_elapsed(SessionState.WORKING, self._clock.now())

    @property
    def total_break_taken(self) -> timedelta:
        return self._accumulated_break + self._live_elapsed(SessionState.BREAK, self._clock.now())

    @property
    def is_warning(self) -> bool:
        now = self._clock.now()
        if self._state == SessionState.WORKING:
            return ZERO < self._remaining_work(now) <= WORK_WARNING_THRESHOLD
        if self._state == SessionState.BREAK:
            return ZERO < self._remaining_break(now) <= BREAK_WARNING_THRESHOLD
        return False

    def snapshot(self) -> dict:
        now = self._clock.now()
        return {
            "state": self._state.value,
            "session_id": self._session_id,
            "remaining_work_s": self._remaining_work(now).total_seconds(),
            "remaining_break_s": self._remaining_break(now).total_seconds(),
            "elapsed_overtime_s": self._elapsed_overtime(now).total_seconds(),
            "accumulated_work_s": self._accumulated_work.total_seconds(),
            "accumulated_break_s": self._accumulated_break.total_seconds(),
            "current_segment_start": self._current_segment_start.isoformat() if self._current_segment_start else None,
        }

    # ----- Outbox -----
    def drain_events(self) -> list[EngineEvent]:
        events = self._outbox
        self._outbox = []
        return events

    def _transition(self, state: SessionState, now: datetime) -> None:
        previous = self._state
        self._state = state
        self._outbox.append(state_changed_event(now, previous, state))

    def _close_segment(self, now: datetime) -> None:
        if self._current_segment_start is None:
            return
        elapsed = now - self._current_segment_start
        if self._state == SessionState.WORKING:
            self._accumulated_work += elapsed
        elif self._state == SessionState.BREAK:
            self._accumulated_break += elapsed
        self._current_segment_start = None

    def _full_reset(self, now: datetime) -> None:
        # Accumulators survive as the totals of the session that just ended.
        self._work_start = None
        self._break_start = None
        self._overtime_start = None
        self._current_segment_start = None
        self._last_overtime_notify = None
        self._session_id = ""
        self._transition(SessionState.IDLE, now)

    # ----- Commands -----
    def configure(self, work_minutes: float, break_minutes: float, overtime_notify_minutes: float) -> bool:
        if min(work_minutes, break_minutes, overtime_notify_minutes) < 0:
            raise ValueError("durations must be non-negative")
        if self._state != SessionState.IDLE:
            return False
        self._target_work = timedelta(minutes=work_minutes)
        self._target_break = timedelta(minutes=break_minutes)
        self._overtime_notify_minutes = overtime_notify_minutes
        return True

    def start_work(self) -> bool:
        if self._state != SessionState.IDLE:
            return False
        now = self._clock.now()
        self._work_start = now
        self._current_segment_start = now
        self._accumulated_work = ZERO
        self._accumulated_break = ZERO
        self._transition(SessionState.WORKING, now)
        return True

    def start_break(self) -> bool:
        if self._state != SessionState.WORKING:
            return False
        now = self._clock.now()
        self._close_segment(now)
        self._break_start = now
        self._current_segment_start = now
        self._transition(SessionState.BREAK, now)
        return True

    def end_break_early(self) -> bool:
        if self._state != SessionState.BREAK:
            return False
        now = self._clock.now()
        self._close_segment(now)
        self._current_segment_start = now
        self._transition(SessionState.WORKING, now)
        return True

    def resume_work(self) -> bool:
        if self._state != SessionState.BREAK_ENDED_WAITING_USER:
            return False
        now = self._clock.now()
        # The break segment was already closed when it ran out.
        self._current_segment_start = now
        self._transition(SessionState.WORKING, now)
        return True

    def start_overtime(self) -> bool:
        if self._state != SessionState.WORK_COMPLETED:
            return False
        now = self._clock.now()
        self._overtime_start = now
        self._current_segment_start = now
        self._last_overtime_notify = now
        self._transition(SessionState.OVERTIME, now)
        return True

    def stop_overtime(self) -> bool:
        if self._state != SessionState.OVERTIME:
            return False
        self._full_reset(self._clock.now())
        return True

    def end_day(self) -> bool:
        if self._state != SessionState.WORK_COMPLETED:
            return False
        self._full_reset(self._clock.now())
        return True

    def end_day_early(self) -> bool:
        if self._state != SessionState.WORKING:
            return False
        now = self._clock.now()
        self._close_segment(now)
        self._full_reset(now)
        return True

    def tick(self) -> list[EngineEvent]:
        now = self._clock.now()
        if self._state == SessionState.WORKING:
            if self._remaining_work(now) <= ZERO:
                self._close_segment(now)
                self._outbox.append(work_completed_event(now))
                self._transition(SessionState.WORK_COMPLETED, now)
        elif self._state == SessionState.BREAK:
            if self._remaining_break(now) <= ZERO:
                self._close_segment(now)
                self._outbox.append(break_ended_event(now))
                self._transition(SessionState.BREAK_ENDED_WAITING_USER, now)
        elif self._state == SessionState.OVERTIME:
            if self._overtime_notify_minutes > 0 and self._last_overtime_notify is not None:
                interval = timedelta(minutes=self._overtime_notify_minutes)
                if now - self._last_overtime_notify >= interval:
                    self._last_overtime_notify = now
                    self._outbox.append(overtime_notification_event(now, self._elapsed_overtime(now)))
        return self.drain_events()

    # ----- Recovery -----
    def restore(
        self,
        state: SessionState,
        accumulated_work: timedelta,
        accumulated_break: timedelta,
        current_segment_start: datetime | None,
        overtime_start: datetime | None,
        session_id: str,
    ) -> None:
        """Set every field directly, bypassing the transition table."""
        state = SessionState(state)
        if (current_segment_start is not None) != (state in OPEN_SEGMENT_STATES):
            raise ValueError(f"current_segment_start does not match state {state.value}")
        if state == SessionState.OVERTIME and overtime_start is None:
            raise ValueError("overtime_start is required to restore Overtime")
        if accumulated_work < ZERO or accumulated_break < ZERO:
            raise ValueError("accumulated durations must be non-negative")

        now = self._clock.now()
        previous = self._state
        self._state = state
        self._accumulated_work = accumulated_work
        self._accumulated_break = accumulated_break
        self._current_segment_start = current_segment_start
        self._work_start = None
        self._break_start = current_segment_start if state == SessionState.BREAK else None
        self._overtime_start = overtime_start if state == SessionState.OVERTIME else None
        self._session_id = str(session_id or "")
        # Seeded so the first reminder is a full interval after resuming.
        self._last_overtime_notify = now if state == SessionState.OVERTIME else None
        self._outbox.append(state_changed_event(now, previous, state, restored=True))
