from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from worktimer_app.core.clock import Clock
from worktimer_app.core.events import STATE_CHANGED, EngineEvent
from worktimer_app.core.models import Segment, Session, new_id
from worktimer_app.core.recovery import RecoveredTimers, RecoveryError, restore_engine
from worktimer_app.core.states import SegmentType, SessionState
from worktimer_app.core.timer_engine import TimerEngine
from worktimer_app.persistence.session_store_json import JsonSessionStore

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class _SegmentPlan:
    close_open: bool = False
    open_type: SegmentType | None = None
    begin_session: bool = False
    end_session: bool = False


_S = SessionState
_PLANS: dict[tuple[SessionState, SessionState], _SegmentPlan] = {
    (_S.IDLE, _S.WORKING): _SegmentPlan(open_type=SegmentType.WORK, begin_session=True),
    (_S.WORKING, _S.BREAK): _SegmentPlan(close_open=True, open_type=SegmentType.BREAK),
    (_S.BREAK, _S.WORKING): _SegmentPlan(close_open=True, open_type=SegmentType.WORK),
    (_S.BREAK_ENDED_WAITING_USER, _S.WORKING): _SegmentPlan(open_type=SegmentType.WORK),
    (_S.WORK_COMPLETED, _S.OVERTIME): _SegmentPlan(open_type=SegmentType.OVERTIME),
    (_S.WORKING, _S.WORK_COMPLETED): _SegmentPlan(close_open=True),
    (_S.BREAK, _S.BREAK_ENDED_WAITING_USER): _SegmentPlan(close_open=True),
    (_S.OVERTIME, _S.IDLE): _SegmentPlan(close_open=True, end_session=True),
    (_S.WORK_COMPLETED, _S.IDLE): _SegmentPlan(end_session=True),
    (_S.WORKING, _S.IDLE): _SegmentPlan(close_open=True, end_session=True),
}


class WorkdayService:
    """
    Keeps the persisted segment log in step with the engine:
    - one Session per workday, `active_state` mirrored after each transition
    - one open Segment while Working / Break / Overtime
    - each transition is written in a single store commit
    """

    def __init__(self, engine: TimerEngine, store: JsonSessionStore, clock: Clock) -> None:
        self.engine = engine
        self.store = store
        self._clock = clock

        self._session: Session | None = None
        self._open_segment: Segment | None = None
        self._outbox: list[EngineEvent] = []

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def open_segment(self) -> Segment | None:
        return self._open_segment

    def drain_events(self) -> list[EngineEvent]:
        events = self._outbox
        self._outbox = []
        return events

    # ----- Commands -----
    def start_session(self, work_minutes: float, break_minutes: float, overtime_notify_minutes: float) -> bool:
        if not self.engine.configure(work_minutes, break_minutes, overtime_notify_minutes):
            LOGGER.debug("rejected command=start_session state=%s", self.engine.state.value)
            return False
        return self._run("start_work", self.engine.start_work)

    def start_break(self) -> bool:
        return self._run("start_break", self.engine.start_break)

    def end_break_early(self) -> bool:
        return self._run("end_break_early", self.engine.end_break_early)

    def resume_work(self) -> bool:
        return self._run("resume_work", self.engine.resume_work)

    def start_overtime(self) -> bool:
        return self._run("start_overtime", self.engine.start_overtime)

    def stop_overtime(self) -> bool:
        return self._run("stop_overtime", self.engine.stop_overtime)

    def end_day(self) -> bool:
        return self._run("end_day", self.engine.end_day)

    def end_day_early(self) -> bool:
        return self._run("end_day_early", self.engine.end_day_early)

    def tick(self) -> list[EngineEvent]:
        self._apply(self.engine.tick())
        return self.drain_events()

    # ----- Recovery -----
    def find_recoverable(self) -> Session | None:
        return self.store.get_active_session()

    def resume(self, session: Session, overtime_notify_minutes: float) -> RecoveredTimers | None:
        """Restore the engine from the session's segments. RecoveryError propagates."""
        if self.engine.state != SessionState.IDLE or self._session is not None:
            return None
        segments = self.store.segments_for_session(session.id)
        try:
            self.engine.configure(session.target_work_minutes, session.target_break_minutes, overtime_notify_minutes)
        except ValueError as exc:
            raise RecoveryError(f"session {session.id} has invalid targets: {exc}") from exc
        recovered = restore_engine(self.engine, session.active_state, segments, session_id=session.id)

        self._session = session
        self._open_segment = next((s for s in segments if s.id == recovered.open_segment_id), None)
        LOGGER.info(
            "resumed session=%s state=%s work=%s break=%s",
            session.id,
            recovered.state.value,
            recovered.accumulated_work,
            recovered.accumulated_break,
        )
        self._apply(self.engine.drain_events())
        if recovered.state == SessionState.IDLE:
            # Interrupted right after its last transition; nothing left to run.
            self._finish(session, self._clock.now())
        return recovered

    def discard(self, session: Session) -> None:
        self._finish(session, self._clock.now())
        LOGGER.info("discarded session=%s", session.id)

    # ----- Internals -----
    def _run(self, name: str, command: Callable[[], bool]) -> bool:
        if not command():
            LOGGER.debug("rejected command=%s state=%s", name, self.engine.state.value)
            return False
        self._apply(self.engine.drain_events())
        return True

    def _apply(self, events: list[EngineEvent]) -> None:
        for event in events:
            if event.event_type == STATE_CHANGED:
                self._on_state_changed(event)
            self._outbox.append(event)

    def _on_state_changed(self, event: EngineEvent) -> None:
        previous = SessionState(event.payload["previous"])
        state = SessionState(event.payload["state"])
        at = event.at

        if event.payload.get("restored"):
            self._write_active_state(state)
            return

        plan = _PLANS.get((previous, state))
        if plan is None:
            LOGGER.warning("no segment plan for transition %s -> %s", previous.value, state.value)
            self._write_active_state(state)
            return

        if plan.begin_session:
            self._session = self._new_session(at)
            self.engine.session_id = self._session.id
        session = self._session
        if session is None:
            LOGGER.warning("transition %s -> %s without a session", previous.value, state.value)
            return

        changed: list[Segment] = []
        if plan.close_open and self._open_segment is not None:
            self._open_segment.close(at)
            changed.append(self._open_segment)
            self._open_segment = None
        if plan.open_type is not None:
            self._open_segment = Segment(session_id=session.id, type=plan.open_type, start=at, id=new_id())
            changed.append(self._open_segment)

        if plan.end_session:
            session.ended_at = at
            session.active_state = None
        else:
            session.active_state = state
        self.store.commit(sessions=[session], segments=changed)

        LOGGER.info("transition %s -> %s session=%s at=%s", previous.value, state.value, session.id, at.isoformat())
        if plan.end_session:
            self._session = None

    def _new_session(self, at: datetime) -> Session:
        return Session(
            id=new_id(),
            target_work_minutes=self.engine.target_work.total_seconds() / 60,
            target_break_minutes=self.engine.target_break.total_seconds() / 60,
            created_at=at,
            date_local=at.astimezone().date().isoformat(),
            active_state=SessionState.WORKING,
        )

    def _write_active_state(self, state: SessionState) -> None:
        session = self._session
        if session is None or session.ended_at is not None or session.active_state == state:
            return
        session.active_state = state
        self.store.commit(sessions=[session])

    def _finish(self, session: Session, at: datetime) -> None:
        session.ended_at = at
        session.active_state = None
        self.store.commit(sessions=[session])
        if self._session is not None and self._session.id == session.id:
            self._session = None
            self._open_segment = None
