"""Rebuild live engine state from a session's persisted segment log.

Closed Work and Break segments are summed into the accumulators; the single
open segment marks where the process was interrupted and becomes the engine's
current segment start. Overtime is never accumulated: it is always counted
live from its own start.

Input that does not describe exactly one consistent engine state raises
``RecoveryError``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from worktimer_app.core.models import Segment
from worktimer_app.core.states import OPEN_SEGMENT_STATES, SEGMENT_TYPE_FOR_STATE, SegmentType, SessionState
from worktimer_app.core.timer_engine import ZERO, TimerEngine

LOGGER = logging.getLogger(__name__)


class RecoveryError(ValueError):
    pass


@dataclass(frozen=True)
class RecoveredTimers:
    state: SessionState
    accumulated_work: timedelta
    accumulated_break: timedelta
    current_segment_start: datetime | None
    overtime_start: datetime | None
    session_id: str = ""
    open_segment_id: str = ""


def reconstruct(
    active_state: SessionState | str | None,
    segments: Iterable[Segment],
    session_id: str = "",
) -> RecoveredTimers:
    if active_state is None or active_state == "":
        raise RecoveryError("session has no active state to recover")
    try:
        state = SessionState(active_state)
    except ValueError as exc:
        raise RecoveryError(f"unknown active state: {active_state!r}") from exc

    accumulated_work = ZERO
    accumulated_break = ZERO
    open_segments: list[Segment] = []

    for segment in segments:
        if segment.is_open:
            open_segments.append(segment)
            continue
        duration = segment.duration
        if segment.end < segment.start or duration < ZERO:
            raise RecoveryError(f"segment {segment.id or '?'} has a negative duration")
        if segment.type == SegmentType.WORK:
            accumulated_work += duration
        elif segment.type == SegmentType.BREAK:
            accumulated_break += duration

    if len(open_segments) > 1:
        ids = ", ".join(s.id or "?" for s in open_segments)
        raise RecoveryError(f"{len(open_segments)} open segments found ({ids}); expected at most one")

    open_segment = open_segments[0] if open_segments else None
    if state in OPEN_SEGMENT_STATES:
        if open_segment is None:
            raise RecoveryError(f"state {state.value} requires an open segment but none was found")
        expected_type = SEGMENT_TYPE_FOR_STATE[state]
        if open_segment.type != expected_type:
            raise RecoveryError(
                f"open segment is {open_segment.type.value} but state {state.value} needs {expected_type.value}"
            )
    elif open_segment is not None:
        raise RecoveryError(f"state {state.value} cannot have an open {open_segment.type.value} segment")

    current_segment_start = open_segment.start if open_segment is not None else None
    recovered = RecoveredTimers(
        state=state,
        accumulated_work=accumulated_work,
        accumulated_break=accumulated_break,
        current_segment_start=current_segment_start,
        overtime_start=current_segment_start if state == SessionState.OVERTIME else None,
        session_id=session_id,
        open_segment_id=open_segment.id if open_segment is not None else "",
    )
    LOGGER.debug(
        "reconstructed session=%s state=%s work=%s break=%s open_since=%s",
        session_id,
        state.value,
        accumulated_work,
        accumulated_break,
        current_segment_start,
    )
    return recovered


def restore_engine(
    engine: TimerEngine,
    active_state: SessionState | str | None,
    segments: Iterable[Segment],
    session_id: str = "",
) -> RecoveredTimers:
    recovered = reconstruct(active_state, segments, session_id=session_id)
    engine.restore(
        recovered.state,
        recovered.accumulated_work,
        recovered.accumulated_break,
        recovered.current_segment_start,
        recovered.overtime_start,
        recovered.session_id,
    )
    return recovered
