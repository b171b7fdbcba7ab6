from datetime import datetime, timedelta

import pytest

from worktimer_app.core.models import Segment
from worktimer_app.core.recovery import RecoveryError, reconstruct, restore_engine
from worktimer_app.core.states import SegmentType, SessionState
from worktimer_app.core.timer_engine import ZERO, TimerEngine

from fakes import T0, FakeClock


def _at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def _closed(kind: SegmentType, start: float, end: float, duration: float | None = None, sid: str = "") -> Segment:
    return Segment(session_id="s1", type=kind, start=_at(start), end=_at(end), duration_seconds=duration, id=sid)


def _open(kind: SegmentType, start: float, sid: str = "open") -> Segment:
    return Segment(session_id="s1", type=kind, start=_at(start), id=sid)


def test_sums_closed_work_and_break_and_keeps_open_start() -> None:
    segments = [
        _closed(SegmentType.WORK, 0, 100),
        _closed(SegmentType.BREAK, 100, 130),
        _closed(SegmentType.WORK, 130, 400),
        _open(SegmentType.BREAK, 400),
    ]
    recovered = reconstruct(SessionState.BREAK, segments, session_id="s1")
    assert recovered.state == SessionState.BREAK
    assert recovered.accumulated_work == timedelta(seconds=370)
    assert recovered.accumulated_break == timedelta(seconds=30)
    assert recovered.current_segment_start == _at(400)
    assert recovered.overtime_start is None
    assert recovered.open_segment_id == "open"


def test_stored_duration_wins_over_end_minus_start() -> None:
    segments = [_closed(SegmentType.WORK, 0, 100, duration=90.5)]
    recovered = reconstruct("WorkCompleted", segments)
    assert recovered.accumulated_work == timedelta(seconds=90.5)
    assert recovered.current_segment_start is None


def test_overtime_segments_are_never_accumulated() -> None:
    segments = [
        _closed(SegmentType.WORK, 0, 60),
        _open(SegmentType.OVERTIME, 60),
    ]
    recovered = reconstruct(SessionState.OVERTIME, segments)
    assert recovered.accumulated_work == timedelta(seconds=60)
    assert recovered.accumulated_break == ZERO
    assert recovered.overtime_start == _at(60)
    assert recovered.current_segment_start == _at(60)


def test_waiting_state_has_no_open_segment() -> None:
    segments = [_closed(SegmentType.WORK, 0, 60), _closed(SegmentType.BREAK, 60, 120)]
    recovered = reconstruct(SessionState.BREAK_ENDED_WAITING_USER, segments)
    assert recovered.current_segment_start is None
    assert recovered.accumulated_break == timedelta(seconds=60)


def test_multiple_open_segments_raise() -> None:
    segments = [_open(SegmentType.WORK, 0, "a"), _open(SegmentType.WORK, 50, "b")]
    with pytest.raises(RecoveryError, match="open segments"):
        reconstruct(SessionState.WORKING, segments)


@pytest.mark.parametrize("state", [SessionState.WORKING, SessionState.BREAK, SessionState.OVERTIME])
def test_open_state_without_open_segment_raises(state: SessionState) -> None:
    with pytest.raises(RecoveryError, match="requires an open segment"):
        reconstruct(state, [_closed(SegmentType.WORK, 0, 10)])


def test_open_segment_type_must_match_state() -> None:
    with pytest.raises(RecoveryError, match="needs Overtime"):
        reconstruct(SessionState.OVERTIME, [_open(SegmentType.WORK, 0)])


def test_closed_state_with_open_segment_raises() -> None:
    with pytest.raises(RecoveryError, match="cannot have an open"):
        reconstruct(SessionState.WORK_COMPLETED, [_open(SegmentType.WORK, 0)])


def test_missing_or_unknown_state_raises() -> None:
    with pytest.raises(RecoveryError):
        reconstruct(None, [])
    with pytest.raises(RecoveryError, match="unknown active state"):
        reconstruct("Paused", [])


def test_negative_duration_raises() -> None:
    with pytest.raises(RecoveryError, match="negative"):
        reconstruct(SessionState.WORK_COMPLETED, [_closed(SegmentType.WORK, 100, 50)])
    with pytest.raises(RecoveryError, match="negative"):
        reconstruct(SessionState.WORK_COMPLETED, [_closed(SegmentType.WORK, 0, 50, duration=-1.0)])


def test_recovery_error_is_a_value_error() -> None:
    assert issubclass(RecoveryError, ValueError)


def test_restore_engine_reproduces_uninterrupted_totals() -> None:
    clock = FakeClock()
    original = TimerEngine(clock)
    original.configure(60, 30, 0)
    original.start_work()
    segments = [_open(SegmentType.WORK, 0, "w1")]

    clock.current = _at(100)
    original.start_break()
    segments[-1].close(clock.now())
    segments.append(_open(SegmentType.BREAK, 100, "b1"))

    clock.current = _at(130)
    original.end_break_early()
    segments[-1].close(clock.now())
    segments.append(_open(SegmentType.WORK, 130, "w2"))

    clock.current = _at(250)
    recovered_engine = TimerEngine(clock)
    recovered_engine.configure(60, 30, 0)
    restore_engine(recovered_engine, original.state, segments, session_id="s1")

    assert recovered_engine.state == original.state
    assert recovered_engine.accumulated_work == original.accumulated_work
    assert recovered_engine.accumulated_break == original.accumulated_break
    assert recovered_engine.current_segment_start == original.current_segment_start
    assert recovered_engine.remaining_work == original.remaining_work
    assert recovered_engine.session_id == "s1"


def test_restore_engine_leaves_engine_untouched_on_error() -> None:
    engine = TimerEngine(FakeClock())
    with pytest.raises(RecoveryError):
        restore_engine(engine, SessionState.WORKING, [])
    assert engine.state == SessionState.IDLE
    assert engine.drain_events() == []
