from __future__ import annotations

from enum import Enum


class SessionState(str, Enum):
    IDLE = "Idle"
    WORKING = "Working"
    BREAK = "Break"
    BREAK_ENDED_WAITING_USER = "BreakEndedWaitingUser"
    WORK_COMPLETED = "WorkCompleted"
    OVERTIME = "Overtime"


class SegmentType(str, Enum):
    WORK = "Work"
    BREAK = "Break"
    OVERTIME = "Overtime"


# States in which exactly one segment is open and accruing time.
OPEN_SEGMENT_STATES = frozenset({SessionState.WORKING, SessionState.BREAK, SessionState.OVERTIME})

SEGMENT_TYPE_FOR_STATE = {
    SessionState.WORKING: SegmentType.WORK,
    SessionState.BREAK: SegmentType.BREAK,
    SessionState.OVERTIME: SegmentType.OVERTIME,
}
