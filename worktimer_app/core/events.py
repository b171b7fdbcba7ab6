from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from worktimer_app.core.states import SessionState

BREAK_ENDED = "break_ended"
WORK_COMPLETED = "work_completed"
OVERTIME_NOTIFICATION = "overtime_notification"
STATE_CHANGED = "state_changed"


@dataclass(frozen=True)
class EngineEvent:
    event_type: str
    at: datetime
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"event_type": self.event_type, "at": self.at.isoformat(), "payload": dict(self.payload)}


def break_ended_event(at: datetime) -> EngineEvent:
    return EngineEvent(event_type=BREAK_ENDED, at=at)


def work_completed_event(at: datetime) -> EngineEvent:
    return EngineEvent(event_type=WORK_COMPLETED, at=at)


def overtime_notification_event(at: datetime, elapsed: timedelta) -> EngineEvent:
    return EngineEvent(event_type=OVERTIME_NOTIFICATION, at=at, payload={"elapsed_s": elapsed.total_seconds()})


def state_changed_event(
    at: datetime,
    previous: SessionState,
    state: SessionState,
    restored: bool = False,
) -> EngineEvent:
    return EngineEvent(
        event_type=STATE_CHANGED,
        at=at,
        payload={"previous": previous.value, "state": state.value, "restored": bool(restored)},
    )
