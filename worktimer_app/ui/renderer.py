from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from worktimer_app.core.events import BREAK_ENDED, OVERTIME_NOTIFICATION, WORK_COMPLETED, EngineEvent
from worktimer_app.core.states import SessionState
from worktimer_app.core.timer_engine import ZERO, TimerEngine

APP_TITLE = "Work Timer"

STATE_LABELS = {
    SessionState.IDLE: "Stopped",
    SessionState.WORKING: "Work",
    SessionState.BREAK: "Break",
    SessionState.BREAK_ENDED_WAITING_USER: "Break over",
    SessionState.WORK_COMPLETED: "Workday complete",
    SessionState.OVERTIME: "Overtime",
}


@dataclass(frozen=True)
class TimerView:
    state: SessionState
    display_time: str
    state_label: str
    progress: float
    badge: str
    tray_text: str


def format_hms(value: timedelta) -> str:
    total = max(0, int(value.total_seconds()))
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def _progress(remaining: timedelta, target: timedelta) -> float:
    if target <= ZERO:
        return 1.0
    remaining = max(ZERO, remaining)
    return min(1.0, max(0.0, 1.0 - remaining / target))


class Renderer:
    def view_for(self, engine: TimerEngine) -> TimerView:
        state = engine.state
        label = STATE_LABELS[state]
        progress = 0.0
        display = "00:00:00"

        if state == SessionState.WORKING:
            remaining = engine.remaining_work
            display = format_hms(remaining)
            progress = _progress(remaining, engine.target_work)
            badge = "warning" if engine.is_warning else "working"
        elif state == SessionState.BREAK:
            remaining = engine.remaining_break
            display = format_hms(remaining)
            progress = _progress(remaining, engine.target_break)
            badge = "warning" if engine.is_warning else "neutral"
        elif state == SessionState.BREAK_ENDED_WAITING_USER:
            progress = 1.0
            badge = "neutral"
        elif state == SessionState.WORK_COMPLETED:
            progress = 1.0
            badge = "working"
        elif state == SessionState.OVERTIME:
            display = format_hms(engine.elapsed_overtime)
            badge = "overtime"
        else:
            display = format_hms(engine.target_work)
            badge = "idle"

        tray = f"{APP_TITLE} (stopped)" if state == SessionState.IDLE else f"{label}: {display}"
        return TimerView(
            state=state,
            display_time=display,
            state_label=label,
            progress=progress,
            badge=badge,
            tray_text=tray,
        )

    def notification_for(self, event: EngineEvent) -> tuple[str, str] | None:
        if event.event_type == BREAK_ENDED:
            return "Break over", "Your break has ended. Resume work when you are ready."
        if event.event_type == WORK_COMPLETED:
            return "Workday complete", "You reached today's work target."
        if event.event_type == OVERTIME_NOTIFICATION:
            elapsed = timedelta(seconds=float(event.payload.get("elapsed_s", 0.0)))
            return "Overtime", f"You have been working overtime for {format_hms(elapsed)}."
        return None

    def recovery_prompt(self, state: SessionState, date_local: str) -> str:
        return f"An unfinished workday from {date_local} was found ({STATE_LABELS[state]}). Resume it?"
