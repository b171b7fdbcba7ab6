from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from worktimer_app.core.states import SegmentType, SessionState


def new_id() -> str:
    return uuid4().hex


def parse_instant(raw: Any) -> datetime | None:
    if raw is None or raw == "":
        return None
    value = datetime.fromisoformat(str(raw))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class Segment:
    session_id: str
    type: SegmentType
    start: datetime
    end: datetime | None = None
    duration_seconds: float | None = None
    id: str = ""

    @property
    def is_open(self) -> bool:
        return self.end is None

    @property
    def duration(self) -> timedelta | None:
        if self.end is None:
            return None
        if self.duration_seconds is not None:
            return timedelta(seconds=self.duration_seconds)
        return self.end - self.start

    def close(self, at: datetime) -> None:
        self.end = at
        self.duration_seconds = (at - self.start).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "type": self.type.value,
            "start": _iso(self.start),
            "end": _iso(self.end),
            "duration_seconds": self.duration_seconds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Segment":
        start = parse_instant(data.get("start"))
        if start is None:
            raise ValueError("segment start is required")
        duration = data.get("duration_seconds")
        return cls(
            id=str(data.get("id", "")),
            session_id=str(data.get("session_id", "")),
            type=SegmentType(data.get("type")),
            start=start,
            end=parse_instant(data.get("end")),
            duration_seconds=float(duration) if duration is not None else None,
        )


@dataclass
class Session:
    target_work_minutes: float
    target_break_minutes: float
    created_at: datetime
    date_local: str = ""
    ended_at: datetime | None = None
    # Present while the session is unfinished, cleared on a normal end.
    active_state: SessionState | None = None
    id: str = ""

    @property
    def is_unfinished(self) -> bool:
        return self.ended_at is None and self.active_state is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "date_local": self.date_local,
            "target_work_minutes": self.target_work_minutes,
            "target_break_minutes": self.target_break_minutes,
            "created_at": _iso(self.created_at),
            "ended_at": _iso(self.ended_at),
            "active_state": self.active_state.value if self.active_state is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        created_at = parse_instant(data.get("created_at"))
        if created_at is None:
            raise ValueError("session created_at is required")
        raw_state = data.get("active_state")
        return cls(
            id=str(data.get("id", "")),
            date_local=str(data.get("date_local", "")),
            target_work_minutes=float(data.get("target_work_minutes", 0)),
            target_break_minutes=float(data.get("target_break_minutes", 0)),
            created_at=created_at,
            ended_at=parse_instant(data.get("ended_at")),
            active_state=SessionState(raw_state) if raw_state else None,
        )


@dataclass
class AppSettings:
    work_duration_minutes: int = 480
    break_duration_minutes: int = 60
    # 0 disables overtime reminders.
    overtime_notify_interval_minutes: int = 30

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppSettings":
        defaults = cls()
        values: dict[str, int] = {}
        for name, default in asdict(defaults).items():
            try:
                value = int(data.get(name, default))
            except (TypeError, ValueError):
                value = default
            values[name] = value if value >= 0 else default
        return cls(**values)


@dataclass(frozen=True)
class DaySummary:
    date_local: str
    total_work_seconds: int = 0
    total_break_seconds: int = 0
    total_overtime_seconds: int = 0

    @property
    def work_time(self) -> timedelta:
        return timedelta(seconds=self.total_work_seconds)

    @property
    def break_time(self) -> timedelta:
        return timedelta(seconds=self.total_break_seconds)

    @property
    def overtime_time(self) -> timedelta:
        return timedelta(seconds=self.total_overtime_seconds)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
