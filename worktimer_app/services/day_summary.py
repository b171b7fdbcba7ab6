from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime

from worktimer_app.core.models import DaySummary, Segment, Session
from worktimer_app.core.states import SegmentType


def _session_day(session: Session) -> str:
    return session.date_local or session.created_at.date().isoformat()


def summarize_days(
    sessions: Iterable[Session],
    segments: Iterable[Segment],
    from_utc: datetime,
    to_utc: datetime,
) -> list[DaySummary]:
    """Per-day totals of closed segments for sessions created in [from_utc, to_utc), newest first."""
    in_range = {s.id: s for s in sessions if from_utc <= s.created_at < to_utc}
    by_day: dict[str, dict[SegmentType, float]] = defaultdict(lambda: {t: 0.0 for t in SegmentType})

    for segment in segments:
        session = in_range.get(segment.session_id)
        if session is None or segment.is_open:
            continue
        seconds = max(0.0, segment.duration.total_seconds())
        by_day[_session_day(session)][segment.type] += seconds

    return [
        DaySummary(
            date_local=day,
            total_work_seconds=int(totals[SegmentType.WORK]),
            total_break_seconds=int(totals[SegmentType.BREAK]),
            total_overtime_seconds=int(totals[SegmentType.OVERTIME]),
        )
        for day, totals in sorted(by_day.items(), reverse=True)
    ]
