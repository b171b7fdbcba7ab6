from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any, TypeVar

from worktimer_app.core.models import DaySummary, Segment, Session, new_id
from worktimer_app.services.day_summary import summarize_days

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class JsonSessionStore:
    """Sessions and their segments in one JSON document.

    Every write rewrites the whole document through a temp file and
    ``os.replace``, so a crash mid-write leaves the previous version intact.
    Entries that fail to parse are skipped on read and written back unchanged.
    """

    def __init__(self, path: str | Path, fsync_writes: bool = True) -> None:
        self.path = Path(path)
        self.fsync_writes = bool(fsync_writes)
        self._last_bad_records = 0

    def commit(self, sessions: Iterable[Session] = (), segments: Iterable[Segment] = ()) -> None:
        """Insert or replace records by id in a single atomic write."""
        stored_sessions, stored_segments, unparsed = self._read(strict=True)
        for session in sessions:
            if not session.id:
                session.id = new_id()
            self._upsert(stored_sessions, session)
        for segment in segments:
            if not segment.id:
                segment.id = new_id()
            self._upsert(stored_segments, segment)
        self._save(stored_sessions, stored_segments, unparsed)

    # ----- Sessions -----
    def create_session(self, session: Session) -> Session:
        self.commit(sessions=[session])
        return session

    def update_session(self, session: Session) -> None:
        if self.get_session(session.id) is None:
            raise KeyError(f"unknown session id={session.id!r}")
        self.commit(sessions=[session])

    def get_session(self, session_id: str) -> Session | None:
        sessions, _ = self._load()
        return next((s for s in sessions if s.id == session_id), None)

    def get_active_session(self) -> Session | None:
        sessions, _ = self._load()
        unfinished = [s for s in sessions if s.is_unfinished]
        if not unfinished:
            return None
        return max(unfinished, key=lambda s: s.created_at)

    def list_sessions(self) -> list[Session]:
        sessions, _ = self._load()
        return sorted(sessions, key=lambda s: s.created_at)

    # ----- Segments -----
    def create_segment(self, segment: Segment) -> Segment:
        self.commit(segments=[segment])
        return segment

    def update_segment(self, segment: Segment) -> None:
        _, segments = self._load()
        if not any(s.id == segment.id for s in segments):
            raise KeyError(f"unknown segment id={segment.id!r}")
        self.commit(segments=[segment])

    def segments_for_session(self, session_id: str) -> list[Segment]:
        _, segments = self._load()
        return sorted((s for s in segments if s.session_id == session_id), key=lambda s: s.start)

    # ----- Reports -----
    def day_summaries(self, from_utc: datetime, to_utc: datetime) -> list[DaySummary]:
        sessions, segments = self._load()
        return summarize_days(sessions, segments, from_utc, to_utc)

    def last_read_stats(self) -> dict[str, int]:
        return {"bad_records_skipped": self._last_bad_records}

    # ----- Internals -----
    def _upsert(self, items: list[Any], record: Any) -> None:
        for index, item in enumerate(items):
            if item.id == record.id:
                items[index] = record
                return
        items.append(record)

    def _load(self) -> tuple[list[Session], list[Segment]]:
        sessions, segments, _ = self._read()
        return sessions, segments

    def _read(self, strict: bool = False) -> tuple[list[Session], list[Segment], dict[str, list]]:
        """Parsed records plus the raw entries that failed to parse, keyed by section.

        With ``strict`` an unreadable file raises instead of loading as empty, so a
        write never replaces data it could not see.
        """
        self._last_bad_records = 0
        unparsed: dict[str, list] = {"sessions": [], "segments": []}
        if not self.path.exists():
            return [], [], unparsed
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            self._quarantine(exc.msg)
            return [], [], unparsed
        except OSError as exc:
            LOGGER.warning("session store read failed path=%s error=%s", self.path, exc)
            if strict:
                raise
            return [], [], unparsed
        if not isinstance(payload, dict):
            self._quarantine(f"expected an object, got {type(payload).__name__}")
            return [], [], unparsed

        sessions = self._parse_records(payload.get("sessions", []), Session.from_dict, "session", unparsed["sessions"])
        segments = self._parse_records(payload.get("segments", []), Segment.from_dict, "segment", unparsed["segments"])
        return sessions, segments, unparsed

    def _parse_records(self, raw: Any, factory: Callable[[dict], T], kind: str, rejected: list) -> list[T]:
        loaded: list[T] = []
        if not isinstance(raw, list):
            if raw is not None:
                self._last_bad_records += 1
                rejected.append(raw)
                LOGGER.warning("session store bad %s section type=%s", kind, type(raw).__name__)
            return loaded
        for index, item in enumerate(raw):
            try:
                loaded.append(factory(item))
            except (AttributeError, TypeError, ValueError) as exc:
                self._last_bad_records += 1
                # Written back untouched on the next save.
                rejected.append(item)
                LOGGER.warning("session store bad %s index=%s error=%s", kind, index, exc)
        return loaded

    def _quarantine(self, reason: str) -> None:
        # Keep the unreadable file aside so the next save cannot destroy it.
        target = self.path.with_name(f"{self.path.name}.corrupt")
        LOGGER.error("session store corrupt path=%s error=%s moved_to=%s", self.path, reason, target)
        try:
            os.replace(self.path, target)
        except OSError as move_exc:
            LOGGER.warning("session store quarantine failed path=%s error=%s", self.path, move_exc)

    def _save(
        self,
        sessions: list[Session],
        segments: list[Segment],
        unparsed: dict[str, list] | None = None,
    ) -> None:
        unparsed = unparsed or {}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(
            {
                "sessions": [s.to_dict() for s in sessions] + list(unparsed.get("sessions", [])),
                "segments": [s.to_dict() for s in segments] + list(unparsed.get("segments", [])),
            },
            ensure_ascii=True,
            indent=2,
        )
        with NamedTemporaryFile("w", delete=False, encoding="utf-8", dir=str(self.path.parent)) as handle:
            handle.write(payload)
            handle.flush()
            if self.fsync_writes:
                os.fsync(handle.fileno())
            tmp_path = Path(handle.name)
        os.replace(tmp_path, self.path)
