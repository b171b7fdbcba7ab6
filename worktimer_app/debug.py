from __future__ import annotations

import argparse
import json
from datetime import datetime, timedelta, timezone

from worktimer_app.config import WorktimerConfig
from worktimer_app.core.clock import SystemClock
from worktimer_app.core.recovery import RecoveryError, restore_engine
from worktimer_app.core.timer_engine import TimerEngine
from worktimer_app.persistence.session_store_json import JsonSessionStore
from worktimer_app.persistence.settings_json import SettingsStorage


def _config() -> WorktimerConfig:
    return WorktimerConfig.from_env()


def _store() -> JsonSessionStore:
    return JsonSessionStore(_config().sessions_path)


def _cmd_config(_args: argparse.Namespace) -> int:
    cfg = _config()
    payload = {
        "data_dir": str(cfg.data_dir),
        "sessions_path": str(cfg.sessions_path),
        "settings_path": str(cfg.settings_path),
        "log_dir": str(cfg.log_dir),
        "tick_ms": cfg.tick_ms,
        "log_level": cfg.log_level,
        "log_console": cfg.log_console,
        "fsync_writes": cfg.fsync_writes,
    }
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


def _cmd_settings(_args: argparse.Namespace) -> int:
    settings = SettingsStorage(_config().settings_path).load()
    print(json.dumps(settings.to_dict(), ensure_ascii=False, indent=2))
    return 0


def _cmd_status(_args: argparse.Namespace) -> int:
    store = _store()
    session = store.get_active_session()
    if session is None:
        print(json.dumps({"active_session": None}, ensure_ascii=False, indent=2))
        return 0

    settings = SettingsStorage(_config().settings_path).load()
    engine = TimerEngine(SystemClock())
    segments = store.segments_for_session(session.id)
    payload: dict = {"active_session": session.to_dict(), "segments": len(segments)}
    try:
        try:
            engine.configure(
                session.target_work_minutes,
                session.target_break_minutes,
                settings.overtime_notify_interval_minutes,
            )
        except ValueError as exc:
            raise RecoveryError(f"session {session.id} has invalid targets: {exc}") from exc
        restore_engine(engine, session.active_state, segments, session_id=session.id)
    except RecoveryError as exc:
        payload["recovery_error"] = str(exc)
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 2
    payload["engine"] = engine.snapshot()
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


def _cmd_segments(args: argparse.Namespace) -> int:
    for segment in _store().segments_for_session(args.session):
        end = segment.end.isoformat() if segment.end else "open"
        duration = f"{segment.duration_seconds:.3f}" if segment.duration_seconds is not None else "-"
        print(f"{segment.start.isoformat()} | {end:32s} | {segment.type.value:8s} | {duration:>12s} | {segment.id}")
    return 0


def _cmd_history(args: argparse.Namespace) -> int:
    to_utc = datetime.now(tz=timezone.utc)
    from_utc = to_utc - timedelta(days=max(1, int(args.days)))
    summaries = _store().day_summaries(from_utc, to_utc)
    if not summaries:
        print("no sessions in range")
        return 0
    for day in summaries:
        print(
            f"{day.date_local} work={day.total_work_seconds}s "
            f"break={day.total_break_seconds}s overtime={day.total_overtime_seconds}s"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="python -m worktimer_app.debug")
    subparsers = parser.add_subparsers(dest="cmd", required=True)

    p_config = subparsers.add_parser("config", help="Show effective config")
    p_config.set_defaults(func=_cmd_config)

    p_settings = subparsers.add_parser("settings", help="Show saved settings")
    p_settings.set_defaults(func=_cmd_settings)

    p_status = subparsers.add_parser("status", help="Show the unfinished session and its reconstructed timers")
    p_status.set_defaults(func=_cmd_status)

    p_segments = subparsers.add_parser("segments", help="List the segments of a session")
    p_segments.add_argument("--session", required=True)
    p_segments.set_defaults(func=_cmd_segments)

    p_history = subparsers.add_parser("history", help="Per-day totals")
    p_history.add_argument("--days", type=int, default=30)
    p_history.set_defaults(func=_cmd_history)

    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
