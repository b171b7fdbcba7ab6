from __future__ import annotations

import argparse
import json
import random
import shutil
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from worktimer_app.core.events import OVERTIME_NOTIFICATION, BREAK_ENDED, WORK_COMPLETED
from worktimer_app.core.recovery import RecoveryError
from worktimer_app.core.states import SessionState
from worktimer_app.core.timer_engine import ZERO, TimerEngine
from worktimer_app.persistence.session_store_json import JsonSessionStore
from worktimer_app.services.workday_service import WorkdayService

COMMANDS = [
    "start_break",
    "end_break_early",
    "resume_work",
    "start_overtime",
    "stop_overtime",
    "end_day",
    "end_day_early",
]


class SimClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


@dataclass
class Ledger:
    """Wall-clock time spent per state, counted independently of the engine."""

    work: timedelta = ZERO
    brk: timedelta = ZERO
    overtime: timedelta = ZERO

    def reset(self) -> None:
        self.work = ZERO
        self.brk = ZERO
        self.overtime = ZERO

    def advance(self, state: SessionState, delta: timedelta) -> None:
        if state == SessionState.WORKING:
            self.work += delta
        elif state == SessionState.BREAK:
            self.brk += delta
        elif state == SessionState.OVERTIME:
            self.overtime += delta


@dataclass
class Metrics:
    sessions_started: int = 0
    commands_accepted: int = 0
    invalid_rejected: int = 0
    work_completed: int = 0
    breaks_ended: int = 0
    overtime_notifications: int = 0
    time_jumps: int = 0
    recovery_attempted: int = 0
    recovery_passed: int = 0
    recovery_failed: int = 0
    accumulation_violations: int = 0
    side_effect_violations: int = 0
    samples: list[str] = field(default_factory=list)

    def violation(self, text: str) -> None:
        if len(self.samples) < 8:
            self.samples.append(text)


def _legal_commands(state: SessionState) -> list[str]:
    return {
        SessionState.WORKING: ["start_break", "end_day_early"],
        SessionState.BREAK: ["end_break_early"],
        SessionState.BREAK_ENDED_WAITING_USER: ["resume_work"],
        SessionState.WORK_COMPLETED: ["start_overtime", "end_day"],
        SessionState.OVERTIME: ["stop_overtime"],
    }.get(state, [])


def _check_totals(engine: TimerEngine, ledger: Ledger, metrics: Metrics, where: str) -> bool:
    ok = (
        engine.total_work_done == ledger.work
        and engine.total_break_taken == ledger.brk
        and engine.elapsed_overtime == ledger.overtime
    )
    if not ok:
        metrics.violation(
            f"{where}: engine work={engine.total_work_done} break={engine.total_break_taken} "
            f"ot={engine.elapsed_overtime} ledger work={ledger.work} break={ledger.brk} ot={ledger.overtime}"
        )
    return ok


def run_stress_workday(args: argparse.Namespace) -> int:
    rng = random.Random(args.seed)

    workdir = Path(args.workdir).resolve()
    if args.clean and workdir.exists():
        shutil.rmtree(workdir)
    workdir.mkdir(parents=True, exist_ok=True)
    (workdir / "logs").mkdir(parents=True, exist_ok=True)

    if args.mode == "fast":
        work_s = int(args.work_seconds or 90)
        break_s = int(args.break_seconds or 20)
        runtime_s = int((args.minutes or 10.0) * 60)
    else:
        work_s = int(args.work_seconds or 8 * 3600)
        break_s = int(args.break_seconds or 3600)
        runtime_s = int((args.hours or 24.0) * 3600)
    notify_s = max(0, int(args.notify_seconds))
    step_s = max(1, int(args.step_seconds))
    total_steps = max(1, runtime_s // step_s)

    clock = SimClock()
    store = JsonSessionStore(workdir / "sessions.json", fsync_writes=False)
    engine = TimerEngine(clock)
    service = WorkdayService(engine, store, clock)
    ledger = Ledger()
    metrics = Metrics()
    t0 = time.monotonic()

    for _step in range(1, total_steps + 1):
        state = engine.state

        if state == SessionState.IDLE:
            if rng.random() < args.start_rate:
                if service.start_session(work_s / 60, break_s / 60, notify_s / 60):
                    metrics.sessions_started += 1
                    ledger.reset()
        elif rng.random() < args.action_rate:
            legal = _legal_commands(state)
            if legal and getattr(service, rng.choice(legal))():
                metrics.commands_accepted += 1
        events = service.drain_events()

        # Commands from the wrong state must not change anything.
        if rng.random() < args.invalid_rate:
            illegal = [c for c in COMMANDS if c not in _legal_commands(engine.state)]
            before = engine.snapshot()
            if getattr(service, rng.choice(illegal))():
                metrics.side_effect_violations += 1
                metrics.violation(f"illegal command accepted in {engine.state.value}")
            elif engine.snapshot() != before or service.drain_events():
                metrics.side_effect_violations += 1
                metrics.violation(f"rejected command mutated state in {engine.state.value}")
            else:
                metrics.invalid_rejected += 1

        for event in events + service.tick():
            if event.event_type == WORK_COMPLETED:
                metrics.work_completed += 1
            elif event.event_type == BREAK_ENDED:
                metrics.breaks_ended += 1
            elif event.event_type == OVERTIME_NOTIFICATION:
                metrics.overtime_notifications += 1
                if timedelta(seconds=event.payload["elapsed_s"]) != ledger.overtime:
                    metrics.accumulation_violations += 1
                    metrics.violation("overtime notification carried a wrong elapsed value")

        if engine.state != SessionState.IDLE and not _check_totals(engine, ledger, metrics, "live"):
            metrics.accumulation_violations += 1

        # Crash simulation: drop everything in memory, rebuild from the segment log.
        if engine.state != SessionState.IDLE and rng.random() < args.restart_rate:
            metrics.recovery_attempted += 1
            engine = TimerEngine(clock)
            service = WorkdayService(engine, JsonSessionStore(store.path, fsync_writes=False), clock)
            session = service.find_recoverable()
            try:
                if session is None:
                    raise RecoveryError("no unfinished session after crash")
                service.resume(session, notify_s / 60)
                service.drain_events()
            except RecoveryError as exc:
                metrics.recovery_failed += 1
                metrics.violation(f"recovery: {exc}")
                ledger.reset()
            else:
                if _check_totals(engine, ledger, metrics, "recovered"):
                    metrics.recovery_passed += 1
                else:
                    metrics.recovery_failed += 1

        # Sleep / suspend: time passes without ticks.
        advance = step_s
        if rng.random() < args.time_jump_rate:
            metrics.time_jumps += 1
            advance += int(args.time_jump_seconds)
        ledger.advance(engine.state, timedelta(seconds=advance))
        clock.advance(advance)

    fail_reasons: list[str] = []
    if metrics.accumulation_violations > 0:
        fail_reasons.append("engine totals diverged from wall-clock ledger")
    if metrics.side_effect_violations > 0:
        fail_reasons.append("rejected command had side effects")
    if metrics.recovery_failed > 0:
        fail_reasons.append("recovery did not reproduce the uninterrupted totals")

    status = "PASS" if not fail_reasons else "FAIL"
    summary = {
        "status": status,
        "mode": args.mode,
        "seed": args.seed,
        "runtime_simulated_seconds": runtime_s,
        "runtime_wall_seconds": round(time.monotonic() - t0, 3),
        "config": {
            "work_seconds": work_s,
            "break_seconds": break_s,
            "notify_seconds": notify_s,
            "step_seconds": step_s,
            "restart_rate": args.restart_rate,
            "time_jump_rate": args.time_jump_rate,
        },
        "metrics": {
            "sessions_started": metrics.sessions_started,
            "commands_accepted": metrics.commands_accepted,
            "invalid_rejected": metrics.invalid_rejected,
            "work_completed": metrics.work_completed,
            "breaks_ended": metrics.breaks_ended,
            "overtime_notifications": metrics.overtime_notifications,
            "time_jumps": metrics.time_jumps,
            "recovery_checks": {
                "attempted": metrics.recovery_attempted,
                "passed": metrics.recovery_passed,
                "failed": metrics.recovery_failed,
            },
            "accumulation_violations": metrics.accumulation_violations,
            "side_effect_violations": metrics.side_effect_violations,
        },
        "fail_reasons": fail_reasons,
        "samples": metrics.samples,
        "workdir": str(workdir),
    }

    stamp = datetime.now(tz=timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    out_path = workdir / "logs" / f"stress_workday_{stamp}.json"
    out_path.write_text(json.dumps(summary, ensure_ascii=False, indent=2), encoding="utf-8")

    print(json.dumps(summary, ensure_ascii=False, indent=2))
    print(f"log_saved={out_path}")
    return 0 if status == "PASS" else 2


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Workday timer black-box stress harness")
    parser.add_argument("--mode", choices=["fast", "soak"], default="fast")
    parser.add_argument("--minutes", type=float, default=10.0, help="fast mode simulated minutes")
    parser.add_argument("--hours", type=float, default=24.0, help="soak mode simulated hours")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--workdir", default=".stress_workday")
    parser.add_argument("--clean", action="store_true")

    parser.add_argument("--work-seconds", type=int, default=0)
    parser.add_argument("--break-seconds", type=int, default=0)
    parser.add_argument("--notify-seconds", type=int, default=30)
    parser.add_argument("--step-seconds", type=int, default=1)

    parser.add_argument("--start-rate", type=float, default=0.2)
    parser.add_argument("--action-rate", type=float, default=0.03)
    parser.add_argument("--invalid-rate", type=float, default=0.05)
    parser.add_argument("--restart-rate", type=float, default=0.01)
    parser.add_argument("--time-jump-rate", type=float, default=0.01)
    parser.add_argument("--time-jump-seconds", type=int, default=45)
    return parser.parse_args()


if __name__ == "__main__":
    raise SystemExit(run_stress_workday(parse_args()))
