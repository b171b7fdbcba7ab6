from datetime import timedelta

from worktimer_app.controller import WorktimerController
from worktimer_app.core.models import AppSettings, Segment, Session
from worktimer_app.core.states import SegmentType, SessionState
from worktimer_app.core.timer_engine import TimerEngine
from worktimer_app.persistence.session_store_json import JsonSessionStore
from worktimer_app.persistence.settings_json import SettingsStorage
from worktimer_app.services.workday_service import WorkdayService
from worktimer_app.ui.renderer import Renderer

from fakes import T0, FakeClock


class FakeShell:
    def __init__(
        self,
        resume_answer: bool = True,
        durations: tuple[int, int, int] | None = None,
        cancel_setup: bool = False,
    ) -> None:
        self.resume_answer = resume_answer
        self.durations = durations
        self.cancel_setup = cancel_setup
        self.duration_prompts: list[tuple[int, int, int]] = []
        self.views = []
        self.notifications: list[tuple[str, str]] = []
        self.errors: list[tuple[str, str]] = []
        self.prompts: list[str] = []

    def update_view(self, view) -> None:
        self.views.append(view)

    def notify(self, title: str, message: str) -> None:
        self.notifications.append((title, message))

    def ask_resume(self, text: str) -> bool:
        self.prompts.append(text)
        return self.resume_answer

    def show_error(self, title: str, message: str) -> None:
        self.errors.append((title, message))

    def ask_durations(self, work: int, brk: int, notify: int) -> tuple[int, int, int] | None:
        self.duration_prompts.append((work, brk, notify))
        if self.cancel_setup:
            return None
        return self.durations or (work, brk, notify)


def _controller(tmp_path, shell: FakeShell | None = None) -> WorktimerController:
    controller = WorktimerController.__new__(WorktimerController)
    controller.clock = FakeClock()
    controller.settings_storage = SettingsStorage(tmp_path / "settings.json")
    controller.settings = AppSettings(work_duration_minutes=1, break_duration_minutes=1, overtime_notify_interval_minutes=0)
    controller.store = JsonSessionStore(tmp_path / "sessions.json", fsync_writes=False)
    controller.engine = TimerEngine(controller.clock)
    controller.service = WorkdayService(controller.engine, controller.store, controller.clock)
    controller.renderer = Renderer()
    controller.shell = shell or FakeShell()
    return controller


def test_start_handler_uses_settings_and_refreshes(tmp_path) -> None:
    controller = _controller(tmp_path)
    controller._handlers()["start"]()
    assert controller.engine.state == SessionState.WORKING
    assert controller.engine.target_work == timedelta(minutes=1)
    assert controller.shell.views[-1].state == SessionState.WORKING


def test_tick_dispatches_notifications(tmp_path) -> None:
    controller = _controller(tmp_path)
    controller._handlers()["start"]()
    controller.clock.current = T0 + timedelta(seconds=61)
    controller.on_tick()
    assert controller.shell.notifications[0][0] == "Workday complete"
    assert controller.shell.views[-1].state == SessionState.WORK_COMPLETED


def test_illegal_handler_is_harmless(tmp_path) -> None:
    controller = _controller(tmp_path)
    controller._handlers()["stop_overtime"]()
    assert controller.engine.state == SessionState.IDLE
    assert controller.shell.notifications == []
    assert len(controller.shell.views) == 1


def _leave_unfinished_session(tmp_path, extra_open: bool = False) -> str:
    clock = FakeClock()
    store = JsonSessionStore(tmp_path / "sessions.json", fsync_writes=False)
    service = WorkdayService(TimerEngine(clock), store, clock)
    service.start_session(60, 10, 0)
    sid = service.session.id
    if extra_open:
        store.create_segment(Segment(session_id=sid, type=SegmentType.BREAK, start=clock.now()))
    return sid


def test_offer_recovery_resumes_when_accepted(tmp_path) -> None:
    sid = _leave_unfinished_session(tmp_path)
    controller = _controller(tmp_path)
    controller.clock.current = T0 + timedelta(minutes=5)
    controller._offer_recovery()
    assert controller.shell.prompts
    assert controller.engine.state == SessionState.WORKING
    assert controller.engine.session_id == sid
    assert controller.engine.total_work_done == timedelta(minutes=5)


def test_offer_recovery_discards_when_declined(tmp_path) -> None:
    sid = _leave_unfinished_session(tmp_path)
    controller = _controller(tmp_path, FakeShell(resume_answer=False))
    controller._offer_recovery()
    assert controller.engine.state == SessionState.IDLE
    assert controller.store.get_session(sid).ended_at is not None


def test_offer_recovery_reports_malformed_log(tmp_path) -> None:
    sid = _leave_unfinished_session(tmp_path, extra_open=True)
    controller = _controller(tmp_path)
    controller._offer_recovery()
    assert controller.engine.state == SessionState.IDLE
    assert controller.shell.errors and controller.shell.errors[0][0] == "Recovery failed"
    assert controller.store.get_active_session() is None
    assert controller.store.get_session(sid).ended_at is not None


def test_offer_recovery_noop_without_session(tmp_path) -> None:
    controller = _controller(tmp_path)
    controller._offer_recovery()
    assert controller.shell.prompts == []


def test_start_saves_chosen_durations_as_new_defaults(tmp_path) -> None:
    controller = _controller(tmp_path, FakeShell(durations=(450, 45, 20)))
    controller._handlers()["start"]()

    assert controller.shell.duration_prompts == [(1, 1, 0)]
    assert controller.engine.state == SessionState.WORKING
    assert controller.engine.target_work == timedelta(minutes=450)
    assert controller.engine.target_break == timedelta(minutes=45)
    saved = SettingsStorage(tmp_path / "settings.json").load()
    assert saved == AppSettings(work_duration_minutes=450, break_duration_minutes=45, overtime_notify_interval_minutes=20)
    assert controller.settings == saved
    assert controller.service.session.target_work_minutes == 450


def test_cancelled_setup_starts_nothing(tmp_path) -> None:
    controller = _controller(tmp_path, FakeShell(cancel_setup=True))
    controller._handlers()["start"]()

    assert controller.engine.state == SessionState.IDLE
    assert controller.service.session is None
    assert controller.store.list_sessions() == []
    assert not (tmp_path / "settings.json").exists()


def test_unchanged_durations_are_not_rewritten(tmp_path) -> None:
    controller = _controller(tmp_path)
    controller._handlers()["start"]()
    assert controller.engine.state == SessionState.WORKING
    assert not (tmp_path / "settings.json").exists()


def test_setup_is_not_offered_while_a_day_is_running(tmp_path) -> None:
    controller = _controller(tmp_path)
    controller._handlers()["start"]()
    controller._handlers()["start"]()
    assert len(controller.shell.duration_prompts) == 1


def test_offer_recovery_reports_invalid_targets(tmp_path) -> None:
    store = JsonSessionStore(tmp_path / "sessions.json", fsync_writes=False)
    session = store.create_session(
        Session(
            target_work_minutes=-5,
            target_break_minutes=10,
            created_at=T0,
            date_local="2026-03-02",
            active_state=SessionState.WORKING,
        )
    )
    store.create_segment(Segment(session_id=session.id, type=SegmentType.WORK, start=T0))

    controller = _controller(tmp_path)
    controller._offer_recovery()
    assert controller.engine.state == SessionState.IDLE
    assert controller.shell.errors[0][0] == "Recovery failed"
    assert "invalid targets" in controller.shell.errors[0][1]
    assert controller.store.get_session(session.id).ended_at is not None
