from __future__ import annotations

import logging
from collections.abc import Callable

from worktimer_app.config import WorktimerConfig
from worktimer_app.core.clock import Clock, SystemClock
from worktimer_app.core.events import EngineEvent
from worktimer_app.core.models import AppSettings
from worktimer_app.core.recovery import RecoveryError
from worktimer_app.core.states import SessionState
from worktimer_app.core.timer_engine import TimerEngine
from worktimer_app.log_setup import configure_logging
from worktimer_app.persistence.session_store_json import JsonSessionStore
from worktimer_app.persistence.settings_json import SettingsStorage
from worktimer_app.services.workday_service import WorkdayService
from worktimer_app.ui.renderer import Renderer
from worktimer_app.ui.shell_qt import WorktimerShell

LOGGER = logging.getLogger(__name__)


class WorktimerController:
    def __init__(self, config: WorktimerConfig, clock: Clock | None = None) -> None:
        self.config = config
        self.clock = clock or SystemClock()

        self.settings_storage = SettingsStorage(config.settings_path)
        self.settings = self.settings_storage.load()
        self.store = JsonSessionStore(config.sessions_path, fsync_writes=config.fsync_writes)
        self.engine = TimerEngine(self.clock)
        self.service = WorkdayService(self.engine, self.store, self.clock)
        self.renderer = Renderer()

        self.shell = WorktimerShell(handlers=self._handlers(), on_quit=self.on_quit)

    def _handlers(self) -> dict[str, Callable[[], None]]:
        service = self.service
        return {
            "start": self._command(self._start_from_settings),
            "start_break": self._command(service.start_break),
            "end_break_early": self._command(service.end_break_early),
            "resume_work": self._command(service.resume_work),
            "start_overtime": self._command(service.start_overtime),
            "stop_overtime": self._command(service.stop_overtime),
            "end_day": self._command(service.end_day),
            "end_day_early": self._command(service.end_day_early),
        }

    def _command(self, action: Callable[[], bool]) -> Callable[[], None]:
        def handler() -> None:
            action()
            self._dispatch(self.service.drain_events())
            self.refresh()

        return handler

    def _start_from_settings(self) -> bool:
        if self.engine.state != SessionState.IDLE:
            return False
        current = self.settings
        chosen = self.shell.ask_durations(
            current.work_duration_minutes,
            current.break_duration_minutes,
            current.overtime_notify_interval_minutes,
        )
        if chosen is None:
            LOGGER.debug("workday setup cancelled")
            return False

        # The day's choice becomes the default for the next one.
        work, brk, notify = chosen
        settings = AppSettings(
            work_duration_minutes=work,
            break_duration_minutes=brk,
            overtime_notify_interval_minutes=notify,
        )
        if settings != current:
            self.settings_storage.save(settings)
            LOGGER.info("settings saved work=%s break=%s overtime_notify=%s", work, brk, notify)
        self.settings = settings
        return self.service.start_session(
            settings.work_duration_minutes,
            settings.break_duration_minutes,
            settings.overtime_notify_interval_minutes,
        )

    def _dispatch(self, events: list[EngineEvent]) -> None:
        for event in events:
            note = self.renderer.notification_for(event)
            if note is None:
                continue
            title, message = note
            LOGGER.info("notify event=%s title=%s", event.event_type, title)
            self.shell.notify(title, message)

    def _offer_recovery(self) -> None:
        session = self.service.find_recoverable()
        if session is None:
            return

        prompt = self.renderer.recovery_prompt(session.active_state, session.date_local)
        if not self.shell.ask_resume(prompt):
            self.service.discard(session)
            return

        try:
            self.service.resume(session, self.settings.overtime_notify_interval_minutes)
        except RecoveryError as exc:
            LOGGER.error("recovery failed session=%s error=%s", session.id, exc)
            self.shell.show_error(
                "Recovery failed",
                f"The unfinished workday could not be restored: {exc}\nIt was closed without changes to its segments.",
            )
            self.service.discard(session)
            return
        self._dispatch(self.service.drain_events())

    def refresh(self) -> None:
        self.shell.update_view(self.renderer.view_for(self.engine))

    def on_tick(self) -> None:
        self._dispatch(self.service.tick())
        self.refresh()

    def on_quit(self) -> None:
        LOGGER.info("quit state=%s session=%s", self.engine.state.value, self.engine.session_id)

    def run(self) -> None:
        self.refresh()
        self._offer_recovery()
        self.refresh()
        self.shell.schedule_every(self.config.tick_seconds, self.on_tick)
        self.shell.run()


def create_default_controller() -> WorktimerController:
    config = WorktimerConfig.from_env()
    configure_logging(config)
    LOGGER.info("worktimer starting data_dir=%s tick_ms=%s", config.data_dir, config.tick_ms)
    return WorktimerController(config=config)


def main() -> int:
    create_default_controller().run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
