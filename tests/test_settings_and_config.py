import logging
from pathlib import Path

from worktimer_app.config import WorktimerConfig
from worktimer_app.core.models import AppSettings
from worktimer_app.log_setup import PACKAGE_LOGGER, configure_logging
from worktimer_app.persistence.settings_json import SettingsStorage


def test_settings_default_when_missing(tmp_path) -> None:
    settings = SettingsStorage(tmp_path / "settings.json").load()
    assert settings == AppSettings(480, 60, 30)


def test_settings_save_and_load(tmp_path) -> None:
    storage = SettingsStorage(tmp_path / "nested" / "settings.json")
    storage.save(AppSettings(work_duration_minutes=420, break_duration_minutes=45, overtime_notify_interval_minutes=0))
    assert storage.load() == AppSettings(420, 45, 0)


def test_settings_corrupt_or_invalid_fall_back(tmp_path, caplog) -> None:
    path = tmp_path / "settings.json"
    path.write_text("[oops", encoding="utf-8")
    with caplog.at_level(logging.WARNING):
        assert SettingsStorage(path).load() == AppSettings()
    assert "settings unreadable" in caplog.text

    path.write_text('{"work_duration_minutes": "abc", "break_duration_minutes": -5}', encoding="utf-8")
    assert SettingsStorage(path).load() == AppSettings()

    path.write_text('["not", "a", "dict"]', encoding="utf-8")
    assert SettingsStorage(path).load() == AppSettings()


def test_config_from_env(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("WORKTIMER_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("WORKTIMER_TICK_MS", "10")
    monkeypatch.setenv("WORKTIMER_LOG_LEVEL", "debug")
    monkeypatch.setenv("WORKTIMER_LOG_CONSOLE", "yes")
    monkeypatch.setenv("WORKTIMER_FSYNC", "0")

    cfg = WorktimerConfig.from_env()
    assert cfg.data_dir == Path(tmp_path)
    assert cfg.tick_ms == 50
    assert cfg.tick_seconds == 0.05
    assert cfg.log_level == "DEBUG"
    assert cfg.log_console is True
    assert cfg.fsync_writes is False
    assert cfg.sessions_path == Path(tmp_path) / "sessions.json"
    assert cfg.settings_path == Path(tmp_path) / "settings.json"


def test_config_defaults(monkeypatch, tmp_path) -> None:
    for name in ("WORKTIMER_TICK_MS", "WORKTIMER_LOG_LEVEL", "WORKTIMER_LOG_CONSOLE", "WORKTIMER_FSYNC"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("WORKTIMER_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("WORKTIMER_TICK_MS", "not-a-number")

    cfg = WorktimerConfig.from_env()
    assert cfg.tick_ms == 500
    assert cfg.log_level == "INFO"
    assert cfg.log_console is False
    assert cfg.fsync_writes is True


def test_configure_logging_is_idempotent(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("WORKTIMER_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("WORKTIMER_LOG_CONSOLE", "1")
    cfg = WorktimerConfig.from_env()
    logger = logging.getLogger(PACKAGE_LOGGER)
    original = list(logger.handlers)
    try:
        configure_logging(cfg)
        configure_logging(cfg)
        names = [h.get_name() for h in logger.handlers if h not in original]
        assert sorted(names) == [f"{PACKAGE_LOGGER}:console", f"{PACKAGE_LOGGER}:file"]

        logging.getLogger("worktimer_app.core.recovery").warning("probe message")
        for handler in logger.handlers:
            handler.flush()
        assert "probe message" in (cfg.log_dir / "worktimer.log").read_text(encoding="utf-8")
    finally:
        for handler in list(logger.handlers):
            if handler not in original:
                logger.removeHandler(handler)
                handler.close()
