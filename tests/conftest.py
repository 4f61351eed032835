from pathlib import Path

import pytest

from fakes import RUN_STARTED, FakeArchiveEngine, FakeExporter, RecordingNotifier
from notes_backup.pipeline import BackupPipeline
from notes_backup.secrets import SecretManager
from notes_backup.settings import SettingsStore


@pytest.fixture
def profile_dir(tmp_path) -> Path:
    profile = tmp_path / "profile-home"
    (profile / "templates").mkdir(parents=True)
    (profile / "plugins").mkdir()
    (profile / "keymap-desktop.json").write_text("[]", encoding="utf-8")
    (profile / "userstyle.css").write_text("body {}", encoding="utf-8")
    (profile / "templates" / "meeting.md").write_text("# Meeting", encoding="utf-8")
    (profile / "plugins" / "plugin.jpl").write_text("plugin", encoding="utf-8")
    return profile


@pytest.fixture
def backup_dir(tmp_path) -> Path:
    path = tmp_path / "backups"
    path.mkdir()
    return path


@pytest.fixture
def store(tmp_path, profile_dir, backup_dir) -> SettingsStore:
    settings = SettingsStore(tmp_path / "settings.yaml")
    settings.set_global_values({"profile_dir": str(profile_dir)})
    settings.set_values(
        {
            "path": str(backup_dir),
            "create_subfolder": False,
            "backup_interval": 0,
            "file_log_level": "info",
        }
    )
    return settings


@pytest.fixture
def secret_manager(tmp_path) -> SecretManager:
    manager = SecretManager(
        key_path=tmp_path / "secrets" / "key.key",
        secrets_path=tmp_path / "secrets" / "secrets.json",
    )
    manager.generate_key()
    return manager


@pytest.fixture
def make_pipeline(tmp_path, store, secret_manager):
    def factory(engine=None, exporter=None, clock=None, **settings):
        if settings:
            store.set_values(settings)
        return BackupPipeline(
            store,
            exporter or FakeExporter(),
            engine=engine or FakeArchiveEngine(),
            secret_manager=secret_manager,
            notifier=RecordingNotifier(),
            home_dir=tmp_path / "home",
            clock=clock or (lambda: RUN_STARTED.timestamp()),
        )

    return factory
