from pathlib import Path

import pytest

from notes_backup.config import ConfigError
from notes_backup.paths import DEFAULT_SUBFOLDER, STAGING_DIRNAME, PathResolver


@pytest.fixture
def resolver(tmp_path):
    (tmp_path / "profile").mkdir()
    (tmp_path / "home").mkdir()
    return PathResolver(tmp_path / "profile", home_dir=tmp_path / "home")


def test_backup_root_plain(resolver, tmp_path):
    root, warnings = resolver.backup_root(str(tmp_path / "backups"))
    assert root == tmp_path / "backups"
    assert warnings == []


def test_backup_root_relative_to_profile(resolver, tmp_path):
    root, _ = resolver.backup_root("backups")
    assert root == tmp_path / "profile" / "backups"


def test_backup_root_creates_subfolder(resolver, tmp_path):
    (tmp_path / "backups").mkdir()
    root, warnings = resolver.backup_root(str(tmp_path / "backups"), create_subfolder=True)
    assert root == tmp_path / "backups" / DEFAULT_SUBFOLDER
    assert root.is_dir()
    assert warnings == []


def test_backup_root_subfolder_needs_existing_parent(resolver, tmp_path):
    root, _ = resolver.backup_root(str(tmp_path / "missing"), create_subfolder=True)
    assert root == tmp_path / "missing" / DEFAULT_SUBFOLDER
    assert not root.exists()


@pytest.mark.parametrize("configured", ["", "   ", "profile", "home"])
def test_backup_root_rejects_unusable_paths(resolver, tmp_path, configured):
    if configured in ("profile", "home"):
        configured = str(tmp_path / configured)
    with pytest.raises(ConfigError):
        resolver.backup_root(configured)


def test_active_path_defaults_to_staging_dir(resolver, tmp_path):
    assert resolver.active_path(tmp_path / "backups") == tmp_path / "backups" / STAGING_DIRNAME


def test_active_path_uses_export_path(resolver, tmp_path):
    assert resolver.active_path(tmp_path / "backups", str(tmp_path / "export")) == tmp_path / "export"


@pytest.mark.parametrize("export", ["backups", "", "home"])
def test_active_path_rejects_backup_root_and_parents(resolver, tmp_path, export):
    backup_root = tmp_path / "backups"
    with pytest.raises(ConfigError):
        resolver.active_path(backup_root, str(tmp_path / export))


def test_backup_root_falls_back_when_subfolder_cannot_be_created(resolver, tmp_path, monkeypatch):
    (tmp_path / "backups").mkdir()

    def refuse(self, *args, **kwargs):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(Path, "mkdir", refuse)
    root, warnings = resolver.backup_root(str(tmp_path / "backups"), create_subfolder=True)

    assert root == tmp_path / "backups"
    assert len(warnings) == 1
    assert "Could not create" in warnings[0]
