import pytest

from notes_backup.errors import StagingError
from notes_backup.profile import backup_file, backup_profile_data
from notes_backup.staging import ensure_empty, remove_staging


def test_ensure_empty_creates_directory(tmp_path):
    target = ensure_empty(tmp_path, "activeBackupJob")
    assert target == tmp_path / "activeBackupJob"
    assert target.is_dir()


def test_ensure_empty_removes_leftovers(tmp_path):
    staging = tmp_path / "activeBackupJob"
    (staging / "notes" / "Work").mkdir(parents=True)
    (staging / "notes" / "Work" / "note.md").write_text("old", encoding="utf-8")
    (staging / "leftover.txt").write_text("old", encoding="utf-8")

    ensure_empty(staging)

    assert staging.is_dir()
    assert list(staging.iterdir()) == []


def test_ensure_empty_rejects_files(tmp_path):
    (tmp_path / "activeBackupJob").write_text("not a dir", encoding="utf-8")
    with pytest.raises(StagingError):
        ensure_empty(tmp_path, "activeBackupJob")


def test_remove_staging(tmp_path):
    staging = ensure_empty(tmp_path / "staging")
    (staging / "file.txt").write_text("x", encoding="utf-8")
    remove_staging(staging)
    assert not staging.exists()


def test_backup_file(tmp_path):
    src = tmp_path / "profile" / "keymap-desktop.json"
    src.parent.mkdir()
    src.write_text("[]", encoding="utf-8")
    dst = tmp_path / "staging" / "profile" / "keymap-desktop.json"

    assert backup_file(src, dst) is True
    assert dst.read_text(encoding="utf-8") == "[]"


def test_backup_file_skips_missing_source(tmp_path):
    dst = tmp_path / "staging" / "profile" / "userchrome.css"
    assert backup_file(tmp_path / "profile" / "userchrome.css", dst) is False
    assert not dst.exists()


def test_backup_profile_data(profile_dir, tmp_path):
    staging = ensure_empty(tmp_path / "staging")

    backup_profile_data(profile_dir, staging)

    assert (staging / "profile" / "keymap-desktop.json").is_file()
    assert (staging / "profile" / "userstyle.css").is_file()
    assert not (staging / "profile" / "userchrome.css").exists()
    assert (staging / "profile" / "plugins" / "plugin.jpl").is_file()
    assert (staging / "templates" / "meeting.md").is_file()


def test_backup_profile_data_without_plugins(profile_dir, tmp_path):
    staging = ensure_empty(tmp_path / "staging")
    backup_profile_data(profile_dir, staging, include_plugins=False)
    assert not (staging / "profile" / "plugins").exists()
