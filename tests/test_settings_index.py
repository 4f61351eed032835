import yaml

from notes_backup.index import BackupIndexStore, BackupSetEntry
from notes_backup.settings import SettingsStore


def test_settings_persist_between_instances(tmp_path):
    path = tmp_path / "settings.yaml"
    store = SettingsStore(path, defaults={"backup_retention": 1})
    assert store.get_value("backup_retention") == 1

    store.set_values({"backup_retention": 4, "path": "/backups"})
    store.set_global_values({"profile_dir": "/profile"})

    reloaded = SettingsStore(path)
    assert reloaded.get_value("backup_retention") == 4
    assert reloaded.get_global_value("profile_dir") == "/profile"
    document = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert document["settings"]["path"] == "/backups"


def test_settings_change_callback_receives_changed_keys(tmp_path):
    store = SettingsStore(tmp_path / "settings.yaml")
    seen = []
    store.on_change(seen.append)

    store.set_values({"backup_interval": 24, "path": "/backups"})
    store.set_values({"backup_interval": 24, "path": "/other"})
    store.set_value("path", "/other")

    assert seen == [["backup_interval", "path"], ["path"]]


def test_index_round_trip(tmp_path):
    index = BackupIndexStore(SettingsStore(tmp_path / "settings.yaml"))
    assert index.load() == []

    index.append(BackupSetEntry("202101021630", 1000))
    entries = index.append(BackupSetEntry("202101031630.7z", 2000))

    assert entries == index.load()
    assert [entry.name for entry in entries] == ["202101021630", "202101031630.7z"]


def test_index_ignores_corrupted_value(tmp_path, caplog):
    store = SettingsStore(tmp_path / "settings.yaml")
    store.set_value("backup_info", "{not json")
    assert BackupIndexStore(store).load() == []
    assert "not valid JSON" in caplog.text


def test_index_skips_malformed_entries(tmp_path):
    store = SettingsStore(tmp_path / "settings.yaml")
    store.set_value("backup_info", '[{"name": "a", "date": 1}, {"name": "b"}, {"date": "x", "name": "c"}]')
    assert BackupIndexStore(store).load() == [BackupSetEntry("a", 1)]


def test_index_skips_names_outside_backup_root(tmp_path, caplog):
    store = SettingsStore(tmp_path / "settings.yaml")
    store.set_value(
        "backup_info",
        '[{"name": "", "date": 1}, {"name": ".", "date": 2}, {"name": "..", "date": 3},'
        ' {"name": "../precious", "date": 4}, {"name": "a\\\\b", "date": 5}, {"name": "new", "date": 6}]',
    )

    assert BackupIndexStore(store).load() == [BackupSetEntry("new", 6)]
    assert caplog.text.count("outside the backup root") == 5
