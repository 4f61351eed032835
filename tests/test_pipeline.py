import asyncio
import logging

import pytest

from fakes import RUN_STARTED, FakeArchiveEngine, FakeExporter
from notes_backup.index import BackupIndexStore, BackupSetEntry
from notes_backup.pipeline import HOUR_MS, RunOutcome

STARTED_MS = int(RUN_STARTED.timestamp() * 1000)


def names(path):
    return sorted(child.name for child in path.iterdir())


@pytest.mark.asyncio
async def test_single_version_backup(make_pipeline, backup_dir, store):
    pipeline = make_pipeline()

    result = await pipeline.run()

    assert result.outcome is RunOutcome.SUCCESS
    assert result.destination == backup_dir
    assert names(backup_dir) == ["backup.log", "notes", "profile", "templates"]
    assert names(backup_dir / "notes") == ["Private", "Work"]
    assert names(backup_dir / "notes" / "Work") == ["nb1.md", "nb3.md"]
    assert (backup_dir / "profile" / "plugins" / "plugin.jpl").is_file()
    log = (backup_dir / "backup.log").read_text(encoding="utf-8")
    assert "Backup started" in log
    assert "Backup completed" in log
    assert store.get_value("last_backup") == STARTED_MS
    assert not pipeline.running


@pytest.mark.asyncio
async def test_single_version_backup_overwrites_previous_run(make_pipeline, backup_dir):
    (backup_dir / "notes" / "Deleted notebook").mkdir(parents=True)
    (backup_dir / "my-own-file.txt").write_text("keep", encoding="utf-8")

    await make_pipeline().run()

    assert names(backup_dir / "notes") == ["Private", "Work"]
    assert (backup_dir / "my-own-file.txt").exists()


@pytest.mark.asyncio
async def test_versioned_backups_get_unique_names(make_pipeline, backup_dir, store):
    pipeline = make_pipeline(backup_retention=3)

    first = await pipeline.run()
    second = await pipeline.run()

    assert first.destination == backup_dir / "202101021630"
    assert second.destination == backup_dir / "202101021630 (1)"
    assert names(backup_dir) == ["202101021630", "202101021630 (1)"]
    assert (second.destination / "backup.log").is_file()
    assert (second.destination / "notes" / "Private" / "nb2.md").is_file()
    assert [entry.name for entry in BackupIndexStore(store).load()] == ["202101021630", "202101021630 (1)"]


@pytest.mark.asyncio
async def test_new_backup_counts_against_retention(make_pipeline, backup_dir, store):
    for name in ("old1", "old2", "old3"):
        (backup_dir / name).mkdir()
    BackupIndexStore(store).save([BackupSetEntry("old1", 1), BackupSetEntry("old2", 2), BackupSetEntry("old3", 3)])

    result = await make_pipeline(backup_retention=3).run()

    assert result.retention.removed == ["old1"]
    assert names(backup_dir) == ["202101021630", "old2", "old3"]
    assert len(BackupIndexStore(store).load()) == 3


@pytest.mark.asyncio
async def test_password_archives_every_item(make_pipeline, backup_dir, secret_manager):
    secret_manager.set_secret("backup_password", "secret")
    secret_manager.set_secret("backup_password_repeat", "secret")
    engine = FakeArchiveEngine()

    result = await make_pipeline(engine=engine, use_password=True).run()

    assert result.ok
    assert names(backup_dir) == ["backuplog.7z", "notes.7z", "profile.7z", "templates.7z"]
    assert {call["password"] for call in engine.calls} == {"secret"}
    assert "-sdel" in engine.calls[-1]["options"]


@pytest.mark.asyncio
async def test_single_archive_with_history(make_pipeline, backup_dir):
    result = await make_pipeline(archive_mode="single_archive", backup_retention=2).run()

    assert result.destination == backup_dir / "202101021630.7z"
    assert names(backup_dir) == ["202101021630.7z"]
    content = result.destination.read_text(encoding="utf-8").splitlines()
    assert content == ["notes", "profile", "templates", "backup.log"]


@pytest.mark.asyncio
async def test_single_archive_without_history(make_pipeline, backup_dir):
    (backup_dir / "notes").mkdir()
    result = await make_pipeline(archive_mode="single_archive").run()

    assert result.destination == backup_dir
    assert names(backup_dir) == ["NotesBackup.7z", "backup.log"]


@pytest.mark.asyncio
async def test_missing_backup_root_notification_is_throttled(make_pipeline, tmp_path):
    pipeline = make_pipeline(path=str(tmp_path / "unmounted"))

    first = await pipeline.run()
    await pipeline.run()
    assert first.outcome is RunOutcome.FAILED
    assert len(pipeline.notifier.errors) == 1

    await pipeline.run(show_done_msg=True)
    assert len(pipeline.notifier.errors) == 2
    assert "does not exist" in pipeline.notifier.errors[-1]


@pytest.mark.asyncio
async def test_second_run_is_rejected_while_running(make_pipeline):
    pipeline = make_pipeline(archive_mode="per_item")

    results = await asyncio.gather(pipeline.run(), pipeline.run())

    assert [result.outcome for result in results] == [RunOutcome.SUCCESS, RunOutcome.ALREADY_RUNNING]
    assert not pipeline.running


@pytest.mark.asyncio
async def test_running_sentinel_rejects_run(make_pipeline):
    pipeline = make_pipeline()
    pipeline.backup_started_ms = STARTED_MS

    result = await pipeline.run(show_done_msg=True)

    assert result.outcome is RunOutcome.ALREADY_RUNNING
    assert pipeline.notifier.infos == ["A backup is already running."]


@pytest.mark.asyncio
async def test_invalid_password_aborts_before_staging(make_pipeline, backup_dir, secret_manager):
    secret_manager.set_secret("backup_password", "secret")
    secret_manager.set_secret("backup_password_repeat", "other")
    pipeline = make_pipeline(use_password=True)

    result = await pipeline.run()

    assert result.outcome is RunOutcome.FAILED
    assert "password" in pipeline.notifier.errors[0]
    assert names(backup_dir) == []
    assert list(secret_manager.list_secrets()) == []


@pytest.mark.asyncio
async def test_export_failure_keeps_staging(make_pipeline, backup_dir):
    pipeline = make_pipeline(exporter=FakeExporter(fail=True))

    result = await pipeline.run()

    assert result.outcome is RunOutcome.FAILED
    assert "export exploded" in result.error
    assert (backup_dir / "activeBackupJob" / "profile").is_dir()
    assert not pipeline.running


@pytest.mark.asyncio
async def test_archive_failure_fails_run(make_pipeline, store):
    result = await make_pipeline(engine=FakeArchiveEngine(fail_on="templates"), archive_mode="per_item").run()

    assert result.outcome is RunOutcome.FAILED
    assert store.get_value("last_backup") in (None, 0)


@pytest.mark.asyncio
async def test_invalid_set_name_falls_back_to_default(make_pipeline, backup_dir, store):
    pipeline = make_pipeline(backup_retention=2, backup_set_name="{HH:mm}")

    result = await pipeline.run()

    assert result.destination == backup_dir / "202101021630"
    assert len(pipeline.notifier.errors) == 1
    assert store.get_value("backup_set_name") == "{YYYYMMDDHHmm}"


@pytest.mark.asyncio
async def test_failing_finish_command_is_reported(make_pipeline):
    pipeline = make_pipeline(exec_finish_cmd="exit 3")

    result = await pipeline.run()

    assert result.ok
    assert "exited with code 3" in pipeline.notifier.errors[0]


@pytest.mark.asyncio
async def test_finish_command_runs_after_backup(make_pipeline, tmp_path):
    marker = tmp_path / "marker.txt"
    pipeline = make_pipeline(exec_finish_cmd=f'echo done > "{marker}"')

    assert (await pipeline.run()).ok
    assert marker.read_text().strip() == "done"
    assert pipeline.notifier.errors == []


@pytest.mark.asyncio
async def test_backup_time_disabled(make_pipeline, backup_dir):
    pipeline = make_pipeline()
    assert await pipeline.backup_time() is False
    assert names(backup_dir) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("hours_ago, expected", [(25, True), (23, False)])
async def test_backup_time_interval(make_pipeline, hours_ago, expected):
    pipeline = make_pipeline(backup_interval=24, last_backup=STARTED_MS - hours_ago * HOUR_MS)
    try:
        assert await pipeline.backup_time() is expected
    finally:
        pipeline.stop_timer()


@pytest.mark.asyncio
@pytest.mark.parametrize("change_offset, expected", [(None, True), (-1000, False), (1000, True)])
async def test_backup_time_only_on_change(make_pipeline, change_offset, expected):
    last_backup = STARTED_MS - 25 * HOUR_MS
    last_change = 0 if change_offset is None else last_backup + change_offset
    pipeline = make_pipeline(
        exporter=FakeExporter(last_change=last_change),
        backup_interval=24,
        only_on_change=True,
        last_backup=last_backup,
    )
    try:
        assert await pipeline.backup_time() is expected
    finally:
        pipeline.stop_timer()


@pytest.mark.asyncio
async def test_timer_start_is_idempotent(make_pipeline):
    pipeline = make_pipeline(backup_interval=24)

    assert pipeline.start_timer() is True
    assert pipeline.start_timer() is False
    pipeline.stop_timer()
    assert pipeline._timer is None


@pytest.mark.asyncio
async def test_timer_not_started_when_disabled(make_pipeline):
    pipeline = make_pipeline()
    assert pipeline.start_timer() is False


@pytest.mark.asyncio
async def test_interval_change_restarts_timer(make_pipeline, store):
    pipeline = make_pipeline(backup_interval=24)
    pipeline.start_timer()
    first = pipeline._timer

    store.set_value("backup_interval", 12)
    assert pipeline._timer is not None
    assert pipeline._timer is not first
    assert first.cancelled()

    store.set_value("backup_interval", 0)
    assert pipeline._timer is None


@pytest.mark.asyncio
async def test_unwritable_log_file_fails_run(make_pipeline, monkeypatch):
    def refuse(*args, **kwargs):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr(logging, "FileHandler", refuse)
    pipeline = make_pipeline()

    result = await pipeline.run(show_done_msg=True)

    assert result.outcome is RunOutcome.FAILED
    assert "log file" in pipeline.notifier.errors[-1]
    assert not pipeline.running


@pytest.mark.asyncio
async def test_repeated_failure_notification_is_throttled(make_pipeline, secret_manager):
    pipeline = make_pipeline(use_password=True)

    await pipeline.run()
    await pipeline.run()
    assert len(pipeline.notifier.errors) == 1
    assert "password" in pipeline.notifier.errors[0]

    await pipeline.run(show_done_msg=True)
    assert len(pipeline.notifier.errors) == 2
