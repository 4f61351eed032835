"""Backup run orchestration and the periodic trigger."""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .assembler import ArchiveAssembler
from .config import BackupConfig, ConfigError, PasswordState, load_config, resolve_password
from .errors import ArchiveError, BackupError
from .exporter import Exporter, backup_notebooks
from .index import BackupIndexStore
from .logs import RunLog
from .naming import render_set_name
from .notify import ConsoleNotifier, Notifier
from .paths import PathResolver
from .placement import PlacementEngine
from .profile import backup_profile_data
from .retention import RetentionPruner, RetentionSummary
from .secrets import SecretError, SecretManager
from .settings import SettingsStore
from .sevenzip import SevenZip
from .staging import ensure_empty, remove_staging

LOGGER = logging.getLogger(__name__)

CHECK_INTERVAL_S = 5 * 60
ERROR_SUPPRESS_S = 6 * 60 * 60
HOUR_MS = 60 * 60 * 1000


class RunOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    ALREADY_RUNNING = "already_running"


@dataclass
class RunResult:
    outcome: RunOutcome
    destination: Optional[Path] = None
    error: Optional[str] = None
    retention: Optional[RetentionSummary] = None

    @property
    def ok(self) -> bool:
        return self.outcome is RunOutcome.SUCCESS


class BackupPipeline:
    """Own all state of the backup job: paths, running sentinel and timer."""

    def __init__(
        self,
        store: SettingsStore,
        exporter: Exporter,
        *,
        engine: Optional[SevenZip] = None,
        secret_manager: Optional[SecretManager] = None,
        notifier: Optional[Notifier] = None,
        profile_dir: Optional[Path] = None,
        home_dir: Optional[Path] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.exporter = exporter
        self.engine = engine or SevenZip()
        self.secret_manager = secret_manager
        self.notifier: Notifier = notifier or ConsoleNotifier()
        self._profile_dir = Path(profile_dir) if profile_dir is not None else None
        self._home_dir = home_dir
        self._clock = clock

        self.index = BackupIndexStore(store)
        self.assembler = ArchiveAssembler(self.engine)
        self.placement = PlacementEngine(self.index)
        self.pruner = RetentionPruner(self.index)

        self.backup_root: Optional[Path] = None
        self.active_path: Optional[Path] = None
        self.retention = 1
        self.backup_started_ms: Optional[int] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._check_task: Optional[asyncio.Task] = None
        self._suppressed_until: Dict[str, float] = {}

        store.on_change(self._settings_changed)

    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self.backup_started_ms is not None

    @property
    def profile_dir(self) -> Path:
        if self._profile_dir is not None:
            return self._profile_dir
        configured = self.store.get_global_value("profile_dir")
        if not configured:
            raise ConfigError("The profile directory is unknown; set 'global.profile_dir' in the settings file.")
        return Path(str(configured)).expanduser()

    # ------------------------------------------------------------------
    async def run(self, show_done_msg: bool = False) -> RunResult:
        """Execute one backup run; a second call while running is rejected."""

        if self.running:
            LOGGER.warning("A backup is already running.")
            if show_done_msg:
                self.notifier.info("A backup is already running.")
            return RunResult(RunOutcome.ALREADY_RUNNING)

        self.backup_started_ms = int(self._clock() * 1000)
        self.stop_timer()
        run_log: Optional[RunLog] = None
        try:
            started = datetime.fromtimestamp(self.backup_started_ms / 1000)
            config, warnings = load_config(self.store, started)
            for warning in warnings:
                self.notifier.error(warning)

            resolver = PathResolver(self.profile_dir, self._home_dir)
            backup_root, path_warnings = resolver.backup_root(config.path, config.create_subfolder)
            for warning in path_warnings:
                self.notifier.error(warning)
            if not backup_root.is_dir():
                message = f"The backup path '{backup_root}' does not exist!"
                LOGGER.error(message)
                self._notify_error(message, unattended=not show_done_msg)
                return RunResult(RunOutcome.FAILED, error=message)

            if resolve_password(config, self.secret_manager) is PasswordState.INVALID:
                raise ConfigError("The password repetition does not match the password or the password is empty.")

            self.backup_root = backup_root
            self.active_path = resolver.active_path(backup_root, config.export_path)
            self.retention = config.backup_retention

            run_log = RunLog(backup_root, config.file_log_level)
            run_log.start()
            LOGGER.info("Backup started")
            destination, summary = await self._create_backup(config, started, backup_root, self.active_path)
            await self._exec_finish_cmd(config)
            LOGGER.info("Backup completed")

            try:
                await run_log.finalize(destination, self.engine, config.password)
            except (ArchiveError, OSError) as exc:
                LOGGER.error("Moving the log file failed: %s", exc)
                self.notifier.error(f"Moving the log file failed: {exc}")

            self.store.set_value("last_backup", self.backup_started_ms)
            if show_done_msg:
                self.notifier.info(f"Backup completed: {destination}")
            return RunResult(RunOutcome.SUCCESS, destination=destination, retention=summary)
        except (BackupError, ConfigError, SecretError) as exc:
            LOGGER.error("Backup failed: %s", exc)
            self._notify_error(str(exc), unattended=not show_done_msg, title="Backup failed")
            return RunResult(RunOutcome.FAILED, error=str(exc))
        finally:
            if run_log is not None:
                run_log.stop()
            self.backup_started_ms = None
            self.start_timer()

    async def _create_backup(
        self,
        config: BackupConfig,
        started: datetime,
        backup_root: Path,
        active_path: Path,
    ) -> Tuple[Path, Optional[RetentionSummary]]:
        active_path = ensure_empty(active_path)

        backup_profile_data(self.profile_dir, active_path, config.backup_plugins)
        backup_notebooks(
            self.exporter,
            active_path,
            single_export=config.single_export,
            fmt=config.export_format,
        )

        zip_file = await self.assembler.assemble(backup_root, active_path, config)
        set_name = render_set_name(config.backup_set_name, started)
        destination = self.placement.place(
            backup_root,
            active_path,
            config.backup_retention,
            set_name,
            self.backup_started_ms or 0,
            zip_file,
        )
        if zip_file is not None:
            remove_staging(active_path)

        summary: Optional[RetentionSummary] = None
        if config.backup_retention > 1:
            summary = self.pruner.prune(backup_root, config.backup_retention)
        return destination, summary

    async def _exec_finish_cmd(self, config: BackupConfig) -> bool:
        command = config.exec_finish_cmd.strip()
        if not command:
            return True
        LOGGER.info("Executing post-backup command: %s", command)
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await process.communicate()
        except OSError as exc:
            LOGGER.error("Post-backup command could not be started: %s", exc)
            self.notifier.error(f"Post-backup command could not be started: {exc}")
            return False
        if stdout:
            LOGGER.debug("STDOUT: %s", stdout.decode(errors="replace").strip())
        if process.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            LOGGER.error("Post-backup command exited with code %s: %s", process.returncode, detail)
            self.notifier.error(f"Post-backup command exited with code {process.returncode}: {detail}")
            return False
        return True

    def _notify_error(self, message: str, *, unattended: bool, title: Optional[str] = None) -> None:
        """Notify about a failed run; unattended runs repeat the same message at most every 6 hours."""

        now = self._clock()
        if unattended and now < self._suppressed_until.get(message, 0.0):
            LOGGER.info("Notification suppressed: %s", message)
            return
        self.notifier.error(message, title=title)
        if unattended:
            self._suppressed_until[message] = now + ERROR_SUPPRESS_S

    # ------------------------------------------------------------------
    def _interval_hours(self) -> int:
        try:
            return BackupConfig.from_dict(self.store.values()).backup_interval
        except ConfigError as exc:
            LOGGER.error("Invalid configuration: %s", exc)
            return 0

    def start_timer(self, delay: float = CHECK_INTERVAL_S) -> bool:
        """Schedule the next automatic check; no-op if one is pending or automatic backups are off."""

        if self._timer is not None:
            return False
        if self._interval_hours() <= 0:
            LOGGER.info("Automatic backup disabled")
            return False
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(delay, self._on_timer)
        return True

    def stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._check_task = asyncio.ensure_future(self.backup_time())

    def _settings_changed(self, keys: List[str]) -> None:
        if "backup_interval" not in keys:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        if self.running:
            return
        self.stop_timer()
        self.start_timer()

    async def backup_time(self) -> bool:
        """Start a backup when the interval has elapsed; return whether one ran."""

        try:
            try:
                config = BackupConfig.from_dict(self.store.values())
            except ConfigError as exc:
                LOGGER.error("Invalid configuration: %s", exc)
                return False
            if config.backup_interval <= 0:
                return False

            now_ms = int(self._clock() * 1000)
            if now_ms <= config.last_backup + config.backup_interval * HOUR_MS:
                return False
            LOGGER.info("Backup interval reached")
            if config.only_on_change:
                last_change = self.exporter.last_change()
                if last_change != 0 and config.last_backup >= last_change:
                    LOGGER.info("No change since the last backup, skipping.")
                    return False
            result = await self.run(show_done_msg=False)
            return result.outcome is not RunOutcome.ALREADY_RUNNING
        finally:
            self.start_timer()

    async def serve_forever(self, first_check: float = 60.0) -> None:
        """Keep the periodic trigger alive until cancelled."""

        self.start_timer(first_check)
        try:
            await asyncio.Event().wait()
        finally:
            self.stop_timer()


__all__ = ["BackupPipeline", "RunOutcome", "RunResult"]
