"""Interactive helpers for building the backup settings."""
from __future__ import annotations

from dataclasses import dataclass, replace
from getpass import getpass
from typing import Optional, Sequence

from .config import (
    ARCHIVE_MODES,
    EXPORT_FORMATS,
    FILE_LOG_LEVELS,
    MAX_RETENTION,
    BackupConfig,
)
from .naming import validate_set_name
from .secrets import SecretManager


@dataclass
class InteractiveConfigurator:
    secret_manager: SecretManager

    def configure(self, current: Optional[BackupConfig] = None) -> BackupConfig:
        current = current or BackupConfig()
        print("Backup configuration. Press Enter to keep the value in brackets, Ctrl+C to cancel.\n")

        path = self._prompt_non_empty(f"Backup path [{current.path}]: ", default=current.path or None)
        create_subfolder = self._prompt_bool(
            f"Create a subfolder in the backup path? [{self._yes_no(current.create_subfolder)}]: ",
            default=current.create_subfolder,
        )
        retention = self._prompt_int(
            f"Number of backups to keep [{current.backup_retention}]: ",
            default=current.backup_retention,
            minimum=1,
            maximum=MAX_RETENTION,
        )
        set_name = current.backup_set_name
        if retention > 1:
            set_name = self._prompt_set_name(current.backup_set_name)
        interval = self._prompt_int(
            f"Backup interval in hours, 0 disables automatic backups [{current.backup_interval}]: ",
            default=current.backup_interval,
            minimum=0,
        )
        only_on_change = self._prompt_bool(
            f"Only back up when notes changed? [{self._yes_no(current.only_on_change)}]: ",
            default=current.only_on_change,
        )
        archive_mode = self._prompt_choice("Archive mode", ARCHIVE_MODES, current.archive_mode)
        compression_level = self._prompt_int(
            f"Compression level 0-9 [{current.compression_level}]: ",
            default=current.compression_level,
            minimum=0,
            maximum=9,
        )
        use_password = self._prompt_bool(
            f"Protect backups with a password? [{self._yes_no(current.use_password)}]: ",
            default=current.use_password,
        )
        if use_password:
            self.store_password(current, self.prompt_secret_value("Enter the backup password"))
        export_format = self._prompt_choice("Export format", EXPORT_FORMATS, current.export_format)
        single_export = self._prompt_bool(
            f"Export all notebooks together? [{self._yes_no(current.single_export)}]: ",
            default=current.single_export,
        )
        file_log_level = self._prompt_choice("Log file level", FILE_LOG_LEVELS, current.file_log_level)

        config = replace(
            current,
            path=path,
            create_subfolder=create_subfolder,
            backup_retention=retention,
            backup_set_name=set_name,
            backup_interval=interval,
            only_on_change=only_on_change,
            archive_mode=archive_mode,
            compression_level=compression_level,
            use_password=use_password,
            export_format=export_format,
            single_export=single_export,
            file_log_level=file_log_level,
        )
        config.validate()
        return config

    def store_password(self, config: BackupConfig, password: str) -> None:
        self.secret_manager.set_secret(config.password_secret, password)
        self.secret_manager.set_secret(config.password_repeat_secret, password)

    # ------------------------------------------------------------------
    def _prompt_set_name(self, default: str) -> str:
        while True:
            template = self._prompt_non_empty(f"Backup set name template [{default}]: ", default=default)
            _, warning = validate_set_name(template)
            if warning:
                print(warning)
                continue
            return template

    def prompt_secret_value(self, prompt: str) -> str:
        while True:
            first = getpass(f"{prompt}: ")
            second = getpass("Repeat the value: ")
            if first != second:
                print("The values do not match, try again.")
                continue
            if not first.strip():
                print("The value must not be empty.")
                continue
            return first

    # ------------------------------------------------------------------
    @staticmethod
    def _yes_no(value: bool) -> str:
        return "Y/n" if value else "y/N"

    def _prompt_choice(self, title: str, choices: Sequence[str], default: str) -> str:
        while True:
            answer = input(f"{title} ({', '.join(choices)}) [{default}]: ").strip().lower()
            if not answer:
                return default
            if answer in choices:
                return answer
            print(f"Unknown value. Use one of: {', '.join(choices)}.")

    def _prompt_bool(self, question: str, *, default: bool) -> bool:
        true_values = {"y", "yes", "true", "1"}
        false_values = {"n", "no", "false", "0"}
        while True:
            answer = input(question).strip().lower()
            if not answer:
                return default
            if answer in true_values:
                return True
            if answer in false_values:
                return False
            print("Answer not recognised. Enter 'y' or 'n'.")

    def _prompt_non_empty(self, question: str, default: Optional[str] = None) -> str:
        while True:
            answer = input(question).strip()
            if not answer:
                if default:
                    return default
                print("The value must not be empty.")
                continue
            return answer

    def _prompt_int(
        self,
        question: str,
        *,
        default: int,
        minimum: Optional[int] = None,
        maximum: Optional[int] = None,
    ) -> int:
        while True:
            answer = input(question).strip()
            if not answer:
                return default
            try:
                value = int(answer)
            except ValueError:
                print("Enter a whole number.")
                continue
            if minimum is not None and value < minimum:
                print(f"The value must be at least {minimum}.")
                continue
            if maximum is not None and value > maximum:
                print(f"The value must be at most {maximum}.")
                continue
            return value


__all__ = ["InteractiveConfigurator"]
