"""Command line interface for the note profile backup tool."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import datetime
from getpass import getpass
from pathlib import Path
from typing import Iterable, Optional

from notes_backup.config import ConfigError, load_config, save_config
from notes_backup.configurator import InteractiveConfigurator
from notes_backup.index import BackupIndexStore
from notes_backup.joplin_api import DEFAULT_BASE_URL, JoplinDataClient
from notes_backup.pipeline import BackupPipeline, RunOutcome
from notes_backup.secrets import SecretError, SecretManager, SecretNotFoundError
from notes_backup.settings import SETTINGS_FILENAME, SettingsStore
from notes_backup.sevenzip import SevenZip

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Backups of a note profile with compression, encryption and retention.",
    )
    parser.add_argument("--settings", default=SETTINGS_FILENAME, help="Path to the settings file.")
    parser.add_argument("--key", default="secrets/key.key", help="Path to the secrets encryption key.")
    parser.add_argument(
        "--secrets", default="secrets/secrets.json", help="Path to the file with encrypted secrets."
    )
    parser.add_argument("--profile-dir", help="Profile directory of the note application.")
    parser.add_argument("--api-url", default=DEFAULT_BASE_URL, help="Base URL of the note data API.")
    parser.add_argument(
        "--token-secret", default="api_token", help="Name of the secret holding the data API token."
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase log verbosity.")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init-key", help="Create a new secrets encryption key.")

    parser_secret = subparsers.add_parser("set-secret", help="Store a secret value.")
    parser_secret.add_argument("name", help="Secret name.")
    parser_secret.add_argument("--value", help="Secret value (prompted for when omitted).")
    parser_secret.add_argument(
        "--stdin",
        action="store_true",
        help="Read the secret value from STDIN (no confirmation prompt).",
    )

    subparsers.add_parser("list-secrets", help="List stored secret names.")
    subparsers.add_parser("set-password", help="Set the archive password and enable password protection.")
    subparsers.add_parser("configure", help="Interactively edit the backup settings.")
    subparsers.add_parser("run", help="Create a backup now.")
    subparsers.add_parser("daemon", help="Run automatic backups at the configured interval.")
    subparsers.add_parser("index", help="Show the backup sets recorded in the index.")

    return parser


def configure_logging(level: int) -> None:
    if level >= 2:
        log_level = logging.DEBUG
    elif level == 1:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING
    logging.basicConfig(level=log_level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    for handler in logging.getLogger().handlers:
        handler.setLevel(log_level)


def create_secret_manager(args: argparse.Namespace) -> SecretManager:
    return SecretManager(key_path=Path(args.key), secrets_path=Path(args.secrets))


def load_settings(path: Path) -> SettingsStore:
    try:
        return SettingsStore(path)
    except (OSError, ValueError) as exc:
        print(f"Error reading settings: {exc}", file=sys.stderr)
        sys.exit(1)


def require_key(secret_manager: SecretManager) -> None:
    try:
        secret_manager.ensure_key_available()
    except SecretError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


def handle_init_key(secret_manager: SecretManager) -> None:
    try:
        secret_manager.generate_key()
    except SecretError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    else:
        print(f"Encryption key created: {secret_manager.key_path}")


def handle_set_secret(secret_manager: SecretManager, name: str, value: Optional[str], from_stdin: bool) -> None:
    require_key(secret_manager)
    if value is None:
        if from_stdin:
            value = sys.stdin.read().rstrip("\n")
        else:
            first = getpass("Secret value: ")
            second = getpass("Repeat the value: ")
            if first != second:
                print("The values do not match.", file=sys.stderr)
                sys.exit(1)
            value = first

    try:
        secret_manager.set_secret(name, value)
    except SecretError as exc:
        print(f"Could not store the secret: {exc}", file=sys.stderr)
        sys.exit(1)
    else:
        print(f"Secret '{name}' stored in {secret_manager.secrets_path}")


def handle_list_secrets(secret_manager: SecretManager) -> None:
    require_key(secret_manager)
    names = list(secret_manager.list_secrets())
    if not names:
        print("No secrets stored.")
    else:
        print("Stored secrets:")
        for name in names:
            print(f"  - {name}")


def handle_set_password(store: SettingsStore, secret_manager: SecretManager) -> None:
    require_key(secret_manager)
    config = _load_config_or_exit(store)
    configurator = InteractiveConfigurator(secret_manager)
    try:
        password = configurator.prompt_secret_value("Backup password")
    except KeyboardInterrupt:
        print("\nCancelled.")
        return
    configurator.store_password(config, password)
    store.set_value("use_password", True)
    print("Password protection enabled.")


def handle_configure(store: SettingsStore, secret_manager: SecretManager) -> None:
    require_key(secret_manager)
    config = _load_config_or_exit(store)
    try:
        config = InteractiveConfigurator(secret_manager).configure(config)
    except KeyboardInterrupt:
        print("\nCancelled.")
        return
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        sys.exit(1)
    save_config(config, store)
    print(f"Settings saved to {store.path}.")


def handle_index(store: SettingsStore) -> None:
    entries = BackupIndexStore(store).load()
    if not entries:
        print("The backup index is empty.")
        return
    for entry in sorted(entries, key=lambda item: item.date, reverse=True):
        created = datetime.fromtimestamp(entry.date / 1000).isoformat(sep=" ", timespec="seconds")
        print(f"{created}  {entry.name}")


def create_pipeline(args: argparse.Namespace, store: SettingsStore, secret_manager: SecretManager) -> BackupPipeline:
    token = None
    if secret_manager.key_path.exists():
        try:
            token = secret_manager.get_secret(args.token_secret)
        except SecretNotFoundError:
            LOGGER.warning("Secret '%s' not found, using the API without token.", args.token_secret)
    exporter = JoplinDataClient(token=token, base_url=args.api_url)
    installation_dir = store.get_global_value("installation_dir")
    engine = SevenZip(installation_dir=Path(installation_dir) if installation_dir else None)
    return BackupPipeline(
        store,
        exporter,
        engine=engine,
        secret_manager=secret_manager,
        profile_dir=Path(args.profile_dir) if args.profile_dir else None,
    )


def handle_run(args: argparse.Namespace, store: SettingsStore, secret_manager: SecretManager) -> None:
    pipeline = create_pipeline(args, store, secret_manager)
    result = asyncio.run(pipeline.run(show_done_msg=True))
    if result.outcome is not RunOutcome.SUCCESS:
        sys.exit(1)


def handle_daemon(args: argparse.Namespace, store: SettingsStore, secret_manager: SecretManager) -> None:
    pipeline = create_pipeline(args, store, secret_manager)
    try:
        asyncio.run(pipeline.serve_forever())
    except KeyboardInterrupt:
        print("\nStopped.")


def _load_config_or_exit(store: SettingsStore):
    try:
        config, warnings = load_config(store)
    except ConfigError as exc:
        print(f"Error reading settings: {exc}", file=sys.stderr)
        sys.exit(1)
    for warning in warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    return config


def main(argv: Optional[Iterable[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return

    configure_logging(args.verbose)
    secret_manager = create_secret_manager(args)

    if args.command == "init-key":
        handle_init_key(secret_manager)
        return

    store = load_settings(Path(args.settings))

    if args.command == "set-secret":
        handle_set_secret(secret_manager, args.name, args.value, args.stdin)
    elif args.command == "list-secrets":
        handle_list_secrets(secret_manager)
    elif args.command == "set-password":
        handle_set_password(store, secret_manager)
    elif args.command == "configure":
        handle_configure(store, secret_manager)
    elif args.command == "run":
        handle_run(args, store, secret_manager)
    elif args.command == "daemon":
        handle_daemon(args, store, secret_manager)
    elif args.command == "index":
        handle_index(store)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
