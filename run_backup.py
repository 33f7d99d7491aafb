"""Command line interface for the MySQL backup runner."""
from __future__ import annotations

import argparse
import sys
from getpass import getpass
from pathlib import Path
from typing import Iterable, Optional

import yaml

from mysqlbackup.backup import BackupRunner
from mysqlbackup.config import BackupConfig, ConfigError, load_config, save_config
from mysqlbackup.configurator import InteractiveConfigurator
from mysqlbackup.logs import configure_logging
from mysqlbackup.secrets import SecretError, SecretManager


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="MySQL backup: dump, gzip, checksum, rotate and optionally push to git.",
    )
    parser.add_argument("--config", default="config.yaml", help="Path to the configuration file.")
    parser.add_argument("--key", default="secrets/key.key", help="Path to the secret encryption key.")
    parser.add_argument(
        "--secrets", default="secrets/secrets.json", help="Path to the encrypted secrets file."
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="Increase console verbosity.")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Run one backup.")
    subparsers.add_parser("show-config", help="Print the validated configuration.")
    subparsers.add_parser("init-config", help="Interactively create the configuration file.")
    subparsers.add_parser("init-key", help="Create a new secret encryption key.")

    parser_secret = subparsers.add_parser("set-secret", help="Store a secret value.")
    parser_secret.add_argument("name", help="Secret name.")
    parser_secret.add_argument("--value", help="Secret value (prompted for when omitted).")
    parser_secret.add_argument(
        "--stdin",
        action="store_true",
        help="Read the secret value from STDIN without confirmation.",
    )

    subparsers.add_parser("list-secrets", help="List stored secret names.")

    return parser


def create_secret_manager(args: argparse.Namespace) -> SecretManager:
    return SecretManager(key_path=Path(args.key), secrets_path=Path(args.secrets))


def load_application_config(path: Path) -> BackupConfig:
    try:
        return load_config(path)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
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
    try:
        secret_manager.ensure_key_available()
    except SecretError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    if value is None:
        if from_stdin:
            value = sys.stdin.read().rstrip("\n")
        else:
            first = getpass("Secret value: ")
            second = getpass("Repeat the value: ")
            if first != second:
                print("Values do not match.", file=sys.stderr)
                sys.exit(1)
            value = first

    try:
        secret_manager.set_secret(name, value)
    except SecretError as exc:
        print(f"Could not store secret: {exc}", file=sys.stderr)
        sys.exit(1)
    else:
        print(f"Secret '{name}' stored in {secret_manager.secrets_path}")


def handle_list_secrets(secret_manager: SecretManager) -> None:
    try:
        names = list(secret_manager.list_secrets())
    except SecretError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    if not names:
        print("No secrets stored.")
    else:
        print("Stored secrets:")
        for name in names:
            print(f"  - {name}")


def handle_run(config: BackupConfig, secret_manager: SecretManager) -> int:
    if config.dump.env_from_secrets:
        try:
            secret_manager.ensure_key_available()
        except SecretError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
    runner = BackupRunner(config=config, secret_manager=secret_manager)
    return runner.run()


def handle_show_config(config: BackupConfig) -> None:
    yaml.safe_dump({"backup": config.to_dict()}, sys.stdout, sort_keys=False, default_flow_style=False)


def handle_init_config(secret_manager: SecretManager, config_path: Path) -> None:
    if config_path.exists():
        print(f"Configuration file {config_path} already exists.", file=sys.stderr)
        sys.exit(1)
    configurator = InteractiveConfigurator(secret_manager)
    try:
        config = configurator.create_config()
    except KeyboardInterrupt:
        print("\nCancelled by user.")
        return
    except (ConfigError, SecretError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    save_config(config, config_path)
    print(f"Configuration for project '{config.project_name}' written to {config_path}.")


def main(argv: Optional[Iterable[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return

    configure_logging(args.verbose)
    secret_manager = create_secret_manager(args)
    config_path = Path(args.config)

    if args.command == "init-key":
        handle_init_key(secret_manager)
    elif args.command == "set-secret":
        handle_set_secret(secret_manager, args.name, args.value, args.stdin)
    elif args.command == "list-secrets":
        handle_list_secrets(secret_manager)
    elif args.command == "init-config":
        handle_init_config(secret_manager, config_path)
    elif args.command == "show-config":
        handle_show_config(load_application_config(config_path))
    elif args.command == "run":
        sys.exit(handle_run(load_application_config(config_path), secret_manager))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
