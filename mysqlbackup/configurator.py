"""Interactive helpers for building configuration files."""
from __future__ import annotations

import shlex
from dataclasses import dataclass
from getpass import getpass
from pathlib import Path
from typing import Dict, Optional

from .config import DEFAULT_DUMP_OPTIONS, BackupConfig, DumpConfig, GitConfig
from .secrets import SecretManager
from .utils import slugify


@dataclass
class InteractiveConfigurator:
    secret_manager: SecretManager

    def create_config(self) -> BackupConfig:
        print("Creating a backup configuration. Press Ctrl+C to cancel.\n")

        project_name = slugify(self._prompt_non_empty("Project name: "))
        database_name = self._prompt_non_empty(
            f"Database name [{project_name}]: ", default=project_name
        )

        backup_default = str(Path("backups") / project_name)
        backup_directory = self._prompt_non_empty(
            f"Backup directory [{backup_default}]: ", default=backup_default
        )
        log_default = str(Path("logs") / "backup.log")
        log_file = self._prompt_non_empty(f"Log file [{log_default}]: ", default=log_default)
        retention_days = self._prompt_int(
            "How many days to keep backups (default 30): ", default=30
        )
        lock_file = self._prompt_optional(
            f"Lock file (Enter for /var/lock/backup_{project_name}.lock): "
        )

        config = BackupConfig(
            project_name=project_name,
            database_name=database_name,
            backup_directory=backup_directory,
            log_file=log_file,
            retention_days=retention_days,
            lock_file=lock_file,
            dump=self._configure_dump(project_name),
            git=self._configure_git(),
        )
        config.validate()
        return config

    # ------------------------------------------------------------------
    def _configure_dump(self, project_name: str) -> DumpConfig:
        default_options = " ".join(DEFAULT_DUMP_OPTIONS)
        options = self._prompt_non_empty(
            f"mysqldump options [{default_options}]: ", default=default_options
        )
        defaults_file = self._prompt_optional(
            "MySQL credentials file for --defaults-extra-file (Enter to skip): "
        )

        env_from_secrets: Dict[str, str] = {}
        if self._prompt_bool("Store the MySQL password in the secret store? [y/N]: ", default=False):
            env_from_secrets["MYSQL_PWD"] = self._prompt_secret(
                prompt="MySQL password",
                suggested_name=f"MYSQL_PWD_{project_name.upper()}",
            )
        if self._prompt_bool("Store the MySQL user in the secret store? [y/N]: ", default=False):
            env_from_secrets["MYSQL_USER"] = self._prompt_secret(
                prompt="MySQL user",
                suggested_name=f"MYSQL_USER_{project_name.upper()}",
                update_existing=False,
            )

        return DumpConfig(
            options=shlex.split(options),
            defaults_file=defaults_file,
            env_from_secrets=env_from_secrets,
        )

    # ------------------------------------------------------------------
    def _configure_git(self) -> GitConfig:
        if not self._prompt_bool(
            "Commit and push backups to a git remote (not recommended for large dumps)? [y/N]: ",
            default=False,
        ):
            return GitConfig(enabled=False)
        remote = self._prompt_non_empty("Remote [origin]: ", default="origin")
        branch = self._prompt_non_empty("Branch [main]: ", default="main")
        return GitConfig(enabled=True, remote=remote, branch=branch)

    # ------------------------------------------------------------------
    def _prompt_secret(
        self,
        *,
        prompt: str,
        suggested_name: str,
        update_existing: bool = True,
    ) -> str:
        existing = set(self.secret_manager.list_secrets())
        while True:
            name = self._prompt_non_empty(
                f"Secret name [{suggested_name}]: ",
                default=suggested_name,
            )
            if name in existing and not update_existing:
                if not self._prompt_bool(
                    f"Secret '{name}' already exists. Use it unchanged? [Y/n]: ",
                    default=True,
                ):
                    continue
                return name

            if name in existing:
                if not self._prompt_bool(
                    f"Secret '{name}' already exists. Overwrite it? [y/N]: ",
                    default=False,
                ):
                    return name

            value = self._prompt_secret_value(prompt)
            self.secret_manager.set_secret(name, value)
            return name

    # ------------------------------------------------------------------
    def _prompt_secret_value(self, prompt: str) -> str:
        while True:
            first = getpass(f"{prompt}: ")
            second = getpass("Repeat the value: ")
            if first != second:
                print("Values do not match, try again.")
                continue
            if not first:
                print("Value must not be empty.")
                continue
            return first

    # ------------------------------------------------------------------
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
            print("Answer not recognised. Type 'y' or 'n'.")

    # ------------------------------------------------------------------
    def _prompt_non_empty(self, question: str, default: Optional[str] = None) -> str:
        while True:
            answer = input(question).strip()
            if not answer:
                if default is not None:
                    return default
                print("Value must not be empty.")
                continue
            return answer

    # ------------------------------------------------------------------
    def _prompt_optional(self, question: str) -> Optional[str]:
        return input(question).strip() or None

    # ------------------------------------------------------------------
    def _prompt_int(self, question: str, *, default: int, minimum: int = 0) -> int:
        while True:
            answer = input(question).strip()
            if not answer:
                return default
            try:
                value = int(answer)
            except ValueError:
                print("Enter a whole number.")
                continue
            if value < minimum:
                print(f"Value must be at least {minimum}.")
                continue
            return value
