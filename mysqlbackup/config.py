"""Configuration models and helpers for the MySQL backup runner."""
from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .utils import slugify

CONFIG_FILENAME = "config.yaml"

DEFAULT_DUMP_OPTIONS = [
    "--single-transaction",
    "--quick",
    "--routines",
    "--events",
    "--triggers",
    "--skip-lock-tables",
]


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""


@dataclass
class DumpConfig:
    options: List[str] = field(default_factory=lambda: list(DEFAULT_DUMP_OPTIONS))
    defaults_file: Optional[str] = None
    env_from_secrets: Dict[str, str] = field(default_factory=dict)
    extension: str = ".sql"

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "DumpConfig":
        data = data or {}
        options = data.get("options") or DEFAULT_DUMP_OPTIONS
        if isinstance(options, str):
            options = shlex.split(options)
        if not isinstance(options, list):
            raise ConfigError("dump.options must be a string or a list.")
        extension = data.get("extension") or ".sql"
        if not isinstance(extension, str):
            raise ConfigError("dump.extension must be a string.")
        if not extension.startswith("."):
            extension = "." + extension
        env_from_secrets = data.get("env_from_secrets") or {}
        if not isinstance(env_from_secrets, dict):
            raise ConfigError("dump.env_from_secrets must be a mapping.")
        return cls(
            options=[str(option) for option in options],
            defaults_file=data.get("defaults_file"),
            env_from_secrets={str(k): str(v) for k, v in env_from_secrets.items()},
            extension=extension,
        )

    def to_dict(self) -> Dict:
        result: Dict[str, object] = {
            "options": list(self.options),
            "defaults_file": self.defaults_file,
            "env_from_secrets": self.env_from_secrets,
            "extension": self.extension,
        }
        return {key: value for key, value in result.items() if value is not None and value != {}}


@dataclass
class GitConfig:
    enabled: bool = False
    remote: str = "origin"
    branch: str = "main"
    commit_message: str = "Automatic backup - {timestamp}"

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "GitConfig":
        data = data or {}
        commit_message = data.get("commit_message") or "Automatic backup - {timestamp}"
        _check_commit_message(commit_message)
        return cls(
            enabled=_parse_bool(data.get("enabled"), "git.enabled"),
            remote=data.get("remote") or "origin",
            branch=data.get("branch") or "main",
            commit_message=commit_message,
        )

    def to_dict(self) -> Dict:
        return {
            "enabled": self.enabled,
            "remote": self.remote,
            "branch": self.branch,
            "commit_message": self.commit_message,
        }


@dataclass
class ToolsConfig:
    mysqldump: str = "mysqldump"
    gzip: str = "gzip"
    sha256sum: str = "sha256sum"
    git: str = "git"

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "ToolsConfig":
        data = data or {}
        return cls(
            mysqldump=data.get("mysqldump") or "mysqldump",
            gzip=data.get("gzip") or "gzip",
            sha256sum=data.get("sha256sum") or "sha256sum",
            git=data.get("git") or "git",
        )

    def to_dict(self) -> Dict:
        return {
            "mysqldump": self.mysqldump,
            "gzip": self.gzip,
            "sha256sum": self.sha256sum,
            "git": self.git,
        }


@dataclass
class BackupConfig:
    project_name: str
    database_name: str
    backup_directory: str
    log_file: str
    retention_days: int = 30
    lock_file: Optional[str] = None
    umask: int = 0o027
    dump: DumpConfig = field(default_factory=DumpConfig)
    git: GitConfig = field(default_factory=GitConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    extra: Dict[str, object] = field(default_factory=dict)

    @property
    def lock_path(self) -> Path:
        if self.lock_file:
            return Path(self.lock_file).expanduser()
        return Path("/var/lock") / f"backup_{self.project_name}.lock"

    @property
    def backup_path(self) -> Path:
        return Path(self.backup_directory).expanduser()

    @property
    def log_path(self) -> Path:
        return Path(self.log_file).expanduser()

    def required_tools(self) -> List[str]:
        tools = [self.tools.mysqldump, self.tools.gzip, self.tools.sha256sum]
        if self.git.enabled:
            tools.append(self.tools.git)
        return tools

    def validate(self) -> None:
        if not self.project_name:
            raise ConfigError("Field 'project_name' must not be empty.")
        if slugify(self.project_name, fallback="") != self.project_name:
            raise ConfigError(
                f"Project name '{self.project_name}' may only contain letters, digits, '-' and '_'."
            )
        if not self.database_name:
            raise ConfigError("Field 'database_name' must not be empty.")
        if not self.backup_directory:
            raise ConfigError(
                f"No backup_directory configured for project '{self.project_name}'."
            )
        if not self.log_file:
            raise ConfigError(f"No log_file configured for project '{self.project_name}'.")
        if self.retention_days is None or self.retention_days < 0:
            raise ConfigError(
                f"retention_days for project '{self.project_name}' must be a non-negative integer."
            )
        if not 0 <= self.umask <= 0o777:
            raise ConfigError(f"Invalid umask value: {self.umask!r}.")

    @classmethod
    def from_dict(cls, data: Dict) -> "BackupConfig":
        if not isinstance(data, dict):
            raise ConfigError("Section 'backup' must be a mapping.")
        if "project_name" not in data:
            raise ConfigError("Configuration must define 'project_name'.")
        known_keys = {
            "project_name",
            "database_name",
            "backup_directory",
            "backup_dir",
            "log_file",
            "retention_days",
            "lock_file",
            "umask",
            "dump",
            "git",
            "tools",
        }
        extra = {key: value for key, value in data.items() if key not in known_keys}
        project_name = str(data["project_name"] or "")
        config = cls(
            project_name=project_name,
            database_name=str(data.get("database_name") or project_name),
            backup_directory=data.get("backup_directory") or data.get("backup_dir") or "",
            log_file=data.get("log_file") or "",
            retention_days=_safe_int(data.get("retention_days"), default=30),
            lock_file=data.get("lock_file"),
            umask=_parse_umask(data.get("umask")),
            dump=DumpConfig.from_dict(data.get("dump")),
            git=GitConfig.from_dict(data.get("git")),
            tools=ToolsConfig.from_dict(data.get("tools")),
            extra=extra,
        )
        config.validate()
        return config

    def to_dict(self) -> Dict:
        result: Dict[str, object] = {
            "project_name": self.project_name,
            "database_name": self.database_name,
            "backup_directory": self.backup_directory,
            "log_file": self.log_file,
            "retention_days": self.retention_days,
            "lock_file": self.lock_file,
            "umask": format(self.umask, "04o"),
            "dump": self.dump.to_dict(),
            "git": self.git.to_dict(),
            "tools": self.tools.to_dict(),
        }
        result.update(self.extra)
        return {key: value for key, value in result.items() if value not in (None, {}, [])}


# ---------------------------------------------------------------------------
def _safe_int(value, default: Optional[int] = None) -> Optional[int]:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Value '{value}' cannot be converted to an integer.")


def _parse_bool(value, name: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"true", "yes", "on", "1"}:
        return True
    if text in {"false", "no", "off", "0", ""}:
        return False
    raise ConfigError(f"{name} must be true or false, got '{value}'.")


def _check_commit_message(template) -> None:
    if not isinstance(template, str):
        raise ConfigError("git.commit_message must be a string.")
    try:
        template.format_map({"timestamp": ""})
    except (AttributeError, IndexError, KeyError, ValueError) as exc:
        raise ConfigError(
            f"git.commit_message '{template}' may only use the {{timestamp}} placeholder."
        ) from exc


def _parse_umask(value) -> int:
    # YAML reads 027 as the decimal integer 27, so octal masks are kept as strings
    if value is None:
        return 0o027
    if isinstance(value, int):
        return value
    try:
        return int(str(value), 8)
    except ValueError:
        raise ConfigError(f"umask value '{value}' must be an octal number.")


# ---------------------------------------------------------------------------
def load_config(path: Path = Path(CONFIG_FILENAME)) -> BackupConfig:
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' not found.")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Cannot parse '{path}': {exc}") from exc
    if not data or "backup" not in data:
        raise ConfigError("Configuration file must contain a 'backup' key.")
    return BackupConfig.from_dict(data["backup"])


def save_config(config: BackupConfig, path: Path = Path(CONFIG_FILENAME)) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(
            {"backup": config.to_dict()},
            fh,
            allow_unicode=True,
            sort_keys=False,
            default_flow_style=False,
        )


__all__ = [
    "BackupConfig",
    "ConfigError",
    "DumpConfig",
    "GitConfig",
    "ToolsConfig",
    "load_config",
    "save_config",
]
