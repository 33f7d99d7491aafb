"""Encrypted storage for database credentials."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable

from cryptography.fernet import Fernet, InvalidToken


class SecretError(Exception):
    """Raised when the secret store cannot be used."""


class SecretNotFoundError(SecretError):
    """Raised when a requested secret is absent."""


@dataclass
class SecretManager:
    """Fernet-encrypted ``name -> value`` store kept next to the configuration.

    The key file and the secrets file are created with ``0600`` permissions.
    Values are encrypted one by one, so the JSON file still lists secret names.
    """

    key_path: Path
    secrets_path: Path

    def __post_init__(self) -> None:
        self.key_path = Path(self.key_path)
        self.secrets_path = Path(self.secrets_path)

    def generate_key(self) -> None:
        if self.key_path.exists():
            raise SecretError(f"Key file '{self.key_path}' already exists.")
        _write_private(self.key_path, Fernet.generate_key())

    def ensure_key_available(self) -> None:
        if not self.key_path.exists():
            raise SecretError(
                f"Key file '{self.key_path}' not found. Create it with the 'init-key' command."
            )

    def set_secret(self, name: str, value: str) -> None:
        if not name:
            raise SecretError("Secret name must not be empty.")
        data = self._load()
        data[name] = self._fernet().encrypt(value.encode("utf-8")).decode("ascii")
        _write_private(self.secrets_path, json.dumps(data, indent=2, sort_keys=True).encode("utf-8"))

    def get_secret(self, name: str) -> str:
        data = self._load()
        if name not in data:
            raise SecretNotFoundError(f"Secret '{name}' not found.")
        try:
            return self._fernet().decrypt(data[name].encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise SecretError(f"Secret '{name}' cannot be decrypted with '{self.key_path}'.") from exc

    def list_secrets(self) -> Iterable[str]:
        return sorted(self._load())

    # ------------------------------------------------------------------
    def _fernet(self) -> Fernet:
        self.ensure_key_available()
        try:
            return Fernet(self.key_path.read_bytes().strip())
        except ValueError as exc:
            raise SecretError(f"Key file '{self.key_path}' is not a valid Fernet key.") from exc

    def _load(self) -> Dict[str, str]:
        if not self.secrets_path.exists():
            return {}
        try:
            data = json.loads(self.secrets_path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            raise SecretError(f"Secrets file '{self.secrets_path}' is corrupted: {exc}") from exc
        if not isinstance(data, dict):
            raise SecretError(f"Secrets file '{self.secrets_path}' must contain a JSON object.")
        return data


def _write_private(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as fh:
        fh.write(content)
    os.chmod(path, 0o600)


__all__ = ["SecretError", "SecretManager", "SecretNotFoundError"]
