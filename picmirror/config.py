"""Configuration file handling and the application context."""

from __future__ import annotations

import json
import os
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, Protocol

from picmirror.errors import ConfigurationError
from picmirror.utils import dbg, env_int

APP_DIR_NAME = "picmirror"
CONFIG_FILE_NAME = "d1_config.json"
SECRETS_FILE_NAME = "secrets.json"
SMMS_TOKEN_SECRET = "smms_token"


@dataclass(frozen=True)
class D1Config:
    """Cloudflare D1 account, database and API token."""

    account_id: str
    database_id: str
    api_token: str


@dataclass(frozen=True)
class SyncSettings:
    """Tunables for the import loop."""

    max_pages: int = 100
    batch_size: int = 50
    max_consecutive_failures: int = 3

    @classmethod
    def from_env(cls) -> SyncSettings:
        return cls(
            max_pages=env_int("PICMIRROR_MAX_PAGES", 100),
            batch_size=env_int("PICMIRROR_BATCH_SIZE", 50),
        )


class SecretStore(Protocol):
    """Opaque get/set secret capability."""

    def get_secret(self, name: str) -> Optional[str]: ...

    def set_secret(self, name: str, value: str) -> None: ...


def _default_config_dir() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME", "").strip() or str(Path.home() / ".config")
    return Path(base) / APP_DIR_NAME


def _default_config_path() -> Path:
    env_path = os.environ.get("PICMIRROR_CONFIG", "").strip()
    if env_path:
        return Path(env_path).expanduser().resolve()
    return _default_config_dir() / CONFIG_FILE_NAME


class FileSecretStore:
    """Plain JSON secret file; encryption is left to the platform keyring."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as error:
            raise ConfigurationError(f"Failed to read secrets file: {error}") from error
        return data if isinstance(data, dict) else {}

    def get_secret(self, name: str) -> Optional[str]:
        value = self._read().get(name)
        return str(value) if value else None

    def set_secret(self, name: str, value: str) -> None:
        data = self._read()
        data[name] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        # A file left over from an older run keeps its mode; tighten it before writing.
        try:
            os.chmod(self.path, 0o600)
        except OSError as error:
            dbg(f"Could not restrict secrets file mode: {error}")
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(data, indent=2))


class AppContext:
    """
    Explicit application context passed to every operation.

    Holds the D1 configuration cache: read from disk on first access, replaced
    on save, cleared on delete.
    """

    def __init__(
        self,
        config_path: Path | str | None = None,
        secrets: SecretStore | None = None,
        sync: SyncSettings | None = None,
    ) -> None:
        self.config_path = Path(config_path) if config_path else _default_config_path()
        self.secrets = secrets or FileSecretStore(
            self.config_path.parent / SECRETS_FILE_NAME
        )
        self.sync = sync or SyncSettings.from_env()
        self._lock = threading.Lock()
        self._cached: D1Config | None = None

    def load_d1_config(self) -> D1Config:
        """Return the cached config, reading the file on first use."""
        with self._lock:
            if self._cached is not None:
                return self._cached

            if not self.config_path.exists():
                raise ConfigurationError(
                    f"Config file does not exist: {self.config_path}"
                )
            try:
                raw = json.loads(self.config_path.read_text(encoding="utf-8"))
                config = D1Config(
                    account_id=str(raw["account_id"]),
                    database_id=str(raw["database_id"]),
                    api_token=str(raw["api_token"]),
                )
            except OSError as error:
                raise ConfigurationError(f"Failed to read config file: {error}") from error
            except (ValueError, KeyError, TypeError) as error:
                raise ConfigurationError(f"Failed to parse config file: {error}") from error

            self._cached = config
            return config

    def save_d1_config(self, config: D1Config) -> str:
        with self._lock:
            try:
                self.config_path.parent.mkdir(parents=True, exist_ok=True)
                self.config_path.write_text(
                    json.dumps(asdict(config), indent=2), encoding="utf-8"
                )
            except OSError as error:
                raise ConfigurationError(f"Failed to write config file: {error}") from error
            self._cached = config
        return "Configuration saved"

    def delete_d1_config(self) -> str:
        with self._lock:
            if self.config_path.exists():
                try:
                    self.config_path.unlink()
                except OSError as error:
                    raise ConfigurationError(
                        f"Failed to delete config file: {error}"
                    ) from error
            self._cached = None
        return "Configuration deleted"

    def smms_token(self) -> str:
        """Return the SM.MS API token; the env var wins over the secret store."""
        token = os.environ.get("PICMIRROR_SMMS_TOKEN", "").strip()
        if not token:
            token = (self.secrets.get_secret(SMMS_TOKEN_SECRET) or "").strip()
        if not token:
            raise ConfigurationError("Log in to SM.MS first to obtain an API token")
        return token

    def save_smms_token(self, token: str) -> None:
        self.secrets.set_secret(SMMS_TOKEN_SECRET, token)
