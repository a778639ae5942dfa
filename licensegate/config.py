"""
Gate Configuration.

Pydantic Settings model for the license gate.  All configuration is
loaded from environment variables and an optional ``.env`` file.
Inject a ``GateConfig`` instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import os
import platform
import threading
from pathlib import Path
from typing import Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class GateConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Roster source ---
    # Either a local file path or an http(s) URL returning a JSON array.
    ROSTER_SOURCE: str = ""
    # Name of the environment variable holding the optional access token.
    # The token itself is never part of the configuration.
    ROSTER_TOKEN_ENV_VAR: str = "LICENSEGATE_ROSTER_TOKEN"
    ROSTER_AUTH_SCHEME: str = "Bearer"
    ROSTER_HTTP_TIMEOUT_S: float = 8.0
    CLIENT_ID: str = "LicenseGate/1.0"

    # --- Local storage ---
    APP_DIR_NAME: str = "LicenseGate"
    DATA_DIR: Optional[Path] = None
    SESSION_FILE_NAME: str = "auth.token"
    SALT_FILE_NAME: str = "session.salt"

    # --- Session encryption (non-Windows fallback cipher) ---
    KDF_ITERATIONS: int = 600_000

    # --- Logging ---
    LOG_FILE_NAME: str = "licensegate.log"
    LOG_MAX_BYTES: int = 1_048_576  # 1 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @field_validator("ROSTER_HTTP_TIMEOUT_S")
    @classmethod
    def _bounded_timeout(cls, value: float) -> float:
        """The roster fetch must stay a single-digit-seconds operation."""
        if not 0 < value < 10:
            raise ValueError("ROSTER_HTTP_TIMEOUT_S must be between 0 and 10 seconds")
        return value

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "GateConfig":
        """Emit a startup warning when the roster source is not configured.

        Without a source every ``refresh()`` fails and the gate denies
        access, so an empty value is almost always a deployment mistake.
        """
        _log = logging.getLogger("licensegate.config")

        if not self.ROSTER_SOURCE:
            _log.warning(
                "ROSTER_SOURCE is empty: the roster cannot be refreshed "
                "and every authorization attempt will be denied."
            )

        return self

    def resolve_data_dir(self) -> Path:
        """Return the per-application local-data directory.

        ``DATA_DIR`` wins when set.  Otherwise ``%LOCALAPPDATA%`` is used
        on Windows and ``$XDG_DATA_HOME`` (default ``~/.local/share``)
        elsewhere, with ``APP_DIR_NAME`` appended.  The directory is not
        created here.
        """
        if self.DATA_DIR is not None:
            return Path(self.DATA_DIR)

        if platform.system() == "Windows":
            base = os.environ.get("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
        else:
            base = os.environ.get("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
        return Path(base) / self.APP_DIR_NAME

    @property
    def session_path(self) -> Path:
        return self.resolve_data_dir() / self.SESSION_FILE_NAME

    @property
    def salt_path(self) -> Path:
        return self.resolve_data_dir() / self.SALT_FILE_NAME

    @property
    def log_path(self) -> Path:
        return self.resolve_data_dir() / self.LOG_FILE_NAME


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[GateConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> GateConfig:
    """Return a cached ``GateConfig`` singleton.

    On first call, creates a ``GateConfig`` instance (reading from
    ``.env``).  Subsequent calls return the same instance.  Uses a
    check-lock-check pattern so the fast path takes no lock.

    Prefer direct constructor injection of ``GateConfig``; this factory
    exists for the logger and the entry point.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = GateConfig()
    return _config_instance
