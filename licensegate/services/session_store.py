"""
Local Session Store.

Persists the single cached ``SessionToken`` as an encrypted file under
the per-application local-data directory.

Storage
-------
``<data dir>/auth.token`` holds ``cipher.protect(json)`` where the JSON
is ``{"username", "machine_id", "expires_utc"}``.  The file is only
readable by the OS user that wrote it (see ``user_cipher``); copying it
to another machine or account yields an unreadable file, which
``load()`` treats exactly like a missing one.

Failure policy
--------------
- ``save()`` raises ``SessionStoreError``.  A session that cannot be
  written is a real fault the orchestrator reports.
- ``load()`` never raises.  Anything unreadable is "no session".
- ``delete()`` never raises.  It only has to make the next ``load()``
  miss.
"""

from __future__ import annotations

import contextlib
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from licensegate.exceptions import CipherError, SessionStoreError
from licensegate.logger import StructuredLogger
from licensegate.models.auth_models import SessionToken
from licensegate.services.base_service import BaseService
from licensegate.services.user_cipher import UserScopedCipher, restrict_to_owner


class LocalSessionStore(BaseService):
    """Reads and writes the encrypted session file.

    Parameters
    ----------
    path:
        Full path of the session file.
    cipher:
        User-scoped encryption capability.
    logger:
        Structured logger.
    """

    def __init__(
        self,
        path: Path,
        cipher: UserScopedCipher,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._path: Path = path
        self._cipher: UserScopedCipher = cipher

    @property
    def path(self) -> Path:
        return self._path

    @property
    def exists(self) -> bool:
        return self._path.is_file()

    def save(self, session: SessionToken) -> None:
        """Encrypt *session* and overwrite the session file.

        Raises
        ------
        SessionStoreError
            If encryption or the write fails.
        """
        plaintext: bytes = session.model_dump_json().encode("utf-8")
        try:
            blob = self._cipher.protect(plaintext)
        except CipherError as exc:
            raise SessionStoreError(f"Could not encrypt session: {exc}") from exc

        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(blob)
            restrict_to_owner(tmp_path, self._logger)
            os.replace(tmp_path, self._path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            raise SessionStoreError(f"Could not write session file '{self._path}': {exc}") from exc

        self._logger.info(
            "Session cached for %s.",
            session.username,
            extra={"event": "SESSION_SAVED", "username": session.username},
        )

    def load(self) -> Optional[SessionToken]:
        """Return the cached session, or ``None`` if absent or unreadable."""
        try:
            blob = self._path.read_bytes()
        except FileNotFoundError:
            self._logger.debug("No cached session at %s.", self._path)
            return None
        except OSError as exc:
            self._logger.warning("Failed to read cached session: %s", exc)
            return None

        try:
            plaintext = self._cipher.unprotect(blob)
        except CipherError as exc:
            self._logger.warning(
                "Cached session could not be decrypted (corrupt file, other "
                "user or other machine): %s",
                exc,
            )
            return None

        try:
            session = SessionToken.model_validate_json(plaintext)
        except ValidationError as exc:
            self._logger.warning("Cached session payload is malformed: %s", exc)
            return None

        self._logger.debug("Loaded cached session for %s.", session.username)
        return session

    def delete(self) -> None:
        """Remove the session file.  Safe to call when none exists."""
        try:
            self._path.unlink(missing_ok=True)
        except OSError as exc:
            self._logger.warning("Failed to delete cached session: %s", exc)
            return
        self._logger.info("Cached session cleared.", extra={"event": "SESSION_CLEARED"})
