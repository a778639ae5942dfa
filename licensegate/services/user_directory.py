"""
User Directory Service.

Holds the roster of authorized accounts and answers lookup and
credential-check queries against it.

The roster is fetched wholesale from a single source, either a local
JSON file or an ``http(s)`` URL, and replaced atomically on success.
A failed fetch keeps the last-known-good roster in memory but is
reported as a typed ``RosterRefreshResult(success=False)``: callers
decide whether a stale roster is acceptable (the orchestrator never
accepts one).

Remote fetch
------------
- One ``GET`` per refresh, bounded by ``timeout`` seconds, no retries.
- Optional ``Authorization: <scheme> <token>`` header.  The token is
  read from the environment variable named in configuration at fetch
  time and never stored on the instance.
- A fixed ``User-Agent`` client identifier.
- Any non-2xx status is a failure.

Roster parsing
--------------
- A leading UTF-8 BOM is ignored.
- A body that is not a JSON array is a ``PARSE_ERROR``; ``null`` is an
  empty roster.
- Rows are validated one at a time.  An invalid row, an empty username
  or a repeated username is logged and skipped; the rest still load.
"""

from __future__ import annotations

import codecs
import os
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import requests
from pydantic import TypeAdapter, ValidationError

from licensegate.logger import StructuredLogger
from licensegate.models.account import Account
from licensegate.models.auth_models import CredentialResult, RosterRefreshResult
from licensegate.models.enums import CredentialErrorCode, RosterErrorCode
from licensegate.services.base_service import BaseService

_ROSTER_ADAPTER: TypeAdapter[Optional[list[Any]]] = TypeAdapter(Optional[list[Any]])


def utc_today() -> date:
    return datetime.now(tz=timezone.utc).date()


def is_remote_source(source: str) -> bool:
    """``True`` when *source* is an ``http://`` or ``https://`` URL."""
    lowered = source.strip().lower()
    return lowered.startswith("http://") or lowered.startswith("https://")


class UserDirectory(BaseService):
    """Roster holder and credential validator.

    Parameters
    ----------
    source:
        Local file path or ``http(s)`` URL of the roster JSON array.
    logger:
        Structured logger for audit events.
    timeout:
        Seconds allowed for the remote ``GET``.
    client_id:
        ``User-Agent`` value sent with remote requests.
    token_env_var:
        Name of the environment variable holding the optional access
        token.  Empty disables the ``Authorization`` header.
    auth_scheme:
        Scheme prefix for the ``Authorization`` header.
    http_session:
        ``requests.Session`` to issue requests with; one is created when
        omitted.
    today_provider:
        Returns the current UTC date; overridable for tests.
    """

    def __init__(
        self,
        source: str,
        logger: StructuredLogger,
        timeout: float = 8.0,
        client_id: str = "LicenseGate/1.0",
        token_env_var: str = "",
        auth_scheme: str = "Bearer",
        http_session: Optional[requests.Session] = None,
        today_provider: Callable[[], date] = utc_today,
    ) -> None:
        super().__init__(logger)
        self._source: str = source.strip()
        self._timeout: float = timeout
        self._client_id: str = client_id
        self._token_env_var: str = token_env_var
        self._auth_scheme: str = auth_scheme
        self._http: requests.Session = http_session or requests.Session()
        self._today: Callable[[], date] = today_provider

        self._roster: dict[str, Account] = {}
        self._has_roster: bool = False

    # ------------------------------------------------------------------
    # Roster refresh
    # ------------------------------------------------------------------

    @property
    def source(self) -> str:
        return self._source

    @property
    def has_roster(self) -> bool:
        """``True`` once any refresh has succeeded."""
        return self._has_roster

    def refresh(self) -> RosterRefreshResult:
        """Fetch the roster from the configured source.

        Never raises.  On success the in-memory roster is replaced
        wholesale; on failure it is left untouched.
        """
        if not self._source:
            return self._refresh_failed(RosterErrorCode.SOURCE_MISSING, "No roster source configured.")

        if is_remote_source(self._source):
            payload = self._fetch_remote()
        else:
            payload = self._read_local()
        if isinstance(payload, RosterRefreshResult):
            return payload

        try:
            entries: Optional[list[Any]] = _ROSTER_ADAPTER.validate_json(payload.removeprefix(codecs.BOM_UTF8))
        except ValidationError as exc:
            return self._refresh_failed(
                RosterErrorCode.PARSE_ERROR,
                f"Roster is not a JSON array ({exc.error_count()} errors).",
            )

        # A ``null`` body is an empty roster, not a failure.
        self._roster = self._index(self._parse_entries(entries or []))
        self._has_roster = True
        self._logger.info(
            "Roster refreshed: %d accounts.",
            len(self._roster),
            extra={"event": "ROSTER_REFRESHED", "account_count": len(self._roster)},
        )
        return RosterRefreshResult(success=True, account_count=len(self._roster))

    def _read_local(self) -> bytes | RosterRefreshResult:
        path = Path(self._source).expanduser()
        if not path.is_file():
            return self._refresh_failed(RosterErrorCode.SOURCE_MISSING, f"Roster file not found: {path}")
        try:
            return path.read_bytes()
        except OSError as exc:
            return self._refresh_failed(RosterErrorCode.SOURCE_MISSING, f"Roster file unreadable: {exc}")

    def _fetch_remote(self) -> bytes | RosterRefreshResult:
        headers: dict[str, str] = {
            "User-Agent": self._client_id,
            "Accept": "application/json",
        }
        token = os.environ.get(self._token_env_var, "").strip() if self._token_env_var else ""
        if token:
            headers["Authorization"] = f"{self._auth_scheme} {token}"

        try:
            resp = self._http.get(self._source, headers=headers, timeout=self._timeout)
        except requests.Timeout:
            return self._refresh_failed(
                RosterErrorCode.TIMEOUT,
                f"Roster request timed out after {self._timeout:g}s.",
            )
        except requests.RequestException as exc:
            return self._refresh_failed(RosterErrorCode.NETWORK_ERROR, f"Roster request failed: {exc}")

        if not 200 <= resp.status_code < 300:
            return self._refresh_failed(
                RosterErrorCode.HTTP_ERROR,
                f"Roster request returned HTTP {resp.status_code}.",
            )
        return resp.content

    def _parse_entries(self, entries: list[Any]) -> list[Account]:
        """Validate roster rows one by one; a bad row only costs its own user."""
        accounts: list[Account] = []
        for position, entry in enumerate(entries):
            try:
                accounts.append(Account.model_validate(entry))
            except ValidationError as exc:
                self._logger.warning(
                    "Skipping invalid roster entry #%d (%d errors).",
                    position,
                    exc.error_count(),
                )
        return accounts

    def _index(self, accounts: list[Account]) -> dict[str, Account]:
        roster: dict[str, Account] = {}
        for account in accounts:
            if not account.key:
                self._logger.warning("Skipping roster entry with an empty username.")
                continue
            if account.key in roster:
                self._logger.warning(
                    "Duplicate roster entry for %s; keeping the first one.",
                    account.username,
                )
                continue
            roster[account.key] = account
        return roster

    def _refresh_failed(self, code: RosterErrorCode, message: str) -> RosterRefreshResult:
        self._logger.warning(
            "Roster refresh failed (%s): %s",
            code,
            message,
            extra={"event": "ROSTER_UNAVAILABLE", "error_code": str(code)},
        )
        return RosterRefreshResult(success=False, error_code=code, error_message=message)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def lookup(self, username: str) -> Optional[Account]:
        """Case-insensitive exact match against the in-memory roster."""
        if not username:
            return None
        return self._roster.get(username.strip().casefold())

    def is_authorized(self, account: Account) -> bool:
        """``True`` when *account* is active and not past its expiry date."""
        return account.active and not account.is_expired(self._today())

    def validate_credentials(self, username: str, password: str) -> CredentialResult:
        """Check a username/password pair against the roster.

        Checks, in order: both fields present, user exists, password
        matches exactly, account active, account not expired.  The first
        failure is reported.
        """
        if not username or not username.strip() or not password or not password.strip():
            return CredentialResult.failed(CredentialErrorCode.MISSING_INPUT)

        account = self.lookup(username)
        if account is None:
            self._log_rejection(username, CredentialErrorCode.UNKNOWN_USER)
            return CredentialResult.failed(CredentialErrorCode.UNKNOWN_USER)

        if account.password != password:
            self._log_rejection(account.username, CredentialErrorCode.WRONG_PASSWORD)
            return CredentialResult.failed(CredentialErrorCode.WRONG_PASSWORD)

        if not account.active:
            self._log_rejection(account.username, CredentialErrorCode.INACTIVE)
            return CredentialResult.failed(CredentialErrorCode.INACTIVE)

        if account.is_expired(self._today()):
            self._log_rejection(account.username, CredentialErrorCode.EXPIRED)
            return CredentialResult.failed(CredentialErrorCode.EXPIRED)

        self._logger.info(
            "Credentials accepted for %s.",
            account.username,
            extra={"event": "LOGIN", "username": account.username},
        )
        return CredentialResult(success=True, account=account)

    def _log_rejection(self, username: str, code: CredentialErrorCode) -> None:
        self._logger.warning(
            "Credentials rejected for %s (%s).",
            username,
            code,
            extra={"event": "LOGIN_FAILED", "error_code": str(code)},
        )
