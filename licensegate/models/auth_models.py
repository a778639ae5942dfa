"""
Authentication Pipeline Models.

Pydantic models for the contracts between ``UserDirectory``,
``LocalSessionStore``, ``SessionOrchestrator`` and the login UI.

Every operation that can fail for an expected reason returns one of
these structured results rather than raising, so callers cannot
silently proceed on a swallowed exception.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from licensegate.models.account import Account
from licensegate.models.enums import (
    CredentialErrorCode,
    GateState,
    RosterErrorCode,
    SessionRejectReason,
)


# ---------------------------------------------------------------------------
# Roster refresh
# ---------------------------------------------------------------------------

class RosterRefreshResult(BaseModel):
    """Outcome of ``UserDirectory.refresh()``.

    ``success=False`` means "roster unavailable": the previous roster,
    if any, is still in place but must not be trusted for a new
    authorization decision.
    """

    success: bool
    error_code: Optional[RosterErrorCode] = None
    error_message: Optional[str] = None
    account_count: int = 0

    def __bool__(self) -> bool:
        return self.success


# ---------------------------------------------------------------------------
# Credential validation
# ---------------------------------------------------------------------------

class CredentialResult(BaseModel):
    """Outcome of ``UserDirectory.validate_credentials()``.

    Attributes
    ----------
    success:
        ``True`` when every check passed.
    account:
        The matched roster account on success, ``None`` otherwise.
    error_code:
        The first failing check.
    error_message:
        User-facing text, safe to display verbatim.
    """

    success: bool
    account: Optional[Account] = None
    error_code: Optional[CredentialErrorCode] = None
    error_message: Optional[str] = None

    @classmethod
    def failed(cls, code: CredentialErrorCode) -> "CredentialResult":
        return cls(success=False, error_code=code, error_message=CREDENTIAL_MESSAGES[code])


CREDENTIAL_MESSAGES: dict[CredentialErrorCode, str] = {
    CredentialErrorCode.MISSING_INPUT: "Enter username and password.",
    CredentialErrorCode.UNKNOWN_USER: "Unknown user.",
    CredentialErrorCode.WRONG_PASSWORD: "Invalid password.",
    CredentialErrorCode.INACTIVE: "Account inactive.",
    CredentialErrorCode.EXPIRED: "Account expired.",
}


# ---------------------------------------------------------------------------
# Cached session token
# ---------------------------------------------------------------------------

class SessionToken(BaseModel):
    """Locally cached proof of a prior successful login.

    Serialised to JSON (``{username, machine_id, expires_utc}``) and
    encrypted for the current OS user before it touches the disk.
    """

    username: str
    machine_id: str
    expires_utc: datetime

    model_config = {"frozen": True}

    @field_validator("expires_utc")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @classmethod
    def for_account(cls, account: Account, machine_id: str) -> "SessionToken":
        return cls(username=account.username, machine_id=machine_id, expires_utc=account.expires)

    def is_expired(self, today: date) -> bool:
        return self.expires_utc.date() < today


# ---------------------------------------------------------------------------
# Orchestrator output
# ---------------------------------------------------------------------------

class AuthenticatedSession(BaseModel):
    """The principal handed to the host once the gate opens.

    The caller threads this value into whatever runs next; nothing in
    the gate keeps a process-wide "current user".
    """

    account: Account
    machine_id: str
    from_cache: bool = False

    model_config = {"frozen": True}

    @property
    def username(self) -> str:
        return self.account.username


class GateResult(BaseModel):
    """Outcome of one ``SessionOrchestrator.authorize()`` pass.

    Attributes
    ----------
    state:
        Terminal state reached.
    granted:
        ``True`` only for ``TOKEN_ACCEPTED`` / ``LOGGED_IN_FRESH``.
    session:
        The authenticated principal when ``granted``.
    message:
        Text suitable for a host dialog on denial.
    reject_reason:
        Set when a cached token was rejected on the way.
    trail:
        Every state visited, in order, starting with ``START``.
    """

    state: GateState
    granted: bool = False
    session: Optional[AuthenticatedSession] = None
    message: Optional[str] = None
    reject_reason: Optional[SessionRejectReason] = None
    trail: list[GateState] = Field(default_factory=list)

    @property
    def cancelled(self) -> bool:
        return self.state == GateState.CANCELLED
