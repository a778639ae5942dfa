"""
Data Models Package.

Re-exports all Pydantic models:
    from licensegate.models import Account, SessionToken, GateResult
    from licensegate.models import GateState, CredentialErrorCode
"""

from __future__ import annotations

from licensegate.models.account import Account
from licensegate.models.auth_models import (
    CREDENTIAL_MESSAGES,
    AuthenticatedSession,
    CredentialResult,
    GateResult,
    RosterRefreshResult,
    SessionToken,
)
from licensegate.models.enums import (
    CredentialErrorCode,
    GateState,
    RosterErrorCode,
    SessionRejectReason,
)

__all__ = [
    "Account",
    "AuthenticatedSession",
    "CREDENTIAL_MESSAGES",
    "CredentialErrorCode",
    "CredentialResult",
    "GateResult",
    "GateState",
    "RosterErrorCode",
    "RosterRefreshResult",
    "SessionRejectReason",
    "SessionToken",
]
