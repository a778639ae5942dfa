"""
Shared Enumerations for License Gate Models.

StrEnum values compare equal to their string equivalents, so they
serialise cleanly into log ``extra`` fields and JSON.
"""

from __future__ import annotations
from enum import StrEnum


class CredentialErrorCode(StrEnum):
    """Why ``validate_credentials`` rejected a username/password pair.

    Checked in declaration order; the first failing check is reported.
    """

    MISSING_INPUT = "missing_input"
    UNKNOWN_USER = "unknown_user"
    WRONG_PASSWORD = "wrong_password"
    INACTIVE = "inactive"
    EXPIRED = "expired"


class RosterErrorCode(StrEnum):
    """Why a roster refresh did not replace the in-memory roster."""

    SOURCE_MISSING = "source_missing"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    HTTP_ERROR = "http_error"
    PARSE_ERROR = "parse_error"


class SessionRejectReason(StrEnum):
    """Why a cached session token was not trusted."""

    MACHINE_MISMATCH = "machine_mismatch"
    TOKEN_EXPIRED = "token_expired"
    ACCOUNT_MISSING = "account_missing"
    ACCOUNT_INACTIVE = "account_inactive"
    ACCOUNT_EXPIRED = "account_expired"


class GateState(StrEnum):
    """States of the session orchestrator.

    ``DIRECTORY_UNAVAILABLE``, ``ACCESS_DENIED``, ``CANCELLED`` and
    ``FAILED`` are terminal denials.  ``TOKEN_ACCEPTED`` and
    ``LOGGED_IN_FRESH`` grant access once the final authorization check
    passes.
    """

    START = "start"
    DIRECTORY_UNAVAILABLE = "directory_unavailable"
    TOKEN_ABSENT = "token_absent"
    TOKEN_REJECTED = "token_rejected"
    TOKEN_ACCEPTED = "token_accepted"
    LOGGED_IN_FRESH = "logged_in_fresh"
    ACCESS_DENIED = "access_denied"
    CANCELLED = "cancelled"
    FAILED = "failed"
