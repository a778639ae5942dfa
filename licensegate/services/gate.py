"""
Session Orchestrator.

Decides, once per host action, whether the add-in may run.  The
roster is the source of truth and is refreshed on every pass; the
cached session only lets a known user skip the login prompt.

State machine
-------------
::

    START ──refresh fails──────────────────────────▶ DIRECTORY_UNAVAILABLE
      │
      ├─ no cached session ──────▶ TOKEN_ABSENT ─┐
      ├─ cached session rejected ▶ TOKEN_REJECTED ┤ (session deleted)
      │                                           ▼
      │                              login prompt ─cancel─▶ CANCELLED
      │                                           │
      │                                           ▼
      │                                     LOGGED_IN_FRESH ─┐
      └─ cached session trusted ─▶ TOKEN_ACCEPTED ───────────┤
                                                             ▼
                                     final check fails ▶ ACCESS_DENIED
                                     final check passes ▶ granted

Any unexpected exception ends in ``FAILED``; ``authorize()`` never
raises into the host.
"""

from __future__ import annotations

from datetime import date
from typing import Callable, Optional, Protocol, runtime_checkable

from licensegate.logger import StructuredLogger
from licensegate.models.account import Account
from licensegate.models.auth_models import (
    AuthenticatedSession,
    CredentialResult,
    GateResult,
    SessionToken,
)
from licensegate.models.enums import GateState, SessionRejectReason
from licensegate.services.base_service import BaseService
from licensegate.services.machine_identity import MachineIdentity
from licensegate.services.session_store import LocalSessionStore
from licensegate.services.user_directory import UserDirectory, utc_today

NETWORK_REQUIRED_MESSAGE: str = (
    "This add-in requires internet to validate users. "
    "Please connect and try again."
)
ACCESS_DENIED_MESSAGE: str = "You do not have permission to run this tool."
CANCELLED_MESSAGE: str = "Sign-in was cancelled."
FAILED_MESSAGE: str = "Authorization failed unexpectedly. See the log for details."
LOGIN_LOOKUP_FAILED_MESSAGE: str = "Failed to retrieve user after login."


# ---------------------------------------------------------------------------
# Login collaborator contract
# ---------------------------------------------------------------------------

@runtime_checkable
class CredentialValidator(Protocol):
    """What the login UI is allowed to call."""

    def validate_credentials(self, username: str, password: str) -> CredentialResult: ...  # noqa: E704


@runtime_checkable
class LoginPrompt(Protocol):
    """Blocking, modal login interaction.

    Implementations present username/password fields, call
    ``validator.validate_credentials`` on submit, show
    ``error_message`` verbatim on failure and let the user retry without
    limit.  They return the confirmed ``Account`` or ``None`` when the
    user cancels.
    """

    def prompt(self, validator: CredentialValidator) -> Optional[Account]: ...  # noqa: E704


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class SessionOrchestrator(BaseService):
    """Runs the gate.

    Parameters
    ----------
    directory:
        Roster holder; refreshed at the start of every pass.
    store:
        Encrypted single-session store.
    machine:
        Machine identifier source.
    login_prompt:
        Interactive login collaborator.
    logger:
        Structured logger for audit events.
    today_provider:
        Returns the current UTC date; overridable for tests.
    """

    def __init__(
        self,
        directory: UserDirectory,
        store: LocalSessionStore,
        machine: MachineIdentity,
        login_prompt: LoginPrompt,
        logger: StructuredLogger,
        today_provider: Callable[[], date] = utc_today,
    ) -> None:
        super().__init__(logger)
        self._directory: UserDirectory = directory
        self._store: LocalSessionStore = store
        self._machine: MachineIdentity = machine
        self._login_prompt: LoginPrompt = login_prompt
        self._today: Callable[[], date] = today_provider

    def authorize(self) -> GateResult:
        """Run one full pass of the gate and return its outcome."""
        trail: list[GateState] = [GateState.START]
        try:
            return self._run(trail)
        except Exception:
            self._logger.exception(
                "Unexpected failure while authorizing.",
                extra={"event": "GATE_FAILED"},
            )
            trail.append(GateState.FAILED)
            return GateResult(state=GateState.FAILED, message=FAILED_MESSAGE, trail=trail)

    def sign_out(self) -> None:
        """Forget the cached session so the next pass prompts again."""
        self._store.delete()
        self._logger.info("Signed out.", extra={"event": "LOGOUT"})

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _run(self, trail: list[GateState]) -> GateResult:
        refreshed = self._directory.refresh()
        if not refreshed.success:
            # A stale roster is never enough to grant access, so the
            # cached session is not even read.
            trail.append(GateState.DIRECTORY_UNAVAILABLE)
            return GateResult(
                state=GateState.DIRECTORY_UNAVAILABLE,
                message=NETWORK_REQUIRED_MESSAGE,
                trail=trail,
            )

        machine_id = self._machine.current_machine_id()
        reject_reason: Optional[SessionRejectReason] = None

        cached = self._store.load()
        if cached is None:
            trail.append(GateState.TOKEN_ABSENT)
        else:
            account, reject_reason = self._check_cached(cached, machine_id)
            if account is not None:
                trail.append(GateState.TOKEN_ACCEPTED)
                self._logger.info(
                    "Cached session accepted for %s.",
                    account.username,
                    extra={"event": "TOKEN_ACCEPTED", "username": account.username},
                )
                return self._finish(
                    GateState.TOKEN_ACCEPTED,
                    AuthenticatedSession(account=account, machine_id=machine_id, from_cache=True),
                    trail,
                )

            trail.append(GateState.TOKEN_REJECTED)
            self._logger.warning(
                "Cached session for %s rejected (%s); login required.",
                cached.username,
                reject_reason,
                extra={"event": "TOKEN_REJECTED", "reason": str(reject_reason)},
            )
            self._store.delete()

        return self._login(machine_id, reject_reason, trail)

    def _check_cached(
        self,
        cached: SessionToken,
        machine_id: str,
    ) -> tuple[Optional[Account], Optional[SessionRejectReason]]:
        if cached.machine_id != machine_id:
            return None, SessionRejectReason.MACHINE_MISMATCH
        if cached.is_expired(self._today()):
            return None, SessionRejectReason.TOKEN_EXPIRED

        account = self._directory.lookup(cached.username)
        if account is None:
            return None, SessionRejectReason.ACCOUNT_MISSING
        if not account.active:
            return None, SessionRejectReason.ACCOUNT_INACTIVE
        if account.is_expired(self._today()):
            return None, SessionRejectReason.ACCOUNT_EXPIRED
        return account, None

    def _login(
        self,
        machine_id: str,
        reject_reason: Optional[SessionRejectReason],
        trail: list[GateState],
    ) -> GateResult:
        confirmed = self._login_prompt.prompt(self._directory)
        if confirmed is None:
            trail.append(GateState.CANCELLED)
            self._logger.info("Login cancelled by user.", extra={"event": "LOGIN_CANCELLED"})
            return GateResult(
                state=GateState.CANCELLED,
                message=CANCELLED_MESSAGE,
                reject_reason=reject_reason,
                trail=trail,
            )

        # Re-resolve against the roster so the session reflects the
        # authoritative record, not whatever the prompt returned.
        account = self._directory.lookup(confirmed.username)
        if account is None:
            trail.append(GateState.FAILED)
            self._logger.error(
                "Login prompt returned %s, which is not on the roster.",
                confirmed.username,
            )
            return GateResult(
                state=GateState.FAILED,
                message=LOGIN_LOOKUP_FAILED_MESSAGE,
                reject_reason=reject_reason,
                trail=trail,
            )

        self._store.save(SessionToken.for_account(account, machine_id))
        trail.append(GateState.LOGGED_IN_FRESH)
        result = self._finish(
            GateState.LOGGED_IN_FRESH,
            AuthenticatedSession(account=account, machine_id=machine_id, from_cache=False),
            trail,
        )
        return result.model_copy(update={"reject_reason": reject_reason})

    def _finish(
        self,
        state: GateState,
        session: AuthenticatedSession,
        trail: list[GateState],
    ) -> GateResult:
        """Final authorization check shared by both granting paths."""
        if not self._directory.is_authorized(session.account):
            trail.append(GateState.ACCESS_DENIED)
            self._logger.warning(
                "Access denied for %s at final check.",
                session.username,
                extra={"event": "ACCESS_DENIED", "username": session.username},
            )
            return GateResult(state=GateState.ACCESS_DENIED, message=ACCESS_DENIED_MESSAGE, trail=trail)

        self._logger.info(
            "Access granted to %s (%s).",
            session.username,
            state,
            extra={"event": "ACCESS_GRANTED", "username": session.username},
        )
        return GateResult(state=state, granted=True, session=session, trail=trail)
