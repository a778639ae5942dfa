"""
tests/conftest.py -- Shared fixtures for the license gate tests.

This module provides:
  - logger: console-only StructuredLogger (no log file is written)
  - today / clock: a fixed UTC date so expiry checks are deterministic
  - roster_file: writes a roster JSON array into tmp_path
  - FakeCipher: reversible cipher bound to an "owner" string, standing in
    for DPAPI so session-store tests need no OS key store
  - ScriptedPrompt: LoginPrompt that replays credential attempts
  - gate: fully wired SessionOrchestrator over tmp_path

Nothing here touches the network, the real data directory or a display.
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Callable, Optional

import pytest

from licensegate.exceptions import CipherError
from licensegate.logger import StructuredLogger
from licensegate.models.account import Account
from licensegate.services.gate import CredentialValidator, SessionOrchestrator
from licensegate.services.machine_identity import MachineIdentity
from licensegate.services.session_store import LocalSessionStore
from licensegate.services.user_directory import UserDirectory

TODAY = date(2026, 6, 15)
FUTURE = "2027-01-31"
PAST = "2026-06-14"


def account_entry(username="alice", password="pw1", active=True, expires=FUTURE):
    """Build one roster entry as it appears in the roster JSON."""
    return {"username": username, "password": password, "active": active, "expires": expires}


class FakeCipher:
    """Prefix-tagging cipher: only the same *owner* can unprotect."""

    def __init__(self, owner: str = "user-a") -> None:
        self.owner = owner

    def protect(self, plaintext: bytes) -> bytes:
        return self.owner.encode() + b"|" + plaintext[::-1]

    def unprotect(self, blob: bytes) -> bytes:
        owner, sep, body = blob.partition(b"|")
        if not sep or owner != self.owner.encode():
            raise CipherError("blob belongs to another user")
        return body[::-1]


class ScriptedPrompt:
    """Replays (username, password) attempts against the validator.

    Returns the first confirmed account, or ``None`` (cancel) once the
    script runs out.  Every validator response is kept in ``results``.
    """

    def __init__(self, attempts: list[tuple[str, str]]) -> None:
        self._attempts = list(attempts)
        self.results = []
        self.calls = 0

    def prompt(self, validator: CredentialValidator) -> Optional[Account]:
        self.calls += 1
        for username, password in self._attempts:
            result = validator.validate_credentials(username.strip(), password)
            self.results.append(result)
            if result.success:
                return result.account
        return None


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger(name="licensegate.tests", to_file=False)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def clock() -> Callable[[], date]:
    return lambda: TODAY


@pytest.fixture
def roster_file(tmp_path) -> Callable[[list], Path]:
    def _write(entries: list) -> Path:
        path = tmp_path / "users.json"
        path.write_text(json.dumps(entries), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def machine(logger) -> MachineIdentity:
    # No platform probe matches "Test", so the host name is the id.
    return MachineIdentity(logger=logger, system="Test", hostname_provider=lambda: "M1")


@pytest.fixture
def store(tmp_path, logger) -> LocalSessionStore:
    return LocalSessionStore(path=tmp_path / "data" / "auth.token", cipher=FakeCipher(), logger=logger)


@pytest.fixture
def make_gate(logger, clock, machine, store, roster_file):
    """Factory: build an orchestrator over a roster and a scripted prompt."""

    def _make(entries: list, attempts: list[tuple[str, str]], source: Optional[str] = None):
        path = roster_file(entries)
        directory = UserDirectory(source=source or str(path), logger=logger, today_provider=clock)
        prompt = ScriptedPrompt(attempts)
        gate = SessionOrchestrator(
            directory=directory,
            store=store,
            machine=machine,
            login_prompt=prompt,
            logger=logger,
            today_provider=clock,
        )
        return gate, prompt, directory

    return _make
