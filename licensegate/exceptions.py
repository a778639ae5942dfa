"""Exceptions raised inside the gate.

None of these escape ``SessionOrchestrator.authorize()``; the
orchestrator converts them into a ``FAILED`` result.
"""

from __future__ import annotations


class LicenseGateError(Exception):
    """Base class for gate failures."""


class CipherError(LicenseGateError):
    """User-scoped encryption or decryption failed."""


class SessionStoreError(LicenseGateError):
    """The cached session could not be written."""
