"""
Gate Services Package.

The ``create_services()`` factory wires the machine identity, roster
directory, session cipher and store, and the orchestrator together,
returning a typed dict the entry point (or a host add-in) consumes
without knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import Optional, TypedDict

import requests

from licensegate.config import GateConfig
from licensegate.logger import StructuredLogger, get_logger
from licensegate.services.gate import LoginPrompt, SessionOrchestrator
from licensegate.services.machine_identity import MachineIdentity
from licensegate.services.session_store import LocalSessionStore
from licensegate.services.user_cipher import UserScopedCipher, create_user_cipher
from licensegate.services.user_directory import UserDirectory


class ServiceContainer(TypedDict):
    """Typed container for all gate services."""

    machine_identity: MachineIdentity
    user_directory: UserDirectory
    session_cipher: UserScopedCipher
    session_store: LocalSessionStore
    orchestrator: SessionOrchestrator


def create_services(
    config: GateConfig,
    login_prompt: LoginPrompt,
    logger: Optional[StructuredLogger] = None,
    http_session: Optional[requests.Session] = None,
    cipher: Optional[UserScopedCipher] = None,
) -> ServiceContainer:
    """
    Wire all gate services together.

    This is the single composition root.  The entry point calls it once
    and keeps the container for the lifetime of the host session.

    Args:
        config: Gate configuration.
        login_prompt: Interactive login collaborator.
        logger: Shared logger; one named ``licensegate`` is created when omitted.
        http_session: Optional ``requests.Session`` for the roster fetch.
        cipher: Optional session cipher override.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = logger or get_logger("licensegate")

    machine_identity = MachineIdentity(logger=logger)

    user_directory = UserDirectory(
        source=config.ROSTER_SOURCE,
        logger=logger,
        timeout=config.ROSTER_HTTP_TIMEOUT_S,
        client_id=config.CLIENT_ID,
        token_env_var=config.ROSTER_TOKEN_ENV_VAR,
        auth_scheme=config.ROSTER_AUTH_SCHEME,
        http_session=http_session,
    )

    session_cipher = cipher or create_user_cipher(
        salt_path=config.salt_path,
        logger=logger,
        iterations=config.KDF_ITERATIONS,
    )
    session_store = LocalSessionStore(
        path=config.session_path,
        cipher=session_cipher,
        logger=logger,
    )

    orchestrator = SessionOrchestrator(
        directory=user_directory,
        store=session_store,
        machine=machine_identity,
        login_prompt=login_prompt,
        logger=logger,
    )

    return ServiceContainer(
        machine_identity=machine_identity,
        user_directory=user_directory,
        session_cipher=session_cipher,
        session_store=session_store,
        orchestrator=orchestrator,
    )
