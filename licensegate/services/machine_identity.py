"""
Machine Identity Service.

Derives the opaque per-installation identifier that binds a cached
session to one machine.  The identifier is not a secret and is never
used as key material for authentication.

Probe order
-----------
1. Windows ``HKLM\\SOFTWARE\\Microsoft\\Cryptography\\MachineGuid``.
2. Linux ``/etc/machine-id`` then ``/var/lib/dbus/machine-id``.
3. macOS ``IOPlatformUUID`` reported by ``ioreg``.
4. The host name.
5. The ``"unknown-machine"`` sentinel.

Every probe is allowed to fail; ``current_machine_id()`` never raises.
"""

from __future__ import annotations

import platform
import re
import socket
import subprocess
from pathlib import Path
from typing import Callable, Optional

from licensegate.logger import StructuredLogger
from licensegate.services.base_service import BaseService

UNKNOWN_MACHINE: str = "unknown-machine"

_LINUX_MACHINE_ID_PATHS: tuple[Path, ...] = (
    Path("/etc/machine-id"),
    Path("/var/lib/dbus/machine-id"),
)
_IOREG_UUID_RE: re.Pattern[str] = re.compile(r'"IOPlatformUUID"\s*=\s*"([^"]+)"')


class MachineIdentity(BaseService):
    """Resolves and memoises the current machine identifier.

    Parameters
    ----------
    logger:
        Structured logger; probe failures are logged at DEBUG.
    system:
        Platform name override (``platform.system()`` by default).
    hostname_provider:
        Callable returning the host name, overridable for tests.
    machine_id_paths:
        Linux machine-id files to try, in order.
    """

    def __init__(
        self,
        logger: StructuredLogger,
        system: Optional[str] = None,
        hostname_provider: Callable[[], str] = socket.gethostname,
        machine_id_paths: tuple[Path, ...] = _LINUX_MACHINE_ID_PATHS,
    ) -> None:
        super().__init__(logger)
        self._system: str = system or platform.system()
        self._hostname_provider: Callable[[], str] = hostname_provider
        self._machine_id_paths: tuple[Path, ...] = machine_id_paths
        self._cached: Optional[str] = None

    def current_machine_id(self) -> str:
        """Return a best-effort stable identifier for this machine."""
        if self._cached is None:
            self._cached = self._resolve()
        return self._cached

    # ------------------------------------------------------------------
    # Probes
    # ------------------------------------------------------------------

    def _resolve(self) -> str:
        probes: list[Callable[[], Optional[str]]] = []
        if self._system == "Windows":
            probes.append(self._windows_machine_guid)
        elif self._system == "Linux":
            probes.append(self._linux_machine_id)
        elif self._system == "Darwin":
            probes.append(self._mac_platform_uuid)
        probes.append(self._hostname)

        for probe in probes:
            try:
                value = probe()
            except Exception as exc:
                self._logger.debug("Machine id probe %s failed: %s", probe.__name__, exc)
                continue
            if value and value.strip():
                return value.strip()

        self._logger.warning("No machine identifier available; using sentinel.")
        return UNKNOWN_MACHINE

    def _windows_machine_guid(self) -> Optional[str]:
        import winreg  # Windows-only

        with winreg.OpenKey(
            winreg.HKEY_LOCAL_MACHINE,
            r"SOFTWARE\Microsoft\Cryptography",
            0,
            winreg.KEY_READ | winreg.KEY_WOW64_64KEY,
        ) as key:
            guid, _ = winreg.QueryValueEx(key, "MachineGuid")
        return str(guid)

    def _linux_machine_id(self) -> Optional[str]:
        for path in self._machine_id_paths:
            try:
                value = path.read_text(encoding="ascii").strip()
            except OSError:
                continue
            if value:
                return value
        return None

    def _mac_platform_uuid(self) -> Optional[str]:
        result = subprocess.run(
            ["ioreg", "-rd1", "-c", "IOPlatformExpertDevice"],
            capture_output=True,
            check=False,
            timeout=5,
        )
        match = _IOREG_UUID_RE.search(result.stdout.decode("utf-8", errors="replace"))
        return match.group(1) if match else None

    def _hostname(self) -> Optional[str]:
        return self._hostname_provider()
