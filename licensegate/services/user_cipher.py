"""
User-Scoped Encryption.

The session store encrypts its single record with a capability that
only the same OS user on the same machine can reverse.  Two
implementations satisfy the ``UserScopedCipher`` protocol:

``DpapiCipher``
    Windows Data Protection API (``CryptProtectData`` /
    ``CryptUnprotectData``) in current-user scope.  The OS binds the
    key to the Windows user's login credentials.

``MachineKeyCipher``
    AES-256-GCM (pycryptodome) with a key derived via
    PBKDF2-HMAC-SHA256 from ``hostname:os-user`` and a per-install
    random 32-byte salt file restricted to the owner.  Blob layout is
    ``nonce(16) | tag(16) | ciphertext``.  Protects against casual disk
    access and copying the file to another machine or account; it does
    not resist an attacker who already controls the OS account.

``create_user_cipher()`` picks DPAPI on Windows and the machine-key
cipher elsewhere.
"""

from __future__ import annotations

import getpass
import os
import platform
import socket
import stat
import subprocess
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2

from licensegate.exceptions import CipherError
from licensegate.logger import StructuredLogger


@runtime_checkable
class UserScopedCipher(Protocol):
    """Encrypt/decrypt for the current OS user on this machine."""

    def protect(self, plaintext: bytes) -> bytes: ...  # noqa: E704

    def unprotect(self, blob: bytes) -> bytes: ...  # noqa: E704


# ---------------------------------------------------------------------------
# Windows DPAPI
# ---------------------------------------------------------------------------

class DpapiCipher:
    """Current-user DPAPI via ``ctypes``.  Windows only."""

    def __init__(self) -> None:
        if platform.system() != "Windows":
            raise CipherError("DPAPI is only available on Windows.")

        # Lazy import: ctypes.windll is only available on Windows.
        import ctypes
        import ctypes.wintypes

        class _DATA_BLOB(ctypes.Structure):  # noqa: N801
            _fields_ = [
                ("cbData", ctypes.wintypes.DWORD),
                ("pbData", ctypes.POINTER(ctypes.c_char)),
            ]

        self._ctypes = ctypes
        self._blob_type = _DATA_BLOB
        self._crypt32 = ctypes.windll.crypt32
        self._kernel32 = ctypes.windll.kernel32

    def protect(self, plaintext: bytes) -> bytes:
        return self._call(self._crypt32.CryptProtectData, plaintext, "CryptProtectData")

    def unprotect(self, blob: bytes) -> bytes:
        return self._call(self._crypt32.CryptUnprotectData, blob, "CryptUnprotectData")

    def _call(self, func: object, data: bytes, name: str) -> bytes:
        ctypes = self._ctypes
        blob_in = self._blob_type(len(data), ctypes.create_string_buffer(data, len(data)))
        blob_out = self._blob_type()
        ok = func(  # type: ignore[operator]
            ctypes.byref(blob_in),
            None,   # description
            None,   # optional entropy
            None,   # reserved
            None,   # prompt struct
            0,      # flags
            ctypes.byref(blob_out),
        )
        if not ok:
            raise CipherError(f"{name} failed")
        try:
            return ctypes.string_at(blob_out.pbData, blob_out.cbData)
        finally:
            self._kernel32.LocalFree(blob_out.pbData)


# ---------------------------------------------------------------------------
# Portable fallback
# ---------------------------------------------------------------------------

class MachineKeyCipher:
    """AES-256-GCM keyed from machine identity plus a per-install salt.

    Parameters
    ----------
    salt_path:
        Location of the 32-byte random salt.  Created on first use with
        owner-only permissions.
    logger:
        Structured logger.
    iterations:
        PBKDF2 iteration count.
    identity:
        Key material override; defaults to ``hostname:os-user``.
    """

    _KEY_LENGTH: int = 32  # 256 bits
    _SALT_LENGTH: int = 32
    _NONCE_LENGTH: int = 16
    _TAG_LENGTH: int = 16

    def __init__(
        self,
        salt_path: Path,
        logger: StructuredLogger,
        iterations: int = 600_000,
        identity: Optional[str] = None,
    ) -> None:
        self._salt_path: Path = salt_path
        self._logger: StructuredLogger = logger
        self._iterations: int = iterations
        self._identity: str = identity or f"{socket.gethostname()}:{getpass.getuser()}"
        self._key: Optional[bytes] = None

    def protect(self, plaintext: bytes) -> bytes:
        try:
            cipher = AES.new(self._derive_key(), AES.MODE_GCM, nonce=os.urandom(self._NONCE_LENGTH))
            ciphertext, tag = cipher.encrypt_and_digest(plaintext)
        except (OSError, ValueError) as exc:
            raise CipherError(f"Encryption failed: {exc}") from exc
        return cipher.nonce + tag + ciphertext

    def unprotect(self, blob: bytes) -> bytes:
        header = self._NONCE_LENGTH + self._TAG_LENGTH
        if len(blob) <= header:
            raise CipherError("Encrypted blob is truncated.")
        nonce = blob[: self._NONCE_LENGTH]
        tag = blob[self._NONCE_LENGTH: header]
        try:
            cipher = AES.new(self._derive_key(), AES.MODE_GCM, nonce=nonce)
            return cipher.decrypt_and_verify(blob[header:], tag)
        except (OSError, ValueError, KeyError) as exc:
            # ValueError covers a failed MAC check: tampered data or a
            # key derived on another machine/account.
            raise CipherError(f"Decryption failed: {exc}") from exc

    def _derive_key(self) -> bytes:
        if self._key is None:
            self._key = PBKDF2(
                password=self._identity,
                salt=self._get_or_create_salt(),
                dkLen=self._KEY_LENGTH,
                count=self._iterations,
                hmac_hash_module=SHA256,
            )
        return self._key

    def _get_or_create_salt(self) -> bytes:
        """Return the per-install salt, creating it on first use.

        Raises
        ------
        OSError
            If the salt file cannot be read or written.
        """
        if self._salt_path.exists():
            data = self._salt_path.read_bytes()
            if len(data) == self._SALT_LENGTH:
                return data
            self._logger.warning(
                "Salt file has unexpected length (%d); regenerating.", len(data),
            )

        salt = os.urandom(self._SALT_LENGTH)
        self._salt_path.parent.mkdir(parents=True, exist_ok=True)
        self._salt_path.write_bytes(salt)
        restrict_to_owner(self._salt_path, self._logger)
        self._logger.info("Per-install session salt created at %s.", self._salt_path)
        return salt


def restrict_to_owner(file_path: Path, logger: StructuredLogger) -> None:
    """Best-effort restriction of *file_path* to the current OS user.

    ``chmod 0o600`` on POSIX; ``icacls`` on Windows.  Failures are
    logged and ignored because the file stays usable without them.
    """
    if platform.system() != "Windows":
        try:
            file_path.chmod(stat.S_IRUSR | stat.S_IWUSR)
        except OSError as exc:
            logger.warning("Failed to chmod '%s': %s", file_path, exc)
        return

    try:
        result = subprocess.run(
            [
                "icacls",
                str(file_path),
                "/inheritance:r",
                "/grant:r",
                f"{getpass.getuser()}:F",
            ],
            capture_output=True,
            check=False,
            timeout=10,
        )
        if result.returncode != 0:
            logger.warning(
                "icacls returned %d for '%s': %s",
                result.returncode,
                file_path,
                result.stderr.decode("utf-8", errors="replace").strip(),
            )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.warning("Failed to set ACLs on '%s': %s", file_path, exc)


def create_user_cipher(
    salt_path: Path,
    logger: StructuredLogger,
    iterations: int = 600_000,
) -> UserScopedCipher:
    """Return the platform-appropriate cipher."""
    if platform.system() == "Windows":
        try:
            return DpapiCipher()
        except (CipherError, OSError, AttributeError) as exc:
            logger.warning("DPAPI unavailable (%s); using machine-key cipher.", exc)
    return MachineKeyCipher(salt_path=salt_path, logger=logger, iterations=iterations)
