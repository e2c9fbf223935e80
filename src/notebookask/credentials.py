"""Persisted browser authentication state.

The state file holds a Playwright ``storage_state()`` snapshot. When an
encryption key is configured it is written as an envelope::

    ENC:v1:<base64(salt[16] | nonce[12] | ciphertext+tag)>

with the AES-256-GCM key derived from the passphrase by scrypt. Plain JSON
files are still read when a key is configured, so enabling encryption does
not force a new login; the next save re-writes the file encrypted.

File age is informational: a stale file logs a warning but is still returned.
Whether the cookies actually work is decided by the live auth check.
"""

from __future__ import annotations

import base64
import binascii
import json
import os
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from pydantic import ValidationError as PydanticValidationError

from notebookask.errors import CredentialsError
from notebookask.models.auth import AuthInfo, Credentials

if TYPE_CHECKING:
    from pathlib import Path

log = structlog.get_logger()

ENVELOPE_PREFIX = "ENC:v1:"
AAD_TAG = b"notebookask-state-v1"

_SALT_BYTES = 16
_NONCE_BYTES = 12
_TAG_BYTES = 16
_SCRYPT_N = 2**14
_SCRYPT_R = 8
_SCRYPT_P = 1
_KEY_BYTES = 32
MIN_KEY_LENGTH = 8


def _derive_key(passphrase: str, salt: bytes) -> bytes:
    kdf = Scrypt(salt=salt, length=_KEY_BYTES, n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P)
    return kdf.derive(passphrase.encode("utf-8"))


def encrypt_state(data: dict, passphrase: str) -> str:
    """Serialise *data* and seal it into a versioned envelope string."""
    if len(passphrase) < MIN_KEY_LENGTH:
        raise CredentialsError(
            f"Encryption key must be at least {MIN_KEY_LENGTH} characters long"
        )
    salt = os.urandom(_SALT_BYTES)
    nonce = os.urandom(_NONCE_BYTES)
    plaintext = json.dumps(data).encode("utf-8")
    sealed = AESGCM(_derive_key(passphrase, salt)).encrypt(nonce, plaintext, AAD_TAG)
    return ENVELOPE_PREFIX + base64.b64encode(salt + nonce + sealed).decode("ascii")


def decrypt_state(envelope: str, passphrase: str) -> dict:
    """Open an envelope produced by :func:`encrypt_state`."""
    body = envelope.removeprefix(ENVELOPE_PREFIX).strip()
    try:
        raw = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CredentialsError("Encrypted state is not valid base64") from exc

    if len(raw) < _SALT_BYTES + _NONCE_BYTES + _TAG_BYTES:
        raise CredentialsError("Encrypted state is too short")

    salt = raw[:_SALT_BYTES]
    nonce = raw[_SALT_BYTES : _SALT_BYTES + _NONCE_BYTES]
    sealed = raw[_SALT_BYTES + _NONCE_BYTES :]
    try:
        plaintext = AESGCM(_derive_key(passphrase, salt)).decrypt(nonce, sealed, AAD_TAG)
    except InvalidTag as exc:
        raise CredentialsError("Invalid encryption key or corrupted state file") from exc

    try:
        return json.loads(plaintext)
    except json.JSONDecodeError as exc:
        raise CredentialsError("Decrypted state is not valid JSON") from exc


def is_encrypted(text: str) -> bool:
    return text.startswith(ENVELOPE_PREFIX)


class CredentialStore:
    """Loads and saves :class:`Credentials` at a single file path."""

    def __init__(
        self,
        path: Path,
        *,
        encryption_key: str | None = None,
        stale_after_days: float = 7.0,
    ) -> None:
        self.path = path
        self._encryption_key = encryption_key or None
        self._stale_after = timedelta(days=stale_after_days)

    @property
    def auth_info_path(self) -> Path:
        return self.path.with_name("auth_info.json")

    def exists(self) -> bool:
        return self.path.is_file()

    def age(self) -> timedelta | None:
        """Time since the state file was last written, or None when absent."""
        try:
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            return None
        return datetime.now(UTC) - datetime.fromtimestamp(mtime, UTC)

    def load(self) -> Credentials | None:
        """Return the stored credentials, or None when nothing is stored.

        Raises CredentialsError when the file exists but cannot be used.
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            log.debug("credentials_missing", path=str(self.path))
            return None
        except OSError as exc:
            raise CredentialsError(f"Could not read state file {self.path}: {exc}") from exc

        if is_encrypted(text):
            if self._encryption_key is None:
                raise CredentialsError(
                    "Encrypted state file found but no encryption key is configured"
                )
            data = decrypt_state(text, self._encryption_key)
        else:
            try:
                data = json.loads(text)
            except json.JSONDecodeError as exc:
                raise CredentialsError(f"State file {self.path} is not valid JSON") from exc

        try:
            credentials = Credentials.model_validate(data)
        except PydanticValidationError as exc:
            raise CredentialsError(f"State file {self.path} has an unexpected shape") from exc

        age = self.age()
        if age is not None:
            credentials.saved_at = datetime.now(UTC) - age
            if age > self._stale_after:
                log.warning(
                    "credentials_stale",
                    path=str(self.path),
                    age_days=round(age.total_seconds() / 86400, 1),
                )
        return credentials

    def save(self, credentials: Credentials) -> None:
        """Write credentials, encrypted when a key is configured."""
        data = credentials.storage_state()
        if self._encryption_key is not None:
            text = encrypt_state(data, self._encryption_key)
        else:
            text = json.dumps(data, indent=2)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise CredentialsError(f"Could not write state file {self.path}: {exc}") from exc

        self._write_auth_info()
        log.info(
            "credentials_saved",
            path=str(self.path),
            cookies=len(credentials.cookies),
            encrypted=self._encryption_key is not None,
        )

    def _write_auth_info(self) -> None:
        now = datetime.now(UTC)
        try:
            self.auth_info_path.parent.mkdir(parents=True, exist_ok=True)
            self.auth_info_path.write_text(
                json.dumps({"authenticated_at": now.isoformat()}, indent=2),
                encoding="utf-8",
            )
        except OSError:
            log.warning("auth_info_write_error", path=str(self.auth_info_path), exc_info=True)

    def _read_authenticated_at(self) -> datetime | None:
        try:
            data = json.loads(self.auth_info_path.read_text(encoding="utf-8"))
            return datetime.fromisoformat(data["authenticated_at"])
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError):
            log.warning("auth_info_read_error", path=str(self.auth_info_path), exc_info=True)
            return None

    def info(self) -> AuthInfo:
        exists = self.exists()
        age = self.age() if exists else None
        encrypted = False
        if exists:
            try:
                with self.path.open(encoding="utf-8") as fh:
                    encrypted = is_encrypted(fh.read(len(ENVELOPE_PREFIX)))
            except OSError:
                log.warning("credentials_info_read_error", path=str(self.path), exc_info=True)
        return AuthInfo(
            authenticated=exists,
            state_path=str(self.path),
            state_exists=exists,
            encrypted=encrypted,
            state_age_hours=age.total_seconds() / 3600 if age is not None else None,
            stale=age is not None and age > self._stale_after,
            authenticated_at=self._read_authenticated_at(),
        )

    def clear(self) -> bool:
        """Delete the state file and auth info. Returns whether anything was removed."""
        removed = False
        for path in (self.path, self.auth_info_path):
            try:
                path.unlink()
                removed = True
            except FileNotFoundError:
                continue
        if removed:
            log.info("credentials_cleared", path=str(self.path))
        return removed
