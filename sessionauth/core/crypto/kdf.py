"""
Credential Key Derivation
=========================

Salted, iterated password hashing for the credential vault.

Implements:
    - PBKDF2-HMAC-SHA512 derivation (``cryptography`` backend)
    - Random per-record salts
    - Constant-time verification

Parameters:
    - iterations: 16384
    - key length: 64 bytes
    - salt length: 32 bytes
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Final

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from sessionauth.core.crypto.entropy import random_bytes
from sessionauth.core.errors import ValidationError
from sessionauth.utils.validators import validate_password

PBKDF2_ITERATIONS: Final[int] = 16384
PBKDF2_KEY_LENGTH: Final[int] = 64
SALT_LENGTH: Final[int] = 32

MIN_ITERATIONS: Final[int] = 1000
MIN_KEY_LENGTH: Final[int] = 16
MIN_SALT_LENGTH: Final[int] = 16


@dataclass(frozen=True, slots=True)
class CredentialRecord:
    """
    Stored credential for one user.

    Attributes:
        salt: Random salt used for this record
        derived_hash: PBKDF2 output for (password, salt)
    """
    salt: bytes
    derived_hash: bytes

    def __repr__(self) -> str:
        """Safe representation without key material."""
        return (
            f"CredentialRecord(salt_len={len(self.salt)}, "
            f"hash_len={len(self.derived_hash)})"
        )


class CredentialHasher:
    """
    Derives and verifies password hashes with PBKDF2-HMAC-SHA512.

    Usage:
        hasher = CredentialHasher()

        record = hasher.new_record("correct horse")
        hasher.verify("correct horse", record)  # True

    Security Notes:
        - A fresh salt is drawn for every new record
        - Verification uses hmac.compare_digest
    """

    __slots__ = ("_iterations", "_key_length", "_salt_length")

    def __init__(
        self,
        iterations: int = PBKDF2_ITERATIONS,
        key_length: int = PBKDF2_KEY_LENGTH,
        salt_length: int = SALT_LENGTH,
    ) -> None:
        """
        Initialize the hasher.

        Args:
            iterations: PBKDF2 iteration count (default: 16384)
            key_length: Derived hash length in bytes (default: 64)
            salt_length: Salt length in bytes (default: 32)
        """
        if iterations < MIN_ITERATIONS:
            raise ValueError(f"iterations must be at least {MIN_ITERATIONS}")
        if key_length < MIN_KEY_LENGTH:
            raise ValueError(f"key_length must be at least {MIN_KEY_LENGTH} bytes")
        if salt_length < MIN_SALT_LENGTH:
            raise ValueError(f"salt_length must be at least {MIN_SALT_LENGTH} bytes")

        self._iterations = iterations
        self._key_length = key_length
        self._salt_length = salt_length

    @property
    def parameters(self) -> dict[str, int]:
        """Get current hashing parameters."""
        return {
            "iterations": self._iterations,
            "key_length": self._key_length,
            "salt_length": self._salt_length,
        }

    @property
    def key_length(self) -> int:
        return self._key_length

    @property
    def salt_length(self) -> int:
        return self._salt_length

    def random_salt(self) -> bytes:
        """
        Generate a random salt.

        Raises:
            EntropyError: If the secure random source fails
        """
        return random_bytes(self._salt_length)

    def derive(self, password: str, salt: bytes) -> bytes:
        """
        Derive the hash for a password and salt.

        Deterministic: the same password and salt always give the same
        output, which is what authentication relies on.

        Args:
            password: Plaintext password
            salt: Salt bytes

        Returns:
            Derived hash of ``key_length`` bytes
        """
        validate_password(password)
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA512(),
            length=self._key_length,
            salt=salt,
            iterations=self._iterations,
        )
        return kdf.derive(password.encode("utf-8"))

    def new_record(self, password: str) -> CredentialRecord:
        """Hash a password under a fresh random salt."""
        salt = self.random_salt()
        return CredentialRecord(salt=salt, derived_hash=self.derive(password, salt))

    def verify(self, password: str, record: CredentialRecord) -> bool:
        """
        Check a password against a stored record in constant time.

        Returns:
            True if the password reproduces the stored hash; False for
            any password that could never have been stored
        """
        try:
            validate_password(password)
        except ValidationError:
            return False
        computed = self.derive(password, record.salt)
        return hmac.compare_digest(computed, record.derived_hash)
