"""
SessionAuth Cryptographic Core
==============================

Provides secure randomness and password key derivation.

Security Properties:
    - All random values come from the OS CSPRNG (``secrets``)
    - PBKDF2-HMAC-SHA512 for stored credentials
    - Constant-time comparisons for verification
"""

from sessionauth.core.crypto.entropy import (
    RandomTokenGenerator,
    is_null_token,
    null_token,
)
from sessionauth.core.crypto.kdf import CredentialHasher, CredentialRecord

__all__ = [
    "RandomTokenGenerator",
    "is_null_token",
    "null_token",
    "CredentialHasher",
    "CredentialRecord",
]
