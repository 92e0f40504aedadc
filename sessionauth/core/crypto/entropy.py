"""
Secure Token Generation
=======================

Fixed-length session tokens drawn from the operating system CSPRNG.

Security Properties:
- 1024 bits of randomness per token by default
- A broken random source is fatal (EntropyError), never degraded
- The all-zero token is reserved and never issued
"""

from __future__ import annotations

import hmac
import secrets
from typing import Final, Optional

from sessionauth.core.errors import EntropyError


SESSION_TOKEN_LENGTH: Final[int] = 128  # bytes
MIN_TOKEN_LENGTH: Final[int] = 16


def null_token(length: int = SESSION_TOKEN_LENGTH) -> bytes:
    """Return the reserved all-zero token of the given length."""
    return bytes(length)


def is_null_token(token: bytes) -> bool:
    """Check whether ``token`` consists only of zero bytes."""
    return hmac.compare_digest(token, bytes(len(token)))


def random_bytes(length: int) -> bytes:
    """
    Read ``length`` bytes from the secure random source.

    Raises:
        EntropyError: If the source fails or returns a short read
    """
    try:
        data = secrets.token_bytes(length)
    except (OSError, NotImplementedError) as e:
        raise EntropyError(f"Secure random source unavailable: {e}") from e
    if len(data) != length:
        raise EntropyError(
            f"Secure random source returned {len(data)} of {length} bytes"
        )
    return data


class RandomTokenGenerator:
    """
    Produces cryptographically secure fixed-length tokens.

    Usage:
        generator = RandomTokenGenerator()
        token = generator.generate()

    The store calls ``generate()`` with no argument; an explicit
    length is accepted for callers that need other sizes.
    """

    __slots__ = ("_length",)

    def __init__(self, length: int = SESSION_TOKEN_LENGTH) -> None:
        if length < MIN_TOKEN_LENGTH:
            raise ValueError(
                f"Token length must be at least {MIN_TOKEN_LENGTH} bytes"
            )
        self._length = length

    @property
    def length(self) -> int:
        """Default token length in bytes."""
        return self._length

    def generate(self, length: Optional[int] = None) -> bytes:
        """
        Generate a new random token.

        Args:
            length: Token length in bytes (default: the configured length)

        Returns:
            Random token bytes

        Raises:
            EntropyError: If the secure random source fails
        """
        return random_bytes(self._length if length is None else length)

    def __call__(self) -> bytes:
        return self.generate()
