"""
Error Taxonomy
==============

Every failure raised by the vault and the session store derives from
``AuthError`` and carries a ``kind`` tag, so callers can branch on the
kind instead of on message text.

Usage:
    try:
        vault.change_password(name, old, new)
    except AuthError as exc:
        if exc.category is ErrorCategory.UNAUTHORIZED:
            ...  # redirect to login

Security Notes:
    - Messages never contain passwords, salts, hashes or tokens
    - ``fatal`` errors mean the operation must not be retried blindly
"""

from __future__ import annotations

from enum import Enum, auto
from typing import ClassVar


class ErrorCategory(Enum):
    """Coarse outcome class an outer layer maps onto a response."""
    UNAUTHORIZED = auto()
    NOT_FOUND = auto()
    CONFLICT = auto()
    BAD_REQUEST = auto()
    INTERNAL = auto()


class ErrorKind(Enum):
    """Discriminator carried by every ``AuthError``."""
    USER_EXISTS = ("user_exists", ErrorCategory.CONFLICT)
    DUPLICATE_USER = ("duplicate_user", ErrorCategory.INTERNAL)
    NO_SUCH_USER = ("no_such_user", ErrorCategory.UNAUTHORIZED)
    WRONG_PASSWORD = ("wrong_password", ErrorCategory.UNAUTHORIZED)
    SESSION_NOT_FOUND = ("session_not_found", ErrorCategory.NOT_FOUND)
    ENTROPY = ("entropy", ErrorCategory.INTERNAL)
    PERSIST = ("persist", ErrorCategory.INTERNAL)
    PERSIST_MISMATCH = ("persist_mismatch", ErrorCategory.INTERNAL)
    PARSE = ("parse", ErrorCategory.INTERNAL)
    VALIDATION = ("validation", ErrorCategory.BAD_REQUEST)

    def __init__(self, code: str, category: ErrorCategory) -> None:
        self.code = code
        self.category = category


class AuthError(Exception):
    """Base class for all session and credential errors."""

    kind: ClassVar[ErrorKind]
    fatal: ClassVar[bool] = False

    @property
    def category(self) -> ErrorCategory:
        """The response category for this error."""
        return self.kind.category

    def is_kind(self, kind: ErrorKind) -> bool:
        """Return True if this error is tagged with ``kind``."""
        return self.kind is kind


class UserExistsError(AuthError):
    """Raised when creating a user whose name is already taken."""
    kind = ErrorKind.USER_EXISTS

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(
            f"User '{username}' already exists; change the password instead"
        )


class DuplicateUserError(UserExistsError):
    """Raised when a persisted snapshot lists the same user twice."""
    kind = ErrorKind.DUPLICATE_USER

    def __init__(self, username: str, line_number: int) -> None:
        self.line_number = line_number
        AuthError.__init__(
            self,
            f"User '{username}' appears more than once (line {line_number})",
        )
        self.username = username


class NoSuchUserError(AuthError):
    """Raised when an operation names a user that does not exist."""
    kind = ErrorKind.NO_SUCH_USER

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"User '{username}' not found")


class WrongPasswordError(AuthError):
    """Raised when a password does not authenticate the named user."""
    kind = ErrorKind.WRONG_PASSWORD

    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"Password does not authenticate user '{username}'")


class SessionNotFoundError(AuthError):
    """Raised when extending a session that is absent or already expired."""
    kind = ErrorKind.SESSION_NOT_FOUND

    def __init__(self, message: str = "Session not found") -> None:
        super().__init__(message)


class EntropyError(AuthError):
    """Raised when the secure random source cannot supply bytes."""
    kind = ErrorKind.ENTROPY
    fatal = True


class PersistError(AuthError):
    """Raised when the vault snapshot cannot be written or read back."""
    kind = ErrorKind.PERSIST
    fatal = True


class PersistMismatchError(PersistError):
    """Raised when the re-read snapshot differs from what was written."""
    kind = ErrorKind.PERSIST_MISMATCH


class ParseError(AuthError):
    """Raised when a persisted snapshot is malformed."""
    kind = ErrorKind.PARSE
    fatal = True

    def __init__(self, message: str, line_number: int | None = None) -> None:
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


class ValidationError(AuthError, ValueError):
    """Raised when a username, password or setting is not acceptable."""
    kind = ErrorKind.VALIDATION


def is_error_kind(error: BaseException, kind: ErrorKind) -> bool:
    """
    Check whether ``error`` is an ``AuthError`` tagged with ``kind``.

    Subclass kinds do not match their parent's kind; use ``isinstance``
    when the whole family is wanted (``DuplicateUserError`` is a
    ``UserExistsError``).
    """
    return isinstance(error, AuthError) and error.kind is kind
