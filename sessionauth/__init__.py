"""
SessionAuth - Session and Credential Management Core
====================================================

Issues, validates, expires and revokes opaque session tokens, and
stores per-user password credentials in a verified snapshot file.

Security Notice:
- No secrets are logged
- Fail-closed on entropy and persistence errors
- Plaintext passwords are never stored
"""

from sessionauth.core.config import AuthConfig
from sessionauth.core.logging import configure_logging, get_secure_logger
from sessionauth.core.errors import (
    AuthError,
    DuplicateUserError,
    EntropyError,
    ErrorCategory,
    ErrorKind,
    NoSuchUserError,
    ParseError,
    PersistError,
    PersistMismatchError,
    SessionNotFoundError,
    UserExistsError,
    ValidationError,
    WrongPasswordError,
    is_error_kind,
)
from sessionauth.core.crypto import CredentialHasher, RandomTokenGenerator
from sessionauth.core.auth import (
    CredentialVault,
    SessionStore,
    bootstrap_vault,
)

__version__ = "0.1.0"
__author__ = "SessionAuth Team"

__all__ = [
    "AuthConfig",
    "configure_logging",
    "get_secure_logger",
    "AuthError",
    "DuplicateUserError",
    "EntropyError",
    "ErrorCategory",
    "ErrorKind",
    "NoSuchUserError",
    "ParseError",
    "PersistError",
    "PersistMismatchError",
    "SessionNotFoundError",
    "UserExistsError",
    "ValidationError",
    "WrongPasswordError",
    "is_error_kind",
    "CredentialHasher",
    "RandomTokenGenerator",
    "CredentialVault",
    "SessionStore",
    "bootstrap_vault",
    "__version__",
]
