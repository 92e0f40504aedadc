"""
SessionAuth Authentication Module
=================================

Provides:
- Credential vault with PBKDF2 password hashing
- Session store with expiration and background sweep
- First-run vault bootstrap

Security Properties:
- Salted, iterated password hashing
- Constant-time verification
- Secure session tokens
- Verified snapshot writes
"""

from sessionauth.core.auth.credential_vault import CredentialVault
from sessionauth.core.auth.session_control import SessionStore, SweepResult
from sessionauth.core.auth.bootstrap import (
    BootstrapResult,
    bootstrap_vault,
    generate_password,
)

__all__ = [
    "CredentialVault",
    "SessionStore",
    "SweepResult",
    "BootstrapResult",
    "bootstrap_vault",
    "generate_password",
]
