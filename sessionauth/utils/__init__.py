"""
Utils module - Validation and path helpers used throughout SessionAuth.
"""

from sessionauth.utils.paths import atomic_write_bytes, default_vault_path
from sessionauth.utils.validators import (
    validate_password,
    validate_separators,
    validate_username,
)

__all__ = [
    "atomic_write_bytes",
    "default_vault_path",
    "validate_password",
    "validate_separators",
    "validate_username",
]
