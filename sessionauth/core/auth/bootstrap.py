"""
Vault Bootstrap
===============

First-run setup: open the configured vault and make sure it holds at
least one user, so a fresh deployment is never left without a way in.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from typing import Final, Optional

from sessionauth.core.auth.credential_vault import CredentialVault
from sessionauth.core.config import AuthConfig

DEFAULT_ADMIN_USERNAME: Final[str] = "admin"
PASSWORD_GROUPS: Final[int] = 3
PASSWORD_GROUP_BYTES: Final[int] = 4

logger = logging.getLogger("sessionauth.bootstrap")


@dataclass(frozen=True)
class BootstrapResult:
    """
    Outcome of ``bootstrap_vault``.

    Attributes:
        vault: The opened vault
        created: True if the initial user was created by this call
        generated_password: The random password chosen for the initial
            user, when the caller did not supply one
    """
    vault: CredentialVault
    created: bool
    generated_password: Optional[str] = None

    def __repr__(self) -> str:
        """Safe representation without the generated password."""
        return (
            f"BootstrapResult(vault={self.vault!r}, created={self.created}, "
            f"generated_password={'<set>' if self.generated_password else None})"
        )


def generate_password(groups: int = PASSWORD_GROUPS) -> str:
    """
    Generate a random password of ``groups`` hex groups joined by "_".

    Three groups carry 96 bits of entropy.
    """
    if groups < 1:
        raise ValueError("groups must be at least 1")
    return "_".join(secrets.token_hex(PASSWORD_GROUP_BYTES) for _ in range(groups))


def bootstrap_vault(
    config: AuthConfig,
    username: str = DEFAULT_ADMIN_USERNAME,
    password: Optional[str] = None,
) -> BootstrapResult:
    """
    Open the vault at the configured path, creating the first user if
    the vault is empty.

    Args:
        config: Application configuration
        username: Name of the initial user (default: "admin")
        password: Password of the initial user; a random one is
            generated and returned when omitted

    Returns:
        BootstrapResult with the vault and, if generated, the password
        the caller must hand to the operator

    Raises:
        ParseError: If the existing snapshot is malformed
        PersistError: If the new snapshot cannot be written
    """
    vault = CredentialVault.from_config(config)
    if len(vault) > 0:
        return BootstrapResult(vault=vault, created=False)

    generated = None
    if not password:
        generated = password = generate_password()

    vault.create_user(username, password)
    logger.info("Initialized vault at %s with user %s", vault.path, username)
    return BootstrapResult(vault=vault, created=True, generated_password=generated)
