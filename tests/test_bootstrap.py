"""Tests for first-run vault bootstrap."""
import re

import pytest

from sessionauth.core.auth.bootstrap import (
    DEFAULT_ADMIN_USERNAME,
    bootstrap_vault,
    generate_password,
)
from sessionauth.core.auth.credential_vault import CredentialVault
from sessionauth.core.config import AuthConfig, HashingConfig, VaultConfig
from sessionauth.core.errors import ParseError

from conftest import FAST_ITERATIONS


@pytest.fixture
def config(vault_path):
    return AuthConfig(
        vault=VaultConfig(path=vault_path),
        hashing=HashingConfig(iterations=FAST_ITERATIONS),
    )


class TestGeneratePassword:
    """Random initial passwords."""

    def test_format(self):
        assert re.fullmatch(r"[0-9a-f]{8}_[0-9a-f]{8}_[0-9a-f]{8}", generate_password())

    def test_groups(self):
        assert generate_password(1).count("_") == 0
        assert generate_password(5).count("_") == 4

    def test_invalid_groups(self):
        with pytest.raises(ValueError):
            generate_password(0)

    def test_unique(self):
        assert generate_password() != generate_password()


class TestBootstrapVault:
    """Creating the first user."""

    def test_empty_vault_gets_admin(self, config, vault_path):
        result = bootstrap_vault(config)
        assert result.created
        assert result.generated_password
        assert result.vault.usernames() == [DEFAULT_ADMIN_USERNAME]
        assert result.vault.authenticate(DEFAULT_ADMIN_USERNAME, result.generated_password)
        assert vault_path.exists()
        assert result.generated_password not in repr(result)

    def test_supplied_credentials(self, config):
        result = bootstrap_vault(config, username="root", password="s3cret")
        assert result.created
        assert result.generated_password is None
        assert result.vault.authenticate("root", "s3cret")

    def test_existing_vault_untouched(self, config, vault_path):
        first = bootstrap_vault(config)
        before = vault_path.read_bytes()

        second = bootstrap_vault(config)
        assert not second.created
        assert second.generated_password is None
        assert vault_path.read_bytes() == before
        assert second.vault.authenticate(DEFAULT_ADMIN_USERNAME, first.generated_password)

    def test_existing_users_preserved(self, config):
        vault = CredentialVault.from_config(config)
        vault.create_user("alice", "p1")
        result = bootstrap_vault(config)
        assert not result.created
        assert result.vault.usernames() == ["alice"]

    def test_corrupt_vault_not_overwritten(self, config, vault_path):
        vault_path.parent.mkdir(parents=True)
        vault_path.write_text("garbage")
        with pytest.raises(ParseError):
            bootstrap_vault(config)
        assert vault_path.read_text() == "garbage"
