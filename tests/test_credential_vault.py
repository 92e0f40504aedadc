"""
Tests for CredentialVault.

Tests cover:
- User lifecycle (create, authenticate, change password, delete)
- Snapshot encoding and verified persistence
- Rollback when the snapshot cannot be written
- Loading and parse failures
- Concurrent mutation
"""
import threading

import pytest

from sessionauth.core.auth import credential_vault as vault_module
from sessionauth.core.auth.credential_vault import CredentialVault
from sessionauth.core.config import AuthConfig, HashingConfig, VaultConfig
from sessionauth.core.crypto.kdf import CredentialHasher
from sessionauth.core.errors import (
    DuplicateUserError,
    ErrorKind,
    NoSuchUserError,
    ParseError,
    PersistError,
    PersistMismatchError,
    UserExistsError,
    ValidationError,
    WrongPasswordError,
)

from conftest import FAST_ITERATIONS


def _failing_write(path, data, mode=0o600):
    raise OSError("disk full")


def _line(name: str, salt: bytes, derived: bytes, sep: str = "-|-") -> str:
    return sep.join((name, salt.hex(), derived.hex()))


# --- User lifecycle ---

class TestUserLifecycle:
    """Create / authenticate / change / delete."""

    def test_alice_scenario(self, vault):
        """Password change swaps which password authenticates."""
        vault.create_user("alice", "p1")
        assert vault.authenticate("alice", "p1") is True

        vault.change_password("alice", "p1", "p2")
        assert vault.authenticate("alice", "p1") is False
        assert vault.authenticate("alice", "p2") is True

        with pytest.raises(UserExistsError):
            vault.create_user("alice", "p3")

    def test_wrong_password_does_not_authenticate(self, vault):
        vault.create_user("bob", "right")
        assert vault.authenticate("bob", "wrong") is False
        assert vault.authenticate("bob", "") is False

    def test_unknown_user_does_not_authenticate(self, vault):
        assert vault.authenticate("nobody", "password") is False

    def test_change_password_unknown_user(self, vault):
        with pytest.raises(NoSuchUserError):
            vault.change_password("ghost", "a", "b")

    def test_change_password_wrong_old_password(self, vault):
        vault.create_user("carol", "old")
        with pytest.raises(WrongPasswordError) as exc_info:
            vault.change_password("carol", "not-old", "new")
        assert exc_info.value.kind is ErrorKind.WRONG_PASSWORD
        assert vault.authenticate("carol", "old")

    def test_change_password_draws_new_salt(self, vault):
        """Even the same password gets a fresh salt and hash."""
        vault.create_user("dave", "same")
        before = vault.get_record("dave")
        vault.change_password("dave", "same", "same")
        after = vault.get_record("dave")
        assert before.salt != after.salt
        assert before.derived_hash != after.derived_hash
        assert vault.authenticate("dave", "same")

    def test_delete_user(self, vault, vault_path):
        vault.create_user("erin", "pw")
        vault.delete_user("erin", "pw")
        assert not vault.user_exists("erin")
        assert "erin" not in vault
        assert vault.authenticate("erin", "pw") is False
        assert "erin" not in vault_path.read_text()

    def test_deleted_user_can_be_recreated(self, vault):
        """Deletion is true removal, not a placeholder."""
        vault.create_user("frank", "pw")
        vault.delete_user("frank", "pw")
        vault.create_user("frank", "new")
        assert vault.authenticate("frank", "new")

    def test_delete_unknown_user(self, vault):
        with pytest.raises(NoSuchUserError):
            vault.delete_user("ghost", "pw")

    def test_delete_wrong_password(self, vault):
        vault.create_user("gina", "pw")
        with pytest.raises(WrongPasswordError):
            vault.delete_user("gina", "nope")
        assert vault.user_exists("gina")

    def test_usernames_sorted(self, vault):
        for name in ("zed", "amy", "mia"):
            vault.create_user(name, "pw")
        assert vault.usernames() == ["amy", "mia", "zed"]
        assert list(vault) == ["amy", "mia", "zed"]
        assert len(vault) == 3


# --- Validation ---

class TestValidation:
    """Usernames and passwords rejected before anything is stored."""

    @pytest.mark.parametrize("name", ["", "a-|-b", "line\nbreak", "nul\x00"])
    def test_invalid_usernames(self, vault, vault_path, name):
        with pytest.raises(ValidationError):
            vault.create_user(name, "pw")
        assert len(vault) == 0
        assert not vault_path.exists()

    def test_empty_password_rejected(self, vault):
        with pytest.raises(ValidationError):
            vault.create_user("henry", "")
        assert not vault.user_exists("henry")

    def test_validation_error_is_value_error(self, vault):
        with pytest.raises(ValueError):
            vault.create_user("", "pw")

    @pytest.mark.parametrize("name", ["a-|", "-|"])
    def test_name_running_into_field_separator(self, vault, vault_path, name):
        """A name ending in part of the separator would split wrongly on reload."""
        with pytest.raises(ValidationError):
            vault.create_user(name, "pw")
        assert not vault_path.exists()

    def test_name_running_into_line_separator(self, tmp_path, hasher):
        vault = CredentialVault(tmp_path / "v", hasher, field_separator="-|-", line_separator="x-|")
        with pytest.raises(ValidationError):
            vault.create_user("ax", "pw")

    def test_separator_characters_elsewhere_reload(self, vault, vault_path, hasher):
        for name in ("a|-", "-a", "|x|"):
            vault.create_user(name, "pw")
        loaded = CredentialVault.load_from(vault_path, hasher)
        assert loaded.usernames() == vault.usernames()
        assert loaded.authenticate("a|-", "pw")

    def test_unencodable_username(self, vault, vault_path):
        with pytest.raises(ValidationError):
            vault.create_user("bad\ud800", "pw")
        assert len(vault) == 0
        assert not vault_path.exists()

    def test_unencodable_password(self, vault):
        with pytest.raises(ValidationError):
            vault.create_user("alice", "p\ud800")
        vault.create_user("alice", "p1")
        assert vault.authenticate("alice", "p\ud800") is False
        with pytest.raises(ValidationError):
            vault.change_password("alice", "p1", "p\udfff")
        assert vault.authenticate("alice", "p1")

    def test_custom_separators_are_enforced(self, tmp_path, hasher):
        vault = CredentialVault(tmp_path / "v", hasher, field_separator="::", line_separator="\n")
        with pytest.raises(ValidationError):
            vault.create_user("a::b", "pw")
        vault.create_user("a-|-b", "pw")
        assert vault.authenticate("a-|-b", "pw")

    @pytest.mark.parametrize("field_sep,line_sep", [
        ("", "\n"),
        ("a", "\n"),
        ("|", "1"),
        ("$", "\n"),
        ("|", "|"),
        ("--", "-"),
    ])
    def test_bad_separators_rejected(self, tmp_path, field_sep, line_sep):
        with pytest.raises(ValidationError):
            CredentialVault(tmp_path / "v", field_separator=field_sep, line_separator=line_sep)


# --- Persistence ---

class TestPersistence:
    """Snapshot format and verified writes."""

    def test_create_writes_snapshot(self, vault, vault_path, hasher):
        vault.create_user("alice", "p1")
        content = vault_path.read_text(encoding="utf-8")
        fields = content.split("-|-")
        assert len(fields) == 3
        assert fields[0] == "alice"
        assert len(bytes.fromhex(fields[1])) == hasher.salt_length
        assert len(bytes.fromhex(fields[2])) == hasher.key_length
        assert "p1" not in content

    def test_one_line_per_user(self, vault, vault_path):
        vault.create_user("alice", "p1")
        vault.create_user("bob", "p2")
        lines = vault_path.read_text().split("\n")
        assert [line.split("-|-")[0] for line in lines] == ["alice", "bob"]

    def test_round_trip_preserves_records(self, vault, vault_path, hasher):
        """Reloaded records are byte-identical, not just equivalent."""
        vault.create_user("alice", "p1")
        vault.create_user("bob", "p2")

        loaded = CredentialVault.load_from(vault_path, hasher)
        assert loaded.usernames() == ["alice", "bob"]
        for name in ("alice", "bob"):
            assert loaded.get_record(name) == vault.get_record(name)
        assert loaded.authenticate("alice", "p1")
        assert loaded.authenticate("bob", "p2")
        assert not loaded.authenticate("alice", "p2")

    def test_persist_empty_vault(self, vault, vault_path):
        vault.persist()
        assert vault_path.read_bytes() == b""

    def test_snapshot_is_owner_only(self, vault, vault_path):
        import os
        import platform
        if platform.system().lower() == "windows":
            pytest.skip("POSIX permissions only")
        vault.create_user("alice", "p1")
        assert os.stat(vault_path).st_mode & 0o077 == 0

    def test_write_failure_rolls_back_create(self, vault, monkeypatch):
        monkeypatch.setattr(vault_module, "atomic_write_bytes", _failing_write)
        with pytest.raises(PersistError) as exc_info:
            vault.create_user("alice", "p1")
        assert exc_info.value.fatal is True
        assert not vault.user_exists("alice")

    def test_mismatch_rolls_back_create(self, vault, monkeypatch):
        def torn_write(path, data, mode=0o600):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data[:-1])

        monkeypatch.setattr(vault_module, "atomic_write_bytes", torn_write)
        with pytest.raises(PersistMismatchError) as exc_info:
            vault.create_user("alice", "p1")
        assert exc_info.value.kind is ErrorKind.PERSIST_MISMATCH
        assert isinstance(exc_info.value, PersistError)
        assert not vault.user_exists("alice")

    def test_write_failure_rolls_back_change(self, vault, monkeypatch):
        vault.create_user("alice", "p1")
        monkeypatch.setattr(vault_module, "atomic_write_bytes", _failing_write)
        with pytest.raises(PersistError):
            vault.change_password("alice", "p1", "p2")
        assert vault.authenticate("alice", "p1")
        assert not vault.authenticate("alice", "p2")

    def test_write_failure_rolls_back_delete(self, vault, monkeypatch):
        vault.create_user("alice", "p1")
        monkeypatch.setattr(vault_module, "atomic_write_bytes", _failing_write)
        with pytest.raises(PersistError):
            vault.delete_user("alice", "p1")
        assert vault.authenticate("alice", "p1")


# --- Loading ---

class TestLoading:
    """load_from / open and malformed snapshots."""

    def test_trailing_blank_lines_tolerated(self, tmp_path, hasher):
        salt = bytes(range(32))
        path = tmp_path / "v"
        path.write_text(_line("alice", salt, hasher.derive("p1", salt)) + "\n\n\n")
        vault = CredentialVault.load_from(path, hasher)
        assert vault.authenticate("alice", "p1")

    def test_wrong_field_count(self, tmp_path, hasher):
        path = tmp_path / "v"
        path.write_text("alice-|-abcd\n")
        with pytest.raises(ParseError) as exc_info:
            CredentialVault.load_from(path, hasher)
        assert exc_info.value.line_number == 1

    def test_blank_line_in_middle(self, tmp_path, hasher):
        salt = bytes(32)
        line = _line("alice", salt, bytes(64))
        path = tmp_path / "v"
        path.write_text(line + "\n\n" + line.replace("alice", "bob"))
        with pytest.raises(ParseError) as exc_info:
            CredentialVault.load_from(path, hasher)
        assert exc_info.value.line_number == 2

    def test_invalid_hex(self, tmp_path, hasher):
        path = tmp_path / "v"
        path.write_text("alice-|-" + "zz" * 32 + "-|-" + "00" * 64)
        with pytest.raises(ParseError):
            CredentialVault.load_from(path, hasher)

    def test_wrong_hash_length(self, tmp_path, hasher):
        path = tmp_path / "v"
        path.write_text(_line("alice", bytes(32), bytes(32)))
        with pytest.raises(ParseError):
            CredentialVault.load_from(path, hasher)

    def test_duplicate_username(self, tmp_path, hasher):
        line = _line("alice", bytes(32), bytes(64))
        path = tmp_path / "v"
        path.write_text(line + "\n" + line)
        with pytest.raises(DuplicateUserError) as exc_info:
            CredentialVault.load_from(path, hasher)
        assert isinstance(exc_info.value, UserExistsError)
        assert exc_info.value.line_number == 2
        assert exc_info.value.username == "alice"

    def test_missing_file_raises_persist_error(self, tmp_path, hasher):
        with pytest.raises(PersistError):
            CredentialVault.load_from(tmp_path / "missing", hasher)

    def test_open_missing_file_is_empty(self, tmp_path, hasher):
        vault = CredentialVault.open(tmp_path / "missing", hasher)
        assert len(vault) == 0

    def test_open_empty_file_is_empty(self, tmp_path, hasher):
        path = tmp_path / "v"
        path.touch()
        assert len(CredentialVault.open(path, hasher)) == 0

    def test_open_existing_file(self, vault, vault_path, hasher):
        vault.create_user("alice", "p1")
        reopened = CredentialVault.open(vault_path, hasher)
        assert reopened.authenticate("alice", "p1")

    def test_from_config(self, vault_path):
        config = AuthConfig(
            vault=VaultConfig(path=vault_path, field_separator="::"),
            hashing=HashingConfig(iterations=FAST_ITERATIONS, key_length=32, salt_length=16),
        )
        vault = CredentialVault.from_config(config)
        vault.create_user("alice", "p1")
        name, salt_hex, hash_hex = vault_path.read_text().split("::")
        assert name == "alice"
        assert len(salt_hex) == 32
        assert len(hash_hex) == 64
        assert CredentialVault.from_config(config).authenticate("alice", "p1")

    def test_hasher_mismatch_detected(self, vault, vault_path):
        """A snapshot written with other lengths does not load silently."""
        vault.create_user("alice", "p1")
        other = CredentialHasher(iterations=FAST_ITERATIONS, key_length=32)
        with pytest.raises(ParseError):
            CredentialVault.load_from(vault_path, other)


# --- Concurrency ---

class TestConcurrency:
    """Concurrent mutations keep memory and disk consistent."""

    def test_concurrent_creates(self, vault, vault_path, hasher):
        errors = []

        def worker(prefix):
            try:
                for i in range(5):
                    vault.create_user(f"{prefix}-{i}", "pw")
            except Exception as e:  # pragma: no cover - surfaced below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(f"t{n}",)) for n in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(vault) == 30
        reloaded = CredentialVault.load_from(vault_path, hasher)
        assert reloaded.usernames() == vault.usernames()

    def test_concurrent_create_same_name(self, vault):
        results = []
        barrier = threading.Barrier(4)

        def worker():
            barrier.wait()
            try:
                vault.create_user("shared", "pw")
                results.append("ok")
            except UserExistsError:
                results.append("exists")

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert results.count("exists") == 3
