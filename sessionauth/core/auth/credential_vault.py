"""
Credential Vault
================

Username to password-credential mapping persisted as a flat,
hex-encoded snapshot file.

Security Features:
- PBKDF2-HMAC-SHA512 with a fresh salt per record
- Plaintext passwords are never stored
- Every write is read back and compared byte-for-byte
- In-memory changes are rolled back when the write fails

Snapshot format (UTF-8, one user per line, sorted by username):
    alice-|-<hex salt>-|-<hex hash>
    bob-|-<hex salt>-|-<hex hash>
"""

from __future__ import annotations

import binascii
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Final, Iterator, Optional

from sessionauth.core.concurrency import ReadWriteLock
from sessionauth.core.config import DEFAULT_FIELD_SEPARATOR, DEFAULT_LINE_SEPARATOR
from sessionauth.core.crypto.kdf import CredentialHasher, CredentialRecord
from sessionauth.core.errors import (
    DuplicateUserError,
    NoSuchUserError,
    ParseError,
    PersistError,
    PersistMismatchError,
    UserExistsError,
    WrongPasswordError,
)
from sessionauth.utils.paths import atomic_write_bytes
from sessionauth.utils.validators import validate_separators, validate_username

if TYPE_CHECKING:
    from sessionauth.core.config import AuthConfig

SNAPSHOT_ENCODING: Final[str] = "utf-8"
FIELD_COUNT: Final[int] = 3

logger = logging.getLogger("sessionauth.vault")


class CredentialVault:
    """
    Thread-safe credential store backed by a snapshot file.

    Usage:
        vault = CredentialVault.open(path)

        vault.create_user("alice", "p1")
        vault.authenticate("alice", "p1")      # True
        vault.change_password("alice", "p1", "p2")
        vault.delete_user("alice", "p2")

    Every mutating call writes the whole snapshot before returning. If
    the write fails the mutation is undone and the error propagates, so
    the in-memory map never drifts from what is on disk.

    Security Notes:
        - Hash derivation runs outside the lock; only the map update and
          the write are serialized
        - Absent users and wrong passwords are distinct error kinds so
          callers can decide what to reveal
    """

    __slots__ = (
        "_path", "_hasher", "_field_separator", "_line_separator",
        "_records", "_lock",
    )

    def __init__(
        self,
        path: Path | str,
        hasher: Optional[CredentialHasher] = None,
        field_separator: str = DEFAULT_FIELD_SEPARATOR,
        line_separator: str = DEFAULT_LINE_SEPARATOR,
    ) -> None:
        """
        Create an empty vault bound to ``path``.

        Nothing is read or written until the first mutation or an
        explicit ``persist()``; use ``open`` or ``load_from`` to start
        from an existing snapshot.

        Args:
            path: Snapshot file location
            hasher: Key-derivation settings (default parameters if omitted)
            field_separator: Separator between the three fields of a line
            line_separator: Separator between records
        """
        validate_separators(field_separator, line_separator)
        self._path = Path(path)
        self._hasher = hasher or CredentialHasher()
        self._field_separator = field_separator
        self._line_separator = line_separator
        self._records: dict[str, CredentialRecord] = {}
        self._lock = ReadWriteLock()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_config(cls, config: AuthConfig) -> CredentialVault:
        """Open the vault described by ``config``."""
        hasher = CredentialHasher(
            iterations=config.hashing.iterations,
            key_length=config.hashing.key_length,
            salt_length=config.hashing.salt_length,
        )
        return cls.open(
            config.vault.path,
            hasher=hasher,
            field_separator=config.vault.field_separator,
            line_separator=config.vault.line_separator,
        )

    @classmethod
    def open(
        cls,
        path: Path | str,
        hasher: Optional[CredentialHasher] = None,
        field_separator: str = DEFAULT_FIELD_SEPARATOR,
        line_separator: str = DEFAULT_LINE_SEPARATOR,
    ) -> CredentialVault:
        """
        Load the snapshot at ``path`` if it exists and is non-empty,
        otherwise return an empty vault bound to that path.
        """
        path = Path(path)
        try:
            has_content = path.stat().st_size > 0
        except FileNotFoundError:
            has_content = False
        except OSError as e:
            raise PersistError(f"Cannot access vault file {path}: {e}") from e

        if has_content:
            return cls.load_from(path, hasher, field_separator, line_separator)
        logger.info("No existing vault at %s; starting empty", path)
        return cls(path, hasher, field_separator, line_separator)

    @classmethod
    def load_from(
        cls,
        path: Path | str,
        hasher: Optional[CredentialHasher] = None,
        field_separator: str = DEFAULT_FIELD_SEPARATOR,
        line_separator: str = DEFAULT_LINE_SEPARATOR,
    ) -> CredentialVault:
        """
        Read a snapshot file into a new vault bound to ``path``.

        Raises:
            PersistError: If the file cannot be read
            ParseError: If a line is malformed
            DuplicateUserError: If a username appears twice
        """
        vault = cls(path, hasher, field_separator, line_separator)
        try:
            data = vault._path.read_bytes()
        except OSError as e:
            raise PersistError(f"Cannot read vault file {vault._path}: {e}") from e
        vault._records = vault.decode(data)
        logger.info("Loaded %d user(s) from %s", len(vault._records), vault._path)
        return vault

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        """Snapshot file location."""
        return self._path

    @property
    def hasher(self) -> CredentialHasher:
        return self._hasher

    def user_exists(self, username: str) -> bool:
        with self._lock.read():
            return username in self._records

    def usernames(self) -> list[str]:
        """Sorted list of stored usernames."""
        with self._lock.read():
            return sorted(self._records)

    def get_record(self, username: str) -> Optional[CredentialRecord]:
        """Return the stored record for ``username``, or None."""
        with self._lock.read():
            return self._records.get(username)

    def __contains__(self, username: object) -> bool:
        with self._lock.read():
            return username in self._records

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(self.usernames())

    def __repr__(self) -> str:
        return f"CredentialVault(path={str(self._path)!r}, users={len(self)})"

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def authenticate(self, username: str, password: str) -> bool:
        """
        Check a username/password pair.

        Returns:
            True if the user exists and the password reproduces the
            stored hash, False otherwise (including for absent users)
        """
        record = self.get_record(username)
        if record is None or not password:
            return False
        return self._hasher.verify(password, record)

    def create_user(self, username: str, password: str) -> None:
        """
        Register a new user and persist the vault.

        Raises:
            ValidationError: If the username or password is not acceptable
            UserExistsError: If the username is taken
            EntropyError: If no salt could be generated
            PersistError: If the snapshot could not be written (the new
                user is not kept)
        """
        validate_username(username, self._field_separator, self._line_separator)
        if self.user_exists(username):
            raise UserExistsError(username)

        record = self._hasher.new_record(password)

        with self._lock.write():
            if username in self._records:
                raise UserExistsError(username)
            self._records[username] = record
            try:
                self._persist_locked()
            except Exception:
                del self._records[username]
                logger.warning("Rolled back creation of user %s after failed write", username)
                raise

        logger.info("Created user %s", username)

    def change_password(self, username: str, old_password: str, new_password: str) -> None:
        """
        Replace a user's credential after checking the old password.

        A new salt is always drawn; the old one is never reused.

        Raises:
            NoSuchUserError: If the user does not exist
            WrongPasswordError: If ``old_password`` does not authenticate
            ValidationError: If the new password is not acceptable
            PersistError: If the snapshot could not be written (the old
                credential stays in effect)
        """
        current = self._require_authenticated(username, old_password)
        record = self._hasher.new_record(new_password)

        with self._lock.write():
            # A concurrent change or delete wins; re-check against it
            if self._records.get(username) is not current:
                if username not in self._records:
                    raise NoSuchUserError(username)
                raise WrongPasswordError(username)
            self._records[username] = record
            try:
                self._persist_locked()
            except Exception:
                self._records[username] = current
                logger.warning("Rolled back password change for %s after failed write", username)
                raise

        logger.info("Password changed for user %s", username)

    def delete_user(self, username: str, password: str) -> None:
        """
        Remove a user after checking the password.

        Raises:
            NoSuchUserError: If the user does not exist
            WrongPasswordError: If the password does not authenticate
            PersistError: If the snapshot could not be written (the user
                is restored)
        """
        current = self._require_authenticated(username, password)

        with self._lock.write():
            if self._records.get(username) is not current:
                if username not in self._records:
                    raise NoSuchUserError(username)
                raise WrongPasswordError(username)
            del self._records[username]
            try:
                self._persist_locked()
            except Exception:
                self._records[username] = current
                logger.warning("Rolled back deletion of user %s after failed write", username)
                raise

        logger.info("Deleted user %s", username)

    def persist(self) -> None:
        """
        Write the snapshot and verify it by reading it back.

        Raises:
            PersistError: If the file cannot be written or re-read
            PersistMismatchError: If the re-read bytes differ
        """
        with self._lock.write():
            self._persist_locked()

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def encode(self, records: Optional[dict[str, CredentialRecord]] = None) -> bytes:
        """Serialize records (default: the current map) to snapshot bytes."""
        if records is None:
            with self._lock.read():
                records = dict(self._records)
        lines = [
            self._field_separator.join(
                (name, record.salt.hex(), record.derived_hash.hex())
            )
            for name, record in sorted(records.items())
        ]
        return self._line_separator.join(lines).encode(SNAPSHOT_ENCODING)

    def decode(self, data: bytes) -> dict[str, CredentialRecord]:
        """
        Parse snapshot bytes into a username -> record map.

        Trailing blank lines are ignored; any other line must hold
        exactly three fields with hex salt and hash of the lengths the
        hasher produces.

        Raises:
            ParseError: On malformed content
            DuplicateUserError: On a repeated username
        """
        try:
            text = data.decode(SNAPSHOT_ENCODING)
        except UnicodeDecodeError as e:
            raise ParseError(f"Vault snapshot is not valid UTF-8: {e}") from e

        lines = text.split(self._line_separator)
        while lines and not lines[-1].strip():
            lines.pop()

        records: dict[str, CredentialRecord] = {}
        for line_number, line in enumerate(lines, start=1):
            fields = line.split(self._field_separator)
            if len(fields) != FIELD_COUNT:
                raise ParseError(
                    f"expected {FIELD_COUNT} fields, found {len(fields)}",
                    line_number,
                )
            username, salt_hex, hash_hex = fields
            if not username:
                raise ParseError("empty username", line_number)
            try:
                salt = bytes.fromhex(salt_hex)
                derived_hash = bytes.fromhex(hash_hex)
            except (ValueError, binascii.Error) as e:
                raise ParseError(f"invalid hex for user '{username}'", line_number) from e
            if len(salt) != self._hasher.salt_length:
                raise ParseError(
                    f"salt for user '{username}' is {len(salt)} bytes, "
                    f"expected {self._hasher.salt_length}",
                    line_number,
                )
            if len(derived_hash) != self._hasher.key_length:
                raise ParseError(
                    f"hash for user '{username}' is {len(derived_hash)} bytes, "
                    f"expected {self._hasher.key_length}",
                    line_number,
                )
            if username in records:
                raise DuplicateUserError(username, line_number)
            records[username] = CredentialRecord(salt=salt, derived_hash=derived_hash)
        return records

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_authenticated(self, username: str, password: str) -> CredentialRecord:
        """Return the user's current record or raise the matching error."""
        record = self.get_record(username)
        if record is None:
            raise NoSuchUserError(username)
        if not password or not self._hasher.verify(password, record):
            raise WrongPasswordError(username)
        return record

    def _persist_locked(self) -> None:
        """Write and verify the snapshot. Caller holds the write lock."""
        expected = self.encode(self._records)
        try:
            atomic_write_bytes(self._path, expected)
        except OSError as e:
            logger.error("Failed to write vault file %s: %s", self._path, e)
            raise PersistError(f"Error writing vault file {self._path}: {e}") from e

        try:
            written = self._path.read_bytes()
        except OSError as e:
            logger.error("Failed to re-read vault file %s: %s", self._path, e)
            raise PersistError(f"Error re-reading vault file {self._path}: {e}") from e

        if written != expected:
            logger.error(
                "Vault file %s does not match memory after write "
                "(%d bytes written, %d bytes read)",
                self._path, len(expected), len(written),
            )
            raise PersistMismatchError(
                f"Vault file {self._path} did not match the in-memory state after write"
            )
        logger.debug("Persisted %d user(s) to %s", len(self._records), self._path)
