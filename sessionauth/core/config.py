"""
Configuration Module
====================

Immutable, environment-aware configuration for the vault and the
session store.

Features:
- Immutable configuration after initialization
- Environment variable override support
- Type-safe configuration access
- OS-aware path defaults

The configuration is built once at startup and handed to
``CredentialVault.from_config`` and ``SessionStore.from_config``;
nothing in the package reads it from module state.
"""

from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Final, Optional

from sessionauth.core.crypto.entropy import MIN_TOKEN_LENGTH, SESSION_TOKEN_LENGTH
from sessionauth.core.crypto.kdf import (
    MIN_ITERATIONS,
    MIN_KEY_LENGTH,
    MIN_SALT_LENGTH,
    PBKDF2_ITERATIONS,
    PBKDF2_KEY_LENGTH,
    SALT_LENGTH,
)
from sessionauth.utils.paths import default_vault_path
from sessionauth.utils.validators import validate_separators

DEFAULT_FIELD_SEPARATOR: Final[str] = "-|-"
DEFAULT_LINE_SEPARATOR: Final[str] = "\n"
DEFAULT_SESSION_TTL_SECONDS: Final[int] = 30 * 24 * 60 * 60  # 30 days
DEFAULT_SWEEP_INTERVAL_SECONDS: Final[float] = 10.0
DEFAULT_SWEEP_BACKOFF_FACTOR: Final[float] = 1.5

# Environment keys that are never honoured
_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "private", "credential",
})

_TRUE_VALUES: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})


def _is_sensitive_key(key: str) -> bool:
    """Check if a configuration key might carry sensitive data."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def _as_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True, slots=True)
class VaultConfig:
    """Location and encoding of the credential snapshot."""

    path: Path = field(default_factory=default_vault_path)
    field_separator: str = DEFAULT_FIELD_SEPARATOR
    line_separator: str = DEFAULT_LINE_SEPARATOR

    def __post_init__(self) -> None:
        """Validate vault settings."""
        if not isinstance(self.path, Path):
            object.__setattr__(self, "path", Path(self.path))
        validate_separators(self.field_separator, self.line_separator)


@dataclass(frozen=True, slots=True)
class HashingConfig:
    """Password key-derivation parameters."""

    iterations: int = PBKDF2_ITERATIONS
    key_length: int = PBKDF2_KEY_LENGTH
    salt_length: int = SALT_LENGTH

    def __post_init__(self) -> None:
        """Validate hashing settings."""
        if self.iterations < MIN_ITERATIONS:
            raise ValueError(f"iterations must be at least {MIN_ITERATIONS}")
        if self.key_length < MIN_KEY_LENGTH:
            raise ValueError(f"key_length must be at least {MIN_KEY_LENGTH} bytes")
        if self.salt_length < MIN_SALT_LENGTH:
            raise ValueError(f"salt_length must be at least {MIN_SALT_LENGTH} bytes")


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Session lifetime and sweep settings."""

    default_ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS
    sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS
    sweep_backoff_factor: float = DEFAULT_SWEEP_BACKOFF_FACTOR
    token_length: int = SESSION_TOKEN_LENGTH

    def __post_init__(self) -> None:
        """Validate session settings."""
        if self.default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be positive")
        if self.sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be positive")
        if self.sweep_backoff_factor <= 1:
            raise ValueError("sweep_backoff_factor must be greater than 1")
        if self.token_length < MIN_TOKEN_LENGTH:
            raise ValueError(f"token_length must be at least {MIN_TOKEN_LENGTH} bytes")

    @property
    def default_ttl(self) -> timedelta:
        return timedelta(seconds=self.default_ttl_seconds)

    @property
    def sweep_interval(self) -> timedelta:
        return timedelta(seconds=self.sweep_interval_seconds)


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    log_dir: Optional[Path] = None
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False
    enable_json: bool = False

    def __post_init__(self) -> None:
        """Validate logging settings."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")
        if self.log_dir is not None and not isinstance(self.log_dir, Path):
            object.__setattr__(self, "log_dir", Path(self.log_dir))


class AuthConfig:
    """
    Immutable configuration with environment variable overrides.

    Usage:
        config = AuthConfig.load()
        vault = CredentialVault.from_config(config)
        store = SessionStore.from_config(config)

    Environment variables are prefixed with SESSIONAUTH_ and use double
    underscores for nested values:
        SESSIONAUTH_VAULT__PATH=/etc/myapp/auth.tokens
        SESSIONAUTH_SESSIONS__SWEEP_INTERVAL_SECONDS=30
        SESSIONAUTH_LOGGING__LEVEL=DEBUG
    """

    __slots__ = ("_vault", "_hashing", "_sessions", "_logging", "_frozen", "_config_hash")

    def __init__(
        self,
        vault: Optional[VaultConfig] = None,
        hashing: Optional[HashingConfig] = None,
        sessions: Optional[SessionConfig] = None,
        logging: Optional[LoggingConfig] = None,
    ) -> None:
        """Initialize configuration. Use AuthConfig.load() for standard initialization."""
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_vault", vault or VaultConfig())
        object.__setattr__(self, "_hashing", hashing or HashingConfig())
        object.__setattr__(self, "_sessions", sessions or SessionConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        """Compute a hash of the configuration for integrity checking."""
        config_str = f"{self._vault}|{self._hashing}|{self._sessions}|{self._logging}"
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def vault(self) -> VaultConfig:
        return self._vault

    @property
    def hashing(self) -> HashingConfig:
        return self._hashing

    @property
    def sessions(self) -> SessionConfig:
        return self._sessions

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def config_hash(self) -> str:
        """Get configuration integrity hash."""
        return self._config_hash

    @classmethod
    def load(
        cls,
        env_prefix: str = "SESSIONAUTH",
        environ: Optional[dict[str, str]] = None,
    ) -> AuthConfig:
        """
        Load configuration with environment variable overrides.

        ``SESSIONAUTH_VAULT__PATH_FILE`` names a file whose content is the
        vault path; it wins over ``SESSIONAUTH_VAULT__PATH``.

        Args:
            env_prefix: Prefix for environment variables
            environ: Mapping to read instead of ``os.environ``

        Returns:
            Configured AuthConfig instance
        """
        env = cls._parse_env_overrides(env_prefix, os.environ if environ is None else environ)

        vault_kwargs: dict[str, Any] = {}
        if "vault.path_file" in env:
            path_file = Path(env["vault.path_file"])
            try:
                vault_kwargs["path"] = Path(path_file.read_text(encoding="utf-8").strip())
            except OSError as e:
                raise ValueError(
                    f"Vault path file {path_file} could not be read: {e}"
                ) from e
        elif "vault.path" in env:
            vault_kwargs["path"] = Path(env["vault.path"])

        hashing_kwargs: dict[str, Any] = {}
        if "hashing.iterations" in env:
            hashing_kwargs["iterations"] = int(env["hashing.iterations"])

        session_kwargs: dict[str, Any] = {}
        if "sessions.default_ttl_seconds" in env:
            session_kwargs["default_ttl_seconds"] = float(env["sessions.default_ttl_seconds"])
        if "sessions.sweep_interval_seconds" in env:
            session_kwargs["sweep_interval_seconds"] = float(env["sessions.sweep_interval_seconds"])

        logging_kwargs: dict[str, Any] = {}
        if "logging.level" in env:
            logging_kwargs["level"] = env["logging.level"]
        if "logging.log_dir" in env:
            logging_kwargs["log_dir"] = Path(env["logging.log_dir"])
        if "logging.enable_console" in env:
            logging_kwargs["enable_console"] = _as_bool(env["logging.enable_console"])
        if "logging.enable_file" in env:
            logging_kwargs["enable_file"] = _as_bool(env["logging.enable_file"])

        return cls(
            vault=VaultConfig(**vault_kwargs) if vault_kwargs else None,
            hashing=HashingConfig(**hashing_kwargs) if hashing_kwargs else None,
            sessions=SessionConfig(**session_kwargs) if session_kwargs else None,
            logging=LoggingConfig(**logging_kwargs) if logging_kwargs else None,
        )

    @staticmethod
    def _parse_env_overrides(prefix: str, environ: Any) -> dict[str, str]:
        """Parse environment variables with the given prefix."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in environ.items():
            if key.startswith(prefix_upper):
                # SESSIONAUTH_SECTION__KEY -> section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")
                if _is_sensitive_key(config_key):
                    continue
                overrides[config_key] = value

        return overrides

    def __repr__(self) -> str:
        """Safe string representation."""
        return f"AuthConfig(hash={self._config_hash}, vault={str(self._vault.path)!r})"

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification after initialization."""
        if getattr(self, "_frozen", False):
            raise AttributeError("AuthConfig is immutable after initialization")
        super().__setattr__(name, value)
