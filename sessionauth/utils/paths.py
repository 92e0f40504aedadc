"""
Path Utilities
==============

OS-aware default locations and atomic file replacement.
"""

from __future__ import annotations

import os
import platform
import tempfile
from pathlib import Path
from typing import Final

APP_DIR_NAME: Final[str] = "sessionauth"
DEFAULT_VAULT_FILENAME: Final[str] = "auth.tokens"


def get_app_config_dir(app_name: str = APP_DIR_NAME) -> Path:
    """
    Get the OS-appropriate configuration directory.

    Args:
        app_name: Name of the application

    Returns:
        Path to the application configuration directory
    """
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif system == "darwin":
        base = Path.home() / "Library" / "Preferences"
    else:  # Linux and others
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))

    return base / app_name


def default_vault_path() -> Path:
    """Default location of the credential vault snapshot."""
    return get_app_config_dir() / DEFAULT_VAULT_FILENAME


def atomic_write_bytes(path: Path, data: bytes, mode: int = 0o600) -> None:
    """
    Replace ``path`` with ``data`` in a single rename.

    The data is written to a temporary file in the same directory,
    flushed and fsynced, then moved over the target, so readers see
    either the old file or the new one and never a partial write.

    Args:
        path: Destination file
        data: Complete new file contents
        mode: Permission bits for the new file (owner-only by default)

    Raises:
        OSError: If any step fails; the temporary file is removed
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if platform.system().lower() != "windows":
            os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
