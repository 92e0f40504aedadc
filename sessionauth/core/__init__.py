"""
Core module - Contains configuration, logging, errors and base components.
"""

from sessionauth.core.config import AuthConfig
from sessionauth.core.logging import configure_logging, get_secure_logger, SecureLogFilter

__all__ = ["AuthConfig", "configure_logging", "get_secure_logger", "SecureLogFilter"]
