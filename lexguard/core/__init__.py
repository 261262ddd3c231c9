"""
Core module - Contains configuration, logging, and authentication components.
"""

from lexguard.core.config import LexGuardConfig
from lexguard.core.logging import get_secure_logger, SecureLogFilter

__all__ = ["LexGuardConfig", "get_secure_logger", "SecureLogFilter"]
