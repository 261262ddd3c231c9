"""
LexGuard - Authentication and Access Control for a Law Practice Desktop App
===========================================================================

This package authenticates the firm's staff, gates every feature behind
role-based permissions and keeps a tamper-aware trail of security events.

Security Notice:
- No passwords, hashes or session tokens are logged
- Fail-closed design pattern
- All paths are OS-aware
"""

from lexguard.core.config import LexGuardConfig
from lexguard.core.logging import get_secure_logger

__version__ = "0.1.0"
__author__ = "LexGuard Team"

__all__ = ["LexGuardConfig", "get_secure_logger", "__version__"]
