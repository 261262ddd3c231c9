"""
Credential Hashing
==================

Argon2id password hashing, verification, strength scoring and secure
password generation.

Security Properties:
- Memory-hard hashing (resistant to GPU/ASIC attacks)
- Random salt embedded in every encoded hash
- Constant-time verification that never raises
- Cryptographically strong password generation

Parameters (OWASP 2023 recommendations):
- memory_cost: 102400 KiB (100 MB)
- time_cost: 2 iterations
- parallelism: 4 lanes

Hashing is deliberately slow. Callers running a UI loop must offload
``hash``/``verify`` to a worker thread and let the call finish even if
they stop waiting for it.
"""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from enum import Enum
from typing import Final, Optional

from argon2 import PasswordHasher, Type
from argon2.exceptions import (
    HashingError as Argon2HashingError,
    InvalidHashError,
    VerificationError,
)

from lexguard.core.auth.errors import HashingError, WeakPassword


# Argon2id parameters (OWASP 2023 recommended minimums)
ARGON2_MEMORY_COST: Final[int] = 102400  # 100 MB in KiB
ARGON2_TIME_COST: Final[int] = 2  # iterations
ARGON2_PARALLELISM: Final[int] = 4  # lanes
ARGON2_HASH_LENGTH: Final[int] = 32  # 256 bits
ARGON2_SALT_LENGTH: Final[int] = 16  # 128 bits

# Password policy
MIN_PASSWORD_LENGTH: Final[int] = 8
STRONG_PASSWORD_LENGTH: Final[int] = 12
SPECIAL_CHARACTERS: Final[str] = "!@#$%^&*"
DEFAULT_GENERATED_LENGTH: Final[int] = 12

# 70 characters: upper, lower, digits and the special set
PASSWORD_ALPHABET: Final[str] = (
    string.ascii_uppercase + string.ascii_lowercase + string.digits + SPECIAL_CHARACTERS
)


class PasswordScore(str, Enum):
    """Heuristic strength rating, independent of policy validity."""
    WEAK = "weak"
    MEDIUM = "medium"
    STRONG = "strong"


@dataclass(frozen=True, slots=True)
class PasswordStrength:
    """
    Result of a password policy check.

    Attributes:
        is_valid: True only when there are no violations
        score: Heuristic rating; may be MEDIUM/STRONG even when invalid
        violations: Human-readable policy violations
    """
    is_valid: bool
    score: PasswordScore
    violations: tuple[str, ...]


class CredentialHasher:
    """
    Argon2id password hasher with secure defaults.

    Usage:
        hasher = CredentialHasher()

        encoded = hasher.hash("Correct-Horse1")
        store(encoded)

        hasher.verify("Correct-Horse1", encoded)  # True
        hasher.verify("wrong", encoded)           # False

    Security Notes:
        - The encoded string carries algorithm, cost, salt and digest
        - Two calls with the same password never produce the same string
        - ``verify`` returns False for malformed input instead of raising
    """

    __slots__ = ("_hasher", "_log", "_dummy_hash")

    def __init__(
        self,
        memory_cost: int = ARGON2_MEMORY_COST,
        time_cost: int = ARGON2_TIME_COST,
        parallelism: int = ARGON2_PARALLELISM,
        hash_length: int = ARGON2_HASH_LENGTH,
        salt_length: int = ARGON2_SALT_LENGTH,
    ) -> None:
        """
        Initialize the hasher.

        Args:
            memory_cost: Memory usage in KiB (default: 102400 = 100MB)
            time_cost: Number of iterations (default: 2)
            parallelism: Degree of parallelism (default: 4)
            hash_length: Output hash length in bytes (default: 32)
            salt_length: Salt length in bytes (default: 16)
        """
        if parallelism < 1:
            raise ValueError("parallelism must be at least 1")
        if memory_cost < 8 * parallelism:
            raise ValueError("memory_cost must be at least 8 KiB per lane")
        if time_cost < 1:
            raise ValueError("time_cost must be at least 1")
        if hash_length < 16:
            raise ValueError("hash_length must be at least 16 bytes")
        if salt_length < 8:
            raise ValueError("salt_length must be at least 8 bytes")

        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_length,
            salt_len=salt_length,
            type=Type.ID,
        )
        self._log = logging.getLogger("lexguard.credentials")
        self._dummy_hash: Optional[str] = None

    @property
    def parameters(self) -> dict[str, int]:
        """Get current hashing parameters."""
        return {
            "memory_cost": self._hasher.memory_cost,
            "time_cost": self._hasher.time_cost,
            "parallelism": self._hasher.parallelism,
            "hash_length": self._hasher.hash_len,
            "salt_length": self._hasher.salt_len,
        }

    def hash(self, password: str) -> str:
        """
        Hash a password.

        Returns:
            Encoded Argon2id string for storage

        Raises:
            WeakPassword: If the password is empty
            HashingError: If the backend or the entropy source fails
        """
        if not password:
            raise WeakPassword(["Password cannot be empty"])

        try:
            return self._hasher.hash(password)
        except (Argon2HashingError, OSError) as e:
            self._log.error("Password hashing backend failure: %s", type(e).__name__)
            raise HashingError() from e

    def verify(self, password: str, encoded: str) -> bool:
        """
        Verify a password against an encoded hash.

        Returns:
            True if the password matches, False on mismatch or bad input
        """
        if not password or not encoded:
            return False

        try:
            return self._hasher.verify(encoded, password)
        except (VerificationError, InvalidHashError, TypeError, ValueError):
            return False

    def dummy_verify(self, password: str) -> None:
        """
        Spend the same work as a real verification.

        Used when a login identifier is unknown so that response time does
        not reveal whether the account exists.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self.hash(secrets.token_urlsafe(16))
        self.verify(password or "x", self._dummy_hash)

    def needs_rehash(self, encoded: str) -> bool:
        """Return True if the hash was produced with different parameters."""
        try:
            return self._hasher.check_needs_rehash(encoded)
        except (InvalidHashError, ValueError):
            return True

    @staticmethod
    def strength(password: str) -> PasswordStrength:
        """
        Check a password against the policy and rate it.

        Policy: at least 8 characters, one uppercase, one lowercase,
        one digit and one of ``!@#$%^&*``.
        """
        has_upper = any(c in string.ascii_uppercase for c in password)
        has_lower = any(c in string.ascii_lowercase for c in password)
        has_digit = any(c in string.digits for c in password)
        has_special = any(c in SPECIAL_CHARACTERS for c in password)

        violations = []
        if len(password) < MIN_PASSWORD_LENGTH:
            violations.append(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
            )
        if not has_upper:
            violations.append("Password must contain at least one uppercase letter")
        if not has_lower:
            violations.append("Password must contain at least one lowercase letter")
        if not has_digit:
            violations.append("Password must contain at least one number")
        if not has_special:
            violations.append("Password must contain at least one special character")

        points = sum((
            len(password) >= MIN_PASSWORD_LENGTH,
            len(password) >= STRONG_PASSWORD_LENGTH,
            has_lower,
            has_upper,
            has_digit,
            has_special,
        ))
        if points < 3:
            score = PasswordScore.WEAK
        elif points < 5:
            score = PasswordScore.MEDIUM
        else:
            score = PasswordScore.STRONG

        return PasswordStrength(
            is_valid=not violations,
            score=score,
            violations=tuple(violations),
        )

    @classmethod
    def generate_secure_password(cls, length: int = DEFAULT_GENERATED_LENGTH) -> str:
        """
        Generate a random password that always satisfies the policy.

        Each character is drawn uniformly from the 70-character alphabet;
        draws lacking a required character class are discarded.

        Raises:
            ValueError: If length is below the policy minimum
        """
        if length < MIN_PASSWORD_LENGTH:
            raise ValueError(
                f"Generated passwords must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        while True:
            candidate = "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))
            if cls.strength(candidate).is_valid:
                return candidate
