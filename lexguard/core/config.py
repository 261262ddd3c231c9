"""
Configuration
=============

Immutable, environment-aware configuration with security-first defaults.

Security Features:
- Immutable configuration after initialization
- Environment variable override support (``LEXGUARD_`` prefix)
- Sensitive-looking keys are never read from the environment
- Validated hashing cost and session lifetime
"""

from __future__ import annotations

import hashlib
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Optional


_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "token", "api_key",
    "private", "credential", "salt",
})

DEFAULT_SESSION_LIFETIME_SECONDS: Final[int] = 8 * 60 * 60  # 8 hours


def _is_sensitive_key(key: str) -> bool:
    """Check if a configuration key might contain sensitive data."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def _get_default_data_dir() -> Path:
    """Get OS-appropriate default data directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif system == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    return base / "LexGuard"


def _get_default_log_dir() -> Path:
    """Get OS-appropriate default log directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "LexGuard" / "Logs"
    elif system == "darwin":
        return Path.home() / "Library" / "Logs" / "LexGuard"
    else:
        return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "LexGuard" / "logs"


@dataclass(frozen=True, slots=True)
class PathConfig:
    """Immutable path configuration with OS-aware defaults."""

    data_dir: Path = field(default_factory=_get_default_data_dir)
    log_dir: Path = field(default_factory=_get_default_log_dir)

    def __post_init__(self) -> None:
        for field_name in ("data_dir", "log_dir"):
            path = getattr(self, field_name)
            if not path.is_absolute():
                raise ValueError(f"{field_name} must be an absolute path: {path}")

    @property
    def database_path(self) -> Path:
        return self.data_dir / "lexguard.db"


@dataclass(frozen=True, slots=True)
class SecurityConfig:
    """Immutable security configuration."""

    # Argon2id cost parameters
    hash_memory_cost: int = 102400  # KiB
    hash_time_cost: int = 2
    hash_parallelism: int = 4

    # Sessions
    session_lifetime_seconds: int = DEFAULT_SESSION_LIFETIME_SECONDS

    # Generated passwords (default admin bootstrap, resets)
    generated_length: int = 12

    def __post_init__(self) -> None:
        if self.hash_parallelism < 1:
            raise ValueError("hash_parallelism must be at least 1")
        if self.hash_memory_cost < 8 * self.hash_parallelism:
            raise ValueError("hash_memory_cost must be at least 8 KiB per lane")
        if self.hash_time_cost < 1:
            raise ValueError("hash_time_cost must be at least 1")
        if self.session_lifetime_seconds <= 0:
            raise ValueError("session_lifetime_seconds must be positive")
        if self.generated_length < 8:
            raise ValueError("generated_length must be at least 8")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    enable_console: bool = True
    enable_file: bool = True
    enable_json: bool = False

    def __post_init__(self) -> None:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Immutable application identity."""

    app_name: str = "LexGuard"
    version: str = "0.1.0"


class LexGuardConfig:
    """
    Centralized, immutable configuration with environment overrides.

    Usage:
        config = LexGuardConfig.load()
        lifetime = config.security.session_lifetime_seconds
        db_path = config.paths.database_path
    """

    __slots__ = ("_paths", "_security", "_logging", "_app", "_frozen", "_config_hash")

    def __init__(
        self,
        paths: Optional[PathConfig] = None,
        security: Optional[SecurityConfig] = None,
        logging: Optional[LoggingConfig] = None,
        app: Optional[AppConfig] = None,
    ) -> None:
        """Initialize configuration. Use LexGuardConfig.load() for standard initialization."""
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_paths", paths or PathConfig())
        object.__setattr__(self, "_security", security or SecurityConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_app", app or AppConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        config_str = f"{self._paths}|{self._security}|{self._logging}|{self._app}"
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def paths(self) -> PathConfig:
        return self._paths

    @property
    def security(self) -> SecurityConfig:
        return self._security

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def app(self) -> AppConfig:
        return self._app

    @property
    def config_hash(self) -> str:
        """Short digest identifying this configuration."""
        return self._config_hash

    @classmethod
    def load(cls, env_prefix: str = "LEXGUARD") -> LexGuardConfig:
        """
        Load configuration with environment variable overrides.

        Variables use the prefix and double underscores for nesting:

            LEXGUARD_LOGGING__LEVEL=DEBUG
            LEXGUARD_SECURITY__SESSION_LIFETIME_SECONDS=3600
            LEXGUARD_PATHS__DATA_DIR=/srv/lexguard

        Args:
            env_prefix: Prefix for environment variables

        Returns:
            Configured LexGuardConfig instance
        """
        env = cls._parse_env_overrides(env_prefix)

        paths_kwargs: dict[str, Any] = {}
        for key in ("data_dir", "log_dir"):
            if f"paths.{key}" in env:
                paths_kwargs[key] = Path(env[f"paths.{key}"])

        security_kwargs: dict[str, Any] = {}
        for key in (
            "hash_memory_cost",
            "hash_time_cost",
            "hash_parallelism",
            "session_lifetime_seconds",
            "generated_length",
        ):
            if f"security.{key}" in env:
                security_kwargs[key] = int(env[f"security.{key}"])

        logging_kwargs: dict[str, Any] = {}
        if "logging.level" in env:
            logging_kwargs["level"] = env["logging.level"]
        for key in ("enable_console", "enable_file", "enable_json"):
            if f"logging.{key}" in env:
                logging_kwargs[key] = env[f"logging.{key}"].lower() == "true"

        return cls(
            paths=PathConfig(**paths_kwargs) if paths_kwargs else None,
            security=SecurityConfig(**security_kwargs) if security_kwargs else None,
            logging=LoggingConfig(**logging_kwargs) if logging_kwargs else None,
        )

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in os.environ.items():
            if key.startswith(prefix_upper):
                # LEXGUARD_SECTION__KEY -> section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")
                if _is_sensitive_key(config_key):
                    continue
                overrides[config_key] = value

        return overrides

    def ensure_directories(self) -> None:
        """Create data and log directories, owner-only on Unix-like systems."""
        import stat

        for directory in (self._paths.data_dir, self._paths.log_dir):
            directory.mkdir(parents=True, exist_ok=True)
            if platform.system().lower() != "windows":
                directory.chmod(stat.S_IRWXU)

    def __repr__(self) -> str:
        return f"LexGuardConfig(hash={self._config_hash}, app={self._app.app_name})"

    def __setattr__(self, name: str, value: Any) -> None:
        if hasattr(self, "_frozen") and self._frozen:
            raise AttributeError("LexGuardConfig is immutable after initialization")
        super().__setattr__(name, value)
