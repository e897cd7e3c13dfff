"""Configuration management for production and test environments.

This module provides centralized path configuration for the two SQLite
databases (authors and publications) and the settings used to reach the
Authors service over HTTP. Production and test data never share files.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from ..utils.log import get_logger

log = get_logger(__name__)

# Environment mode type
EnvironmentMode = Literal["production", "test"]

# What the authors client reports once every retry has failed
UnreachablePolicy = Literal["absent", "raise"]

# Default paths for production environment
_DEFAULT_PRODUCTION_PATHS = {
    "authors_db_path": Path("data/authors.db"),
    "publications_db_path": Path("data/publications.db"),
    "log_dir": Path("logs"),
}

# Test paths (completely separate from production)
_DEFAULT_TEST_PATHS = {
    "authors_db_path": Path("test_data/authors.db"),
    "publications_db_path": Path("test_data/publications.db"),
    "log_dir": Path("test_data/logs"),
}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning("invalid_int_env_var", name=name, value=raw, default=default)
        return default


@dataclass(frozen=True)
class RemoteSettings:
    """Connection settings for the Authors service.

    Durations are milliseconds, matching the environment variables they are
    read from.
    """

    base_url: str = "http://authors-service:3001"
    timeout_ms: int = 5000
    max_attempts: int = 3
    backoff_base_ms: int = 1000
    health_timeout_ms: int = 3000
    unreachable_policy: UnreachablePolicy = "absent"

    @classmethod
    def from_env(cls) -> "RemoteSettings":
        """Build settings from AUTHORS_SERVICE_URL, HTTP_TIMEOUT, HTTP_MAX_RETRIES, ..."""
        policy = os.getenv("AUTHORS_UNREACHABLE_POLICY", "absent").strip().lower()
        if policy not in ("absent", "raise"):
            log.warning("invalid_unreachable_policy", value=policy, default="absent")
            policy = "absent"
        return cls(
            base_url=os.getenv("AUTHORS_SERVICE_URL", cls.base_url).rstrip("/"),
            timeout_ms=_env_int("HTTP_TIMEOUT", cls.timeout_ms),
            max_attempts=max(1, _env_int("HTTP_MAX_RETRIES", cls.max_attempts)),
            backoff_base_ms=_env_int("HTTP_RETRY_BASE_MS", cls.backoff_base_ms),
            health_timeout_ms=_env_int("HTTP_HEALTH_TIMEOUT", cls.health_timeout_ms),
            unreachable_policy=policy,  # type: ignore[arg-type]
        )


class EnvironmentConfig:
    """Manages environment-specific paths and remote service settings.

    This class ensures complete separation between production and test
    environments by maintaining separate paths for all data storage.
    """

    def __init__(self, mode: EnvironmentMode = "production") -> None:
        """Initialize configuration with specified mode.

        Args:
            mode: Environment mode ('production' or 'test')
        """
        self._mode: EnvironmentMode = mode
        self._paths: dict[str, Path] = {}
        self._load_paths()
        self.remote = RemoteSettings.from_env()
        log.debug("environment_config_initialized", mode=mode, paths=str(self._paths))

    def _load_paths(self) -> None:
        """Load paths based on current mode."""
        if self._mode == "test":
            self._paths = _DEFAULT_TEST_PATHS.copy()
        else:
            self._paths = _DEFAULT_PRODUCTION_PATHS.copy()

    @property
    def mode(self) -> EnvironmentMode:
        """Get current environment mode."""
        return self._mode

    @property
    def authors_db_path(self) -> Path:
        return self._paths["authors_db_path"]

    @property
    def publications_db_path(self) -> Path:
        return self._paths["publications_db_path"]

    @property
    def log_dir(self) -> Path:
        return self._paths["log_dir"]

    def set_mode(self, mode: EnvironmentMode) -> None:
        """Change environment mode and reload paths.

        Args:
            mode: New environment mode ('production' or 'test')
        """
        if mode != self._mode:
            old_mode = self._mode
            self._mode = mode
            self._load_paths()
            log.info(
                "environment_mode_changed",
                old_mode=old_mode,
                new_mode=mode,
                new_paths=str(self._paths),
            )

    def ensure_directories(self) -> None:
        """Create all necessary directories if they don't exist."""
        for path_name, path in self._paths.items():
            if path_name.endswith("_dir"):
                path.mkdir(parents=True, exist_ok=True)
                log.debug("directory_ensured", path=str(path))
            elif path_name.endswith("_path"):
                path.parent.mkdir(parents=True, exist_ok=True)
                log.debug("parent_directory_ensured", path=str(path.parent))

    def get_summary(self) -> dict[str, str]:
        """Get summary of current configuration.

        Returns:
            Dictionary with mode, all paths and the authors service URL as strings
        """
        return {
            "mode": self._mode,
            **{k: str(v) for k, v in self._paths.items()},
            "authors_service_url": self.remote.base_url,
        }


# Global configuration instance (lazily initialized)
_config: EnvironmentConfig | None = None


def get_config() -> EnvironmentConfig:
    """Get the global configuration instance.

    Lazily initializes the config on first access if not already initialized.
    """
    global _config
    if _config is None:
        _config = EnvironmentConfig(mode="production")
    return _config


def set_test_mode() -> None:
    """Switch to test mode globally.

    Called at the beginning of CLI commands when the --test flag is used.
    """
    global _config
    if _config is None:
        _config = EnvironmentConfig(mode="test")
        log.info("initialized_in_test_mode", paths=_config.get_summary())
    else:
        _config.set_mode("test")
        log.info("switched_to_test_mode", paths=_config.get_summary())


def set_production_mode() -> None:
    """Switch to production mode globally."""
    global _config
    if _config is None:
        _config = EnvironmentConfig(mode="production")
        log.info("initialized_in_production_mode", paths=_config.get_summary())
    else:
        _config.set_mode("production")
        log.info("switched_to_production_mode", paths=_config.get_summary())


def is_test_mode() -> bool:
    """Check if currently in test mode."""
    return get_config().mode == "test"


def reset_config() -> None:
    """Drop the global instance so the next access re-reads the environment."""
    global _config
    _config = None
