"""
Summarium - Configuration

Centralized configuration management. Values come from environment
variables (optionally via a ``.env`` file) with sensible defaults.
"""
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from core.errors import ConfigError

# Load environment variables from .env file
load_dotenv()


class Environment(Enum):
    """Deployment environments."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class EventBusBackend(Enum):
    MEMORY = "memory"
    REDIS = "redis"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(
            f"{name} must be an integer, got {raw!r}", config_key=name, actual_value=raw, cause=e
        ) from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}", config_key=name, actual_value=raw)


def _env_enum(name: str, enum_type: type, default: Enum) -> Any:
    raw = os.getenv(name, default.value)
    try:
        return enum_type(raw.lower())
    except ValueError as e:
        choices = ", ".join(m.value for m in enum_type)
        raise ConfigError(
            f"{name} must be one of {choices}, got {raw!r}", config_key=name, actual_value=raw, cause=e
        ) from e


@dataclass
class SummaryConfig:
    """Summary engine configuration."""
    auto_schedule_enabled: bool = field(default_factory=lambda: _env_bool("SUMMARY_AUTO_SCHEDULE", True))
    auto_process_enabled: bool = field(default_factory=lambda: _env_bool("SUMMARY_AUTO_PROCESS", True))
    max_retries: int = field(default_factory=lambda: _env_int("SUMMARY_MAX_RETRIES", 3))
    retry_delay_ms: int = field(default_factory=lambda: _env_int("SUMMARY_RETRY_DELAY_MS", 5000))
    process_interval_ms: int = field(default_factory=lambda: _env_int("SUMMARY_PROCESS_INTERVAL_MS", 10000))
    schedule_interval_ms: int = field(
        default_factory=lambda: _env_int("SUMMARY_SCHEDULE_INTERVAL_MS", 60 * 60 * 1000)
    )
    lookback_days: int = field(default_factory=lambda: _env_int("SUMMARY_LOOKBACK_DAYS", 90))


@dataclass
class DatabaseConfig:
    """Database configuration."""
    url: str = field(
        default_factory=lambda: os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./summarium.db")
    )
    echo: bool = field(default_factory=lambda: _env_bool("DATABASE_ECHO", False))


@dataclass
class EventBusSettings:
    """Event publication configuration."""
    backend: EventBusBackend = field(
        default_factory=lambda: _env_enum("EVENT_BUS_BACKEND", EventBusBackend, EventBusBackend.MEMORY)
    )
    redis_host: str = field(default_factory=lambda: os.getenv("REDIS_HOST", "localhost"))
    redis_port: int = field(default_factory=lambda: _env_int("REDIS_PORT", 6379))
    redis_password: str = field(default_factory=lambda: os.getenv("REDIS_PASSWORD", ""))
    redis_db: int = field(default_factory=lambda: _env_int("REDIS_DB", 0))
    memory_max_pending: int = field(default_factory=lambda: _env_int("EVENT_BUS_MEMORY_MAX_PENDING", 10000))

    @property
    def redis_url(self) -> str:
        """Get Redis connection URL (``REDIS_URL`` wins when set)."""
        explicit = os.getenv("REDIS_URL")
        if explicit:
            return explicit
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"


@dataclass
class Config:
    """Main configuration class combining all sub-configs."""
    env: Environment = field(
        default_factory=lambda: _env_enum("ENVIRONMENT", Environment, Environment.DEVELOPMENT)
    )
    debug: bool = field(default_factory=lambda: _env_bool("DEBUG", False))

    summary: SummaryConfig = field(default_factory=SummaryConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    event_bus: EventBusSettings = field(default_factory=EventBusSettings)

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary (excluding sensitive values)."""
        return {
            "env": self.env.value,
            "debug": self.debug,
            "summary": {
                "auto_schedule_enabled": self.summary.auto_schedule_enabled,
                "auto_process_enabled": self.summary.auto_process_enabled,
                "max_retries": self.summary.max_retries,
                "retry_delay_ms": self.summary.retry_delay_ms,
                "process_interval_ms": self.summary.process_interval_ms,
                "schedule_interval_ms": self.summary.schedule_interval_ms,
                "lookback_days": self.summary.lookback_days,
            },
            "database": {"url": self.database.url.split("@")[-1]},
            "event_bus": {"backend": self.event_bus.backend.value},
        }


# Singleton configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create configuration singleton."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reload_config() -> Config:
    """Reload configuration from environment."""
    global _config
    load_dotenv(override=True)
    _config = Config()
    return _config


def reset_config() -> None:
    """Drop the cached configuration (tests)."""
    global _config
    _config = None
