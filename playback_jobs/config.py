import os
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "mern-joytify"


def load_env(path: Optional[str] = None):
    """Load .env from the given path or the current working directory"""
    loaded = load_dotenv(path) if path else load_dotenv()
    if loaded:
        logger.info("📄 Loaded environment from .env")
    return loaded


def get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def mongodb_uri() -> str:
    return os.getenv("MONGODB_URI", "mongodb://localhost:27017")


def db_name() -> str:
    return os.getenv("DB_NAME", DEFAULT_DB_NAME)


def default_test_mode() -> bool:
    return get_bool("TEST_MODE")


@dataclass
class CleanupSettings:
    days: int = 60
    batch_size: int = 10000
    batch_delay_ms: int = 100
    timeout_safety_minutes: int = 14

    @classmethod
    def from_env(cls) -> "CleanupSettings":
        settings = cls(
            days=get_int("CLEANUP_DAYS", 60),
            batch_size=get_int("CLEANUP_BATCH_SIZE", 10000),
            batch_delay_ms=get_int("CLEANUP_BATCH_DELAY_MS", 100),
            timeout_safety_minutes=get_int("CLEANUP_TIMEOUT_SAFETY_MINUTES", 14),
        )
        if settings.batch_size <= 0:
            raise ConfigError("CLEANUP_BATCH_SIZE must be positive")
        return settings


@dataclass
class StatsSettings:
    size_per_range: int = 1000
    max_concurrency: int = 4

    @classmethod
    def from_env(cls) -> "StatsSettings":
        settings = cls(
            size_per_range=get_int("SIZE_PER_RANGE", 1000),
            max_concurrency=get_int("STATS_MAX_CONCURRENCY", 4),
        )
        if settings.size_per_range <= 0 or settings.max_concurrency <= 0:
            raise ConfigError("SIZE_PER_RANGE and STATS_MAX_CONCURRENCY must be positive")
        return settings


@dataclass
class NotifierSettings:
    sns_topic_arn: Optional[str] = None
    aws_region: Optional[str] = None
    log_group_name: Optional[str] = None
    discord_webhook_url: Optional[str] = None
    discord_timezone: str = "UTC"

    @classmethod
    def from_env(cls) -> "NotifierSettings":
        return cls(
            sns_topic_arn=os.getenv("SNS_TOPIC_ARN") or None,
            aws_region=os.getenv("AWS_REGION") or None,
            log_group_name=os.getenv("LOG_GROUP_NAME") or None,
            discord_webhook_url=os.getenv("DISCORD_WEBHOOK_URL") or None,
            discord_timezone=os.getenv("DISCORD_TIMEZONE") or "UTC",
        )


def api_domain() -> Optional[str]:
    return os.getenv("API_DOMAIN") or None


def internal_secret_key() -> Optional[str]:
    return os.getenv("API_INTERNAL_SECRET_KEY") or None
