"""
Hotlist Configuration Module
============================

Centralized configuration management using environment variables.
Supports both .env files and system environment variables.

Environment Variables:
    MARKET_DATA_API_URL: Base URL of the market-data API (required)
    MARKET_DATA_API_KEY: API key sent as x-api-key (required)
    MARKET_DATA_REQUEST_TIMEOUT: Per-request timeout in seconds (default: 15)
    MARKET_DATA_REQUESTS_PER_MINUTE: Shared rate limit budget (default: 60)
    MARKET_DATA_SEARCH_FILTERS: Raw query string for /search (default: empty)

    DATABASE_HOST: PostgreSQL host (default: localhost)
    DATABASE_PORT: PostgreSQL port (default: 5432)
    DATABASE_NAME: Database name (default: hotlist)
    DATABASE_USER: Database user (default: hotlist_app)
    DATABASE_PASSWORD: Database password (required)
    DATABASE_POOL_MIN: Minimum pool connections (default: 1)
    DATABASE_POOL_MAX: Maximum pool connections (default: 5)

    QUEUE_NAME: Main work queue name (default: token_stats_queue)
    QUEUE_BATCH_SIZE: Messages per reconciliation cycle (default: 50)
    QUEUE_VISIBILITY_TIMEOUT: Seconds a dequeued message stays hidden (default: 120)
    QUEUE_MAX_RETRIES: Attempts before dead-lettering (default: 5)
    QUEUE_BASE_DELAY_MS / QUEUE_MAX_DELAY_MS / QUEUE_JITTER_MS: Backoff shape

    EVALUATION_THRESHOLD: Valuation above which classification runs (default: 600000)
    ADMISSION_LIQUIDITY_RATIO: Liquidity/valuation floor at discovery (default: 0.03)
    MONITORING_WINDOW_HOURS: Hours before an unpromoted entity is archived (default: 6)

    TELEGRAM_BOT_TOKEN / TELEGRAM_CHANNEL_ID / ENABLE_NOTIFICATIONS
"""

import os
from dataclasses import dataclass, field
from typing import Optional
from pathlib import Path
from dotenv import load_dotenv


# Load environment variables from .env file if present
env_path = Path(__file__).parent.parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    """
    Get environment variable with optional default and required validation.

    Args:
        key: Environment variable name
        default: Default value if not set
        required: If True, raises ValueError when not set

    Returns:
        Environment variable value or default

    Raises:
        ValueError: If required=True and variable is not set
    """
    value = os.getenv(key, default)
    if required and value is None:
        raise ValueError(f"Required environment variable '{key}' is not set")
    return value


def get_env_int(key: str, default: int) -> int:
    """Get environment variable as integer."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Environment variable '{key}' must be an integer, got: {value}")


def get_env_float(key: str, default: float) -> float:
    """Get environment variable as float."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Environment variable '{key}' must be a float, got: {value}")


def get_env_bool(key: str, default: bool) -> bool:
    """Get environment variable as boolean."""
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


@dataclass
class MarketDataConfig:
    """External market-data API configuration."""

    api_url: str = field(default_factory=lambda: get_env("MARKET_DATA_API_URL", required=True))
    api_key: str = field(default_factory=lambda: get_env("MARKET_DATA_API_KEY", required=True))

    # Request timeout in seconds
    request_timeout: float = field(default_factory=lambda: get_env_float("MARKET_DATA_REQUEST_TIMEOUT", 15.0))

    # Token bucket shared by every outbound call
    requests_per_minute: int = field(default_factory=lambda: get_env_int("MARKET_DATA_REQUESTS_PER_MINUTE", 60))

    search_filters: str = field(default_factory=lambda: get_env("MARKET_DATA_SEARCH_FILTERS", ""))

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.api_url:
            raise ValueError("MARKET_DATA_API_URL is required")
        if not self.api_key:
            raise ValueError("MARKET_DATA_API_KEY is required")
        if self.requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        self.api_url = self.api_url.rstrip("/")


@dataclass
class DatabaseConfig:
    """PostgreSQL database configuration."""

    host: str = field(default_factory=lambda: get_env("DATABASE_HOST", "localhost"))
    port: int = field(default_factory=lambda: get_env_int("DATABASE_PORT", 5432))
    name: str = field(default_factory=lambda: get_env("DATABASE_NAME", "hotlist"))
    user: str = field(default_factory=lambda: get_env("DATABASE_USER", "hotlist_app"))
    password: str = field(default_factory=lambda: get_env("DATABASE_PASSWORD", required=True))

    # Connection pool settings
    pool_min_size: int = field(default_factory=lambda: get_env_int("DATABASE_POOL_MIN", 1))
    pool_max_size: int = field(default_factory=lambda: get_env_int("DATABASE_POOL_MAX", 5))

    # Connection timeout
    connect_timeout: int = field(default_factory=lambda: get_env_int("DATABASE_CONNECT_TIMEOUT", 10))

    # SSL mode: disable, allow, prefer, require, verify-ca, verify-full
    ssl_mode: str = field(default_factory=lambda: get_env("DATABASE_SSL_MODE", "prefer"))

    @property
    def connection_dict(self) -> dict:
        """Connection parameters as dictionary for psycopg2."""
        return {
            "host": self.host,
            "port": self.port,
            "dbname": self.name,
            "user": self.user,
            "password": self.password,
            "sslmode": self.ssl_mode,
            "connect_timeout": self.connect_timeout,
        }

    def __post_init__(self):
        """Validate configuration."""
        if not self.password:
            raise ValueError("DATABASE_PASSWORD is required")
        if self.pool_min_size > self.pool_max_size:
            raise ValueError("pool_min_size cannot exceed pool_max_size")


@dataclass
class QueueConfig:
    """Work queue and retry configuration."""

    queue_name: str = field(default_factory=lambda: get_env("QUEUE_NAME", "token_stats_queue"))
    batch_size: int = field(default_factory=lambda: get_env_int("QUEUE_BATCH_SIZE", 50))
    visibility_timeout: int = field(default_factory=lambda: get_env_int("QUEUE_VISIBILITY_TIMEOUT", 120))

    # Retry policy
    max_retries: int = field(default_factory=lambda: get_env_int("QUEUE_MAX_RETRIES", 5))
    base_delay_ms: int = field(default_factory=lambda: get_env_int("QUEUE_BASE_DELAY_MS", 2000))
    max_delay_ms: int = field(default_factory=lambda: get_env_int("QUEUE_MAX_DELAY_MS", 300000))
    jitter_ms: int = field(default_factory=lambda: get_env_int("QUEUE_JITTER_MS", 1000))

    # Bounded retries for enqueue at discovery time
    enqueue_attempts: int = field(default_factory=lambda: get_env_int("QUEUE_ENQUEUE_ATTEMPTS", 3))

    # Simple worker pacing (seconds)
    message_delay: float = field(default_factory=lambda: get_env_float("WORKER_MESSAGE_DELAY", 1.1))
    idle_delay: float = field(default_factory=lambda: get_env_float("WORKER_IDLE_DELAY", 5.0))

    def __post_init__(self):
        """Validate configuration."""
        if not self.queue_name:
            raise ValueError("queue_name is required")
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.visibility_timeout <= 0:
            raise ValueError("visibility_timeout must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.base_delay_ms <= 0 or self.max_delay_ms < self.base_delay_ms:
            raise ValueError("delays must satisfy 0 < base_delay_ms <= max_delay_ms")
        if self.jitter_ms < 0:
            raise ValueError("jitter_ms cannot be negative")
        if self.enqueue_attempts <= 0:
            raise ValueError("enqueue_attempts must be positive")

    @property
    def dead_letter_queue_name(self) -> str:
        return f"{self.queue_name}_dlq"


@dataclass
class LifecycleConfig:
    """Admission, monitoring and promotion thresholds."""

    evaluation_threshold: float = field(default_factory=lambda: get_env_float("EVALUATION_THRESHOLD", 600000.0))
    admission_liquidity_ratio: float = field(default_factory=lambda: get_env_float("ADMISSION_LIQUIDITY_RATIO", 0.03))
    monitoring_window_hours: float = field(default_factory=lambda: get_env_float("MONITORING_WINDOW_HOURS", 6.0))

    # Promotion criteria
    growth_multiple: float = field(default_factory=lambda: get_env_float("GROWTH_MULTIPLE", 3.0))
    buy_volume_ratio: float = field(default_factory=lambda: get_env_float("BUY_VOLUME_RATIO", 0.05))
    liquidity_ratio: float = field(default_factory=lambda: get_env_float("LIQUIDITY_RATIO", 0.03))

    def __post_init__(self):
        """Validate configuration."""
        if self.evaluation_threshold < 0:
            raise ValueError("evaluation_threshold cannot be negative")
        if self.monitoring_window_hours <= 0:
            raise ValueError("monitoring_window_hours must be positive")
        if self.growth_multiple <= 0:
            raise ValueError("growth_multiple must be positive")
        for name in ("admission_liquidity_ratio", "buy_volume_ratio", "liquidity_ratio"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")


@dataclass
class NotificationConfig:
    """Promotion alert configuration."""

    bot_token: str = field(default_factory=lambda: get_env("TELEGRAM_BOT_TOKEN", ""))
    channel_id: str = field(default_factory=lambda: get_env("TELEGRAM_CHANNEL_ID", ""))
    enabled: bool = field(default_factory=lambda: get_env_bool("ENABLE_NOTIFICATIONS", False))
    explorer_url: str = field(default_factory=lambda: get_env("EXPLORER_URL", "https://solscan.io/token"))


@dataclass
class SchedulerConfig:
    """Interval (minutes) of every scheduled job."""

    discovery_minutes: int = field(default_factory=lambda: get_env_int("SCHEDULER_DISCOVERY_MINUTES", 60))
    reconciliation_minutes: int = field(default_factory=lambda: get_env_int("SCHEDULER_RECONCILIATION_MINUTES", 1))
    deadline_sweep_minutes: int = field(default_factory=lambda: get_env_int("SCHEDULER_DEADLINE_SWEEP_MINUTES", 60))
    queue_sweep_minutes: int = field(default_factory=lambda: get_env_int("SCHEDULER_QUEUE_SWEEP_MINUTES", 30))
    visibility_sweep_minutes: int = field(default_factory=lambda: get_env_int("SCHEDULER_VISIBILITY_SWEEP_MINUTES", 5))
    timezone: str = field(default_factory=lambda: get_env("SCHEDULER_TIMEZONE", "UTC"))

    # Seconds a missed run may still fire late
    misfire_grace_time: int = field(default_factory=lambda: get_env_int("SCHEDULER_MISFIRE_GRACE", 30))

    def __post_init__(self):
        for name in (
            "discovery_minutes",
            "reconciliation_minutes",
            "deadline_sweep_minutes",
            "queue_sweep_minutes",
            "visibility_sweep_minutes",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = field(default_factory=lambda: get_env("LOG_LEVEL", "INFO"))
    log_file: Optional[str] = field(default_factory=lambda: get_env("LOG_FILE"))

    # Structured logging
    json_logs: bool = field(default_factory=lambda: get_env_bool("LOG_JSON", False))

    # "logger=LEVEL,..." overrides
    module_levels: str = field(default_factory=lambda: get_env("LOG_MODULE_LEVELS", ""))


@dataclass
class Settings:
    """Main application settings container."""

    market_data: MarketDataConfig = field(default_factory=MarketDataConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Application metadata
    app_name: str = "hotlist"
    app_version: str = "1.0.0"
    environment: str = field(default_factory=lambda: get_env("ENVIRONMENT", "development"))

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() in ("production", "prod")


def load_settings() -> Settings:
    """
    Load and validate all application settings.

    Returns:
        Fully configured Settings instance

    Raises:
        ValueError: If required configuration is missing or invalid
    """
    return Settings()


# Cached instance for the process entry points (CLI, scheduler, API)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the process-wide settings instance.

    Only entry points call this; components receive their config
    sections through their constructors.
    """
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Forget the cached settings (used by tests and reloads)."""
    global _settings
    _settings = None
