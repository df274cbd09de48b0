# ==============================================================================
# Application Configuration
# ==============================================================================
"""
Configuration management using pydantic-settings.

All configuration is loaded from environment variables, with support for
.env files via python-dotenv.
"""

from functools import lru_cache
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file before any settings are instantiated
load_dotenv()


class PostgresSettings(BaseSettings):
    """PostgreSQL connection settings."""

    model_config = SettingsConfigDict(env_prefix="PG_")

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL username")
    password: str = Field(default="postgres", description="PostgreSQL password")
    database: str = Field(default="sitestats", description="Database name")
    schema_name: str = Field(default="analytics", description="Schema name")
    sslmode: str = Field(default="prefer", description="SSL mode")

    # Connection pool sizing for request-concurrent ingestion
    pool_min_connections: int = Field(default=1, description="Minimum pooled connections")
    pool_max_connections: int = Field(default=10, description="Maximum pooled connections")

    @property
    def connection_string(self) -> str:
        """Build PostgreSQL connection string."""
        return (
            f"postgresql://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?sslmode={self.sslmode}"
        )


class ValkeySettings(BaseSettings):
    """Valkey (Redis-compatible) connection settings for per-visitor locks."""

    model_config = SettingsConfigDict(env_prefix="VALKEY_")

    host: str = Field(default="localhost", description="Valkey host")
    port: int = Field(default=6379, description="Valkey port")
    password: Optional[str] = Field(default=None, description="Valkey password")
    db: int = Field(default=0, description="Valkey database number")
    ssl: bool = Field(default=False, description="Use SSL/TLS connection")

    # Visitor lock configuration
    key_prefix: str = Field(default="sitestats", description="Prefix for all Valkey keys")
    lock_timeout_seconds: float = Field(
        default=10.0, description="Lock TTL; a crashed holder releases after this long"
    )
    lock_wait_seconds: float = Field(
        default=2.0, description="How long an event waits for its visitor's lock"
    )

    @property
    def url(self) -> str:
        """Build Valkey connection URL."""
        scheme = "rediss" if self.ssl else "redis"
        if self.password:
            return f"{scheme}://:{self.password}@{self.host}:{self.port}/{self.db}"
        return f"{scheme}://{self.host}:{self.port}/{self.db}"


class KafkaSettings(BaseSettings):
    """Kafka connection settings for the inbound event transport."""

    model_config = SettingsConfigDict(env_prefix="KAFKA_")

    bootstrap_servers: str = Field(default="localhost:9092", description="Kafka bootstrap servers")
    security_protocol: str = Field(
        default="PLAINTEXT", description="Security protocol (PLAINTEXT or SSL)"
    )

    ssl_ca_file: Optional[str] = Field(default=None, description="Path to CA certificate file")
    ssl_cert_file: Optional[str] = Field(
        default=None, description="Path to client certificate file"
    )
    ssl_key_file: Optional[str] = Field(default=None, description="Path to client private key file")

    events_topic: str = Field(default="sitestats-events", description="Tracking events topic")


class ConsumerSettings(BaseSettings):
    """Kafka consumer settings for the tracking consumer."""

    model_config = SettingsConfigDict(env_prefix="CONSUMER_")

    group_id: str = Field(default="sitestats-tracker", description="Kafka consumer group ID")
    auto_offset_reset: str = Field(
        default="latest",
        description="Auto offset reset policy (earliest, latest, none)",
    )
    batch_size: int = Field(default=500, description="Messages to fetch per Kafka consume call")
    poll_timeout_ms: int = Field(default=250, description="Kafka poll timeout in milliseconds")


class TrackingSettings(BaseSettings):
    """Session reconciliation and reporting settings."""

    model_config = SettingsConfigDict(env_prefix="TRACKING_")

    store_backend: Literal["postgresql", "memory"] = Field(
        default="postgresql", description="Persistence store implementation"
    )
    lock_backend: Literal["local", "valkey"] = Field(
        default="local", description="Per-visitor serialization (local or valkey)"
    )
    session_timeout_minutes: int = Field(
        default=30,
        description="Session window, measured from session start (not last activity)",
    )
    default_range_days: int = Field(default=30, description="Default report range in days")
    report_timezone: str = Field(
        default="UTC", description="Timezone whose midnight starts the 'today' figures"
    )
    realtime_minutes: int = Field(default=5, description="Realtime presence window in minutes")
    realtime_limit: int = Field(default=50, description="Maximum realtime visitors returned")
    top_limit: int = Field(default=10, description="Default top-N size")
    recent_sessions_limit: int = Field(
        default=20, description="Sessions included in a visitor detail view"
    )


class ReaperSettings(BaseSettings):
    """Background session reaper settings."""

    model_config = SettingsConfigDict(env_prefix="REAPER_")

    interval_seconds: float = Field(default=60.0, description="Seconds between reaper passes")
    batch_size: int = Field(default=500, description="Maximum sessions closed per pass")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    # Nested settings
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    valkey: ValkeySettings = Field(default_factory=ValkeySettings)
    kafka: KafkaSettings = Field(default_factory=KafkaSettings)
    consumer: ConsumerSettings = Field(default_factory=ConsumerSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    reaper: ReaperSettings = Field(default_factory=ReaperSettings)

    # General settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for subsequent calls.
    """
    return Settings()
