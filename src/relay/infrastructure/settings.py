"""Application settings using pydantic-settings.

Settings are loaded from environment variables with sensible defaults
for development. Production deployments should set all values explicitly.

Each logical database (identity, auth, legal) has its own connection
settings class with its own environment prefix; the outbox workers share
one OutboxSettings section.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared_kernel.outbox.retry import RetryPolicy
from shared_kernel.outbox.value_objects import OutboxDatabase


class DatabaseSettings(BaseSettings):
    """Connection settings for one logical database.

    Subclasses only change the environment prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="RELAY_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    database: str = Field(default="identity", description="Database name")
    username: str = Field(default="identity", description="Database username")
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password",
    )
    pool_size: int = Field(
        default=10,
        description="Connections kept in the engine pool",
        ge=1,
        le=100,
    )
    echo: bool = Field(default=False, description="Log emitted SQL")

    @property
    def connection_string(self) -> str:
        """Generate a connection string (without password for logging)."""
        return f"postgresql://{self.username}@{self.host}:{self.port}/{self.database}"


class IdentityDatabaseSettings(DatabaseSettings):
    """Environment variables: IDENTITY_DB_HOST, IDENTITY_DB_PORT, ..."""

    model_config = SettingsConfigDict(
        env_prefix="IDENTITY_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class AuthDatabaseSettings(DatabaseSettings):
    """Environment variables: AUTH_DB_HOST, AUTH_DB_PORT, ..."""

    model_config = SettingsConfigDict(
        env_prefix="AUTH_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database: str = Field(default="auth", description="Database name")
    username: str = Field(default="auth", description="Database username")


class LegalDatabaseSettings(DatabaseSettings):
    """Environment variables: LEGAL_DB_HOST, LEGAL_DB_PORT, ..."""

    model_config = SettingsConfigDict(
        env_prefix="LEGAL_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database: str = Field(default="legal", description="Database name")
    username: str = Field(default="legal", description="Database username")


_DATABASE_SETTINGS_CLASSES: dict[OutboxDatabase, type[DatabaseSettings]] = {
    OutboxDatabase.IDENTITY: IdentityDatabaseSettings,
    OutboxDatabase.AUTH: AuthDatabaseSettings,
    OutboxDatabase.LEGAL: LegalDatabaseSettings,
}


class OutboxSettings(BaseSettings):
    """Outbox dispatcher, retry and retention settings.

    Environment variables:
        OUTBOX_ENABLED: Start background workers on application startup
        OUTBOX_POLL_INTERVAL_SECONDS: Delay between dispatch polls (default: 1)
        OUTBOX_BATCH_SIZE: Records claimed per poll (default: 100)
        OUTBOX_MAX_RETRIES: Failed attempts before dead-lettering (default: 3)
        OUTBOX_PUBLISH_TIMEOUT_SECONDS: Timeout for one bus publish (default: 10)
        OUTBOX_RETRY_BASE_DELAY_SECONDS: Backoff after the first failure (default: 1)
        OUTBOX_RETRY_MAX_DELAY_SECONDS: Backoff cap (default: 300)
        OUTBOX_RETRY_MULTIPLIER: Backoff growth per failure (default: 2)
        OUTBOX_RETENTION_DAYS: Age after which COMPLETED records are purged (default: 7)
        OUTBOX_CLEANUP_INTERVAL_SECONDS: Janitor interval (default: 3600)
        OUTBOX_STUCK_RECOVERY_ENABLED: Reclaim stuck PROCESSING records (default: true)
        OUTBOX_STUCK_THRESHOLD_SECONDS: Age of a stuck PROCESSING record (default: 300)
        OUTBOX_MAX_CONCURRENCY: Publishes in flight per batch (default: 1, in order)
        OUTBOX_SHUTDOWN_TIMEOUT_SECONDS: Wait for passes in progress on stop (default: 30)
    """

    model_config = SettingsConfigDict(
        env_prefix="OUTBOX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    enabled: bool = Field(default=True, description="Run background workers")
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    batch_size: int = Field(default=100, ge=1, le=1000)
    max_retries: int = Field(default=3, ge=1)
    publish_timeout_seconds: float = Field(default=10.0, gt=0)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)
    retry_max_delay_seconds: float = Field(default=300.0, ge=0)
    retry_multiplier: float = Field(default=2.0, ge=1)
    retention_days: int = Field(default=7, ge=1)
    cleanup_interval_seconds: float = Field(default=3600.0, gt=0)
    stuck_recovery_enabled: bool = Field(default=True)
    stuck_threshold_seconds: float = Field(default=300.0, gt=0)
    max_concurrency: int = Field(default=1, ge=1, le=50)
    shutdown_timeout_seconds: float = Field(default=30.0, gt=0)

    @model_validator(mode="after")
    def validate_stuck_threshold(self) -> "OutboxSettings":
        """A record still being published must never look stuck.

        Claims are renewed right before each publish, so the threshold only
        has to exceed a single publish timeout.
        """
        if self.stuck_threshold_seconds <= self.publish_timeout_seconds:
            raise ValueError(
                f"stuck_threshold_seconds ({self.stuck_threshold_seconds}) must be > "
                f"publish_timeout_seconds ({self.publish_timeout_seconds})"
            )
        return self

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_seconds=self.retry_base_delay_seconds,
            multiplier=self.retry_multiplier,
            max_delay_seconds=self.retry_max_delay_seconds,
        )


class Settings(BaseSettings):
    """Main application settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="Identity Outbox Relay", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")
    log_format: Literal["auto", "console", "json"] = Field(
        default="auto",
        description="Log renderer; auto picks console on a TTY, JSON otherwise",
    )

    @property
    def outbox(self) -> OutboxSettings:
        """Get outbox settings."""
        return get_outbox_settings()


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


@lru_cache
def get_outbox_settings() -> OutboxSettings:
    """Get cached outbox settings."""
    return OutboxSettings()


@lru_cache
def get_database_settings(database: OutboxDatabase) -> DatabaseSettings:
    """Get cached connection settings for one logical database.

    Uses lru_cache to ensure settings are only loaded once per database.
    """
    return _DATABASE_SETTINGS_CLASSES[OutboxDatabase.parse(database)]()
