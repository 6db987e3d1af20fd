# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

Settings are loaded from environment variables with sensible defaults.
The Settings class aggregates all subsettings and a cached instance is
provided via get_settings() for dependency injection.

Example:
    >>> from simonkey.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "change-this-in-production"


class DocumentStoreSettings(BaseSettings):
    """Document store backend configuration.

    Attributes:
        backend: Which DocumentStore implementation to build.
        firestore_project: Google Cloud project id for the Firestore backend.
        firestore_database: Firestore database id.
        sql_url: Async SQLAlchemy URL for the SQL backend.
        sql_echo: Log every SQL statement.
        sql_table: Table holding the JSON documents.
    """

    model_config = SettingsConfigDict(
        env_prefix="DOCUMENT_STORE_",
        extra="ignore",
    )

    backend: Literal["memory", "firestore", "sql"] = "memory"
    firestore_project: str | None = None
    firestore_database: str = "(default)"
    sql_url: str = "sqlite+aiosqlite:///./simonkey.db"
    sql_echo: bool = False
    sql_table: str = "documents"


class RedisSettings(BaseSettings):
    """Redis configuration for the Dramatiq broker.

    Attributes:
        host: Redis server host.
        port: Redis server port.
        password: Redis password.
        database: Redis database number.
    """

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = "localhost"
    port: int = 6379
    password: SecretStr | None = None
    database: int = 0

    @property
    def url(self) -> str:
        """Build the Redis connection URL."""
        if self.password is None:
            return f"redis://{self.host}:{self.port}/{self.database}"
        pwd = self.password.get_secret_value()
        return f"redis://:{pwd}@{self.host}:{self.port}/{self.database}"


class JWTSettings(BaseSettings):
    """JWT verification configuration for callable functions.

    Attributes:
        secret_key: Secret key used to verify caller tokens.
        algorithm: JWT signing algorithm.
        audience: Expected audience claim, if any.
    """

    model_config = SettingsConfigDict(
        env_prefix="JWT_",
        extra="ignore",
    )

    secret_key: SecretStr = SecretStr(DEFAULT_JWT_SECRET)
    algorithm: str = "HS256"
    audience: str | None = None


class AdminSettings(BaseSettings):
    """Admin HTTP endpoint configuration.

    Attributes:
        token: Bearer token required by the admin endpoints. When unset the
            endpoints refuse every request.
    """

    model_config = SettingsConfigDict(
        env_prefix="ADMIN_",
        extra="ignore",
    )

    token: SecretStr | None = None


class KpiSettings(BaseSettings):
    """KPI aggregation configuration.

    Attributes:
        timezone: IANA timezone used to cut the calendar week.
        max_concurrent_reads: Upper bound on concurrent peer/student reads.
        history_weeks: Number of weekly position entries kept.
        peer_ranking_enabled: Rank school notebooks against classmates.
    """

    model_config = SettingsConfigDict(
        env_prefix="KPI_",
        extra="ignore",
    )

    timezone: str = "America/Mexico_City"
    max_concurrent_reads: int = Field(default=10, ge=1)
    history_weeks: int = Field(default=12, ge=1)
    peer_ranking_enabled: bool = True


class FreezeSettings(BaseSettings):
    """Notebook freeze sweep configuration.

    Attributes:
        batch_size: Operations per committed write batch.
        default_efactor: Easiness factor assumed for records without a usable one.
    """

    model_config = SettingsConfigDict(
        env_prefix="FREEZE_",
        extra="ignore",
    )

    batch_size: int = Field(default=400, ge=1, le=500)
    default_efactor: float = 2.5


class SchedulerSettings(BaseSettings):
    """Periodic job configuration.

    Attributes:
        enabled: Start the scheduler with the API process.
        timezone: Timezone for cron triggers.
        freeze_interval_minutes: Minutes between freeze/unfreeze sweeps.
        rankings_interval_minutes: Minutes between institution ranking runs.
        kpi_refresh_hour: Hour of the nightly KPI recalculation.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        extra="ignore",
    )

    enabled: bool = False
    timezone: str = "America/Mexico_City"
    freeze_interval_minutes: int = 15
    rankings_interval_minutes: int = 30
    kpi_refresh_hour: int = Field(default=2, ge=0, le=23)


class CORSSettings(BaseSettings):
    """CORS configuration for API.

    Attributes:
        origins: Comma-separated list of allowed origins.
        allow_credentials: Whether to allow credentials.
    """

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        extra="ignore",
    )

    origins: str = "http://localhost:3000,http://localhost:5173"
    allow_credentials: bool = True

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into a list."""
        return [origin.strip() for origin in self.origins.split(",") if origin.strip()]


class APISettings(BaseSettings):
    """API server configuration.

    Attributes:
        host: Host to bind to.
        port: Port to listen on.
        prefix: Mount point of the versioned API.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 8080
    prefix: str = "/api/v1"


class WorkerSettings(BaseSettings):
    """Background worker configuration.

    Attributes:
        processes: Number of worker processes.
        threads: Number of threads per process.
    """

    model_config = SettingsConfigDict(
        env_prefix="WORKER_",
        extra="ignore",
    )

    processes: int = 2
    threads: int = 4


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        app_name: Service name reported by health checks.
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        document_store: Document store backend settings.
        redis: Redis settings.
        jwt: JWT verification settings.
        admin: Admin endpoint settings.
        kpi: KPI aggregation settings.
        freeze: Freeze sweep settings.
        scheduler: Periodic job settings.
        cors: CORS settings.
        api: API server settings.
        worker: Background worker settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: str = "simonkey-analytics"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    # Subsettings - loaded with their own env prefixes
    document_store: DocumentStoreSettings = Field(default_factory=DocumentStoreSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    jwt: JWTSettings = Field(default_factory=JWTSettings)
    admin: AdminSettings = Field(default_factory=AdminSettings)
    kpi: KpiSettings = Field(default_factory=KpiSettings)
    freeze: FreezeSettings = Field(default_factory=FreezeSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    api: APISettings = Field(default_factory=APISettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that non-development settings are properly configured.

        Raises:
            ValueError: If running outside development with insecure defaults.
        """
        if self.environment != "development":
            if self.jwt.secret_key.get_secret_value() == DEFAULT_JWT_SECRET:
                raise ValueError(
                    "JWT secret key must be changed from default outside development. "
                    "Set JWT_SECRET_KEY environment variable."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
