"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

PRODUCTION_ENV = "production"


@dataclass(frozen=True)
class AuthConfig:
    """Token, passcode and cookie settings shared by every auth component."""

    secret_key: str
    issuer: str
    access_token_ttl_seconds: int = 15 * 60
    refresh_token_ttl_seconds: int = 7 * 24 * 60 * 60
    passcode_ttl_seconds: int = 15 * 60
    passcode_length: int = 6
    access_cookie_name: str = "vsp_access"
    refresh_cookie_name: str = "vsp_refresh"
    access_cookie_path: str = "/"
    refresh_cookie_path: str = "/api/auth"
    secure_cookies: bool = False


@dataclass(frozen=True)
class StoreConfig:
    """Persistence backend settings."""

    mongodb_uri: str
    mongodb_db: str
    store_dir: str


@dataclass(frozen=True)
class UserServiceConfig:
    """Remote user profile service settings."""

    base_url: str
    timeout_seconds: float
    notification_webhook_url: str


@dataclass(frozen=True)
class QueueConfig:
    """Durable notification outbox runtime configuration."""

    sqlite_path: str
    default_ttl_seconds: int
    default_max_retries: int
    default_retry_delay_seconds: int


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    environment: str
    auth: AuthConfig
    store: StoreConfig
    user_service: UserServiceConfig
    queue: QueueConfig
    logging: LoggingConfig
    security: SecurityConfig

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION_ENV

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        environment = os.getenv("APP_ENV", "development").strip().lower() or "development"
        secret_key = (
            os.getenv("AUTH_SECRET_KEY", "").strip() or "dev-insecure-secret-change-me"
        )
        if environment == PRODUCTION_ENV and secret_key == "dev-insecure-secret-change-me":
            raise RuntimeError("AUTH_SECRET_KEY must be set in production")

        access_ttl = int(os.getenv("AUTH_ACCESS_TOKEN_TTL_SECONDS", "900"))
        refresh_ttl = int(os.getenv("AUTH_REFRESH_TOKEN_TTL_SECONDS", "604800"))
        passcode_ttl = int(os.getenv("AUTH_PASSCODE_TTL_SECONDS", "900"))
        passcode_length = int(os.getenv("AUTH_PASSCODE_LENGTH", "6"))
        issuer = os.getenv("AUTH_ISSUER", "auth-lifecycle").strip() or "auth-lifecycle"

        mongodb_uri = os.getenv("MONGODB_URI", "").strip()
        mongodb_db = os.getenv("MONGODB_DB", "auth_lifecycle").strip() or "auth_lifecycle"
        store_dir = (
            os.getenv("AUTH_STORE_DIR", "runtime/auth_store").strip()
            or "runtime/auth_store"
        )

        user_service_url = os.getenv("USER_SERVICE_URL", "http://localhost:8081").strip()
        user_service_timeout = float(os.getenv("USER_SERVICE_TIMEOUT_SECONDS", "5"))
        notification_webhook_url = os.getenv("NOTIFICATION_WEBHOOK_URL", "").strip()

        queue_sqlite_path = (
            os.getenv("OUTBOX_SQLITE_PATH", "runtime/app_state.db").strip()
            or "runtime/app_state.db"
        )
        queue_ttl = int(os.getenv("OUTBOX_TTL_SECONDS", "86400"))
        queue_max_retries = int(os.getenv("OUTBOX_MAX_RETRIES", "5"))
        queue_retry_delay = int(os.getenv("OUTBOX_RETRY_DELAY_SECONDS", "5"))
        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(64 * 1024)))

        return AppConfig(
            environment=environment,
            auth=AuthConfig(
                secret_key=secret_key,
                issuer=issuer,
                access_token_ttl_seconds=access_ttl,
                refresh_token_ttl_seconds=refresh_ttl,
                passcode_ttl_seconds=passcode_ttl,
                passcode_length=passcode_length,
                secure_cookies=environment == PRODUCTION_ENV,
            ),
            store=StoreConfig(
                mongodb_uri=mongodb_uri,
                mongodb_db=mongodb_db,
                store_dir=store_dir,
            ),
            user_service=UserServiceConfig(
                base_url=user_service_url,
                timeout_seconds=user_service_timeout,
                notification_webhook_url=notification_webhook_url,
            ),
            queue=QueueConfig(
                sqlite_path=queue_sqlite_path,
                default_ttl_seconds=queue_ttl,
                default_max_retries=queue_max_retries,
                default_retry_delay_seconds=queue_retry_delay,
            ),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
            ),
        )
