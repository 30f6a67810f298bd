from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from auth_lifecycle.api.contracts import HealthResponse
from auth_lifecycle.api.http_setup import register_exception_handlers, register_http_middleware
from auth_lifecycle.auth.middleware import create_auth_middleware
from auth_lifecycle.auth.notifications import NotificationEmitter, build_webhook_handler
from auth_lifecycle.auth.passcodes import PasscodeManager
from auth_lifecycle.auth.passwords import PasswordManager
from auth_lifecycle.auth.refresh_tokens import RefreshTokenManager
from auth_lifecycle.auth.repository import AuthRepository
from auth_lifecycle.auth.router import create_auth_router
from auth_lifecycle.auth.service import SessionOrchestrator
from auth_lifecycle.auth.tokens import TokenCodec
from auth_lifecycle.auth.user_client import UserProfileClient
from auth_lifecycle.core.config import AppConfig
from auth_lifecycle.core.logging import setup_logging
from auth_lifecycle.core.outbox import NotificationOutbox, OutboxSettings

load_dotenv()
APP_CONFIG = AppConfig.from_env()
setup_logging(APP_CONFIG.logging.level)
LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent


def build_orchestrator(
    config: AppConfig, repo: AuthRepository, outbox: NotificationOutbox
) -> SessionOrchestrator:
    users = UserProfileClient(config.user_service)
    return SessionOrchestrator(
        passwords=PasswordManager(repo.credentials),
        passcodes=PasscodeManager(repo.passcodes, users, config.auth),
        refresh_tokens=RefreshTokenManager(repo.refresh_tokens, config.auth),
        codec=TokenCodec(config.auth),
        users=users,
        notifications=NotificationEmitter(outbox),
        config=config.auth,
    )


def create_app(config: AppConfig = APP_CONFIG, app_root: Path = APP_ROOT) -> FastAPI:
    app = FastAPI(title="Auth Lifecycle API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)

    repo = AuthRepository(config.store, app_root)
    outbox = NotificationOutbox(
        OutboxSettings(
            database_path=(app_root / config.queue.sqlite_path).resolve(),
            default_ttl_seconds=config.queue.default_ttl_seconds,
            default_max_retries=config.queue.default_max_retries,
            default_retry_delay_seconds=config.queue.default_retry_delay_seconds,
        )
    )
    outbox.set_handler(
        build_webhook_handler(
            config.user_service.notification_webhook_url,
            timeout_seconds=config.user_service.timeout_seconds,
        )
    )
    service = build_orchestrator(config, repo, outbox)

    app.include_router(
        create_auth_router(service, refresh_cookie_name=config.auth.refresh_cookie_name)
    )
    app.middleware("http")(
        create_auth_middleware(service, access_cookie_name=config.auth.access_cookie_name)
    )

    @app.on_event("startup")
    async def startup() -> None:
        purged = service.purge_expired_refresh_tokens()
        LOGGER.info(f"Purged {purged} expired refresh tokens; store backend={repo.backend}")
        await outbox.start()

    @app.on_event("shutdown")
    async def shutdown() -> None:
        await outbox.stop()
        outbox.close()

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    return app


app = create_app()
