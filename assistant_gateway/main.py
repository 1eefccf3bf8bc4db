from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from assistant_gateway.api.routes import router
from assistant_gateway.config.settings import Settings, get_settings
from assistant_gateway.core.errors import AppError, app_error_response, request_id_from_request
from assistant_gateway.core.logging import configure_logging
from assistant_gateway.credentials.importer import CodexAuthImporter
from assistant_gateway.credentials.refresh import RefreshRetryCoordinator
from assistant_gateway.credentials.resolver import CredentialResolver
from assistant_gateway.credentials.store import (
    CredentialStore,
    SettingsStore,
    create_settings_store,
)
from assistant_gateway.metrics import metrics_router
from assistant_gateway.middleware.auth import SessionAuthMiddleware
from assistant_gateway.middleware.request_id import RequestIDMiddleware
from assistant_gateway.services.assistant_service import AssistantService
from assistant_gateway.upstream.base import GatewayError
from assistant_gateway.upstream.builder import RequestBuilder
from assistant_gateway.upstream.client import UpstreamClient


def _build_assistant_service(
    settings: Settings,
    settings_store: SettingsStore,
    transport: httpx.AsyncBaseTransport | None,
) -> AssistantService:
    http_client = httpx.AsyncClient(timeout=settings.upstream_timeout_s, transport=transport)
    store = CredentialStore(
        settings_store,
        key=settings.credential_key,
        legacy_key=settings.legacy_api_key_key,
    )
    resolver = CredentialResolver(store)
    coordinator = RefreshRetryCoordinator(
        resolver=resolver,
        store=store,
        http_client=http_client,
        token_endpoint=settings.oauth_token_endpoint,
        client_id=settings.oauth_client_id,
        scope=settings.oauth_scope,
    )
    return AssistantService(
        settings=settings,
        store=store,
        resolver=resolver,
        coordinator=coordinator,
        builder=RequestBuilder(settings),
        upstream=UpstreamClient(http_client),
        importer=CodexAuthImporter(settings.codex_auth_path),
    )


def create_app(
    transport: httpx.AsyncBaseTransport | None = None,
    settings_store: SettingsStore | None = None,
) -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    if settings_store is None:
        settings_store = create_settings_store(
            backend=settings.credential_store_backend_normalized,
            path=settings.credential_store_path,
        )
    assistant_service = _build_assistant_service(settings, settings_store, transport)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await assistant_service.aclose()

    app = FastAPI(title="Blocks Assistant Gateway", version="0.1.0", lifespan=lifespan)

    app.add_middleware(SessionAuthMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.state.assistant_service = assistant_service

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        request_id = request_id_from_request(request)
        return app_error_response(
            exc.status_code, exc.code, exc.error_type, exc.message, request_id
        )

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        request_id = request_id_from_request(request)
        return app_error_response(
            exc.status_code, exc.code, exc.error_type, exc.message, request_id
        )

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        request_id = request_id_from_request(request)
        return app_error_response(
            422, "request_validation_failed", "validation", str(exc), request_id
        )

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, _: Exception) -> JSONResponse:
        request_id = request_id_from_request(request)
        return app_error_response(
            500, "internal_error", "internal", "Internal server error", request_id
        )

    app.include_router(router)
    if settings.metrics_enabled:
        app.include_router(metrics_router)
    return app
