from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from assistant_gateway.config.settings import get_settings
from assistant_gateway.core.errors import app_error_response, request_id_from_request

BYPASS_PATHS = {
    "/healthz",
    "/readyz",
    "/metrics",
    "/openapi.json",
    "/docs",
    "/docs/oauth2-redirect",
}


class SessionAuthMiddleware(BaseHTTPMiddleware):
    """Resolve the caller's session token into logged-in and admin flags."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in BYPASS_PATHS:
            return await call_next(request)

        request_id = request_id_from_request(request)
        settings = get_settings()

        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Bearer "):
            return app_error_response(
                401, "auth_missing", "auth", "Unauthorized", request_id
            )

        token = auth_header.removeprefix("Bearer ").strip()
        if token not in settings.user_token_set:
            return app_error_response(401, "auth_invalid", "auth", "Unauthorized", request_id)

        request.state.is_logged_in = True
        request.state.is_admin = token in settings.admin_token_set
        return await call_next(request)
