from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from assistant_gateway.core.errors import AppError, ok_payload, request_id_from_request
from assistant_gateway.models.assistant import (
    ChatRequest,
    ChatStreamRequest,
    ConfigUpdateRequest,
    SaveTokensRequest,
)
from assistant_gateway.services.assistant_service import AssistantService
from assistant_gateway.streaming.emitter import ClientEventEmitter

router = APIRouter()


def _service(request: Request) -> AssistantService:
    service: AssistantService = request.app.state.assistant_service
    return service


def _require_admin(request: Request) -> None:
    if not getattr(request.state, "is_admin", False):
        raise AppError(403, "admin_required", "auth", "Admin access required")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
def readyz(request: Request) -> dict[str, object]:
    status = _service(request).config_status(is_admin=False)
    configured = status.auth_method != "none"
    return {
        "status": "ready" if configured else "degraded",
        "dependencies": {"ai_credential": "ok" if configured else "not_configured"},
    }


@router.get("/api/ai/config")
def get_config(request: Request) -> dict[str, object]:
    is_admin = bool(getattr(request.state, "is_admin", False))
    status = _service(request).config_status(is_admin=is_admin)
    return ok_payload(status.model_dump(by_alias=True))


@router.put("/api/ai/config")
def set_config(request: Request, payload: ConfigUpdateRequest) -> dict[str, object]:
    _require_admin(request)
    _service(request).update_config(api_key=payload.api_key, clear=payload.clear)
    return ok_payload({"success": True})


@router.post("/api/ai/auth/save-tokens")
def save_tokens(request: Request, payload: SaveTokensRequest) -> dict[str, object]:
    _require_admin(request)
    _service(request).save_tokens(payload.access_token, payload.refresh_token)
    return ok_payload({"success": True})


@router.post("/api/ai/auth/codex-import")
def import_codex_auth(request: Request) -> dict[str, object]:
    _require_admin(request)
    result = _service(request).import_codex_auth()
    return ok_payload(result)


@router.post("/api/ai/chat")
async def chat(request: Request, payload: ChatRequest) -> dict[str, object]:
    result = await _service(request).chat(payload.message, payload.current_dsl)
    return ok_payload(result)


@router.post("/api/ai/chat/stream")
async def chat_stream(request: Request, payload: ChatStreamRequest) -> StreamingResponse:
    events = _service(request).chat_stream(payload.message, payload.component_list)
    emitter = ClientEventEmitter(events, request_id=request_id_from_request(request))
    return emitter.streaming_response()
