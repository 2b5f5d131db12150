import secrets

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from gifstudio.config import settings
from gifstudio.logging import RequestLoggingMiddleware, setup_logging
from gifstudio.routers.generation import router as generation_router
from gifstudio.routers.presets import router as presets_router
from gifstudio.routers.sessions import router as sessions_router

setup_logging(settings.log_level)

app = FastAPI(title="Gemini GIF Studio")

_OPEN_PATHS = frozenset({"/health"})


class APIKeyMiddleware(BaseHTTPMiddleware):
    """Require a matching X-API-Key on every route outside _OPEN_PATHS.

    An empty settings.api_key turns the check off for local runs. Keys are
    compared with secrets.compare_digest.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        # Preflight requests carry no custom headers.
        if not settings.api_key or request.method == "OPTIONS" or request.url.path in _OPEN_PATHS:
            return await call_next(request)

        provided_key = request.headers.get("X-API-Key", "")
        if secrets.compare_digest(provided_key.encode(), settings.api_key.encode()):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        logger.warning(
            "Rejected {method} {path} from {client_ip}: bad API key",
            method=request.method,
            path=request.url.path,
            client_ip=client_ip,
        )
        return JSONResponse(status_code=401, content={"detail": "Invalid or missing API key"})


app.add_middleware(
    CORSMiddleware,  # ty: ignore[invalid-argument-type]  # Starlette ParamSpec typing limitation
    allow_origins=["*"],
    allow_methods=["POST", "GET", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(APIKeyMiddleware)  # ty: ignore[invalid-argument-type]  # same Starlette issue
app.add_middleware(RequestLoggingMiddleware)  # ty: ignore[invalid-argument-type]  # same Starlette issue

app.include_router(presets_router)
app.include_router(sessions_router)
app.include_router(generation_router)


@app.get("/health")
async def health() -> dict:
    return {
        "status": "ok",
        "auth_required": bool(settings.api_key),
        "image_model": settings.image_model,
        "thinking_model": settings.thinking_model,
    }
