from __future__ import annotations

import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from ledger_api.core.config import get_settings
from ledger_api.core.logging import bind_context, clear_context, get_logger
from ledger_api.routers import users as users_router
from ledger_api.services.token_service import TokenService
from ledger_api.services.user_service import UserService

log = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag every log line emitted while serving a request with its id, method and path."""

    async def dispatch(self, request, call_next):
        clear_context()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        bind_context(request_id=request_id, method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_context()
        response.headers.setdefault("X-Request-ID", request_id)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        return response


def create_app(
    user_service: UserService | None = None,
    token_service: TokenService | None = None,
) -> FastAPI:
    """Build the API. Services default to the SQL-backed implementations."""
    settings = get_settings()
    app = FastAPI(title="User Ledger API")

    allowed_cors = set(settings.cors_origins)
    if settings.app_env != "prod":
        allowed_cors.update({"http://localhost:8080", "http://127.0.0.1:8080"})
    if allowed_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=sorted(allowed_cors),
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )
    app.add_middleware(RequestContextMiddleware)

    app.state.user_service = user_service or UserService()
    app.state.token_service = token_service or TokenService()

    @app.get("/health", tags=["system"])
    def health():
        return {"status": "ok"}

    app.include_router(users_router.router)
    log.info("app.initialized", env=settings.app_env)
    return app
