"""Secure App - credential and session service."""

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.config import get_settings
from app.errors import AuthError, ErrorKind
from app.rate_limit import limiter
from app.routers import auth_router
from app.services.auth import AuthService, build_auth_service

# Logging
logger = logging.getLogger("secureapp")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

ERROR_STATUS = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.DUPLICATE_USER: 409,
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.TOKEN_INVALID: 401,
    ErrorKind.SERVICE_UNAVAILABLE: 503,
}


# --- Security headers middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        return response


# --- Audit logging middleware ---
class AuditLogMiddleware(BaseHTTPMiddleware):
    AUDIT_PREFIX = "/api/v1/auth/"

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000

        path = request.url.path
        if request.method in ("POST", "PATCH") and path.startswith(self.AUDIT_PREFIX):
            logger.info(
                "AUDIT %s %s -> %d (%.0fms) from %s",
                request.method,
                path,
                response.status_code,
                duration_ms,
                request.client.host if request.client else "unknown",
            )

        return response


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render an AuthError as a JSON body carrying its kind."""
    status_code = ERROR_STATUS.get(exc.kind, 400)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "kind": exc.kind.value},
        headers=headers,
    )


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Handle rate limit exceeded."""
    return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded. Try again later."})


def create_app(auth_service: AuthService | None = None) -> FastAPI:
    """Application factory. The AuthService built here is shared by all requests."""
    settings = get_settings()
    for warning in settings.validate():
        logger.warning("Config: %s", warning)

    app = FastAPI(title="Secure App", version="0.1.0")
    app.state.limiter = limiter
    app.state.auth_service = auth_service or build_auth_service(settings)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(AuditLogMiddleware)

    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

    app.include_router(auth_router)

    @app.get("/api/health")
    def health_check() -> dict:
        """Health check endpoint."""
        return {"status": "ok", "app": "secureapp", "version": "0.1.0"}

    return app


app = create_app()
