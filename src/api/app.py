"""FastAPI application serving the pairing-code endpoint."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src.api.rate_limiter import PairingRateLimiter
from src.audit.logger import AuditLogger
from src.config import PairingSettings
from src.models import AuditEvent, AuditEventType, RiskLevel
from src.pairing.backend import BackendLoadError, MessagingBackend, load_backend
from src.pairing.handler import PairingRequestHandler
from src.pairing.sessions import SessionDirectories

logger = logging.getLogger(__name__)

RATE_LIMITED = "Too many requests. Try again later."


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    settings = PairingSettings.from_env()
    if not settings.backend:
        raise BackendLoadError("PAIRING_BACKEND is not set")
    backend = load_backend(settings.backend)
    audit_logger = (
        AuditLogger.from_env(settings.audit_log_path) if settings.audit_log_path else None
    )
    return create_app(backend, settings, audit_logger)


def create_app(
    backend: MessagingBackend,
    settings: PairingSettings | None = None,
    audit_logger: AuditLogger | None = None,
) -> FastAPI:
    """Create the pairing app around an already-loaded messaging backend."""
    settings = settings or PairingSettings()
    app = FastAPI(docs_url=None, redoc_url=None)

    handler = PairingRequestHandler(
        backend,
        SessionDirectories(settings.session_root),
        timeout_seconds=settings.timeout_seconds,
        grace_seconds=settings.grace_seconds,
        audit_logger=audit_logger,
    )
    limiter = PairingRateLimiter(
        max_requests=settings.rate_limit,
        window_seconds=settings.rate_window_seconds,
    )
    app.state.pairing_handler = handler
    app.state.rate_limiter = limiter

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/")
    async def pair(request: Request, number: str | None = None) -> JSONResponse:
        client_ip = request.client.host if request.client else "unknown"
        if not limiter.check(client_ip):
            logger.warning("Rate limit exceeded for %s", client_ip)
            if audit_logger:
                audit_logger.log(AuditEvent(
                    event_type=AuditEventType.RATE_LIMITED,
                    source_ip=client_ip,
                    action="pair",
                    result="blocked",
                    risk_level=RiskLevel.MEDIUM,
                ))
            return JSONResponse({"code": RATE_LIMITED}, status_code=429)

        result = await handler.handle(number, source_ip=client_ip)
        return JSONResponse(result.body, status_code=result.status_code)

    return app
