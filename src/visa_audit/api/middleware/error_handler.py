"""Global exception handlers mapping domain exceptions to HTTP responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from visa_audit.exceptions import (
    DocumentValidationError,
    InvalidRequestError,
    RateLimitExceeded,
    SessionNotFoundError,
    VisaAuditError,
)


def register_error_handlers(app: FastAPI) -> None:
    """Register exception-to-HTTP-status mappings."""

    @app.exception_handler(DocumentValidationError)
    async def handle_document_error(request: Request, exc: DocumentValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code, content={"error": str(exc), "type": "invalid_document"}
        )

    @app.exception_handler(InvalidRequestError)
    async def handle_invalid_request(request: Request, exc: InvalidRequestError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code, content={"error": str(exc), "type": "invalid_request"}
        )

    @app.exception_handler(SessionNotFoundError)
    async def handle_not_found(request: Request, exc: SessionNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": str(exc), "type": "not_found"})

    @app.exception_handler(RateLimitExceeded)
    async def handle_rate_limit(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={"error": "Too many requests", "message": str(exc), "type": "rate_limited"},
            headers={
                "Retry-After": str(exc.reset_in),
                "X-RateLimit-Remaining": str(exc.remaining),
                "X-RateLimit-Reset": str(exc.reset_in),
            },
        )

    @app.exception_handler(VisaAuditError)
    async def handle_generic_error(request: Request, exc: VisaAuditError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"error": str(exc), "type": "visa_audit_error"})
