"""
Security utilities for the FastAPI application.
Provides middlewares, validators, and helpers for hardening the server.
"""

import os
import re
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from fastapi import HTTPException

from configs.config import get_config

logger = logging.getLogger(__name__)

cfg = get_config()

# --------------- Input Validation Patterns ---------------

DUBBING_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")
LANGUAGE_CODE_PATTERN = re.compile(r"^[A-Za-z]{2,8}(-[A-Za-z0-9]{2,8})?$")


# --------------- Middlewares ---------------


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject standard security headers on every response."""

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        # The recording page needs the microphone on its own origin
        response.headers["Permissions-Policy"] = (
            "camera=(), microphone=(self), geolocation=()"
        )
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "media-src 'self' blob:; "
            "img-src 'self' data:; "
            "connect-src 'self'"
        )
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = (
                "max-age=63072000; includeSubDomains; preload"
            )
        return response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a unique X-Request-ID to every request / response."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# --------------- Validators ---------------


def validate_dubbing_id(dubbing_id: str) -> str:
    """Validate and return a safe dubbing id, or raise 400."""
    if not DUBBING_ID_PATTERN.match(dubbing_id):
        logger.warning("Rejected invalid dubbing_id: %r", dubbing_id)
        raise HTTPException(status_code=400, detail="Invalid dubbing ID format")
    return dubbing_id


def validate_language_code(code: str, field: str = "language") -> str:
    """Validate a language code such as ``en`` or ``pt-BR``, or raise 400."""
    if not LANGUAGE_CODE_PATTERN.match(code):
        logger.warning("Rejected invalid %s: %r", field, code)
        raise HTTPException(
            status_code=400, detail=f"Invalid {field} code: {code!r}"
        )
    return code


def validate_choice(value: str, allowed: frozenset, field: str) -> str:
    """Validate that ``value`` is one of ``allowed``, or raise 400."""
    if value not in allowed:
        logger.warning("Rejected %s value: %r", field, value)
        raise HTTPException(
            status_code=400,
            detail=f"Invalid {field} '{value}'. Allowed: {', '.join(sorted(allowed))}",
        )
    return value


def validate_file_extension(filename: str) -> str:
    """Validate uploaded file has an allowed extension, or raise 400."""
    if not filename:
        raise HTTPException(status_code=400, detail="Filename is required")
    ext = os.path.splitext(filename)[1].lower()
    if ext not in cfg.ALLOWED_EXTENSIONS:
        logger.warning(
            "Rejected file with disallowed extension: %r", filename
        )
        raise HTTPException(
            status_code=400,
            detail=(
                f"File type '{ext}' not allowed. "
                f"Allowed: {', '.join(sorted(cfg.ALLOWED_EXTENSIONS))}"
            ),
        )
    return filename


# --------------- Error Helpers ---------------


def safe_error_response(
    exc: Exception, context: str = "operation", status_code: int = 500
):
    """
    Log the real exception but return a sanitized message to the client.
    In development mode, the real error is included for debugging.
    """
    logger.error("Error in %s: %s", context, exc, exc_info=True)
    if cfg.ENVIRONMENT == "development":
        detail = f"[DEV] {context}: {exc}"
    else:
        detail = (
            f"An internal error occurred during {context}. "
            "Please try again later."
        )
    raise HTTPException(status_code=status_code, detail=detail)
