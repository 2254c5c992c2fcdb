"""
Middleware for handling multi-tenancy
"""
from fastapi import Request, status
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware
from uuid import UUID
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Middleware that extracts tenant_id from X-Company-ID header
    and sets it on request.state for use in endpoint handlers
    """

    # Paths that don't require tenant context
    EXEMPT_PREFIXES = [
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
    ]
    EXEMPT_EXACT = ["/"]

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in self.EXEMPT_EXACT or any(path.startswith(prefix) for prefix in self.EXEMPT_PREFIXES):
            return await call_next(request)

        # Skip for OPTIONS requests (CORS preflight)
        if request.method == "OPTIONS":
            return await call_next(request)

        tenant_header = request.headers.get("X-Company-ID")

        if not tenant_header:
            return Response(
                content='{"detail":"Missing X-Company-ID header"}',
                status_code=status.HTTP_400_BAD_REQUEST,
                media_type="application/json"
            )

        try:
            tenant_id = UUID(tenant_header)
        except ValueError:
            return Response(
                content='{"detail":"Invalid X-Company-ID format. Must be a valid UUID"}',
                status_code=status.HTTP_400_BAD_REQUEST,
                media_type="application/json"
            )

        request.state.tenant_id = tenant_id
        logger.debug(f"Request to {path} with tenant_id: {tenant_id}")

        response = await call_next(request)

        # Add tenant ID to response headers for debugging
        response.headers["X-Tenant-ID"] = str(tenant_id)

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to every response.
    HSTS is only sent in production, where the API is served over TLS.
    """

    HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Cache-Control": "no-store",
    }

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        for header, value in self.HEADERS.items():
            response.headers.setdefault(header, value)
        if settings.ENVIRONMENT == "production":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response
