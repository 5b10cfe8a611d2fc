"""
Tenant Resolution Middleware

Resolves the current tenant from the subdomain of the request host
(``acme.example.com`` with app_domain ``example.com`` → ``acme``). Requests
without a subdomain belong to the default tenant.

Sets request.state.tenant for downstream handlers. A subdomain that is not
a valid tenant identifier is rejected with 400 before any handler runs.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from starlette.middleware.base import BaseHTTPMiddleware

from saas.exception_handlers import create_error_response
from saas.exceptions import InvalidArgumentError
from saas.tenancy.router import validate_tenant_name

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastapi import Request
    from starlette.responses import Response
    from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


def extract_subdomain(host: str, app_domain: str) -> str | None:
    """
    Extract the tenant subdomain from a Host header.

    Examples:
        host="acme.localhost:8000", app_domain="localhost" → "acme"
        host="localhost",           app_domain="localhost" → None
        host="a.b.localhost",       app_domain="localhost" → "a.b"
    """
    host = host.split(":")[0].strip().lower()
    app_domain = app_domain.lower()
    if host != app_domain and host.endswith("." + app_domain):
        return host[: -(len(app_domain) + 1)]
    return None


class TenantMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, app_domain: str = "localhost", default_tenant: str = "public"):
        super().__init__(app)
        self.app_domain = app_domain
        self.default_tenant = default_tenant

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        subdomain = extract_subdomain(request.headers.get("host", ""), self.app_domain)
        if not subdomain:
            request.state.tenant = self.default_tenant
            return await call_next(request)

        try:
            request.state.tenant = validate_tenant_name(subdomain)
        except InvalidArgumentError as exc:
            logger.warning("Rejected request for invalid tenant %r", subdomain)
            return create_error_response(
                status_code=exc.status_code,
                message=exc.message,
                error_code=exc.error_code,
                details=exc.details,
                path=request.url.path,
            )

        logger.debug("TenantMiddleware: resolved tenant=%s", request.state.tenant)
        return await call_next(request)
