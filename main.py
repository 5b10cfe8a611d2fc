import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from saas.config import Settings, get_settings
from saas.database import create_engine
from saas.exception_handlers import register_exception_handlers
from saas.middleware.logging import StructuredLoggingMiddleware, setup_structured_logging
from saas.middleware.tenant import TenantMiddleware
from saas.routes import auth, groups, health, permissions, tenants, users
from saas.services.authorization_service import AuthorizationService
from saas.services.tenant_service import TenantService
from saas.services.token_service import TokenService
from saas.tenancy import TenantRouter, build_default_registry

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the FastAPI application."""
    settings = settings or get_settings()
    setup_structured_logging(settings.log_level, settings.log_json_format, debug=settings.debug)

    app = FastAPI(
        title=settings.app_name,
        description="Schema-per-tenant API with group-based permissions",
        debug=settings.debug,
        version=settings.app_version,
    )
    app.state.settings = settings
    app.state.token_service = TokenService.from_settings(settings)

    register_exception_handlers(app)

    # Starlette middleware is LIFO: logging wraps tenant resolution
    app.add_middleware(TenantMiddleware, app_domain=settings.app_domain, default_tenant=settings.default_tenant)
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api/health")
    app.include_router(tenants.router, prefix="/api/tenant")
    app.include_router(auth.router, prefix="/api/auth")
    app.include_router(groups.router, prefix="/api/groups")
    app.include_router(permissions.router, prefix="/api/permissions")
    app.include_router(users.router, prefix="/api/users")

    @app.on_event("startup")
    async def startup_event():
        """Build the engine and tenant services, then bring every tenant schema up to date."""
        logger.info("Starting up %s in %s mode", settings.app_name, settings.environment)
        engine = create_engine(settings)
        router = TenantRouter(engine, build_default_registry())

        app.state.engine = engine
        app.state.router = router
        app.state.authorization_service = AuthorizationService(router)
        app.state.tenant_service = TenantService(router, default_tenant=settings.default_tenant)

        results = await app.state.tenant_service.initialize_all_tenants()
        failed = [tenant for tenant, error in results.items() if error is not None]
        if failed:
            logger.warning("Tenants that failed to initialize: %s", ", ".join(failed))

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down the application...")
        engine = getattr(app.state, "engine", None)
        if engine is not None:
            await engine.dispose()

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
