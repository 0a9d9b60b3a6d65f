"""FastAPI application for the SiteCrew REST API."""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sitecrew import __version__
from sitecrew.api.middleware import AuditMiddleware, Services
from sitecrew.api.models import ErrorResponse
from sitecrew.auth.gateway import AuthorizationGateway
from sitecrew.auth.identity import IdentityProvider, build_identity_provider
from sitecrew.auth.invitations import InvitationManager
from sitecrew.auth.resolver import PermissionResolver
from sitecrew.auth.seats import SeatEnforcer
from sitecrew.auth.tenancy import TenancyManager
from sitecrew.core.config import Settings, get_settings
from sitecrew.core.exceptions import BUSINESS_OUTCOMES, SiteCrewError
from sitecrew.db.store import TenancyStore
from sitecrew.notifications.channels import build_notifier
from sitecrew.notifications.notifier import InvitationNotifier

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting SiteCrew API", version=__version__)
    yield
    logger.info("Shutting down SiteCrew API")


def build_services(
    settings: Settings,
    store: TenancyStore | None = None,
    identity_provider: IdentityProvider | None = None,
    notifier: InvitationNotifier | None = None,
) -> Services:
    """Wire the authorization and invitation services together."""
    store = store or TenancyStore()
    seats = SeatEnforcer(store)
    resolver = PermissionResolver(store)
    return Services(
        gateway=AuthorizationGateway(identity_provider or build_identity_provider(settings), resolver),
        invitations=InvitationManager(
            store=store,
            seats=seats,
            notifier=notifier or build_notifier(settings),
            settings=settings,
        ),
        tenancy=TenancyManager(store=store, seats=seats),
    )


def create_app(
    settings: Settings | None = None,
    services: Services | None = None,
    cors_origins: list[str] | None = None,
    debug: bool = False,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Application settings (defaults to ``get_settings()``)
        services: Prebuilt services, mainly for tests
        cors_origins: Allowed CORS origins
        debug: Enable debug mode

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="SiteCrew API",
        description="Multi-tenant authorization and team invitations",
        version=__version__,
        lifespan=lifespan,
        debug=debug,
        openapi_tags=[
            {"name": "health", "description": "Health check endpoints"},
            {"name": "invitations", "description": "Invitation lifecycle"},
            {"name": "me", "description": "Caller-scoped permissions"},
            {"name": "companies", "description": "Company administration"},
        ],
    )
    app.state.settings = settings
    app.state.services = services or build_services(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AuditMiddleware)

    @app.exception_handler(SiteCrewError)
    async def sitecrew_error_handler(request: Request, exc: SiteCrewError):
        if isinstance(exc, BUSINESS_OUTCOMES):
            logger.info("Request refused", code=exc.code, path=request.url.path)
        elif exc.status_code >= 500:
            logger.error("Request failed", code=exc.code, path=request.url.path, error=str(exc))
        else:
            logger.warning(
                "Request rejected",
                code=exc.code,
                path=request.url.path,
                permission=getattr(exc, "permission", None),
            )
        headers = {}
        if exc.status_code == 401:
            headers["WWW-Authenticate"] = "Bearer"
        if exc.retryable:
            headers["Retry-After"] = "1"
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(part) for part in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg')}" if field else "Invalid request"
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(error=message, code="VALIDATION_ERROR").model_dump(),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception", path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                error=str(exc) if debug else "An unexpected error occurred",
                code="INTERNAL_ERROR",
            ).model_dump(),
        )

    from sitecrew.api.routes import companies, health, invitations, me

    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(invitations.router, prefix="/api/v1/invitations", tags=["invitations"])
    app.include_router(me.router, prefix="/api/v1/me", tags=["me"])
    app.include_router(companies.router, prefix="/api/v1/companies", tags=["companies"])

    return app
