"""Instructor Onboarding API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from onboarding_api.config import Settings, get_settings
from onboarding_api.core.context import get_request_id
from onboarding_api.core.logging import configure_structlog, get_logger
from onboarding_api.core.middleware import RequestContextMiddleware
from onboarding_api.health import router as health_router
from onboarding_api.onboarding import router as onboarding_router
from onboarding_api.onboarding.content_admin import ContentAdminService
from onboarding_api.onboarding.dashboard import DashboardService
from onboarding_api.onboarding.handlers import HandlerRegistry
from onboarding_api.onboarding.instructors import InstructorService
from onboarding_api.onboarding.provisioning import ProvisioningService
from onboarding_api.onboarding.repository import (
    CassandraOnboardingRepository,
    InMemoryOnboardingRepository,
    OnboardingRepository,
)
from onboarding_api.onboarding.service import ProgressService
from onboarding_api.onboarding.task_service import TaskService


logger = get_logger(__name__)


async def create_repository(settings: Settings) -> OnboardingRepository:
    """Repository for the configured storage backend."""
    if settings.storage_backend == "memory":
        logger.warning("memory_backend_selected", message="Data is not persisted")
        return InMemoryOnboardingRepository()

    # Imported here so the memory backend runs without a cluster driver loaded
    from onboarding_api.core.database import init_async_cassandra

    session = await init_async_cassandra(settings)
    return CassandraOnboardingRepository(
        session=session, keyspace=settings.cassandra_keyspace
    )


def init_services(app: FastAPI, repository: OnboardingRepository, settings: Settings) -> None:
    """Wire services onto app state for dependency injection."""
    progress_service = ProgressService(repository)
    handler_registry = HandlerRegistry.create(repository, progress_service, settings)

    app.state.repository = repository
    app.state.progress_service = progress_service
    app.state.handler_registry = handler_registry
    app.state.task_service = TaskService(repository, progress_service)
    app.state.provisioning_service = ProvisioningService(repository, progress_service)
    app.state.dashboard_service = DashboardService(repository, handler_registry)
    app.state.content_admin_service = ContentAdminService(
        repository, progress_service, handler_registry
    )
    app.state.instructor_service = InstructorService(repository)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        storage_backend=settings.storage_backend,
    )

    if getattr(app.state, "repository", None) is None:
        repository = await create_repository(settings)
        init_services(app, repository, settings)
    logger.info("onboarding_services_initialized")

    yield

    logger.info("shutting_down_application")
    if isinstance(app.state.repository, CassandraOnboardingRepository):
        from onboarding_api.core.database import shutdown_async_cassandra

        await shutdown_async_cassandra()


def create_app(
    settings: Settings | None = None,
    repository: OnboardingRepository | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings override (defaults to environment settings).
        repository: Pre-built repository; skips backend creation on startup.
    """
    settings = settings or get_settings()

    # debug=False keeps stack traces out of responses
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Instructor Onboarding - API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )
    app.state.settings = settings
    app.state.repository = None
    if repository is not None:
        init_services(app, repository, settings)

    # Request context middleware (outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "message": str(exc.detail)
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                else "Internal server error",
                "status_code": exc.status_code,
                "request_id": _get_request_id_safe(request),
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors; field messages are safe to expose."""
        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "message": "Validation error",
                "status_code": 422,
                "request_id": _get_request_id_safe(request),
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler: full details in the log, generic body out."""
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": _get_request_id_safe(request),
            },
        )

    app.include_router(health_router)
    app.include_router(onboarding_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Instructor Onboarding API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


def build_default_app() -> FastAPI:
    """Application for ASGI servers, with logging configured from settings."""
    settings = get_settings()
    configure_structlog(
        settings,
        log_dir=Path(settings.log_dir),
        file_output=not settings.is_testing,
    )
    return create_app(settings)


app = build_default_app()
