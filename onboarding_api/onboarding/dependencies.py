"""FastAPI dependencies for onboarding.

Provides dependency injection for:
- Onboarding services (from app state)
- Error handlers
"""

from typing import Annotated

import structlog
from fastapi import Depends, HTTPException, Request, status

from .content_admin import ContentAdminService
from .dashboard import DashboardService
from .exceptions import OnboardingError
from .handlers import HandlerRegistry
from .instructors import InstructorService
from .provisioning import ProvisioningService
from .task_service import TaskService


logger = structlog.get_logger(__name__)


def _from_state(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Onboarding service not available",
        )
    return service


async def get_handler_registry(request: Request) -> HandlerRegistry:
    """Get content handler registry from app state."""
    return _from_state(request, "handler_registry")


async def get_task_service(request: Request) -> TaskService:
    """Get task administration service from app state."""
    return _from_state(request, "task_service")


async def get_provisioning_service(request: Request) -> ProvisioningService:
    """Get provisioning service from app state."""
    return _from_state(request, "provisioning_service")


async def get_dashboard_service(request: Request) -> DashboardService:
    """Get dashboard service from app state."""
    return _from_state(request, "dashboard_service")


async def get_content_admin_service(request: Request) -> ContentAdminService:
    """Get content editing service from app state."""
    return _from_state(request, "content_admin_service")


async def get_instructor_service(request: Request) -> InstructorService:
    """Get instructor administration service from app state."""
    return _from_state(request, "instructor_service")


# Type aliases for dependency injection
HandlerRegistryDep = Annotated[HandlerRegistry, Depends(get_handler_registry)]
TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]
ProvisioningServiceDep = Annotated[
    ProvisioningService, Depends(get_provisioning_service)
]
DashboardServiceDep = Annotated[DashboardService, Depends(get_dashboard_service)]
ContentAdminServiceDep = Annotated[
    ContentAdminService, Depends(get_content_admin_service)
]
InstructorServiceDep = Annotated[InstructorService, Depends(get_instructor_service)]


def handle_onboarding_error(error: OnboardingError) -> HTTPException:
    """Convert onboarding errors to HTTP exceptions.

    Unreachable aggregates mean inconsistent data, so they surface as 500
    and are logged at error level.
    """
    status_map = {
        "not_found": status.HTTP_404_NOT_FOUND,
        "aggregate_not_found": status.HTTP_500_INTERNAL_SERVER_ERROR,
        "permission_denied": status.HTTP_403_FORBIDDEN,
        "invalid_content_type": status.HTTP_400_BAD_REQUEST,
        "invalid_submission": status.HTTP_400_BAD_REQUEST,
        "invalid_content": status.HTTP_400_BAD_REQUEST,
        "file_rejected": status.HTTP_400_BAD_REQUEST,
        "invalid_transition": status.HTTP_409_CONFLICT,
        "task_disabled": status.HTTP_409_CONFLICT,
        "already_exists": status.HTTP_409_CONFLICT,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("onboarding_invariant_violated", code=error.code, error=error.message)

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )
