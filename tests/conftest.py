"""Shared fixtures for onboarding tests.

Services run against the in-memory repository. The environment is set
before the application package is imported so module-level settings pick
up the testing profile.
"""

import os


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("STORAGE_BACKEND", "memory")

from collections.abc import Callable, Iterator  # noqa: E402
from datetime import UTC, datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402

from onboarding_api.auth.permissions import UserRole  # noqa: E402
from onboarding_api.auth.schemas import Principal  # noqa: E402
from onboarding_api.config.settings import Settings, get_settings  # noqa: E402
from onboarding_api.onboarding.content_admin import ContentAdminService  # noqa: E402
from onboarding_api.onboarding.dashboard import DashboardService  # noqa: E402
from onboarding_api.onboarding.handlers import HandlerRegistry  # noqa: E402
from onboarding_api.onboarding.instructors import InstructorService  # noqa: E402
from onboarding_api.onboarding.provisioning import ProvisioningService  # noqa: E402
from onboarding_api.onboarding.repository import InMemoryOnboardingRepository  # noqa: E402
from onboarding_api.onboarding.service import ProgressService  # noqa: E402
from onboarding_api.onboarding.task_service import TaskService  # noqa: E402
from tests.factories import SeededPlan, make_principal, seed_plan  # noqa: E402


# ==============================================================================
# Services
# ==============================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="testing",
        storage_backend="memory",
        upload_max_file_size_mb=1,
    )


@pytest.fixture
def repository() -> InMemoryOnboardingRepository:
    return InMemoryOnboardingRepository()


@pytest.fixture
def progress_service(repository) -> ProgressService:
    return ProgressService(repository)


@pytest.fixture
def handlers(repository, progress_service, settings) -> HandlerRegistry:
    return HandlerRegistry.create(repository, progress_service, settings)


@pytest.fixture
def task_service(repository, progress_service) -> TaskService:
    return TaskService(repository, progress_service)


@pytest.fixture
def provisioning_service(repository, progress_service) -> ProvisioningService:
    return ProvisioningService(repository, progress_service)


@pytest.fixture
def dashboard_service(repository, handlers) -> DashboardService:
    return DashboardService(repository, handlers)


@pytest.fixture
def content_admin_service(
    repository, progress_service, handlers
) -> ContentAdminService:
    return ContentAdminService(repository, progress_service, handlers)


@pytest.fixture
def instructor_service(repository) -> InstructorService:
    return InstructorService(repository)


@pytest.fixture
def pm() -> Principal:
    return make_principal(UserRole.PM)


@pytest.fixture
def seed(repository, progress_service):
    """Seed a plan into the test repository (see ``seed_plan``)."""

    async def _seed(*steps: list, **kwargs) -> SeededPlan:
        return await seed_plan(repository, progress_service, *steps, **kwargs)

    return _seed


# ==============================================================================
# HTTP
# ==============================================================================


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Sign access tokens the way the identity service does."""

    def _make_token(
        principal: Principal,
        token_type: str = "access",
        expires_in: timedelta = timedelta(minutes=15),
    ) -> str:
        app_settings = get_settings()
        claims = {
            "sub": str(principal.user_id),
            "email": principal.email,
            "role": principal.role.value,
            "type": token_type,
            "exp": datetime.now(UTC) + expires_in,
        }
        return jwt.encode(
            claims, app_settings.auth_secret_key, algorithm=app_settings.auth_algorithm
        )

    return _make_token


@pytest.fixture
def auth_headers(make_token) -> Callable[[Principal], dict[str, str]]:
    def _headers(principal: Principal) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(principal)}"}

    return _headers


@pytest.fixture
def client(settings, repository) -> Iterator[TestClient]:
    from onboarding_api.main import create_app

    app = create_app(settings, repository=repository)
    with TestClient(app) as test_client:
        yield test_client
