"""Caller checks shared by handlers and services."""

from uuid import UUID

from onboarding_api.auth.schemas import Principal

from .exceptions import (
    PermissionDeniedError,
    ResourceNotFoundError,
    TaskDisabledError,
)
from .models import Instructor, OnboardingStep, Task
from .repository import OnboardingRepository


def require_pm(principal: Principal) -> None:
    """Raise unless the caller is a program manager."""
    if not principal.is_pm:
        raise PermissionDeniedError("Only program managers can do this")


async def resolve_instructor(
    repository: OnboardingRepository, principal: Principal
) -> Instructor:
    """Instructor profile of the calling user.

    Raises:
        PermissionDeniedError: If the caller is not an instructor.
        ResourceNotFoundError: If the caller has no instructor profile.
    """
    if not principal.is_instructor:
        raise PermissionDeniedError("Only instructors can do this")

    instructor = await repository.get_instructor_by_user(principal.user_id)
    if instructor is None:
        raise ResourceNotFoundError("Instructor profile not found")
    return instructor


async def load_task_with_step(
    repository: OnboardingRepository, task_id: UUID
) -> tuple[Task, OnboardingStep]:
    """Task and its owning step.

    Raises:
        ResourceNotFoundError: If either is missing.
    """
    task = await repository.get_task(task_id)
    if task is None:
        raise ResourceNotFoundError("Task not found")

    step = await repository.get_step(task.step_id)
    if step is None:
        raise ResourceNotFoundError("Step not found")
    return task, step


async def load_owned_task(
    repository: OnboardingRepository, instructor: Instructor, task_id: UUID
) -> Task:
    """Enabled task that belongs to the given instructor.

    Raises:
        ResourceNotFoundError: If the task does not exist.
        PermissionDeniedError: If it belongs to another instructor.
        TaskDisabledError: If it is disabled.
    """
    task, step = await load_task_with_step(repository, task_id)
    if step.instructor_id != instructor.id:
        raise PermissionDeniedError("Task belongs to another instructor")
    if not task.is_enabled:
        raise TaskDisabledError
    return task


async def lock_task_owner(
    repository: OnboardingRepository, task_id: UUID
) -> tuple[Task, OnboardingStep]:
    """Lock the instructor owning a task, then read the task and step.

    Must run inside a transaction. The task is read again once the lock is
    held, so the caller never works on a copy another action changed.

    Raises:
        ResourceNotFoundError: If the task or step is missing.
    """
    _, step = await load_task_with_step(repository, task_id)
    await repository.lock(step.instructor_id)
    return await load_task_with_step(repository, task_id)
