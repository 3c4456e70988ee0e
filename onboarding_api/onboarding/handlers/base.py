"""Common contract of content handlers.

A handler owns the completion predicate of its content types. After every
interaction it re-evaluates the predicate and, only when the task status
actually changes, saves the task and lets the progress engine recompute
the step and instructor.
"""

from abc import ABC, abstractmethod
from typing import ClassVar
from uuid import UUID

import structlog

from onboarding_api.auth.schemas import Principal

from ..access import load_owned_task, resolve_instructor
from ..aggregation import resolve_task_status
from ..content import ContentType
from ..exceptions import AggregateNotFoundError, InvalidContentTypeError
from ..models import Instructor, Task, TaskStatus, utc_now
from ..repository import OnboardingRepository
from ..schemas import ProgressSummary, TaskContentState
from ..service import ProgressService


logger = structlog.get_logger(__name__)


class ContentHandler(ABC):
    """Base class of checklist, quiz and file-upload handlers."""

    content_types: ClassVar[frozenset[ContentType]]

    # Whether losing completion moves a COMPLETED task back to IN_PROGRESS
    revertible: ClassVar[bool] = True

    def __init__(
        self,
        repository: OnboardingRepository,
        progress_service: ProgressService,
    ):
        self.repository = repository
        self.progress_service = progress_service

    @abstractmethod
    async def is_complete(self, instructor_id: UUID, task: Task) -> bool:
        """Completion predicate of the task for this instructor."""

    @abstractmethod
    async def describe(self, instructor_id: UUID, task: Task) -> TaskContentState:
        """Content of the task merged with the instructor's state."""

    def handles(self, task: Task) -> bool:
        return task.content_type in self.content_types

    async def _load_task(
        self, principal: Principal, task_id: UUID
    ) -> tuple[Instructor, Task]:
        """Caller's instructor profile and one of their enabled tasks.

        Locks the instructor for the rest of the caller's transaction.
        """
        instructor = await resolve_instructor(self.repository, principal)
        await self.repository.lock(instructor.id)
        task = await load_owned_task(self.repository, instructor, task_id)
        if not self.handles(task):
            raise InvalidContentTypeError(
                f"Task is of type {task.content_type.value}"
            )
        return instructor, task

    async def refresh_status(
        self,
        instructor_id: UUID,
        task: Task,
        *,
        revertible: bool | None = None,
    ) -> TaskStatus | None:
        """Apply the predicate to ``task.status`` in place, without saving.

        ``revertible`` overrides the handler default. Content edits pass True
        since they change what completion means for every content type.

        Returns:
            The previous status if it changed, otherwise None.
        """
        if revertible is None:
            revertible = self.revertible
        complete = await self.is_complete(instructor_id, task)
        new_status = resolve_task_status(task.status, complete, revertible)
        if new_status == task.status:
            return None

        previous = task.status
        task.status = new_status
        task.updated_at = utc_now()
        task.completed_at = task.updated_at if new_status == TaskStatus.COMPLETED else None

        logger.info(
            "task_status_changed",
            task_id=str(task.id),
            instructor_id=str(instructor_id),
            previous_status=previous.value,
            status=new_status.value,
        )
        return previous

    async def _sync_status(self, instructor_id: UUID, task: Task) -> bool:
        """Apply the predicate, saving the task only when its status changes.

        Returns:
            True if the status changed (and aggregates were recomputed).
        """
        if await self.refresh_status(instructor_id, task) is None:
            return False

        await self.repository.save_task(task)
        await self.progress_service.on_task_status_changed(task)
        return True

    async def _progress_summary(self, task: Task) -> ProgressSummary:
        step = await self.repository.get_step(task.step_id)
        if step is None:
            raise AggregateNotFoundError(f"Step {task.step_id} not found")
        instructor = await self.repository.get_instructor(step.instructor_id)
        if instructor is None:
            raise AggregateNotFoundError(f"Instructor {step.instructor_id} not found")
        return ProgressSummary.from_entities(step, instructor)
