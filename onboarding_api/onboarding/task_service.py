"""Task administration by program managers.

Manual status changes, skipping, enabling/disabling tasks and forced
recalculation. Every action is audited and recomputes aggregates in the
same unit of work.
"""

from uuid import UUID

import structlog

from onboarding_api.auth.schemas import Principal

from .access import lock_task_owner, require_pm
from .audit import record_audit
from .exceptions import InvalidTransitionError
from .models import (
    TASK_STATUS_TRANSITIONS,
    AuditAction,
    Instructor,
    Task,
    TaskStatus,
    utc_now,
)
from .repository import OnboardingRepository
from .schemas import ProgressSummary, TaskAdminResponse, TaskResponse
from .service import ProgressService


logger = structlog.get_logger(__name__)

SKIPPABLE = frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS})


class TaskService:
    """PM-only task operations."""

    def __init__(
        self,
        repository: OnboardingRepository,
        progress_service: ProgressService,
    ):
        self.repository = repository
        self.progress_service = progress_service

    async def _apply(self, task: Task) -> TaskAdminResponse:
        task.updated_at = utc_now()
        await self.repository.save_task(task)
        step, instructor = await self.progress_service.on_task_status_changed(task)
        return TaskAdminResponse(
            task=TaskResponse.from_entity(task),
            progress=ProgressSummary.from_entities(step, instructor),
        )

    async def update_task_status(
        self,
        principal: Principal,
        task_id: UUID,
        status: TaskStatus,
    ) -> TaskAdminResponse:
        """Set a task status by hand.

        Setting the current status again only recomputes aggregates.

        Raises:
            InvalidTransitionError: If the state machine forbids the change.
        """
        require_pm(principal)

        async with self.repository.transaction():
            task, step = await lock_task_owner(self.repository, task_id)
            previous = task.status

            if status != previous:
                if status not in TASK_STATUS_TRANSITIONS[previous]:
                    raise InvalidTransitionError(
                        f"Cannot change task from {previous.value} to {status.value}"
                    )
                task.status = status
                task.completed_at = utc_now() if status == TaskStatus.COMPLETED else None

                await record_audit(
                    self.repository,
                    principal,
                    step.instructor_id,
                    AuditAction.TASK_STATUS_UPDATED,
                    "task",
                    task.id,
                    previous_status=previous,
                    status=status,
                )

            response = await self._apply(task)

        logger.info(
            "task_status_updated",
            task_id=str(task_id),
            previous_status=previous.value,
            status=status.value,
        )
        return response

    async def skip_task(self, principal: Principal, task_id: UUID) -> TaskAdminResponse:
        """Mark a pending or in-progress task as skipped.

        Raises:
            InvalidTransitionError: If the task is completed or already skipped.
        """
        require_pm(principal)

        async with self.repository.transaction():
            task, step = await lock_task_owner(self.repository, task_id)
            if task.status not in SKIPPABLE:
                raise InvalidTransitionError(
                    f"Cannot skip a {task.status.value} task"
                )

            previous = task.status
            task.status = TaskStatus.SKIPPED
            task.completed_at = None

            await record_audit(
                self.repository,
                principal,
                step.instructor_id,
                AuditAction.TASK_SKIPPED,
                "task",
                task.id,
                previous_status=previous,
            )
            response = await self._apply(task)

        logger.info("task_skipped", task_id=str(task_id), previous_status=previous.value)
        return response

    async def set_task_enabled(
        self,
        principal: Principal,
        task_id: UUID,
        enabled: bool,
    ) -> TaskAdminResponse:
        """Enable or disable a task; disabled tasks leave every count."""
        require_pm(principal)

        async with self.repository.transaction():
            task, step = await lock_task_owner(self.repository, task_id)
            changed = task.is_enabled != enabled
            task.is_enabled = enabled

            if changed:
                await record_audit(
                    self.repository,
                    principal,
                    step.instructor_id,
                    AuditAction.TASK_ENABLED if enabled else AuditAction.TASK_DISABLED,
                    "task",
                    task.id,
                )
            response = await self._apply(task)

        logger.info(
            "task_enabled_changed",
            task_id=str(task_id),
            enabled=enabled,
            changed=changed,
        )
        return response

    async def recalculate(self, principal: Principal, instructor_id: UUID) -> Instructor:
        """Recompute all aggregates of an instructor."""
        require_pm(principal)

        async with self.repository.transaction():
            instructor = await self.progress_service.recalculate_instructor(
                instructor_id
            )
            await record_audit(
                self.repository,
                principal,
                instructor.id,
                AuditAction.PROGRESS_RECALCULATED,
                "instructor",
                instructor.id,
                overall_progress=instructor.overall_progress,
            )

        return instructor
