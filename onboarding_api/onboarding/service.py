"""Progress aggregation service.

Business logic for:
- Step recomputation after a task status change
- Instructor overall progress and current step
- Full recalculation of an instructor's plan
"""

from uuid import UUID

import structlog

from .aggregation import compute_instructor_progress, compute_step_progress
from .exceptions import AggregateNotFoundError, ResourceNotFoundError
from .models import Instructor, OnboardingStep, Task, utc_now
from .repository import OnboardingRepository


logger = structlog.get_logger(__name__)


class ProgressService:
    """Keeps step and instructor aggregates in line with task states."""

    def __init__(self, repository: OnboardingRepository):
        self.repository = repository

    # ==========================================================================
    # Task Status Changes
    # ==========================================================================

    async def on_task_status_changed(
        self, task: Task
    ) -> tuple[OnboardingStep, Instructor]:
        """Recompute the owning step, then the owning instructor.

        Runs inside the caller's unit of work when there is one, so the task
        change and both aggregates are committed together.

        Returns:
            The updated step and instructor.

        Raises:
            AggregateNotFoundError: If the step or instructor is unreachable.
        """
        async with self.repository.transaction():
            step = await self._step_of(task)
            if await self.repository.lock(step.instructor_id):
                step = await self._step_of(task)

            await self._refresh_step(step)

            instructor = await self.repository.get_instructor(step.instructor_id)
            if instructor is None:
                logger.error(
                    "instructor_unreachable_from_step",
                    step_id=str(step.id),
                    instructor_id=str(step.instructor_id),
                )
                raise AggregateNotFoundError(
                    f"Instructor {step.instructor_id} not found"
                )

            await self._refresh_instructor(instructor)

        return step, instructor

    async def recalculate_instructor(self, instructor_id: UUID) -> Instructor:
        """Recompute every step of an instructor, then the instructor.

        Repairs aggregates written by hand or by an older release.

        Raises:
            ResourceNotFoundError: If the instructor does not exist.
        """
        async with self.repository.transaction():
            await self.repository.lock(instructor_id)
            instructor = await self.repository.get_instructor(instructor_id)
            if instructor is None:
                raise ResourceNotFoundError("Instructor not found")

            for step in await self.repository.list_steps(instructor_id):
                await self._refresh_step(step)
            await self._refresh_instructor(instructor)

        logger.info(
            "instructor_progress_recalculated",
            instructor_id=str(instructor_id),
            overall_progress=instructor.overall_progress,
        )
        return instructor

    # ==========================================================================
    # Aggregation
    # ==========================================================================

    async def _step_of(self, task: Task) -> OnboardingStep:
        step = await self.repository.get_step(task.step_id)
        if step is None:
            logger.error(
                "step_unreachable_from_task",
                task_id=str(task.id),
                step_id=str(task.step_id),
            )
            raise AggregateNotFoundError(f"Step {task.step_id} not found")
        return step

    async def _refresh_step(self, step: OnboardingStep) -> None:
        tasks = await self.repository.list_enabled_tasks(step.id)
        progress = compute_step_progress(tasks)

        step.total_tasks = progress.total_tasks
        step.completed_tasks = progress.completed_tasks
        step.status = progress.status
        step.updated_at = utc_now()
        await self.repository.save_step(step)

        logger.debug(
            "step_progress_updated",
            step_id=str(step.id),
            completed_tasks=step.completed_tasks,
            total_tasks=step.total_tasks,
            status=step.status.value,
        )

    async def _refresh_instructor(self, instructor: Instructor) -> None:
        steps = await self.repository.list_steps(instructor.id)
        progress = compute_instructor_progress(steps)

        instructor.overall_progress = progress.overall_progress
        instructor.current_step = progress.current_step
        instructor.updated_at = utc_now()
        await self.repository.save_instructor(instructor)

        logger.info(
            "instructor_progress_updated",
            instructor_id=str(instructor.id),
            overall_progress=instructor.overall_progress,
            current_step=instructor.current_step,
        )
