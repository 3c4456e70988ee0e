"""Instructor provisioning: create an instructor with their onboarding plan."""

from uuid import UUID, uuid4

import structlog

from onboarding_api.auth.schemas import Principal

from .access import require_pm
from .audit import record_audit
from .exceptions import AlreadyExistsError, ResourceNotFoundError
from .models import AuditAction, Instructor, OnboardingStep, Task, TaskStatus
from .repository import OnboardingRepository
from .schemas import CreateInstructorRequest, StepDefinition
from .service import ProgressService


logger = structlog.get_logger(__name__)


class ProvisioningService:
    """Creates instructors, steps and tasks in one unit of work."""

    def __init__(
        self,
        repository: OnboardingRepository,
        progress_service: ProgressService,
    ):
        self.repository = repository
        self.progress_service = progress_service

    async def _create_step(
        self,
        instructor_id: UUID,
        step_number: int,
        definition: StepDefinition,
    ) -> OnboardingStep:
        step = OnboardingStep(
            id=uuid4(),
            instructor_id=instructor_id,
            step_number=step_number,
            title=definition.title,
            description=definition.description,
        )
        await self.repository.save_step(step)

        for display_order, task_definition in enumerate(definition.tasks, start=1):
            await self.repository.save_task(
                Task(
                    id=uuid4(),
                    step_id=step.id,
                    display_order=display_order,
                    title=task_definition.title,
                    description=task_definition.description,
                    content=task_definition.content,
                    status=TaskStatus.PENDING,
                    is_enabled=task_definition.is_enabled,
                )
            )
        return step

    async def create_instructor(
        self,
        principal: Principal,
        request: CreateInstructorRequest,
    ) -> Instructor:
        """Create an instructor profile and its plan.

        Steps are numbered 1..n and tasks ordered as given; all tasks start
        PENDING. Aggregates are computed before commit.

        Raises:
            PermissionDeniedError: If the caller is not a PM.
            AlreadyExistsError: If the user already has an instructor profile.
        """
        require_pm(principal)
        task_count = sum(len(step.tasks) for step in request.steps)

        async with self.repository.transaction():
            # Two requests for the same user must not both pass the check
            await self.repository.lock(request.user_id)
            if await self.repository.get_instructor_by_user(request.user_id):
                raise AlreadyExistsError("User already has an instructor profile")

            instructor = Instructor(
                id=uuid4(),
                user_id=request.user_id,
                name=request.name.strip(),
                email=str(request.email).lower(),
                track=request.track,
                cohort=request.cohort,
            )
            await self.repository.save_instructor(instructor)

            for step_number, step_definition in enumerate(request.steps, start=1):
                await self._create_step(instructor.id, step_number, step_definition)

            instructor = await self.progress_service.recalculate_instructor(
                instructor.id
            )

            await record_audit(
                self.repository,
                principal,
                instructor.id,
                AuditAction.INSTRUCTOR_CREATED,
                "instructor",
                instructor.id,
                steps=len(request.steps),
                tasks=task_count,
            )

        logger.info(
            "instructor_created",
            instructor_id=str(instructor.id),
            user_id=str(instructor.user_id),
            steps=len(request.steps),
            tasks=task_count,
        )
        return instructor

    async def add_step(
        self,
        principal: Principal,
        instructor_id: UUID,
        definition: StepDefinition,
    ) -> tuple[OnboardingStep, Instructor]:
        """Append a step after the instructor's last one.

        The new step lowers overall progress until its tasks are done; a
        step without enabled tasks is left out of the percentage.

        Raises:
            ResourceNotFoundError: If the instructor does not exist.
        """
        require_pm(principal)

        async with self.repository.transaction():
            await self.repository.lock(instructor_id)
            instructor = await self.repository.get_instructor(instructor_id)
            if instructor is None:
                raise ResourceNotFoundError("Instructor not found")

            steps = await self.repository.list_steps(instructor_id)
            step_number = max((s.step_number for s in steps), default=0) + 1
            step = await self._create_step(instructor_id, step_number, definition)

            instructor = await self.progress_service.recalculate_instructor(
                instructor_id
            )
            step = await self.repository.get_step(step.id)

            await record_audit(
                self.repository,
                principal,
                instructor_id,
                AuditAction.STEP_ADDED,
                "step",
                step.id,
                step_number=step_number,
                tasks=len(definition.tasks),
            )

        logger.info(
            "step_added",
            instructor_id=str(instructor_id),
            step_id=str(step.id),
            step_number=step_number,
            tasks=len(definition.tasks),
        )
        return step, instructor
