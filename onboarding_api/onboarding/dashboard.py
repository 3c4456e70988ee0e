"""Read models: instructor dashboards, task files and audit log."""

from uuid import UUID

from onboarding_api.auth.schemas import Principal

from .access import load_task_with_step, require_pm, resolve_instructor
from .exceptions import ResourceNotFoundError
from .handlers import HandlerRegistry
from .models import Instructor
from .repository import OnboardingRepository
from .schemas import (
    AuditLogListResponse,
    AuditLogResponse,
    DashboardResponse,
    FileUploadListResponse,
    FileUploadResponse,
    InstructorResponse,
    StepView,
    TaskView,
)


class DashboardService:
    """Builds dashboard views from stored aggregates and content state."""

    def __init__(self, repository: OnboardingRepository, handlers: HandlerRegistry):
        self.repository = repository
        self.handlers = handlers

    async def get_my_dashboard(self, principal: Principal) -> DashboardResponse:
        """Dashboard of the calling instructor; disabled tasks are hidden."""
        instructor = await resolve_instructor(self.repository, principal)
        return await self._build(instructor, include_disabled=False)

    async def get_instructor_dashboard(
        self, principal: Principal, instructor_id: UUID
    ) -> DashboardResponse:
        """Dashboard of any instructor for a PM, disabled tasks included."""
        require_pm(principal)
        instructor = await self.repository.get_instructor(instructor_id)
        if instructor is None:
            raise ResourceNotFoundError("Instructor not found")
        return await self._build(instructor, include_disabled=True)

    async def list_audit_logs(
        self,
        principal: Principal,
        instructor_id: UUID,
        limit: int = 100,
    ) -> AuditLogListResponse:
        """Latest audit entries of an instructor, newest first.

        Entries outlive a deleted instructor and stay readable.
        """
        require_pm(principal)
        entries = await self.repository.list_audit_logs(instructor_id, limit)
        if not entries and await self.repository.get_instructor(instructor_id) is None:
            raise ResourceNotFoundError("Instructor not found")

        return AuditLogListResponse(
            items=[AuditLogResponse.from_entity(e) for e in entries],
            total=len(entries),
        )

    async def list_task_files(
        self, principal: Principal, task_id: UUID
    ) -> FileUploadListResponse:
        """Uploads registered on a task by its instructor, oldest first."""
        require_pm(principal)
        task, step = await load_task_with_step(self.repository, task_id)
        uploads = await self.repository.list_file_uploads(step.instructor_id, task.id)
        return FileUploadListResponse(
            items=[FileUploadResponse.from_entity(u) for u in uploads],
            total=len(uploads),
        )

    async def _build(
        self, instructor: Instructor, include_disabled: bool
    ) -> DashboardResponse:
        steps = []
        for step in await self.repository.list_steps(instructor.id):
            tasks = []
            for task in await self.repository.list_tasks(step.id):
                if not task.is_enabled and not include_disabled:
                    continue
                state = await self.handlers.for_task(task).describe(
                    instructor.id, task
                )
                tasks.append(
                    TaskView(
                        id=task.id,
                        step_id=task.step_id,
                        display_order=task.display_order,
                        title=task.title,
                        description=task.description,
                        content_type=task.content_type,
                        status=task.status,
                        is_enabled=task.is_enabled,
                        completed_at=task.completed_at,
                        state=state,
                    )
                )

            steps.append(
                StepView(
                    id=step.id,
                    step_number=step.step_number,
                    title=step.title,
                    description=step.description,
                    total_tasks=step.total_tasks,
                    completed_tasks=step.completed_tasks,
                    status=step.status,
                    progress_percent=step.progress_percent,
                    tasks=tasks,
                )
            )

        return DashboardResponse(
            instructor=InstructorResponse.from_entity(instructor),
            steps=steps,
        )
