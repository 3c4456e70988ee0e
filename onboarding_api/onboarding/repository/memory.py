"""In-process repository backend.

Used for local development (``STORAGE_BACKEND=memory``) and tests. Entities
are copied on the way in and out so callers never mutate stored state
outside a commit.
"""

import asyncio
from copy import deepcopy
from uuid import UUID

import structlog

from ..models import (
    AuditLogEntry,
    ChecklistItemState,
    FileUpload,
    Instructor,
    OnboardingStep,
    QuizAnswer,
    Task,
)
from .base import OnboardingRepository, UnitOfWork


logger = structlog.get_logger(__name__)


class InMemoryOnboardingRepository(OnboardingRepository):
    """Dictionary-backed repository; commits are serialized by a lock."""

    def __init__(self) -> None:
        super().__init__()
        self._lock = asyncio.Lock()
        self._instructors: dict[UUID, Instructor] = {}
        self._steps: dict[UUID, OnboardingStep] = {}
        self._tasks: dict[UUID, Task] = {}
        self._checklist_states: dict[tuple[UUID, UUID, UUID], ChecklistItemState] = {}
        self._quiz_answers: dict[tuple[UUID, UUID, UUID], QuizAnswer] = {}
        self._file_uploads: dict[UUID, FileUpload] = {}
        self._audit_logs: list[AuditLogEntry] = []

    async def _commit(self, uow: UnitOfWork) -> None:
        async with self._lock:
            for instructor in uow.instructors.values():
                self._instructors[instructor.id] = deepcopy(instructor)
            for step in uow.steps.values():
                self._steps[step.id] = deepcopy(step)
            for task in uow.tasks.values():
                self._tasks[task.id] = deepcopy(task)
            for key, state in uow.checklist_states.items():
                self._checklist_states[key] = deepcopy(state)
            for key, answer in uow.quiz_answers.items():
                self._quiz_answers[key] = deepcopy(answer)
            for upload in uow.file_uploads.values():
                self._file_uploads[upload.id] = deepcopy(upload)
            for file_id in uow.deleted_uploads:
                self._file_uploads.pop(file_id, None)
            for instructor_id, task_id in uow.cleared_task_states:
                self._clear_task_states(instructor_id, task_id)
            for task_id in uow.deleted_tasks:
                self._tasks.pop(task_id, None)
            for step_id in uow.deleted_steps:
                self._steps.pop(step_id, None)
            for instructor_id in uow.deleted_instructors:
                self._instructors.pop(instructor_id, None)
            self._audit_logs.extend(deepcopy(uow.audit_entries))

        logger.debug("transaction_committed", backend="memory", writes=uow.size)

    def _clear_task_states(self, instructor_id: UUID, task_id: UUID) -> None:
        for store in (self._checklist_states, self._quiz_answers):
            for key in [k for k in store if k[:2] == (instructor_id, task_id)]:
                del store[key]

    async def _fetch_instructor(self, instructor_id: UUID) -> Instructor | None:
        return deepcopy(self._instructors.get(instructor_id))

    async def _fetch_instructor_by_user(self, user_id: UUID) -> Instructor | None:
        for instructor in self._instructors.values():
            if instructor.user_id == user_id:
                return deepcopy(instructor)
        return None

    async def _fetch_instructors(self) -> list[Instructor]:
        return [deepcopy(instructor) for instructor in self._instructors.values()]

    async def _fetch_step(self, step_id: UUID) -> OnboardingStep | None:
        return deepcopy(self._steps.get(step_id))

    async def _fetch_steps(self, instructor_id: UUID) -> list[OnboardingStep]:
        return [
            deepcopy(step)
            for step in self._steps.values()
            if step.instructor_id == instructor_id
        ]

    async def _fetch_task(self, task_id: UUID) -> Task | None:
        return deepcopy(self._tasks.get(task_id))

    async def _fetch_tasks(self, step_id: UUID) -> list[Task]:
        return [deepcopy(task) for task in self._tasks.values() if task.step_id == step_id]

    async def _fetch_checklist_states(
        self, instructor_id: UUID, task_id: UUID
    ) -> list[ChecklistItemState]:
        return [
            deepcopy(state)
            for (owner, task, _item), state in self._checklist_states.items()
            if owner == instructor_id and task == task_id
        ]

    async def _fetch_quiz_answers(
        self, instructor_id: UUID, task_id: UUID
    ) -> list[QuizAnswer]:
        return [
            deepcopy(answer)
            for (owner, task, _question), answer in self._quiz_answers.items()
            if owner == instructor_id and task == task_id
        ]

    async def _fetch_file_upload(self, file_id: UUID) -> FileUpload | None:
        return deepcopy(self._file_uploads.get(file_id))

    async def _fetch_file_uploads(
        self, instructor_id: UUID, task_id: UUID
    ) -> list[FileUpload]:
        return [
            deepcopy(upload)
            for upload in self._file_uploads.values()
            if upload.instructor_id == instructor_id and upload.task_id == task_id
        ]

    async def _fetch_audit_logs(
        self, instructor_id: UUID, limit: int
    ) -> list[AuditLogEntry]:
        entries = [e for e in self._audit_logs if e.instructor_id == instructor_id]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return deepcopy(entries[:limit])
