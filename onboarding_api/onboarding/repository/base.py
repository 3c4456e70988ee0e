"""Repository contract and unit of work.

Writes are staged on the current ``UnitOfWork`` and applied together when
the outermost ``transaction()`` block exits normally. Reads inside the
block see staged writes. Any exception discards everything staged, so a
failed action never leaves a task changed with stale aggregates.

Units of work that touch the same instructor are serialized with
``lock()``: the lock is taken before the task is read and released only
after the commit, so aggregate read-modify-write cycles never interleave.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Hashable, Iterable
from contextlib import AsyncExitStack, asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TypeVar
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


logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class UnitOfWork:
    """Writes staged by one user action."""

    instructors: dict[UUID, Instructor] = field(default_factory=dict)
    steps: dict[UUID, OnboardingStep] = field(default_factory=dict)
    tasks: dict[UUID, Task] = field(default_factory=dict)
    checklist_states: dict[tuple[UUID, UUID, UUID], ChecklistItemState] = field(
        default_factory=dict
    )
    quiz_answers: dict[tuple[UUID, UUID, UUID], QuizAnswer] = field(
        default_factory=dict
    )
    file_uploads: dict[UUID, FileUpload] = field(default_factory=dict)
    deleted_uploads: dict[UUID, FileUpload] = field(default_factory=dict)
    deleted_instructors: dict[UUID, Instructor] = field(default_factory=dict)
    deleted_steps: dict[UUID, OnboardingStep] = field(default_factory=dict)
    deleted_tasks: dict[UUID, Task] = field(default_factory=dict)
    # (instructor_id, task_id) whose checklist ticks and quiz answers go away
    cleared_task_states: set[tuple[UUID, UUID]] = field(default_factory=set)
    audit_entries: list[AuditLogEntry] = field(default_factory=list)
    locked: set[UUID] = field(default_factory=set)
    exit_stack: AsyncExitStack | None = None

    @property
    def size(self) -> int:
        return (
            len(self.instructors)
            + len(self.steps)
            + len(self.tasks)
            + len(self.checklist_states)
            + len(self.quiz_answers)
            + len(self.file_uploads)
            + len(self.deleted_uploads)
            + len(self.deleted_instructors)
            + len(self.deleted_steps)
            + len(self.deleted_tasks)
            + len(self.cleared_task_states)
            + len(self.audit_entries)
        )


@dataclass
class _KeyLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


def _merge(
    stored: Iterable[T],
    staged: Iterable[T],
    key: Callable[[T], Hashable],
) -> list[T]:
    merged = {key(entity): entity for entity in stored}
    for entity in staged:
        merged[key(entity)] = entity
    return list(merged.values())


class OnboardingRepository(ABC):
    """Persistence of instructors, steps, tasks and per-instructor state.

    Backends implement the ``_fetch_*`` reads and ``_commit``. Public reads
    overlay whatever the active unit of work has staged.
    """

    def __init__(self) -> None:
        self._current: ContextVar[UnitOfWork | None] = ContextVar(
            f"unit_of_work_{id(self)}", default=None
        )
        self._key_locks: dict[UUID, _KeyLock] = {}

    # ==========================================================================
    # Unit of Work
    # ==========================================================================

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[UnitOfWork]:
        """Run a block as one unit of work.

        Nested blocks join the outer unit of work; only the outermost one
        commits. Locks taken with ``lock()`` are released after the commit
        or rollback.
        """
        current = self._current.get()
        if current is not None:
            yield current
            return

        async with AsyncExitStack() as stack:
            uow = UnitOfWork(exit_stack=stack)
            token = self._current.set(uow)
            try:
                yield uow
                if uow.size:
                    await self._commit(uow)
            except Exception as e:
                logger.warning(
                    "transaction_rolled_back",
                    staged_writes=uow.size,
                    error_type=type(e).__name__,
                )
                raise
            finally:
                self._current.reset(token)

    async def lock(self, key: UUID) -> bool:
        """Serialize the current unit of work with others on the same key.

        The key is an instructor id (or a user id while provisioning). The
        lock is held until the outermost transaction ends; taking it again
        in the same unit of work is a no-op.

        Returns:
            True if this call acquired the lock, False if already held.

        Raises:
            RuntimeError: If called outside a transaction.
        """
        uow = self._current.get()
        if uow is None or uow.exit_stack is None:
            msg = "lock() requires an active transaction"
            raise RuntimeError(msg)
        if key in uow.locked:
            return False

        await uow.exit_stack.enter_async_context(self._hold(key))
        uow.locked.add(key)
        return True

    @asynccontextmanager
    async def _hold(self, key: UUID) -> AsyncIterator[None]:
        entry = self._key_locks.setdefault(key, _KeyLock())
        entry.users += 1
        try:
            if entry.lock.locked():
                logger.debug("unit_of_work_waiting", key=str(key))
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if not entry.users:
                del self._key_locks[key]

    @asynccontextmanager
    async def _staging(self) -> AsyncIterator[UnitOfWork]:
        # A save outside any transaction commits on its own
        async with self.transaction() as uow:
            yield uow

    @abstractmethod
    async def _commit(self, uow: UnitOfWork) -> None:
        """Apply all staged writes atomically."""

    # ==========================================================================
    # Backend Reads
    # ==========================================================================

    @abstractmethod
    async def _fetch_instructor(self, instructor_id: UUID) -> Instructor | None: ...

    @abstractmethod
    async def _fetch_instructor_by_user(self, user_id: UUID) -> Instructor | None: ...

    @abstractmethod
    async def _fetch_instructors(self) -> list[Instructor]: ...

    @abstractmethod
    async def _fetch_step(self, step_id: UUID) -> OnboardingStep | None: ...

    @abstractmethod
    async def _fetch_steps(self, instructor_id: UUID) -> list[OnboardingStep]: ...

    @abstractmethod
    async def _fetch_task(self, task_id: UUID) -> Task | None: ...

    @abstractmethod
    async def _fetch_tasks(self, step_id: UUID) -> list[Task]: ...

    @abstractmethod
    async def _fetch_checklist_states(
        self, instructor_id: UUID, task_id: UUID
    ) -> list[ChecklistItemState]: ...

    @abstractmethod
    async def _fetch_quiz_answers(
        self, instructor_id: UUID, task_id: UUID
    ) -> list[QuizAnswer]: ...

    @abstractmethod
    async def _fetch_file_upload(self, file_id: UUID) -> FileUpload | None: ...

    @abstractmethod
    async def _fetch_file_uploads(
        self, instructor_id: UUID, task_id: UUID
    ) -> list[FileUpload]: ...

    @abstractmethod
    async def _fetch_audit_logs(
        self, instructor_id: UUID, limit: int
    ) -> list[AuditLogEntry]: ...

    # ==========================================================================
    # Reads (staged writes visible)
    # ==========================================================================

    async def get_instructor(self, instructor_id: UUID) -> Instructor | None:
        uow = self._current.get()
        if uow:
            if instructor_id in uow.deleted_instructors:
                return None
            if instructor_id in uow.instructors:
                return uow.instructors[instructor_id]
        return await self._fetch_instructor(instructor_id)

    async def get_instructor_by_user(self, user_id: UUID) -> Instructor | None:
        uow = self._current.get()
        if uow:
            for instructor in uow.instructors.values():
                if instructor.user_id == user_id:
                    return instructor
        instructor = await self._fetch_instructor_by_user(user_id)
        if uow and instructor and instructor.id in uow.deleted_instructors:
            return None
        return instructor

    async def list_instructors(self) -> list[Instructor]:
        """All instructors, newest first."""
        instructors = await self._fetch_instructors()
        uow = self._current.get()
        if uow:
            instructors = [
                i
                for i in _merge(instructors, uow.instructors.values(), lambda i: i.id)
                if i.id not in uow.deleted_instructors
            ]
        return sorted(instructors, key=lambda i: (i.created_at, str(i.id)), reverse=True)

    async def get_step(self, step_id: UUID) -> OnboardingStep | None:
        uow = self._current.get()
        if uow:
            if step_id in uow.deleted_steps:
                return None
            if step_id in uow.steps:
                return uow.steps[step_id]
        return await self._fetch_step(step_id)

    async def list_steps(self, instructor_id: UUID) -> list[OnboardingStep]:
        """Steps of an instructor in display order."""
        steps = await self._fetch_steps(instructor_id)
        uow = self._current.get()
        if uow:
            staged = [s for s in uow.steps.values() if s.instructor_id == instructor_id]
            steps = [
                s
                for s in _merge(steps, staged, key=lambda s: s.id)
                if s.id not in uow.deleted_steps
            ]
        return sorted(steps, key=lambda s: (s.step_number, str(s.id)))

    async def get_task(self, task_id: UUID) -> Task | None:
        uow = self._current.get()
        if uow:
            if task_id in uow.deleted_tasks:
                return None
            if task_id in uow.tasks:
                return uow.tasks[task_id]
        return await self._fetch_task(task_id)

    async def list_tasks(self, step_id: UUID) -> list[Task]:
        """All tasks of a step in display order, disabled ones included."""
        tasks = await self._fetch_tasks(step_id)
        uow = self._current.get()
        if uow:
            staged = [t for t in uow.tasks.values() if t.step_id == step_id]
            tasks = [
                t
                for t in _merge(tasks, staged, key=lambda t: t.id)
                if t.id not in uow.deleted_tasks
            ]
        return sorted(tasks, key=lambda t: (t.display_order, str(t.id)))

    async def list_enabled_tasks(self, step_id: UUID) -> list[Task]:
        """Enabled tasks of a step in display order."""
        return [task for task in await self.list_tasks(step_id) if task.is_enabled]

    async def get_checklist_states(
        self, instructor_id: UUID, task_id: UUID
    ) -> dict[UUID, ChecklistItemState]:
        """Checklist state of an instructor for a task, keyed by item id."""
        uow = self._current.get()
        if uow and (instructor_id, task_id) in uow.cleared_task_states:
            return {}
        states = await self._fetch_checklist_states(instructor_id, task_id)
        if uow:
            staged = [
                s
                for s in uow.checklist_states.values()
                if s.instructor_id == instructor_id and s.task_id == task_id
            ]
            states = _merge(states, staged, key=lambda s: s.item_id)
        return {state.item_id: state for state in states}

    async def get_quiz_answers(
        self, instructor_id: UUID, task_id: UUID
    ) -> dict[UUID, QuizAnswer]:
        """Stored quiz answers of an instructor for a task, keyed by question id."""
        uow = self._current.get()
        if uow and (instructor_id, task_id) in uow.cleared_task_states:
            return {}
        answers = await self._fetch_quiz_answers(instructor_id, task_id)
        if uow:
            staged = [
                a
                for a in uow.quiz_answers.values()
                if a.instructor_id == instructor_id and a.task_id == task_id
            ]
            answers = _merge(answers, staged, key=lambda a: a.question_id)
        return {answer.question_id: answer for answer in answers}

    async def get_file_upload(self, file_id: UUID) -> FileUpload | None:
        uow = self._current.get()
        if uow:
            if file_id in uow.deleted_uploads:
                return None
            if file_id in uow.file_uploads:
                return uow.file_uploads[file_id]
        return await self._fetch_file_upload(file_id)

    async def list_file_uploads(
        self, instructor_id: UUID, task_id: UUID
    ) -> list[FileUpload]:
        """Uploads of an instructor for a task, oldest first."""
        uploads = await self._fetch_file_uploads(instructor_id, task_id)
        uow = self._current.get()
        if uow:
            staged = [
                u
                for u in uow.file_uploads.values()
                if u.instructor_id == instructor_id and u.task_id == task_id
            ]
            uploads = [
                u
                for u in _merge(uploads, staged, key=lambda u: u.id)
                if u.id not in uow.deleted_uploads
            ]
        return sorted(uploads, key=lambda u: (u.uploaded_at, str(u.id)))

    async def list_audit_logs(
        self, instructor_id: UUID, limit: int = 100
    ) -> list[AuditLogEntry]:
        """Audit entries of an instructor, newest first."""
        entries = await self._fetch_audit_logs(instructor_id, limit)
        uow = self._current.get()
        if uow:
            entries += [e for e in uow.audit_entries if e.instructor_id == instructor_id]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]

    # ==========================================================================
    # Writes (staged)
    # ==========================================================================

    async def save_instructor(self, instructor: Instructor) -> None:
        async with self._staging() as uow:
            uow.instructors[instructor.id] = instructor

    async def save_step(self, step: OnboardingStep) -> None:
        async with self._staging() as uow:
            uow.steps[step.id] = step

    async def save_task(self, task: Task) -> None:
        async with self._staging() as uow:
            uow.tasks[task.id] = task

    async def save_checklist_state(self, state: ChecklistItemState) -> None:
        async with self._staging() as uow:
            uow.checklist_states[state.key] = state

    async def save_quiz_answer(self, answer: QuizAnswer) -> None:
        async with self._staging() as uow:
            uow.quiz_answers[answer.key] = answer

    async def save_file_upload(self, upload: FileUpload) -> None:
        async with self._staging() as uow:
            uow.deleted_uploads.pop(upload.id, None)
            uow.file_uploads[upload.id] = upload

    async def delete_file_upload(self, upload: FileUpload) -> None:
        async with self._staging() as uow:
            uow.file_uploads.pop(upload.id, None)
            uow.deleted_uploads[upload.id] = upload

    async def delete_instructor(self, instructor: Instructor) -> None:
        """Delete an instructor with steps, tasks, content state and uploads.

        Audit entries are kept.
        """
        async with self._staging() as uow:
            for step in await self.list_steps(instructor.id):
                for task in await self.list_tasks(step.id):
                    for upload in await self.list_file_uploads(instructor.id, task.id):
                        await self.delete_file_upload(upload)
                    uow.cleared_task_states.add((instructor.id, task.id))
                    uow.tasks.pop(task.id, None)
                    uow.deleted_tasks[task.id] = task
                uow.steps.pop(step.id, None)
                uow.deleted_steps[step.id] = step
            uow.checklist_states = {
                k: v for k, v in uow.checklist_states.items() if k[0] != instructor.id
            }
            uow.quiz_answers = {
                k: v for k, v in uow.quiz_answers.items() if k[0] != instructor.id
            }
            uow.instructors.pop(instructor.id, None)
            uow.deleted_instructors[instructor.id] = instructor

    async def add_audit_entry(self, entry: AuditLogEntry) -> None:
        async with self._staging() as uow:
            uow.audit_entries.append(entry)
