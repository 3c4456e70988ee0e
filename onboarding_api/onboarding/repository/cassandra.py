"""Cassandra repository backend.

Reads use prepared statements through ``session.aexecute``. A unit of work
is committed as a single LOGGED batch so main tables and lookup tables
never diverge and a failed action leaves nothing behind.
"""

from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from cassandra.query import BatchStatement, BatchType, PreparedStatement

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


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class CassandraOnboardingRepository(OnboardingRepository):
    """Repository over the onboarding keyspace."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        super().__init__()
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        ks = self.keyspace

        # Instructors
        self._get_instructor = self.session.prepare(
            f"SELECT * FROM {ks}.instructors WHERE id = ?"
        )
        self._get_instructor_by_user = self.session.prepare(
            f"SELECT instructor_id FROM {ks}.instructors_by_user WHERE user_id = ?"
        )
        self._upsert_instructor = self.session.prepare(f"""
            INSERT INTO {ks}.instructors
            (id, user_id, name, email, track, cohort, overall_progress,
             current_step, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._get_instructors = self.session.prepare(f"SELECT * FROM {ks}.instructors")
        self._upsert_instructor_by_user = self.session.prepare(
            f"INSERT INTO {ks}.instructors_by_user (user_id, instructor_id) VALUES (?, ?)"
        )
        self._delete_instructor = self.session.prepare(
            f"DELETE FROM {ks}.instructors WHERE id = ?"
        )
        self._delete_instructor_by_user = self.session.prepare(
            f"DELETE FROM {ks}.instructors_by_user WHERE user_id = ?"
        )

        # Steps
        self._get_step_lookup = self.session.prepare(
            f"SELECT instructor_id, step_number FROM {ks}.steps_by_id WHERE id = ?"
        )
        self._get_step = self.session.prepare(f"""
            SELECT * FROM {ks}.onboarding_steps
            WHERE instructor_id = ? AND step_number = ? AND id = ?
        """)
        self._get_steps = self.session.prepare(
            f"SELECT * FROM {ks}.onboarding_steps WHERE instructor_id = ?"
        )
        self._upsert_step = self.session.prepare(f"""
            INSERT INTO {ks}.onboarding_steps
            (instructor_id, step_number, id, title, description, total_tasks,
             completed_tasks, status, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._upsert_step_lookup = self.session.prepare(
            f"INSERT INTO {ks}.steps_by_id (id, instructor_id, step_number) VALUES (?, ?, ?)"
        )
        self._delete_step = self.session.prepare(f"""
            DELETE FROM {ks}.onboarding_steps
            WHERE instructor_id = ? AND step_number = ? AND id = ?
        """)
        self._delete_step_lookup = self.session.prepare(
            f"DELETE FROM {ks}.steps_by_id WHERE id = ?"
        )

        # Tasks
        self._get_task_lookup = self.session.prepare(
            f"SELECT step_id, display_order FROM {ks}.tasks_by_id WHERE id = ?"
        )
        self._get_task = self.session.prepare(f"""
            SELECT * FROM {ks}.tasks
            WHERE step_id = ? AND display_order = ? AND id = ?
        """)
        self._get_tasks = self.session.prepare(
            f"SELECT * FROM {ks}.tasks WHERE step_id = ?"
        )
        self._upsert_task = self.session.prepare(f"""
            INSERT INTO {ks}.tasks
            (step_id, display_order, id, title, description, content_type, content,
             status, is_enabled, created_at, updated_at, completed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._upsert_task_lookup = self.session.prepare(
            f"INSERT INTO {ks}.tasks_by_id (id, step_id, display_order) VALUES (?, ?, ?)"
        )
        self._delete_task = self.session.prepare(f"""
            DELETE FROM {ks}.tasks
            WHERE step_id = ? AND display_order = ? AND id = ?
        """)
        self._delete_task_lookup = self.session.prepare(
            f"DELETE FROM {ks}.tasks_by_id WHERE id = ?"
        )

        # Content state
        self._get_checklist_states = self.session.prepare(f"""
            SELECT * FROM {ks}.checklist_states
            WHERE instructor_id = ? AND task_id = ?
        """)
        self._upsert_checklist_state = self.session.prepare(f"""
            INSERT INTO {ks}.checklist_states
            (instructor_id, task_id, item_id, checked, checked_at)
            VALUES (?, ?, ?, ?, ?)
        """)
        self._clear_checklist_states = self.session.prepare(
            f"DELETE FROM {ks}.checklist_states WHERE instructor_id = ? AND task_id = ?"
        )
        self._get_quiz_answers = self.session.prepare(f"""
            SELECT * FROM {ks}.quiz_answers
            WHERE instructor_id = ? AND task_id = ?
        """)
        self._upsert_quiz_answer = self.session.prepare(f"""
            INSERT INTO {ks}.quiz_answers
            (instructor_id, task_id, question_id, selected_index, answer_text,
             is_correct, submitted_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)
        self._clear_quiz_answers = self.session.prepare(
            f"DELETE FROM {ks}.quiz_answers WHERE instructor_id = ? AND task_id = ?"
        )

        # File uploads (main + by-task lookup)
        self._get_file_upload = self.session.prepare(
            f"SELECT * FROM {ks}.file_uploads WHERE id = ?"
        )
        self._get_file_uploads_by_task = self.session.prepare(f"""
            SELECT * FROM {ks}.file_uploads_by_task
            WHERE task_id = ? AND instructor_id = ?
        """)
        self._insert_file_upload = self.session.prepare(f"""
            INSERT INTO {ks}.file_uploads
            (id, task_id, instructor_id, file_name, file_size, mime_type,
             storage_path, uploaded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._insert_file_upload_by_task = self.session.prepare(f"""
            INSERT INTO {ks}.file_uploads_by_task
            (task_id, instructor_id, uploaded_at, id, file_name, file_size,
             mime_type, storage_path)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._delete_file_upload = self.session.prepare(
            f"DELETE FROM {ks}.file_uploads WHERE id = ?"
        )
        self._delete_file_upload_by_task = self.session.prepare(f"""
            DELETE FROM {ks}.file_uploads_by_task
            WHERE task_id = ? AND instructor_id = ? AND uploaded_at = ? AND id = ?
        """)

        # Audit log
        self._get_audit_logs = self.session.prepare(
            f"SELECT * FROM {ks}.audit_logs WHERE instructor_id = ? LIMIT ?"
        )
        self._insert_audit_log = self.session.prepare(f"""
            INSERT INTO {ks}.audit_logs
            (instructor_id, created_at, id, actor_id, actor_role, action,
             target_type, target_id, details)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

    # ==========================================================================
    # Commit
    # ==========================================================================

    def _build_batch(self, uow: UnitOfWork) -> BatchStatement:
        """Translate staged writes into one logged batch."""
        batch = BatchStatement(batch_type=BatchType.LOGGED)
        statements: list[tuple[PreparedStatement, list[Any]]] = []

        for i in uow.instructors.values():
            statements.append(
                (
                    self._upsert_instructor,
                    [
                        i.id,
                        i.user_id,
                        i.name,
                        i.email,
                        i.track,
                        i.cohort,
                        i.overall_progress,
                        i.current_step,
                        i.created_at,
                        i.updated_at,
                    ],
                )
            )
            statements.append((self._upsert_instructor_by_user, [i.user_id, i.id]))

        for s in uow.steps.values():
            statements.append(
                (
                    self._upsert_step,
                    [
                        s.instructor_id,
                        s.step_number,
                        s.id,
                        s.title,
                        s.description,
                        s.total_tasks,
                        s.completed_tasks,
                        s.status.value,
                        s.updated_at,
                    ],
                )
            )
            statements.append(
                (self._upsert_step_lookup, [s.id, s.instructor_id, s.step_number])
            )

        for t in uow.tasks.values():
            statements.append(
                (
                    self._upsert_task,
                    [
                        t.step_id,
                        t.display_order,
                        t.id,
                        t.title,
                        t.description,
                        t.content_type.value,
                        t.content_json(),
                        t.status.value,
                        t.is_enabled,
                        t.created_at,
                        t.updated_at,
                        t.completed_at,
                    ],
                )
            )
            statements.append(
                (self._upsert_task_lookup, [t.id, t.step_id, t.display_order])
            )

        for c in uow.checklist_states.values():
            statements.append(
                (
                    self._upsert_checklist_state,
                    [c.instructor_id, c.task_id, c.item_id, c.checked, c.checked_at],
                )
            )

        for a in uow.quiz_answers.values():
            statements.append(
                (
                    self._upsert_quiz_answer,
                    [
                        a.instructor_id,
                        a.task_id,
                        a.question_id,
                        a.selected_index,
                        a.answer_text,
                        a.is_correct,
                        a.submitted_at,
                    ],
                )
            )

        for u in uow.file_uploads.values():
            statements.append(
                (
                    self._insert_file_upload,
                    [
                        u.id,
                        u.task_id,
                        u.instructor_id,
                        u.file_name,
                        u.file_size,
                        u.mime_type,
                        u.storage_path,
                        u.uploaded_at,
                    ],
                )
            )
            statements.append(
                (
                    self._insert_file_upload_by_task,
                    [
                        u.task_id,
                        u.instructor_id,
                        u.uploaded_at,
                        u.id,
                        u.file_name,
                        u.file_size,
                        u.mime_type,
                        u.storage_path,
                    ],
                )
            )

        for u in uow.deleted_uploads.values():
            statements.append((self._delete_file_upload, [u.id]))
            statements.append(
                (
                    self._delete_file_upload_by_task,
                    [u.task_id, u.instructor_id, u.uploaded_at, u.id],
                )
            )

        for instructor_id, task_id in uow.cleared_task_states:
            statements.append((self._clear_checklist_states, [instructor_id, task_id]))
            statements.append((self._clear_quiz_answers, [instructor_id, task_id]))

        for t in uow.deleted_tasks.values():
            statements.append(
                (self._delete_task, [t.step_id, t.display_order, t.id])
            )
            statements.append((self._delete_task_lookup, [t.id]))

        for s in uow.deleted_steps.values():
            statements.append(
                (self._delete_step, [s.instructor_id, s.step_number, s.id])
            )
            statements.append((self._delete_step_lookup, [s.id]))

        for i in uow.deleted_instructors.values():
            statements.append((self._delete_instructor, [i.id]))
            statements.append((self._delete_instructor_by_user, [i.user_id]))

        for e in uow.audit_entries:
            statements.append(
                (
                    self._insert_audit_log,
                    [
                        e.instructor_id,
                        e.created_at,
                        e.id,
                        e.actor_id,
                        e.actor_role,
                        e.action.value,
                        e.target_type,
                        e.target_id,
                        e.details,
                    ],
                )
            )

        for statement, params in statements:
            batch.add(statement, params)
        return batch

    async def _commit(self, uow: UnitOfWork) -> None:
        batch = self._build_batch(uow)
        await self.session.aexecute(batch)
        logger.debug("transaction_committed", backend="cassandra", writes=uow.size)

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def _fetch_instructor(self, instructor_id: UUID) -> Instructor | None:
        rows = await self.session.aexecute(self._get_instructor, [instructor_id])
        row = rows.one()
        return Instructor.from_row(row) if row else None

    async def _fetch_instructor_by_user(self, user_id: UUID) -> Instructor | None:
        rows = await self.session.aexecute(self._get_instructor_by_user, [user_id])
        row = rows.one()
        if not row:
            return None
        return await self._fetch_instructor(row.instructor_id)

    async def _fetch_instructors(self) -> list[Instructor]:
        rows = await self.session.aexecute(self._get_instructors)
        return [Instructor.from_row(row) for row in rows]

    async def _fetch_step(self, step_id: UUID) -> OnboardingStep | None:
        rows = await self.session.aexecute(self._get_step_lookup, [step_id])
        lookup = rows.one()
        if not lookup:
            return None
        rows = await self.session.aexecute(
            self._get_step, [lookup.instructor_id, lookup.step_number, step_id]
        )
        row = rows.one()
        return OnboardingStep.from_row(row) if row else None

    async def _fetch_steps(self, instructor_id: UUID) -> list[OnboardingStep]:
        rows = await self.session.aexecute(self._get_steps, [instructor_id])
        return [OnboardingStep.from_row(row) for row in rows]

    async def _fetch_task(self, task_id: UUID) -> Task | None:
        rows = await self.session.aexecute(self._get_task_lookup, [task_id])
        lookup = rows.one()
        if not lookup:
            return None
        rows = await self.session.aexecute(
            self._get_task, [lookup.step_id, lookup.display_order, task_id]
        )
        row = rows.one()
        return Task.from_row(row) if row else None

    async def _fetch_tasks(self, step_id: UUID) -> list[Task]:
        rows = await self.session.aexecute(self._get_tasks, [step_id])
        return [Task.from_row(row) for row in rows]

    async def _fetch_checklist_states(
        self, instructor_id: UUID, task_id: UUID
    ) -> list[ChecklistItemState]:
        rows = await self.session.aexecute(
            self._get_checklist_states, [instructor_id, task_id]
        )
        return [ChecklistItemState.from_row(row) for row in rows]

    async def _fetch_quiz_answers(
        self, instructor_id: UUID, task_id: UUID
    ) -> list[QuizAnswer]:
        rows = await self.session.aexecute(
            self._get_quiz_answers, [instructor_id, task_id]
        )
        return [QuizAnswer.from_row(row) for row in rows]

    async def _fetch_file_upload(self, file_id: UUID) -> FileUpload | None:
        rows = await self.session.aexecute(self._get_file_upload, [file_id])
        row = rows.one()
        return FileUpload.from_row(row) if row else None

    async def _fetch_file_uploads(
        self, instructor_id: UUID, task_id: UUID
    ) -> list[FileUpload]:
        rows = await self.session.aexecute(
            self._get_file_uploads_by_task, [task_id, instructor_id]
        )
        return [FileUpload.from_row(row) for row in rows]

    async def _fetch_audit_logs(
        self, instructor_id: UUID, limit: int
    ) -> list[AuditLogEntry]:
        rows = await self.session.aexecute(
            self._get_audit_logs, [instructor_id, limit]
        )
        return [AuditLogEntry.from_row(row) for row in rows]
