"""Database models for instructor onboarding.

Cassandra table definitions and entities for:
- Instructors and their onboarding steps
- Tasks (content stored as a JSON document, see ``content.py``)
- Per-instructor content state: checklist ticks, quiz answers, uploads
- Audit log

Architecture: parent-partitioned tables (steps by instructor, tasks by step)
plus by-id lookup tables, written together in one logged batch.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import PurePosixPath
from typing import Any
from uuid import UUID, uuid4

from .content import TASK_CONTENT_ADAPTER, ContentType, TaskContent


class TaskStatus(str, Enum):
    """Task status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class StepStatus(str, Enum):
    """Step status, derived from the step's enabled tasks."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# Allowed task status changes. PENDING -> COMPLETED is allowed because a
# single interaction (the last checklist tick) can complete a task.
TASK_STATUS_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset(
        {TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, TaskStatus.SKIPPED}
    ),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED, TaskStatus.SKIPPED}),
    TaskStatus.COMPLETED: frozenset({TaskStatus.IN_PROGRESS}),
    TaskStatus.SKIPPED: frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS}),
}


class AuditAction(str, Enum):
    """Actions recorded in the audit log."""

    INSTRUCTOR_CREATED = "instructor_created"
    INSTRUCTOR_UPDATED = "instructor_updated"
    INSTRUCTOR_DELETED = "instructor_deleted"
    STEP_ADDED = "step_added"
    CHECKLIST_ITEM_CHECKED = "checklist_item_checked"
    CHECKLIST_ITEM_UNCHECKED = "checklist_item_unchecked"
    QUIZ_SUBMITTED = "quiz_submitted"
    FILE_UPLOADED = "file_uploaded"
    FILE_DELETED = "file_deleted"
    TASK_STATUS_UPDATED = "task_status_updated"
    TASK_SKIPPED = "task_skipped"
    TASK_ENABLED = "task_enabled"
    TASK_DISABLED = "task_disabled"
    PROGRESS_RECALCULATED = "progress_recalculated"
    TASK_CONTENT_UPDATED = "task_content_updated"
    QUIZ_QUESTION_ADDED = "quiz_question_added"
    QUIZ_QUESTION_UPDATED = "quiz_question_updated"
    QUIZ_QUESTION_DELETED = "quiz_question_deleted"
    CHECKLIST_ITEM_ADDED = "checklist_item_added"
    CHECKLIST_ITEM_UPDATED = "checklist_item_updated"
    CHECKLIST_ITEM_DELETED = "checklist_item_deleted"


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def utc_now() -> datetime:
    """Current time truncated to milliseconds (Cassandra TIMESTAMP precision)."""
    now = datetime.now(UTC)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def file_extension(file_name: str) -> str:
    """Lowercase extension with leading dot, or "" when there is none."""
    return PurePosixPath(file_name.strip()).suffix.lower()


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

INSTRUCTORS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.instructors (
    id UUID PRIMARY KEY,
    user_id UUID,
    name TEXT,
    email TEXT,
    track TEXT,
    cohort TEXT,
    overall_progress INT,
    current_step INT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Lookup: instructor profile of a user (one per user)
INSTRUCTORS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.instructors_by_user (
    user_id UUID PRIMARY KEY,
    instructor_id UUID
)
"""

# Steps of an instructor, clustered in display order
ONBOARDING_STEPS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.onboarding_steps (
    instructor_id UUID,
    step_number INT,
    id UUID,
    title TEXT,
    description TEXT,
    total_tasks INT,
    completed_tasks INT,
    status TEXT,
    updated_at TIMESTAMP,
    PRIMARY KEY ((instructor_id), step_number, id)
) WITH CLUSTERING ORDER BY (step_number ASC, id ASC)
"""

STEPS_BY_ID_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.steps_by_id (
    id UUID PRIMARY KEY,
    instructor_id UUID,
    step_number INT
)
"""

# Tasks of a step, clustered in display order. Content is a JSON document
# tagged by its "kind" field.
TASKS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.tasks (
    step_id UUID,
    display_order INT,
    id UUID,
    title TEXT,
    description TEXT,
    content_type TEXT,
    content TEXT,
    status TEXT,
    is_enabled BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    completed_at TIMESTAMP,
    PRIMARY KEY ((step_id), display_order, id)
) WITH CLUSTERING ORDER BY (display_order ASC, id ASC)
"""

TASKS_BY_ID_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.tasks_by_id (
    id UUID PRIMARY KEY,
    step_id UUID,
    display_order INT
)
"""

CHECKLIST_STATES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.checklist_states (
    instructor_id UUID,
    task_id UUID,
    item_id UUID,
    checked BOOLEAN,
    checked_at TIMESTAMP,
    PRIMARY KEY ((instructor_id, task_id), item_id)
)
"""

# One answer per (instructor, question); resubmission overwrites
QUIZ_ANSWERS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.quiz_answers (
    instructor_id UUID,
    task_id UUID,
    question_id UUID,
    selected_index INT,
    answer_text TEXT,
    is_correct BOOLEAN,
    submitted_at TIMESTAMP,
    PRIMARY KEY ((instructor_id, task_id), question_id)
)
"""

FILE_UPLOADS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.file_uploads (
    id UUID PRIMARY KEY,
    task_id UUID,
    instructor_id UUID,
    file_name TEXT,
    file_size BIGINT,
    mime_type TEXT,
    storage_path TEXT,
    uploaded_at TIMESTAMP
)
"""

# Lookup: uploads of an instructor for a task, oldest first
FILE_UPLOADS_BY_TASK_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.file_uploads_by_task (
    task_id UUID,
    instructor_id UUID,
    uploaded_at TIMESTAMP,
    id UUID,
    file_name TEXT,
    file_size BIGINT,
    mime_type TEXT,
    storage_path TEXT,
    PRIMARY KEY ((task_id, instructor_id), uploaded_at, id)
) WITH CLUSTERING ORDER BY (uploaded_at ASC, id ASC)
"""

AUDIT_LOGS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.audit_logs (
    instructor_id UUID,
    created_at TIMESTAMP,
    id UUID,
    actor_id UUID,
    actor_role TEXT,
    action TEXT,
    target_type TEXT,
    target_id UUID,
    details MAP<TEXT, TEXT>,
    PRIMARY KEY ((instructor_id), created_at, id)
) WITH CLUSTERING ORDER BY (created_at DESC, id ASC)
"""

# All CQL statements for table setup
ONBOARDING_TABLES_CQL = [
    INSTRUCTORS_TABLE_CQL,
    INSTRUCTORS_BY_USER_TABLE_CQL,
    ONBOARDING_STEPS_TABLE_CQL,
    STEPS_BY_ID_TABLE_CQL,
    TASKS_TABLE_CQL,
    TASKS_BY_ID_TABLE_CQL,
    CHECKLIST_STATES_TABLE_CQL,
    QUIZ_ANSWERS_TABLE_CQL,
    FILE_UPLOADS_TABLE_CQL,
    FILE_UPLOADS_BY_TASK_TABLE_CQL,
    AUDIT_LOGS_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Instructor:
    """Instructor going through onboarding.

    ``overall_progress`` and ``current_step`` are aggregates maintained by
    the progress engine; they are never set directly by callers.
    """

    id: UUID
    user_id: UUID
    name: str
    email: str
    track: str | None = None
    cohort: str | None = None
    overall_progress: int = 0
    current_step: int = 1
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row: Any) -> "Instructor":
        """Create Instructor from Cassandra row."""
        return cls(
            id=row.id,
            user_id=row.user_id,
            name=row.name or "",
            email=row.email or "",
            track=row.track,
            cohort=row.cohort,
            overall_progress=row.overall_progress or 0,
            current_step=row.current_step or 1,
            created_at=ensure_utc_aware(row.created_at) or utc_now(),
            updated_at=ensure_utc_aware(row.updated_at) or utc_now(),
        )


@dataclass
class OnboardingStep:
    """Ordered phase of an instructor's onboarding plan."""

    id: UUID
    instructor_id: UUID
    step_number: int
    title: str
    description: str | None = None
    total_tasks: int = 0
    completed_tasks: int = 0
    status: StepStatus = StepStatus.PENDING
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def progress_percent(self) -> int:
        """Share of completed tasks, rounded down."""
        if self.total_tasks <= 0:
            return 0
        return self.completed_tasks * 100 // self.total_tasks

    @classmethod
    def from_row(cls, row: Any) -> "OnboardingStep":
        """Create OnboardingStep from Cassandra row."""
        return cls(
            id=row.id,
            instructor_id=row.instructor_id,
            step_number=row.step_number,
            title=row.title or "",
            description=row.description,
            total_tasks=row.total_tasks or 0,
            completed_tasks=row.completed_tasks or 0,
            status=StepStatus(row.status or StepStatus.PENDING.value),
            updated_at=ensure_utc_aware(row.updated_at) or utc_now(),
        )


@dataclass
class Task:
    """Unit of onboarding work with exactly one content variant."""

    id: UUID
    step_id: UUID
    display_order: int
    title: str
    content: TaskContent
    description: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    is_enabled: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None

    @property
    def content_type(self) -> ContentType:
        return ContentType(self.content.kind)

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def content_json(self) -> str:
        """Serialize content for the ``content`` TEXT column."""
        return TASK_CONTENT_ADAPTER.dump_json(self.content).decode()

    @classmethod
    def from_row(cls, row: Any) -> "Task":
        """Create Task from Cassandra row."""
        return cls(
            id=row.id,
            step_id=row.step_id,
            display_order=row.display_order,
            title=row.title or "",
            description=row.description,
            content=TASK_CONTENT_ADAPTER.validate_json(row.content),
            status=TaskStatus(row.status or TaskStatus.PENDING.value),
            is_enabled=row.is_enabled if row.is_enabled is not None else True,
            created_at=ensure_utc_aware(row.created_at) or utc_now(),
            updated_at=ensure_utc_aware(row.updated_at) or utc_now(),
            completed_at=ensure_utc_aware(row.completed_at),
        )


@dataclass
class ChecklistItemState:
    """Checked state of one checklist item for one instructor."""

    instructor_id: UUID
    task_id: UUID
    item_id: UUID
    checked: bool = False
    checked_at: datetime | None = None

    @property
    def key(self) -> tuple[UUID, UUID, UUID]:
        return (self.instructor_id, self.task_id, self.item_id)

    @classmethod
    def from_row(cls, row: Any) -> "ChecklistItemState":
        """Create ChecklistItemState from Cassandra row."""
        return cls(
            instructor_id=row.instructor_id,
            task_id=row.task_id,
            item_id=row.item_id,
            checked=bool(row.checked),
            checked_at=ensure_utc_aware(row.checked_at),
        )


@dataclass
class QuizAnswer:
    """Stored answer of one instructor to one quiz question.

    For subjective questions ``is_correct`` is the informational keyword
    match, or None when the question defines no keywords.
    """

    instructor_id: UUID
    task_id: UUID
    question_id: UUID
    selected_index: int | None = None
    answer_text: str | None = None
    is_correct: bool | None = None
    submitted_at: datetime = field(default_factory=utc_now)

    @property
    def key(self) -> tuple[UUID, UUID, UUID]:
        return (self.instructor_id, self.task_id, self.question_id)

    @classmethod
    def from_row(cls, row: Any) -> "QuizAnswer":
        """Create QuizAnswer from Cassandra row."""
        return cls(
            instructor_id=row.instructor_id,
            task_id=row.task_id,
            question_id=row.question_id,
            selected_index=row.selected_index,
            answer_text=row.answer_text,
            is_correct=row.is_correct,
            submitted_at=ensure_utc_aware(row.submitted_at) or utc_now(),
        )


@dataclass
class FileUpload:
    """Metadata of a file an instructor uploaded for a task.

    The bytes live in external storage; ``storage_path`` points at them.
    """

    id: UUID
    task_id: UUID
    instructor_id: UUID
    file_name: str
    file_size: int
    mime_type: str | None
    storage_path: str
    uploaded_at: datetime = field(default_factory=utc_now)

    @property
    def extension(self) -> str:
        return file_extension(self.file_name)

    @classmethod
    def from_row(cls, row: Any) -> "FileUpload":
        """Create FileUpload from Cassandra row (main or by-task table)."""
        return cls(
            id=row.id,
            task_id=row.task_id,
            instructor_id=row.instructor_id,
            file_name=row.file_name or "",
            file_size=row.file_size or 0,
            mime_type=row.mime_type,
            storage_path=row.storage_path or "",
            uploaded_at=ensure_utc_aware(row.uploaded_at) or utc_now(),
        )


@dataclass
class AuditLogEntry:
    """Who did what to whose onboarding plan."""

    instructor_id: UUID
    actor_id: UUID
    actor_role: str
    action: AuditAction
    target_type: str
    target_id: UUID
    details: dict[str, str] = field(default_factory=dict)
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row: Any) -> "AuditLogEntry":
        """Create AuditLogEntry from Cassandra row."""
        return cls(
            instructor_id=row.instructor_id,
            actor_id=row.actor_id,
            actor_role=row.actor_role or "",
            action=AuditAction(row.action),
            target_type=row.target_type or "",
            target_id=row.target_id,
            details=dict(row.details or {}),
            id=row.id,
            created_at=ensure_utc_aware(row.created_at) or utc_now(),
        )
