"""Pydantic schemas for onboarding.

Request and response models for:
- Instructor provisioning and administration
- Task content editing
- Content interactions (checklist, quiz, file upload)
- Task administration
- Dashboards and audit log
"""

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from .content import (
    MAX_TASK_CONTENT_BYTES,
    ContentType,
    QuestionType,
    QuizQuestion,
    TaskContent,
    content_size,
)
from .models import (
    AuditAction,
    AuditLogEntry,
    FileUpload,
    Instructor,
    OnboardingStep,
    StepStatus,
    Task,
    TaskStatus,
)


# ==============================================================================
# Provisioning Schemas
# ==============================================================================

# A plan is written in one logged batch. These bounds keep that batch well
# under Cassandra's default batch_size_fail_threshold (50 KiB).
MAX_PLAN_STEPS = 20
MAX_PLAN_TASKS = 50
MAX_PLAN_BYTES = 32 * 1024


class TaskDefinition(BaseModel):
    """Task of a new onboarding plan."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    content: TaskContent
    is_enabled: bool = True

    @model_validator(mode="after")
    def validate_content_size(self) -> "TaskDefinition":
        if content_size(self.content) > MAX_TASK_CONTENT_BYTES:
            msg = f"Task content exceeds {MAX_TASK_CONTENT_BYTES} bytes"
            raise ValueError(msg)
        return self


class StepDefinition(BaseModel):
    """Step of an onboarding plan; tasks keep request order."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    tasks: list[TaskDefinition] = Field(default_factory=list, max_length=MAX_PLAN_TASKS)

    @model_validator(mode="after")
    def validate_size(self) -> "StepDefinition":
        if len(self.model_dump_json()) > MAX_PLAN_BYTES:
            msg = f"Step definition exceeds {MAX_PLAN_BYTES} bytes"
            raise ValueError(msg)
        return self


class CreateInstructorRequest(BaseModel):
    """Create an instructor with their onboarding plan."""

    user_id: UUID = Field(..., description="User account of the instructor")
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    track: str | None = Field(None, max_length=100)
    cohort: str | None = Field(None, max_length=100)
    steps: list[StepDefinition] = Field(default_factory=list, max_length=MAX_PLAN_STEPS)

    @model_validator(mode="after")
    def validate_plan_size(self) -> "CreateInstructorRequest":
        task_count = sum(len(step.tasks) for step in self.steps)
        if task_count > MAX_PLAN_TASKS:
            msg = f"A plan holds at most {MAX_PLAN_TASKS} tasks"
            raise ValueError(msg)
        if len(self.model_dump_json()) > MAX_PLAN_BYTES:
            msg = f"Plan exceeds {MAX_PLAN_BYTES} bytes"
            raise ValueError(msg)
        return self


class UpdateInstructorRequest(BaseModel):
    """Profile fields to change; fields left out are kept."""

    name: str | None = Field(None, min_length=2, max_length=100)
    email: EmailStr | None = None
    track: str | None = Field(None, max_length=100)
    cohort: str | None = Field(None, max_length=100)


# ==============================================================================
# Entity Responses
# ==============================================================================


class InstructorResponse(BaseModel):
    """Instructor with progress aggregates."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    name: str
    email: str
    track: str | None = None
    cohort: str | None = None
    overall_progress: int = Field(description="0-100 percentage of completed steps")
    current_step: int = Field(description="1-based index of the current step")
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, entity: Instructor) -> "InstructorResponse":
        return cls.model_validate(entity)


class StepResponse(BaseModel):
    """Step counters and status."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    step_number: int
    title: str
    description: str | None = None
    total_tasks: int
    completed_tasks: int
    status: StepStatus
    progress_percent: int

    @classmethod
    def from_entity(cls, entity: OnboardingStep) -> "StepResponse":
        return cls.model_validate(entity)


class TaskResponse(BaseModel):
    """Task without content details."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    step_id: UUID
    display_order: int
    title: str
    description: str | None = None
    content_type: ContentType
    status: TaskStatus
    is_enabled: bool
    completed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: Task) -> "TaskResponse":
        return cls.model_validate(entity)


class FileUploadResponse(BaseModel):
    """Registered upload."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    task_id: UUID
    file_name: str
    file_size: int
    mime_type: str | None = None
    storage_path: str
    uploaded_at: datetime

    @classmethod
    def from_entity(cls, entity: FileUpload) -> "FileUploadResponse":
        return cls.model_validate(entity)


class ProgressSummary(BaseModel):
    """Aggregates after an action, so clients need not re-read."""

    step_id: UUID
    step_status: StepStatus
    completed_tasks: int
    total_tasks: int
    overall_progress: int
    current_step: int

    @classmethod
    def from_entities(
        cls, step: OnboardingStep, instructor: Instructor
    ) -> "ProgressSummary":
        return cls(
            step_id=step.id,
            step_status=step.status,
            completed_tasks=step.completed_tasks,
            total_tasks=step.total_tasks,
            overall_progress=instructor.overall_progress,
            current_step=instructor.current_step,
        )


# ==============================================================================
# Content State (dashboard view of a task)
# ==============================================================================


class ChecklistItemView(BaseModel):
    id: UUID
    label: str
    checked: bool = False
    checked_at: datetime | None = None


class ChecklistState(BaseModel):
    kind: Literal["checklist"] = "checklist"
    items: list[ChecklistItemView]
    checked_count: int
    total_items: int


class QuizQuestionView(BaseModel):
    """Question with the instructor's answer; the answer key is never included."""

    id: UUID
    question: str
    type: QuestionType
    options: list[str] = Field(default_factory=list)
    answer_guide: str | None = None
    answered: bool = False
    selected_index: int | None = None
    answer_text: str | None = None
    is_correct: bool | None = None


class QuizState(BaseModel):
    kind: Literal["document_quiz", "video_quiz"]
    document_url: str | None = None
    document_title: str | None = None
    video_url: str | None = None
    duration_seconds: int | None = None
    questions: list[QuizQuestionView]
    answered_count: int
    correct_count: int


class FileRequirementView(BaseModel):
    id: UUID
    placeholder: str
    file_name_hint: str | None = None
    allowed_extensions: list[str] = Field(default_factory=list)
    required: bool
    satisfied: bool


class FileUploadState(BaseModel):
    kind: Literal["file_upload"] = "file_upload"
    instructions: str | None = None
    requirements: list[FileRequirementView]
    uploads: list[FileUploadResponse]


TaskContentState = Annotated[
    ChecklistState | QuizState | FileUploadState,
    Field(discriminator="kind"),
]


# ==============================================================================
# Content Interaction Schemas
# ==============================================================================


class ChecklistToggleRequest(BaseModel):
    checked: bool


class ChecklistToggleResponse(BaseModel):
    task: TaskResponse
    item: ChecklistItemView
    progress: ProgressSummary


class ObjectiveAnswerInput(BaseModel):
    question_id: UUID
    selected_index: int = Field(..., ge=0)


class SubjectiveAnswerInput(BaseModel):
    question_id: UUID
    answer_text: str = Field(..., max_length=5000)


class QuizSubmissionRequest(BaseModel):
    """Answers to some or all questions of a quiz task."""

    objective_answers: list[ObjectiveAnswerInput] = Field(default_factory=list)
    subjective_answers: list[SubjectiveAnswerInput] = Field(default_factory=list)


class QuestionResult(BaseModel):
    """Outcome for one question after the submission.

    ``accepted`` counts toward completion: a correct objective answer or any
    subjective answer. For subjective questions ``is_correct`` is an
    informational keyword match.
    """

    question_id: UUID
    type: QuestionType
    answered: bool
    accepted: bool
    is_correct: bool | None = None


class QuizSubmissionResponse(BaseModel):
    task: TaskResponse
    all_correct: bool
    correct_count: int
    total_questions: int
    results: list[QuestionResult]
    progress: ProgressSummary


class FileUploadRequest(BaseModel):
    """Metadata of a file already written to storage."""

    file_name: str = Field(..., min_length=1, max_length=255)
    file_size: int = Field(..., gt=0, description="Size in bytes")
    mime_type: str | None = Field(None, max_length=100)
    storage_path: str = Field(..., min_length=1, max_length=1024)


class FileUploadActionResponse(BaseModel):
    task: TaskResponse
    upload: FileUploadResponse
    progress: ProgressSummary


# ==============================================================================
# Task Administration Schemas
# ==============================================================================


class TaskStatusUpdateRequest(BaseModel):
    status: TaskStatus


class TaskEnabledRequest(BaseModel):
    enabled: bool


class TaskAdminResponse(BaseModel):
    task: TaskResponse
    progress: ProgressSummary


# ==============================================================================
# Content Editing Schemas
# ==============================================================================


class TaskContentUpdateRequest(BaseModel):
    """New title, description or content of a task.

    The content must keep the task's kind. Checklist items and quiz
    questions keep the instructor's state only when their ids are kept.
    """

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)
    content: TaskContent | None = None

    @model_validator(mode="after")
    def validate_content_size(self) -> "TaskContentUpdateRequest":
        if self.content is None:
            return self
        if content_size(self.content) > MAX_TASK_CONTENT_BYTES:
            msg = f"Task content exceeds {MAX_TASK_CONTENT_BYTES} bytes"
            raise ValueError(msg)
        return self


class QuizQuestionRequest(QuizQuestion):
    """Question body; the server assigns the id."""

    def to_question(self, question_id: UUID) -> QuizQuestion:
        return QuizQuestion.model_validate({**self.model_dump(), "id": question_id})


class ChecklistItemRequest(BaseModel):
    label: str = Field(..., min_length=1, max_length=500)


class TaskContentResponse(BaseModel):
    """Task after a content edit, with the full content including answer keys."""

    task: TaskResponse
    content: TaskContent
    progress: ProgressSummary


# ==============================================================================
# Listing Schemas
# ==============================================================================


class InstructorListResponse(BaseModel):
    items: list[InstructorResponse]
    total: int


class FileUploadListResponse(BaseModel):
    items: list[FileUploadResponse]
    total: int


# ==============================================================================
# Dashboard Schemas
# ==============================================================================


class TaskView(TaskResponse):
    state: TaskContentState


class StepView(StepResponse):
    tasks: list[TaskView] = Field(default_factory=list)


class DashboardResponse(BaseModel):
    """Instructor aggregates with steps, tasks and content state."""

    instructor: InstructorResponse
    steps: list[StepView]


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    instructor_id: UUID
    actor_id: UUID
    actor_role: str
    action: AuditAction
    target_type: str
    target_id: UUID
    details: dict[str, str] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_entity(cls, entity: AuditLogEntry) -> "AuditLogResponse":
        return cls.model_validate(entity)


class AuditLogListResponse(BaseModel):
    items: list[AuditLogResponse]
    total: int
