"""Task content variants.

A task carries exactly one content variant, tagged by ``kind``:
document + quiz, video + quiz, file upload or checklist. Each variant only
holds its own fields; the matching content handler owns its semantics.
"""

from enum import Enum
from typing import Annotated, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator


class ContentType(str, Enum):
    """Content variant of a task."""

    DOCUMENT_QUIZ = "document_quiz"
    VIDEO_QUIZ = "video_quiz"
    FILE_UPLOAD = "file_upload"
    CHECKLIST = "checklist"


class QuestionType(str, Enum):
    """Quiz question type."""

    OBJECTIVE = "objective"  # graded by option index
    SUBJECTIVE = "subjective"  # free text, accepted once answered


# ==============================================================================
# Content Parts
# ==============================================================================


class ChecklistItem(BaseModel):
    """Single item of a checklist."""

    id: UUID = Field(default_factory=uuid4)
    label: str = Field(..., min_length=1, max_length=500)


class QuizQuestion(BaseModel):
    """Quiz question attached to a document or video."""

    id: UUID = Field(default_factory=uuid4)
    question: str = Field(..., min_length=1)
    type: QuestionType = QuestionType.OBJECTIVE
    options: list[str] = Field(default_factory=list)
    correct_answer_index: int | None = Field(
        None, description="Index into options (objective only)"
    )
    correct_answer_text: str | None = Field(
        None, description="Comma-separated keywords (subjective only)"
    )
    answer_guide: str | None = None

    @model_validator(mode="after")
    def validate_answer_key(self) -> "QuizQuestion":
        if self.type == QuestionType.OBJECTIVE:
            min_options = 2
            if len(self.options) < min_options:
                msg = "Objective questions need at least two options"
                raise ValueError(msg)
            if self.correct_answer_index is None or not (
                0 <= self.correct_answer_index < len(self.options)
            ):
                msg = "correct_answer_index must point at one of the options"
                raise ValueError(msg)
        return self

    @property
    def keywords(self) -> list[str]:
        """Lowercased keywords of a subjective answer key."""
        if not self.correct_answer_text:
            return []
        return [
            keyword.strip().lower()
            for keyword in self.correct_answer_text.split(",")
            if keyword.strip()
        ]


class FileRequirement(BaseModel):
    """A file slot the instructor has to fill."""

    id: UUID = Field(default_factory=uuid4)
    placeholder: str = Field(..., min_length=1, description="Slot label")
    file_name_hint: str | None = None
    allowed_extensions: list[str] = Field(
        default_factory=list, description="Accepted extensions, empty = any"
    )
    required: bool = True

    @field_validator("allowed_extensions")
    @classmethod
    def normalize_extensions(cls, v: list[str]) -> list[str]:
        cleaned = (ext.strip().lower() for ext in v)
        return [ext if ext.startswith(".") else f".{ext}" for ext in cleaned if ext]

    def accepts(self, extension: str) -> bool:
        """Check if a file with this extension fits the slot."""
        return not self.allowed_extensions or extension in self.allowed_extensions


# ==============================================================================
# Content Variants
# ==============================================================================


class DocumentQuizContent(BaseModel):
    """Read a document, then answer its quiz."""

    kind: Literal["document_quiz"] = "document_quiz"
    document_url: str | None = None
    document_title: str | None = None
    questions: list[QuizQuestion] = Field(..., min_length=1)


class VideoQuizContent(BaseModel):
    """Watch a video, then answer its quiz."""

    kind: Literal["video_quiz"] = "video_quiz"
    video_url: str | None = None
    duration_seconds: int | None = Field(None, ge=0)
    questions: list[QuizQuestion] = Field(..., min_length=1)


class FileUploadContent(BaseModel):
    """Upload files matching the listed requirements."""

    kind: Literal["file_upload"] = "file_upload"
    instructions: str | None = None
    requirements: list[FileRequirement] = Field(..., min_length=1)


class ChecklistContent(BaseModel):
    """Tick every item of a checklist."""

    kind: Literal["checklist"] = "checklist"
    items: list[ChecklistItem] = Field(..., min_length=1)


QuizContent = DocumentQuizContent | VideoQuizContent

TaskContent = Annotated[
    DocumentQuizContent | VideoQuizContent | FileUploadContent | ChecklistContent,
    Field(discriminator="kind"),
]

TASK_CONTENT_ADAPTER = TypeAdapter(TaskContent)


# Content is stored as JSON text on the task row
MAX_TASK_CONTENT_BYTES = 16 * 1024


def content_size(content: TaskContent) -> int:
    """Size in bytes of the stored form of a content variant."""
    return len(TASK_CONTENT_ADAPTER.dump_json(content))
