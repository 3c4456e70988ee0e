"""Content handlers and their registry."""

from onboarding_api.config.settings import Settings

from ..content import ContentType
from ..exceptions import InvalidContentTypeError
from ..models import Task
from ..repository import OnboardingRepository
from ..service import ProgressService
from .base import ContentHandler
from .checklist import ChecklistHandler
from .file_upload import FileUploadHandler, match_requirements
from .quiz import QuizHandler


class HandlerRegistry:
    """Dispatches tasks to the handler of their content type."""

    def __init__(self, handlers: list[ContentHandler]):
        self._handlers: dict[ContentType, ContentHandler] = {}
        for handler in handlers:
            for content_type in handler.content_types:
                self._handlers[content_type] = handler

        self.checklist: ChecklistHandler = self._handlers[ContentType.CHECKLIST]
        self.quiz: QuizHandler = self._handlers[ContentType.DOCUMENT_QUIZ]
        self.file_upload: FileUploadHandler = self._handlers[ContentType.FILE_UPLOAD]

    def for_task(self, task: Task) -> ContentHandler:
        handler = self._handlers.get(task.content_type)
        if handler is None:
            raise InvalidContentTypeError(
                f"No handler for content type {task.content_type.value}"
            )
        return handler

    @classmethod
    def create(
        cls,
        repository: OnboardingRepository,
        progress_service: ProgressService,
        settings: Settings,
    ) -> "HandlerRegistry":
        return cls(
            [
                ChecklistHandler(repository, progress_service),
                QuizHandler(repository, progress_service),
                FileUploadHandler(repository, progress_service, settings),
            ]
        )


__all__ = [
    "ChecklistHandler",
    "ContentHandler",
    "FileUploadHandler",
    "HandlerRegistry",
    "QuizHandler",
    "match_requirements",
]
