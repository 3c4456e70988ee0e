"""Task content editing by program managers.

Business logic for:
- Replacing a task's title, description or content
- Adding, changing and removing quiz questions
- Adding, relabelling and removing checklist items

Edits that change questions, items or requirements re-evaluate the task's
completion predicate with reversion allowed for all content types, since
they change what completion means: adding a question or an item to a
completed task reopens it. Title and label edits leave the status alone.
State recorded against removed questions or items stays stored but no
longer counts.
"""

from uuid import UUID, uuid4

import structlog

from onboarding_api.auth.schemas import Principal

from .access import lock_task_owner, require_pm
from .audit import record_audit
from .content import (
    MAX_TASK_CONTENT_BYTES,
    ChecklistContent,
    ChecklistItem,
    ContentType,
    QuizContent,
    content_size,
)
from .exceptions import (
    InvalidContentError,
    InvalidContentTypeError,
    ResourceNotFoundError,
)
from .handlers import HandlerRegistry
from .models import AuditAction, OnboardingStep, Task, utc_now
from .repository import OnboardingRepository
from .schemas import (
    ProgressSummary,
    QuizQuestionRequest,
    TaskContentResponse,
    TaskContentUpdateRequest,
    TaskResponse,
)
from .service import ProgressService


logger = structlog.get_logger(__name__)

QUIZ_TYPES = frozenset({ContentType.DOCUMENT_QUIZ, ContentType.VIDEO_QUIZ})
CHECKLIST_TYPES = frozenset({ContentType.CHECKLIST})


class ContentAdminService:
    """PM-only edits of task content."""

    def __init__(
        self,
        repository: OnboardingRepository,
        progress_service: ProgressService,
        handlers: HandlerRegistry,
    ):
        self.repository = repository
        self.progress_service = progress_service
        self.handlers = handlers

    async def _load(
        self, task_id: UUID, content_types: frozenset[ContentType] | None = None
    ) -> tuple[Task, OnboardingStep]:
        task, step = await lock_task_owner(self.repository, task_id)
        if content_types is not None and task.content_type not in content_types:
            raise InvalidContentTypeError(
                f"Task is of type {task.content_type.value}"
            )
        return task, step

    async def _apply(
        self,
        principal: Principal,
        task: Task,
        step: OnboardingStep,
        action: AuditAction,
        target_type: str,
        target_id: UUID,
        reevaluate: bool = True,
        **details: object,
    ) -> TaskContentResponse:
        if content_size(task.content) > MAX_TASK_CONTENT_BYTES:
            raise InvalidContentError(
                f"Task content exceeds {MAX_TASK_CONTENT_BYTES} bytes"
            )

        previous = None
        if reevaluate:
            handler = self.handlers.for_task(task)
            previous = await handler.refresh_status(
                step.instructor_id, task, revertible=True
            )

        task.updated_at = utc_now()
        await self.repository.save_task(task)
        step, instructor = await self.progress_service.on_task_status_changed(task)

        await record_audit(
            self.repository,
            principal,
            step.instructor_id,
            action,
            target_type,
            target_id,
            task_id=task.id if target_type != "task" else None,
            previous_status=previous,
            **details,
        )

        return TaskContentResponse(
            task=TaskResponse.from_entity(task),
            content=task.content,
            progress=ProgressSummary.from_entities(step, instructor),
        )

    # ==========================================================================
    # Whole Task
    # ==========================================================================

    async def update_task_content(
        self,
        principal: Principal,
        task_id: UUID,
        request: TaskContentUpdateRequest,
    ) -> TaskContentResponse:
        """Replace the fields given in the request.

        Raises:
            InvalidContentTypeError: If the new content has another kind.
        """
        require_pm(principal)
        fields = sorted(request.model_fields_set & {"title", "description", "content"})

        async with self.repository.transaction():
            task, step = await self._load(task_id)
            content_changed = (
                request.content is not None and request.content != task.content
            )

            if request.content is not None:
                if request.content.kind != task.content.kind:
                    raise InvalidContentTypeError(
                        f"Task is of type {task.content_type.value}; "
                        "its content kind cannot change"
                    )
                task.content = request.content
            if request.title is not None:
                task.title = request.title
            if "description" in request.model_fields_set:
                task.description = request.description

            response = await self._apply(
                principal,
                task,
                step,
                AuditAction.TASK_CONTENT_UPDATED,
                "task",
                task.id,
                reevaluate=content_changed,
                fields=",".join(fields),
            )

        logger.info(
            "task_content_updated",
            task_id=str(task_id),
            fields=fields,
            task_status=response.task.status.value,
        )
        return response

    # ==========================================================================
    # Quiz Questions
    # ==========================================================================

    async def add_question(
        self,
        principal: Principal,
        task_id: UUID,
        request: QuizQuestionRequest,
    ) -> TaskContentResponse:
        """Append a question to a document or video quiz."""
        require_pm(principal)

        async with self.repository.transaction():
            task, step = await self._load(task_id, QUIZ_TYPES)
            content: QuizContent = task.content
            question = request.to_question(uuid4())
            task.content = content.model_copy(
                update={"questions": [*content.questions, question]}
            )

            response = await self._apply(
                principal,
                task,
                step,
                AuditAction.QUIZ_QUESTION_ADDED,
                "question",
                question.id,
            )

        logger.info(
            "quiz_question_added",
            task_id=str(task_id),
            question_id=str(question.id),
            task_status=response.task.status.value,
        )
        return response

    async def update_question(
        self,
        principal: Principal,
        task_id: UUID,
        question_id: UUID,
        request: QuizQuestionRequest,
    ) -> TaskContentResponse:
        """Replace a question in place; stored answers are graded against it.

        Raises:
            ResourceNotFoundError: If the question is not part of the quiz.
        """
        require_pm(principal)

        async with self.repository.transaction():
            task, step = await self._load(task_id, QUIZ_TYPES)
            content: QuizContent = task.content
            if not any(q.id == question_id for q in content.questions):
                raise ResourceNotFoundError("Question not found")

            question = request.to_question(question_id)
            task.content = content.model_copy(
                update={
                    "questions": [
                        question if q.id == question_id else q
                        for q in content.questions
                    ]
                }
            )

            response = await self._apply(
                principal,
                task,
                step,
                AuditAction.QUIZ_QUESTION_UPDATED,
                "question",
                question_id,
            )

        logger.info(
            "quiz_question_updated",
            task_id=str(task_id),
            question_id=str(question_id),
            task_status=response.task.status.value,
        )
        return response

    async def delete_question(
        self,
        principal: Principal,
        task_id: UUID,
        question_id: UUID,
    ) -> TaskContentResponse:
        """Remove a question.

        Raises:
            ResourceNotFoundError: If the question is not part of the quiz.
            InvalidContentError: If it is the last question.
        """
        require_pm(principal)

        async with self.repository.transaction():
            task, step = await self._load(task_id, QUIZ_TYPES)
            content: QuizContent = task.content
            remaining = [q for q in content.questions if q.id != question_id]
            if len(remaining) == len(content.questions):
                raise ResourceNotFoundError("Question not found")
            if not remaining:
                raise InvalidContentError("A quiz needs at least one question")
            task.content = content.model_copy(update={"questions": remaining})

            response = await self._apply(
                principal,
                task,
                step,
                AuditAction.QUIZ_QUESTION_DELETED,
                "question",
                question_id,
            )

        logger.info(
            "quiz_question_deleted",
            task_id=str(task_id),
            question_id=str(question_id),
            task_status=response.task.status.value,
        )
        return response

    # ==========================================================================
    # Checklist Items
    # ==========================================================================

    async def add_item(
        self, principal: Principal, task_id: UUID, label: str
    ) -> TaskContentResponse:
        """Append an unchecked item to a checklist."""
        require_pm(principal)

        async with self.repository.transaction():
            task, step = await self._load(task_id, CHECKLIST_TYPES)
            content: ChecklistContent = task.content
            item = ChecklistItem(label=label)
            task.content = content.model_copy(update={"items": [*content.items, item]})

            response = await self._apply(
                principal,
                task,
                step,
                AuditAction.CHECKLIST_ITEM_ADDED,
                "checklist_item",
                item.id,
                label=label,
            )

        logger.info(
            "checklist_item_added",
            task_id=str(task_id),
            item_id=str(item.id),
            task_status=response.task.status.value,
        )
        return response

    async def update_item_label(
        self,
        principal: Principal,
        task_id: UUID,
        item_id: UUID,
        label: str,
    ) -> TaskContentResponse:
        """Relabel an item; whether it is checked does not change."""
        require_pm(principal)

        async with self.repository.transaction():
            task, step = await self._load(task_id, CHECKLIST_TYPES)
            content: ChecklistContent = task.content
            if not any(item.id == item_id for item in content.items):
                raise ResourceNotFoundError("Checklist item not found")

            task.content = content.model_copy(
                update={
                    "items": [
                        ChecklistItem(id=item.id, label=label)
                        if item.id == item_id
                        else item
                        for item in content.items
                    ]
                }
            )

            response = await self._apply(
                principal,
                task,
                step,
                AuditAction.CHECKLIST_ITEM_UPDATED,
                "checklist_item",
                item_id,
                reevaluate=False,
                label=label,
            )

        logger.info("checklist_item_updated", task_id=str(task_id), item_id=str(item_id))
        return response

    async def delete_item(
        self, principal: Principal, task_id: UUID, item_id: UUID
    ) -> TaskContentResponse:
        """Remove an item; removing the only unchecked one completes the task.

        Raises:
            ResourceNotFoundError: If the item is not part of the checklist.
            InvalidContentError: If it is the last item.
        """
        require_pm(principal)

        async with self.repository.transaction():
            task, step = await self._load(task_id, CHECKLIST_TYPES)
            content: ChecklistContent = task.content
            remaining = [item for item in content.items if item.id != item_id]
            if len(remaining) == len(content.items):
                raise ResourceNotFoundError("Checklist item not found")
            if not remaining:
                raise InvalidContentError("A checklist needs at least one item")
            task.content = content.model_copy(update={"items": remaining})

            response = await self._apply(
                principal,
                task,
                step,
                AuditAction.CHECKLIST_ITEM_DELETED,
                "checklist_item",
                item_id,
            )

        logger.info(
            "checklist_item_deleted",
            task_id=str(task_id),
            item_id=str(item_id),
            task_status=response.task.status.value,
        )
        return response
