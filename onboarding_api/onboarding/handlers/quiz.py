"""Document and video quiz tasks.

A quiz is complete when every question has a stored answer and every
objective answer picks the correct option. Subjective answers are accepted
once given; their keyword match is recorded for reviewers only.

Completion is sticky: a later, worse resubmission never reopens the task.
"""

from uuid import UUID

import structlog

from onboarding_api.auth.schemas import Principal

from ..audit import record_audit
from ..content import ContentType, QuestionType, QuizContent, QuizQuestion
from ..exceptions import InvalidSubmissionError
from ..models import AuditAction, QuizAnswer, Task, utc_now
from ..schemas import (
    QuestionResult,
    QuizQuestionView,
    QuizState,
    QuizSubmissionRequest,
    QuizSubmissionResponse,
    TaskResponse,
)
from .base import ContentHandler


logger = structlog.get_logger(__name__)


def keyword_match(question: QuizQuestion, answer_text: str | None) -> bool | None:
    """Whether a subjective answer mentions any answer-key keyword.

    Returns None when the question has no keywords to compare against.
    """
    keywords = question.keywords
    if not keywords:
        return None
    normalized = (answer_text or "").strip().lower()
    if not normalized:
        return False
    return any(keyword in normalized for keyword in keywords)


def is_accepted(question: QuizQuestion, answer: QuizAnswer | None) -> bool:
    """Whether a stored answer counts toward completion."""
    if answer is None:
        return False
    if question.type == QuestionType.OBJECTIVE:
        return answer.selected_index == question.correct_answer_index
    return bool(answer.answer_text and answer.answer_text.strip())


class QuizHandler(ContentHandler):
    """Grades quiz submissions of document and video tasks."""

    content_types = frozenset({ContentType.DOCUMENT_QUIZ, ContentType.VIDEO_QUIZ})
    revertible = False

    async def is_complete(self, instructor_id: UUID, task: Task) -> bool:
        content: QuizContent = task.content
        answers = await self.repository.get_quiz_answers(instructor_id, task.id)
        return all(is_accepted(q, answers.get(q.id)) for q in content.questions)

    async def describe(self, instructor_id: UUID, task: Task) -> QuizState:
        content: QuizContent = task.content
        answers = await self.repository.get_quiz_answers(instructor_id, task.id)

        questions = []
        for question in content.questions:
            answer = answers.get(question.id)
            questions.append(
                QuizQuestionView(
                    id=question.id,
                    question=question.question,
                    type=question.type,
                    options=question.options,
                    answer_guide=question.answer_guide,
                    answered=answer is not None,
                    selected_index=answer.selected_index if answer else None,
                    answer_text=answer.answer_text if answer else None,
                    is_correct=answer.is_correct if answer else None,
                )
            )

        return QuizState(
            kind=content.kind,
            document_url=getattr(content, "document_url", None),
            document_title=getattr(content, "document_title", None),
            video_url=getattr(content, "video_url", None),
            duration_seconds=getattr(content, "duration_seconds", None),
            questions=questions,
            answered_count=sum(1 for q in questions if q.answered),
            correct_count=sum(
                1 for q in content.questions if is_accepted(q, answers.get(q.id))
            ),
        )

    def _build_answers(
        self,
        instructor_id: UUID,
        task: Task,
        request: QuizSubmissionRequest,
    ) -> list[QuizAnswer]:
        """Validate the submission against the task's questions.

        Raises:
            InvalidSubmissionError: On unknown or duplicated questions,
                answers of the wrong type, out-of-range options or blank text.
        """
        content: QuizContent = task.content
        questions = {q.id: q for q in content.questions}
        seen: set[UUID] = set()
        now = utc_now()
        answers: list[QuizAnswer] = []

        def lookup(question_id: UUID, expected: QuestionType) -> QuizQuestion:
            question = questions.get(question_id)
            if question is None:
                raise InvalidSubmissionError(
                    f"Question {question_id} is not part of this quiz"
                )
            if question_id in seen:
                raise InvalidSubmissionError(
                    f"Question {question_id} is answered more than once"
                )
            if question.type != expected:
                raise InvalidSubmissionError(
                    f"Question {question_id} expects a {question.type.value} answer"
                )
            seen.add(question_id)
            return question

        for objective in request.objective_answers:
            question = lookup(objective.question_id, QuestionType.OBJECTIVE)
            if objective.selected_index >= len(question.options):
                raise InvalidSubmissionError(
                    f"Option {objective.selected_index} does not exist "
                    f"for question {question.id}"
                )
            answers.append(
                QuizAnswer(
                    instructor_id=instructor_id,
                    task_id=task.id,
                    question_id=question.id,
                    selected_index=objective.selected_index,
                    is_correct=objective.selected_index
                    == question.correct_answer_index,
                    submitted_at=now,
                )
            )

        for subjective in request.subjective_answers:
            question = lookup(subjective.question_id, QuestionType.SUBJECTIVE)
            text = subjective.answer_text.strip()
            if not text:
                raise InvalidSubmissionError(
                    f"Answer to question {question.id} is empty"
                )
            answers.append(
                QuizAnswer(
                    instructor_id=instructor_id,
                    task_id=task.id,
                    question_id=question.id,
                    answer_text=text,
                    is_correct=keyword_match(question, text),
                    submitted_at=now,
                )
            )

        if not answers:
            raise InvalidSubmissionError("Submission contains no answers")
        return answers

    async def submit(
        self,
        principal: Principal,
        task_id: UUID,
        request: QuizSubmissionRequest,
    ) -> QuizSubmissionResponse:
        """Store the caller's answers (overwriting earlier ones) and grade."""
        async with self.repository.transaction():
            instructor, task = await self._load_task(principal, task_id)
            content: QuizContent = task.content

            for answer in self._build_answers(instructor.id, task, request):
                await self.repository.save_quiz_answer(answer)

            stored = await self.repository.get_quiz_answers(instructor.id, task.id)
            results = []
            for question in content.questions:
                answer = stored.get(question.id)
                results.append(
                    QuestionResult(
                        question_id=question.id,
                        type=question.type,
                        answered=answer is not None,
                        accepted=is_accepted(question, answer),
                        is_correct=answer.is_correct if answer else None,
                    )
                )
            correct_count = sum(1 for r in results if r.accepted)

            await record_audit(
                self.repository,
                principal,
                instructor.id,
                AuditAction.QUIZ_SUBMITTED,
                "task",
                task.id,
                correct_count=correct_count,
                total_questions=len(results),
            )

            await self._sync_status(instructor.id, task)
            progress = await self._progress_summary(task)

        logger.info(
            "quiz_submitted",
            task_id=str(task.id),
            correct_count=correct_count,
            total_questions=len(results),
            task_status=task.status.value,
        )

        return QuizSubmissionResponse(
            task=TaskResponse.from_entity(task),
            all_correct=correct_count == len(results),
            correct_count=correct_count,
            total_questions=len(results),
            results=results,
            progress=progress,
        )
