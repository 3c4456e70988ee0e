"""Tests for ProvisioningService."""

from uuid import uuid4

import pytest
from pydantic import ValidationError

from onboarding_api.onboarding.exceptions import (
    AlreadyExistsError,
    PermissionDeniedError,
    ResourceNotFoundError,
)
from onboarding_api.onboarding.models import AuditAction, StepStatus, TaskStatus
from onboarding_api.onboarding.schemas import (
    MAX_PLAN_STEPS,
    MAX_PLAN_TASKS,
    CreateInstructorRequest,
    StepDefinition,
    TaskDefinition,
)
from tests.factories import checklist, file_upload, make_principal, objective_quiz


def _request(user_id=None) -> CreateInstructorRequest:
    return CreateInstructorRequest(
        user_id=user_id or uuid4(),
        name="  Grace Instructor ",
        email="Grace@Example.com",
        track="data-science",
        cohort="2026-10",
        steps=[
            StepDefinition(
                title="Welcome",
                tasks=[
                    TaskDefinition(
                        title="Read the handbook", content=objective_quiz(2)
                    ),
                    TaskDefinition(title="Setup checklist", content=checklist(3)),
                ],
            ),
            StepDefinition(
                title="Paperwork",
                tasks=[
                    TaskDefinition(title="Upload CV", content=file_upload()),
                    TaskDefinition(
                        title="Optional intro",
                        content=checklist(1),
                        is_enabled=False,
                    ),
                ],
            ),
            StepDefinition(title="Empty step"),
        ],
    )


@pytest.mark.asyncio
async def test_create_instructor_with_plan(provisioning_service, repository, pm):
    instructor = await provisioning_service.create_instructor(pm, _request())

    assert instructor.name == "Grace Instructor"
    assert instructor.email == "grace@example.com"
    assert instructor.overall_progress == 0
    assert instructor.current_step == 1

    steps = await repository.list_steps(instructor.id)
    assert [s.step_number for s in steps] == [1, 2, 3]
    assert [s.total_tasks for s in steps] == [2, 1, 0]
    assert all(s.status == StepStatus.PENDING for s in steps)

    tasks = await repository.list_tasks(steps[1].id)
    assert [t.display_order for t in tasks] == [1, 2]
    assert [t.is_enabled for t in tasks] == [True, False]
    assert all(t.status == TaskStatus.PENDING for t in tasks)

    [entry] = await repository.list_audit_logs(instructor.id)
    assert entry.action == AuditAction.INSTRUCTOR_CREATED
    assert entry.details == {"steps": "3", "tasks": "4"}


@pytest.mark.asyncio
async def test_content_survives_storage(provisioning_service, repository, pm):
    instructor = await provisioning_service.create_instructor(pm, _request())
    [step, *_] = await repository.list_steps(instructor.id)

    quiz_task, checklist_task = await repository.list_tasks(step.id)

    assert quiz_task.content.kind == "document_quiz"
    assert len(quiz_task.content.questions) == 2
    assert checklist_task.content.kind == "checklist"
    assert len(checklist_task.content.items) == 3


@pytest.mark.asyncio
async def test_duplicate_user_rejected(provisioning_service, repository, pm):
    user_id = uuid4()
    first = await provisioning_service.create_instructor(pm, _request(user_id))

    with pytest.raises(AlreadyExistsError):
        await provisioning_service.create_instructor(pm, _request(user_id))

    assert (await repository.get_instructor_by_user(user_id)).id == first.id


@pytest.mark.asyncio
async def test_instructor_cannot_provision(provisioning_service):
    with pytest.raises(PermissionDeniedError):
        await provisioning_service.create_instructor(make_principal(), _request())


# ==============================================================================
# Plan Changes
# ==============================================================================


@pytest.mark.asyncio
async def test_add_step_appends_and_recomputes(
    seed, provisioning_service, repository, pm
):
    plan = await seed([(checklist(), TaskStatus.COMPLETED, True)])
    assert plan.instructor.overall_progress == 100

    step, instructor = await provisioning_service.add_step(
        pm,
        plan.instructor.id,
        StepDefinition(
            title="Classroom",
            tasks=[TaskDefinition(title="Observe a class", content=checklist(2))],
        ),
    )

    assert step.step_number == 2
    assert (step.total_tasks, step.status) == (1, StepStatus.PENDING)
    assert instructor.overall_progress == 50
    assert instructor.current_step == 2

    steps = await repository.list_steps(plan.instructor.id)
    assert [s.title for s in steps] == ["Step 1", "Classroom"]
    [task] = await repository.list_tasks(step.id)
    assert (task.display_order, task.status) == (1, TaskStatus.PENDING)

    entries = await repository.list_audit_logs(plan.instructor.id)
    [added] = [e for e in entries if e.action == AuditAction.STEP_ADDED]
    assert added.target_id == step.id
    assert added.details == {"step_number": "2", "tasks": "1"}


@pytest.mark.asyncio
async def test_add_empty_step_keeps_progress(seed, provisioning_service, pm):
    plan = await seed([(checklist(), TaskStatus.COMPLETED, True)])

    step, instructor = await provisioning_service.add_step(
        pm, plan.instructor.id, StepDefinition(title="Later")
    )

    assert step.total_tasks == 0
    assert instructor.overall_progress == 100
    assert instructor.current_step == 2


@pytest.mark.asyncio
async def test_add_step_unknown_instructor(provisioning_service, pm):
    with pytest.raises(ResourceNotFoundError):
        await provisioning_service.add_step(pm, uuid4(), StepDefinition(title="X"))


# ==============================================================================
# Plan Size Limits
# ==============================================================================


def _steps(step_count: int, tasks_per_step: int) -> list[StepDefinition]:
    return [
        StepDefinition(
            title=f"Step {n}",
            tasks=[
                TaskDefinition(title=f"Task {n}.{m}", content=checklist(1))
                for m in range(tasks_per_step)
            ],
        )
        for n in range(step_count)
    ]


def test_plan_at_limits_accepted() -> None:
    request = CreateInstructorRequest(
        user_id=uuid4(),
        name="Big Plan",
        email="big@example.com",
        steps=_steps(MAX_PLAN_TASKS // 5, 5),
    )

    assert sum(len(s.tasks) for s in request.steps) == MAX_PLAN_TASKS


def test_too_many_steps_rejected() -> None:
    with pytest.raises(ValidationError):
        CreateInstructorRequest(
            user_id=uuid4(),
            name="Big Plan",
            email="big@example.com",
            steps=_steps(MAX_PLAN_STEPS + 1, 0),
        )


def test_too_many_tasks_rejected() -> None:
    with pytest.raises(ValidationError, match="at most"):
        CreateInstructorRequest(
            user_id=uuid4(),
            name="Big Plan",
            email="big@example.com",
            steps=_steps(MAX_PLAN_TASKS // 5 + 1, 5),
        )


def test_oversized_plan_rejected() -> None:
    long_checklist = {
        "kind": "checklist",
        "items": [{"label": "x" * 500} for _ in range(20)],
    }

    with pytest.raises(ValidationError, match="bytes"):
        CreateInstructorRequest(
            user_id=uuid4(),
            name="Big Plan",
            email="big@example.com",
            steps=[
                {
                    "title": "Reading",
                    "tasks": [
                        {"title": f"Task {n}", "content": long_checklist}
                        for n in range(5)
                    ],
                }
            ],
        )
