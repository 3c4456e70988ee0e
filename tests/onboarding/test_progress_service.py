"""Tests for ProgressService step and instructor recomputation."""

from uuid import UUID, uuid4

import pytest

from onboarding_api.onboarding.exceptions import (
    AggregateNotFoundError,
    ResourceNotFoundError,
)
from onboarding_api.onboarding.models import (
    OnboardingStep,
    StepStatus,
    Task,
    TaskStatus,
)
from onboarding_api.onboarding.service import ProgressService
from tests.factories import checklist


async def _set_status(
    repository, progress_service: ProgressService, task_id: UUID, status: TaskStatus
) -> tuple[OnboardingStep, object]:
    async with repository.transaction():
        task = await repository.get_task(task_id)
        task.status = status
        await repository.save_task(task)
        return await progress_service.on_task_status_changed(task)


@pytest.mark.asyncio
async def test_step_follows_task_completion(seed, repository, progress_service):
    """Two enabled tasks: pending, then in progress, then completed."""
    plan = await seed([checklist(), checklist()])
    step_id = plan.steps[0].id

    step = await repository.get_step(step_id)
    assert (step.completed_tasks, step.total_tasks) == (0, 2)
    assert step.status == StepStatus.PENDING

    step, _ = await _set_status(
        repository, progress_service, plan.task(0, 0).id, TaskStatus.COMPLETED
    )
    assert step.completed_tasks == 1
    assert step.status == StepStatus.IN_PROGRESS

    step, _ = await _set_status(
        repository, progress_service, plan.task(0, 1).id, TaskStatus.COMPLETED
    )
    assert step.completed_tasks == 2
    assert step.status == StepStatus.COMPLETED

    stored = await repository.get_step(step_id)
    assert stored.status == StepStatus.COMPLETED
    assert stored.progress_percent == 100


@pytest.mark.asyncio
async def test_instructor_follows_step_completion(seed, repository, progress_service):
    """Two single-task steps: 50% on step 2, then 100% still on step 2."""
    plan = await seed([checklist()], [checklist()])
    assert plan.instructor.overall_progress == 0
    assert plan.instructor.current_step == 1

    _, instructor = await _set_status(
        repository, progress_service, plan.task(0).id, TaskStatus.COMPLETED
    )
    assert instructor.overall_progress == 50
    assert instructor.current_step == 2

    _, instructor = await _set_status(
        repository, progress_service, plan.task(1).id, TaskStatus.COMPLETED
    )
    assert instructor.overall_progress == 100
    assert instructor.current_step == 2

    stored = await repository.get_instructor(plan.instructor.id)
    assert stored.overall_progress == 100


@pytest.mark.asyncio
async def test_disabled_task_excluded_from_step(seed, repository, progress_service):
    plan = await seed(
        [
            checklist(),
            checklist(),
            (checklist(), TaskStatus.PENDING, False),
        ]
    )

    await _set_status(
        repository, progress_service, plan.task(0, 0).id, TaskStatus.COMPLETED
    )
    step, instructor = await _set_status(
        repository, progress_service, plan.task(0, 1).id, TaskStatus.COMPLETED
    )

    assert (step.total_tasks, step.completed_tasks) == (2, 2)
    assert step.status == StepStatus.COMPLETED
    assert instructor.overall_progress == 100


@pytest.mark.asyncio
async def test_reverting_task_reopens_step(seed, repository, progress_service):
    plan = await seed([checklist()], [checklist()])
    await _set_status(
        repository, progress_service, plan.task(0).id, TaskStatus.COMPLETED
    )

    step, instructor = await _set_status(
        repository, progress_service, plan.task(0).id, TaskStatus.IN_PROGRESS
    )

    assert step.status == StepStatus.PENDING
    assert step.completed_tasks == 0
    assert instructor.overall_progress == 0
    assert instructor.current_step == 1


@pytest.mark.asyncio
async def test_recomputation_is_idempotent(seed, repository, progress_service):
    """Completed, partial and disabled-only steps survive repeated recomputation."""
    plan = await seed(
        [
            (checklist(), TaskStatus.COMPLETED, True),
            (checklist(), TaskStatus.COMPLETED, True),
        ],
        [(checklist(), TaskStatus.COMPLETED, True), checklist()],
        [(checklist(), TaskStatus.COMPLETED, False)],
    )
    instructor_id = plan.instructor.id

    async def snapshot():
        steps = await repository.list_steps(instructor_id)
        instructor = await repository.get_instructor(instructor_id)
        return (
            [
                (s.step_number, s.total_tasks, s.completed_tasks, s.status)
                for s in steps
            ],
            (instructor.overall_progress, instructor.current_step),
        )

    before = await snapshot()
    assert before == (
        [
            (1, 2, 2, StepStatus.COMPLETED),
            (2, 2, 1, StepStatus.IN_PROGRESS),
            (3, 0, 0, StepStatus.PENDING),
        ],
        (50, 2),
    )

    for _ in range(2):
        for step_tasks in plan.tasks:
            for seeded in step_tasks:
                task = await repository.get_task(seeded.id)
                await progress_service.on_task_status_changed(task)
        await progress_service.recalculate_instructor(instructor_id)

        assert await snapshot() == before


@pytest.mark.asyncio
async def test_unreachable_step_raises_and_commits_nothing(
    seed, repository, progress_service
):
    plan = await seed([checklist()])
    orphan = Task(
        id=uuid4(),
        step_id=uuid4(),
        display_order=1,
        title="Orphan",
        content=checklist(),
        status=TaskStatus.COMPLETED,
    )

    with pytest.raises(AggregateNotFoundError):
        async with repository.transaction():
            await repository.save_task(orphan)
            await progress_service.on_task_status_changed(orphan)

    assert await repository.get_task(orphan.id) is None
    assert (await repository.get_instructor(plan.instructor.id)).overall_progress == 0


@pytest.mark.asyncio
async def test_unreachable_instructor_raises(repository, progress_service):
    step = OnboardingStep(
        id=uuid4(), instructor_id=uuid4(), step_number=1, title="Lonely step"
    )
    task = Task(
        id=uuid4(),
        step_id=step.id,
        display_order=1,
        title="Task",
        content=checklist(),
    )
    await repository.save_step(step)
    await repository.save_task(task)

    with pytest.raises(AggregateNotFoundError) as exc_info:
        await progress_service.on_task_status_changed(task)

    assert exc_info.value.code == "aggregate_not_found"


@pytest.mark.asyncio
async def test_recalculate_repairs_drifted_aggregates(
    seed, repository, progress_service
):
    plan = await seed([checklist()], [checklist()])

    # Task completed without recomputation, as after a manual data fix
    task = await repository.get_task(plan.task(0).id)
    task.status = TaskStatus.COMPLETED
    await repository.save_task(task)

    instructor = await progress_service.recalculate_instructor(plan.instructor.id)

    assert instructor.overall_progress == 50
    assert instructor.current_step == 2
    step = await repository.get_step(plan.steps[0].id)
    assert step.status == StepStatus.COMPLETED


@pytest.mark.asyncio
async def test_recalculate_unknown_instructor(progress_service):
    with pytest.raises(ResourceNotFoundError):
        await progress_service.recalculate_instructor(uuid4())
