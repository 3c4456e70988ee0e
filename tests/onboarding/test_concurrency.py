"""Concurrent actions on the same instructor.

The repository below yields to the event loop before each read, so two
actions started together interleave their reads unless the instructor
lock serializes them.
"""

import asyncio
from uuid import UUID, uuid4

import pytest

from onboarding_api.onboarding.exceptions import AlreadyExistsError
from onboarding_api.onboarding.models import Instructor, StepStatus
from onboarding_api.onboarding.repository import InMemoryOnboardingRepository
from onboarding_api.onboarding.schemas import CreateInstructorRequest
from tests.factories import checklist


class InterleavingRepository(InMemoryOnboardingRepository):
    """In-memory repository that yields before every entity read."""

    async def _fetch_instructor_by_user(self, user_id: UUID) -> Instructor | None:
        await asyncio.sleep(0)
        return await super()._fetch_instructor_by_user(user_id)

    async def _fetch_step(self, step_id):
        await asyncio.sleep(0)
        return await super()._fetch_step(step_id)

    async def _fetch_steps(self, instructor_id):
        await asyncio.sleep(0)
        return await super()._fetch_steps(instructor_id)

    async def _fetch_task(self, task_id):
        await asyncio.sleep(0)
        return await super()._fetch_task(task_id)

    async def _fetch_tasks(self, step_id):
        await asyncio.sleep(0)
        return await super()._fetch_tasks(step_id)


@pytest.fixture
def repository() -> InterleavingRepository:
    return InterleavingRepository()


# ==============================================================================
# Concurrent Actions
# ==============================================================================


@pytest.mark.asyncio
async def test_concurrent_checklist_completions_both_count(
    seed, repository, handlers
):
    """Two single-item checklists of one step completed at the same time."""
    plan = await seed([checklist(1), checklist(1)])
    first, second = plan.task(0, 0), plan.task(0, 1)

    await asyncio.gather(
        handlers.checklist.toggle_item(
            plan.principal, first.id, first.content.items[0].id, True
        ),
        handlers.checklist.toggle_item(
            plan.principal, second.id, second.content.items[0].id, True
        ),
    )

    step = await repository.get_step(plan.steps[0].id)
    assert (step.completed_tasks, step.total_tasks) == (2, 2)
    assert step.status == StepStatus.COMPLETED
    instructor = await repository.get_instructor(plan.instructor.id)
    assert instructor.overall_progress == 100
    assert repository._key_locks == {}


@pytest.mark.asyncio
async def test_instructor_and_pm_actions_serialize(
    seed, repository, handlers, task_service, pm
):
    """A completion and a disable on the same step both land in the counters."""
    plan = await seed([checklist(1), checklist(1)])
    done, disabled = plan.task(0, 0), plan.task(0, 1)

    await asyncio.gather(
        handlers.checklist.toggle_item(
            plan.principal, done.id, done.content.items[0].id, True
        ),
        task_service.set_task_enabled(pm, disabled.id, False),
    )

    step = await repository.get_step(plan.steps[0].id)
    assert (step.completed_tasks, step.total_tasks) == (1, 1)
    assert step.status == StepStatus.COMPLETED
    instructor = await repository.get_instructor(plan.instructor.id)
    assert instructor.overall_progress == 100


@pytest.mark.asyncio
async def test_concurrent_provisioning_creates_one_profile(
    repository, provisioning_service, pm
):
    request = CreateInstructorRequest(
        user_id=uuid4(),
        name="Grace Hopper",
        email="grace@example.com",
        steps=[
            {"title": "Setup", "tasks": [{"title": "Tick", "content": checklist()}]}
        ],
    )

    results = await asyncio.gather(
        provisioning_service.create_instructor(pm, request),
        provisioning_service.create_instructor(pm, request),
        return_exceptions=True,
    )

    assert sum(isinstance(r, Instructor) for r in results) == 1
    assert sum(isinstance(r, AlreadyExistsError) for r in results) == 1
    assert len(await repository.list_instructors()) == 1


# ==============================================================================
# Lock Semantics
# ==============================================================================


@pytest.mark.asyncio
async def test_lock_requires_transaction(repository):
    with pytest.raises(RuntimeError):
        await repository.lock(uuid4())


@pytest.mark.asyncio
async def test_lock_is_reentrant_within_transaction(repository):
    key = uuid4()

    async with repository.transaction():
        assert await repository.lock(key) is True
        async with repository.transaction():
            assert await repository.lock(key) is False

    assert repository._key_locks == {}


@pytest.mark.asyncio
async def test_lock_released_after_rollback(repository):
    key = uuid4()

    with pytest.raises(ValueError):
        async with repository.transaction():
            await repository.lock(key)
            raise ValueError("boom")

    assert repository._key_locks == {}

    async def relock() -> bool:
        async with repository.transaction():
            return await repository.lock(key)

    assert await asyncio.wait_for(relock(), timeout=1) is True


@pytest.mark.asyncio
async def test_other_instructors_are_not_blocked(seed, repository, handlers):
    """A held lock on one instructor does not delay another instructor."""
    busy = await seed([checklist(1)])
    free = await seed([checklist(1)])
    task = free.task()
    held, release = asyncio.Event(), asyncio.Event()

    async def hold_busy_instructor() -> None:
        async with repository.transaction():
            await repository.lock(busy.instructor.id)
            held.set()
            await release.wait()

    holder = asyncio.create_task(hold_busy_instructor())
    await held.wait()
    try:
        response = await asyncio.wait_for(
            handlers.checklist.toggle_item(
                free.principal, task.id, task.content.items[0].id, True
            ),
            timeout=1,
        )
    finally:
        release.set()
        await holder

    assert response.progress.overall_progress == 100
    assert repository._key_locks == {}
