"""Tests for DashboardService read models."""

from uuid import uuid4

import pytest

from onboarding_api.onboarding.exceptions import (
    PermissionDeniedError,
    ResourceNotFoundError,
)
from onboarding_api.onboarding.models import AuditAction, TaskStatus
from onboarding_api.onboarding.schemas import FileUploadRequest
from tests.factories import checklist, file_upload, make_principal, objective_quiz


@pytest.mark.asyncio
async def test_my_dashboard_hides_disabled_tasks(seed, dashboard_service):
    plan = await seed(
        [checklist(2), objective_quiz(1)],
        [file_upload(), (checklist(1), TaskStatus.PENDING, False)],
    )

    dashboard = await dashboard_service.get_my_dashboard(plan.principal)

    assert dashboard.instructor.id == plan.instructor.id
    assert [s.step_number for s in dashboard.steps] == [1, 2]
    assert [t.state.kind for t in dashboard.steps[0].tasks] == [
        "checklist",
        "document_quiz",
    ]
    assert [t.state.kind for t in dashboard.steps[1].tasks] == ["file_upload"]


@pytest.mark.asyncio
async def test_pm_dashboard_shows_disabled_tasks(seed, dashboard_service, pm):
    plan = await seed([checklist(1), (checklist(1), TaskStatus.PENDING, False)])

    dashboard = await dashboard_service.get_instructor_dashboard(
        pm, plan.instructor.id
    )

    tasks = dashboard.steps[0].tasks
    assert [t.is_enabled for t in tasks] == [True, False]
    assert dashboard.steps[0].total_tasks == 1


@pytest.mark.asyncio
async def test_dashboard_reflects_progress(seed, dashboard_service, handlers):
    plan = await seed([checklist(2), checklist(1)])
    done = plan.task(0, 1)
    await handlers.checklist.toggle_item(
        plan.principal, done.id, done.content.items[0].id, True
    )

    dashboard = await dashboard_service.get_my_dashboard(plan.principal)

    step = dashboard.steps[0]
    assert step.completed_tasks == 1
    assert step.progress_percent == 50
    assert step.tasks[1].status == TaskStatus.COMPLETED
    assert step.tasks[1].state.checked_count == 1


@pytest.mark.asyncio
async def test_pm_has_no_own_dashboard(dashboard_service, pm):
    with pytest.raises(PermissionDeniedError):
        await dashboard_service.get_my_dashboard(pm)


@pytest.mark.asyncio
async def test_instructor_without_profile(dashboard_service):
    with pytest.raises(ResourceNotFoundError):
        await dashboard_service.get_my_dashboard(make_principal())


@pytest.mark.asyncio
async def test_instructor_cannot_read_other_dashboards(seed, dashboard_service):
    plan = await seed([checklist(1)])

    with pytest.raises(PermissionDeniedError):
        await dashboard_service.get_instructor_dashboard(
            plan.principal, plan.instructor.id
        )


@pytest.mark.asyncio
async def test_unknown_instructor_dashboard(dashboard_service, pm):
    with pytest.raises(ResourceNotFoundError):
        await dashboard_service.get_instructor_dashboard(pm, uuid4())


@pytest.mark.asyncio
async def test_audit_log_newest_first_and_limited(
    seed, dashboard_service, handlers, pm
):
    plan = await seed([checklist(3)])
    task = plan.task()
    for item in task.content.items:
        await handlers.checklist.toggle_item(plan.principal, task.id, item.id, True)

    listing = await dashboard_service.list_audit_logs(pm, plan.instructor.id, limit=2)

    assert listing.total == 2
    assert all(
        e.action == AuditAction.CHECKLIST_ITEM_CHECKED for e in listing.items
    )
    assert listing.items[0].created_at >= listing.items[1].created_at


@pytest.mark.asyncio
async def test_task_files_listed_for_pm(seed, dashboard_service, handlers, pm):
    plan = await seed([file_upload()])
    task = plan.task()
    for name in ("cv.pdf", "diploma.pdf"):
        await handlers.file_upload.register_upload(
            plan.principal,
            task.id,
            FileUploadRequest(file_name=name, file_size=10, storage_path=f"x/{name}"),
        )

    listing = await dashboard_service.list_task_files(pm, task.id)

    assert listing.total == 2
    assert {u.file_name for u in listing.items} == {"cv.pdf", "diploma.pdf"}


@pytest.mark.asyncio
async def test_task_files_pm_only(seed, dashboard_service):
    plan = await seed([file_upload()])

    with pytest.raises(PermissionDeniedError):
        await dashboard_service.list_task_files(plan.principal, plan.task().id)


@pytest.mark.asyncio
async def test_task_files_unknown_task(dashboard_service, pm):
    with pytest.raises(ResourceNotFoundError):
        await dashboard_service.list_task_files(pm, uuid4())
