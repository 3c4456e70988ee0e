"""Tests for FileUploadHandler and requirement matching."""

from uuid import uuid4

import pytest

from onboarding_api.onboarding.content import FileRequirement
from onboarding_api.onboarding.exceptions import (
    FileRejectedError,
    PermissionDeniedError,
    ResourceNotFoundError,
)
from onboarding_api.onboarding.handlers import match_requirements
from onboarding_api.onboarding.models import AuditAction, FileUpload, TaskStatus
from onboarding_api.onboarding.schemas import FileUploadRequest
from tests.factories import file_upload


def _upload(file_name: str) -> FileUpload:
    return FileUpload(
        id=uuid4(),
        task_id=uuid4(),
        instructor_id=uuid4(),
        file_name=file_name,
        file_size=100,
        mime_type=None,
        storage_path=f"uploads/{file_name}",
    )


def _request(file_name: str, file_size: int = 2048) -> FileUploadRequest:
    return FileUploadRequest(
        file_name=file_name,
        file_size=file_size,
        mime_type="application/octet-stream",
        storage_path=f"onboarding/{uuid4()}/{file_name}",
    )


# ==============================================================================
# Requirement Matching
# ==============================================================================


class TestMatchRequirements:
    """Tests for slot/upload matching."""

    def test_one_file_never_fills_two_slots(self) -> None:
        cv = FileRequirement(placeholder="CV", allowed_extensions=["pdf"])
        diploma = FileRequirement(placeholder="Diploma", allowed_extensions=["pdf"])

        matched = match_requirements([cv, diploma], [_upload("cv.pdf")])

        assert len(matched) == 1

    def test_flexible_file_moves_aside(self) -> None:
        """A file accepted by both slots leaves the strict slot its only match."""
        any_doc = FileRequirement(placeholder="Any", allowed_extensions=["pdf", "png"])
        photo = FileRequirement(placeholder="Photo", allowed_extensions=["png"])
        uploads = [_upload("photo.png"), _upload("notes.pdf")]

        matched = match_requirements([any_doc, photo], uploads)

        assert matched[photo.id].file_name == "photo.png"
        assert matched[any_doc.id].file_name == "notes.pdf"

    def test_required_slots_filled_first(self) -> None:
        optional = FileRequirement(placeholder="Extra", required=False)
        required = FileRequirement(placeholder="CV", allowed_extensions=["pdf"])

        matched = match_requirements([optional, required], [_upload("cv.pdf")])

        assert required.id in matched
        assert optional.id not in matched

    def test_extension_case_insensitive(self) -> None:
        cv = FileRequirement(placeholder="CV", allowed_extensions=[".PDF"])
        assert cv.allowed_extensions == [".pdf"]
        assert cv.id in match_requirements([cv], [_upload("CV.Pdf")])


# ==============================================================================
# Upload and Delete
# ==============================================================================


@pytest.mark.asyncio
async def test_upload_fills_requirement_and_completes(seed, handlers, repository):
    cv = FileRequirement(placeholder="CV", allowed_extensions=["pdf"])
    photo = FileRequirement(placeholder="Photo", allowed_extensions=["jpg", "png"])
    plan = await seed([file_upload(cv, photo)])
    task = plan.task()

    response = await handlers.file_upload.register_upload(
        plan.principal, task.id, _request("cv.pdf")
    )
    assert response.task.status == TaskStatus.PENDING
    assert response.upload.file_name == "cv.pdf"

    response = await handlers.file_upload.register_upload(
        plan.principal, task.id, _request("me.png")
    )
    assert response.task.status == TaskStatus.COMPLETED
    assert response.progress.overall_progress == 100

    uploads = await repository.list_file_uploads(plan.instructor.id, task.id)
    assert {u.file_name for u in uploads} == {"cv.pdf", "me.png"}


@pytest.mark.asyncio
async def test_optional_slot_not_needed(seed, handlers):
    cv = FileRequirement(placeholder="CV", allowed_extensions=["pdf"])
    extra = FileRequirement(placeholder="Portfolio", required=False)
    plan = await seed([file_upload(cv, extra)])

    response = await handlers.file_upload.register_upload(
        plan.principal, plan.task().id, _request("cv.pdf")
    )

    assert response.task.status == TaskStatus.COMPLETED


@pytest.mark.asyncio
async def test_deleting_needed_file_reopens_task(seed, handlers, repository):
    plan = await seed([file_upload()])
    task = plan.task()
    created = await handlers.file_upload.register_upload(
        plan.principal, task.id, _request("cv.pdf")
    )
    assert created.task.status == TaskStatus.COMPLETED

    response = await handlers.file_upload.delete_upload(
        plan.principal, created.upload.id
    )

    assert response.task.status == TaskStatus.IN_PROGRESS
    assert response.progress.overall_progress == 0
    assert await repository.get_file_upload(created.upload.id) is None
    assert await repository.list_file_uploads(plan.instructor.id, task.id) == []

    actions = [e.action for e in await repository.list_audit_logs(plan.instructor.id)]
    assert set(actions) == {AuditAction.FILE_UPLOADED, AuditAction.FILE_DELETED}


@pytest.mark.asyncio
async def test_only_owner_can_delete(seed, handlers):
    owner = await seed([file_upload()])
    other = await seed([file_upload()])
    created = await handlers.file_upload.register_upload(
        owner.principal, owner.task().id, _request("cv.pdf")
    )

    with pytest.raises(PermissionDeniedError):
        await handlers.file_upload.delete_upload(other.principal, created.upload.id)


@pytest.mark.asyncio
async def test_delete_unknown_file(seed, handlers):
    plan = await seed([file_upload()])

    with pytest.raises(ResourceNotFoundError):
        await handlers.file_upload.delete_upload(plan.principal, uuid4())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "file_name,file_size",
    [
        ("malware.exe", 1024),
        ("no_extension", 1024),
        ("huge.pdf", 2 * 1024 * 1024),
    ],
)
async def test_rejected_files_not_recorded(
    seed, handlers, repository, file_name, file_size
):
    plan = await seed([file_upload()])
    task = plan.task()

    with pytest.raises(FileRejectedError):
        await handlers.file_upload.register_upload(
            plan.principal, task.id, _request(file_name, file_size)
        )

    assert await repository.list_file_uploads(plan.instructor.id, task.id) == []


@pytest.mark.asyncio
async def test_file_outside_slot_extensions_kept_but_incomplete(seed, handlers):
    """Globally allowed files are stored even if no slot accepts them."""
    plan = await seed([file_upload()])

    response = await handlers.file_upload.register_upload(
        plan.principal, plan.task().id, _request("notes.txt")
    )

    assert response.task.status == TaskStatus.PENDING
    state = await handlers.file_upload.describe(plan.instructor.id, plan.task())
    assert state.requirements[0].satisfied is False
    assert len(state.uploads) == 1
