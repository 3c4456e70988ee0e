"""File-upload tasks.

Each required slot must be filled by its own upload with an accepted
extension; one file never satisfies two slots. Deleting an upload that a
completed task relied on reopens the task.
"""

from collections.abc import Sequence
from uuid import UUID, uuid4

import structlog

from onboarding_api.auth.schemas import Principal
from onboarding_api.config.settings import Settings

from ..access import load_owned_task, resolve_instructor
from ..audit import record_audit
from ..content import ContentType, FileRequirement, FileUploadContent
from ..exceptions import FileRejectedError, PermissionDeniedError, ResourceNotFoundError
from ..models import AuditAction, FileUpload, Task, file_extension, utc_now
from ..repository import OnboardingRepository
from ..schemas import (
    FileRequirementView,
    FileUploadActionResponse,
    FileUploadRequest,
    FileUploadResponse,
    FileUploadState,
    TaskResponse,
)
from ..service import ProgressService
from .base import ContentHandler


logger = structlog.get_logger(__name__)


def match_requirements(
    requirements: Sequence[FileRequirement],
    uploads: Sequence[FileUpload],
) -> dict[UUID, FileUpload]:
    """Assign distinct uploads to as many slots as possible.

    Augmenting-path bipartite matching (slots x uploads), so a file that
    fits several slots is placed where it leaves room for the others.

    Returns:
        Requirement id -> upload for every slot that could be filled.
    """
    upload_owner: dict[UUID, FileRequirement] = {}
    slot_upload: dict[UUID, FileUpload] = {}

    def assign(requirement: FileRequirement, visited: set[UUID]) -> bool:
        for upload in uploads:
            if upload.id in visited or not requirement.accepts(upload.extension):
                continue
            visited.add(upload.id)
            owner = upload_owner.get(upload.id)
            if owner is None or assign(owner, visited):
                upload_owner[upload.id] = requirement
                slot_upload[requirement.id] = upload
                return True
        return False

    # Required slots first so optional ones never take their files
    ordered = sorted(requirements, key=lambda r: not r.required)
    for requirement in ordered:
        assign(requirement, set())
    return slot_upload


class FileUploadHandler(ContentHandler):
    """Registers upload metadata and checks file requirements."""

    content_types = frozenset({ContentType.FILE_UPLOAD})
    revertible = True

    def __init__(
        self,
        repository: OnboardingRepository,
        progress_service: ProgressService,
        settings: Settings,
    ):
        super().__init__(repository, progress_service)
        self.max_file_size = settings.upload_max_file_size_bytes
        self.allowed_extensions = frozenset(
            ext.lower() for ext in settings.upload_allowed_extensions
        )

    async def is_complete(self, instructor_id: UUID, task: Task) -> bool:
        content: FileUploadContent = task.content
        uploads = await self.repository.list_file_uploads(instructor_id, task.id)
        matched = match_requirements(content.requirements, uploads)
        return all(r.id in matched for r in content.requirements if r.required)

    async def describe(self, instructor_id: UUID, task: Task) -> FileUploadState:
        content: FileUploadContent = task.content
        uploads = await self.repository.list_file_uploads(instructor_id, task.id)
        matched = match_requirements(content.requirements, uploads)

        return FileUploadState(
            instructions=content.instructions,
            requirements=[
                FileRequirementView(
                    id=r.id,
                    placeholder=r.placeholder,
                    file_name_hint=r.file_name_hint,
                    allowed_extensions=r.allowed_extensions,
                    required=r.required,
                    satisfied=r.id in matched,
                )
                for r in content.requirements
            ],
            uploads=[FileUploadResponse.from_entity(u) for u in uploads],
        )

    def validate_file(self, file_name: str, file_size: int) -> None:
        """Check a file against the global extension allow-list and size limit.

        Raises:
            FileRejectedError: If the file is empty, too large or of a
                forbidden type.
        """
        if file_size <= 0:
            raise FileRejectedError("File is empty")
        if file_size > self.max_file_size:
            raise FileRejectedError(
                f"File exceeds the maximum size of {self.max_file_size} bytes"
            )
        extension = file_extension(file_name)
        if not extension or extension not in self.allowed_extensions:
            raise FileRejectedError(f"File type '{extension or file_name}' not allowed")

    async def register_upload(
        self,
        principal: Principal,
        task_id: UUID,
        request: FileUploadRequest,
    ) -> FileUploadActionResponse:
        """Record an uploaded file for the caller and re-check the task."""
        self.validate_file(request.file_name, request.file_size)

        async with self.repository.transaction():
            instructor, task = await self._load_task(principal, task_id)

            upload = FileUpload(
                id=uuid4(),
                task_id=task.id,
                instructor_id=instructor.id,
                file_name=request.file_name.strip(),
                file_size=request.file_size,
                mime_type=request.mime_type,
                storage_path=request.storage_path,
                uploaded_at=utc_now(),
            )
            await self.repository.save_file_upload(upload)

            await record_audit(
                self.repository,
                principal,
                instructor.id,
                AuditAction.FILE_UPLOADED,
                "file",
                upload.id,
                task_id=task.id,
                file_name=upload.file_name,
                file_size=upload.file_size,
            )

            await self._sync_status(instructor.id, task)
            progress = await self._progress_summary(task)

        logger.info(
            "file_upload_registered",
            task_id=str(task.id),
            file_id=str(upload.id),
            file_size=upload.file_size,
            task_status=task.status.value,
        )

        return FileUploadActionResponse(
            task=TaskResponse.from_entity(task),
            upload=FileUploadResponse.from_entity(upload),
            progress=progress,
        )

    async def delete_upload(
        self, principal: Principal, file_id: UUID
    ) -> FileUploadActionResponse:
        """Delete one of the caller's uploads and re-check its task.

        Raises:
            ResourceNotFoundError: If the upload does not exist.
            PermissionDeniedError: If it belongs to someone else.
        """
        async with self.repository.transaction():
            instructor = await resolve_instructor(self.repository, principal)
            await self.repository.lock(instructor.id)

            upload = await self.repository.get_file_upload(file_id)
            if upload is None:
                raise ResourceNotFoundError("File not found")
            if upload.instructor_id != instructor.id:
                raise PermissionDeniedError("Only the owner can delete this file")

            task = await load_owned_task(self.repository, instructor, upload.task_id)
            await self.repository.delete_file_upload(upload)

            await record_audit(
                self.repository,
                principal,
                instructor.id,
                AuditAction.FILE_DELETED,
                "file",
                upload.id,
                task_id=task.id,
                file_name=upload.file_name,
            )

            await self._sync_status(instructor.id, task)
            progress = await self._progress_summary(task)

        logger.info(
            "file_upload_deleted",
            task_id=str(task.id),
            file_id=str(upload.id),
            task_status=task.status.value,
        )

        return FileUploadActionResponse(
            task=TaskResponse.from_entity(task),
            upload=FileUploadResponse.from_entity(upload),
            progress=progress,
        )
