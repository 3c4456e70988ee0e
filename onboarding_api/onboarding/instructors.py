"""Instructor administration: listing, profile edits and removal."""

from uuid import UUID

import structlog

from onboarding_api.auth.schemas import Principal

from .access import require_pm
from .audit import record_audit
from .exceptions import PermissionDeniedError, ResourceNotFoundError
from .models import AuditAction, Instructor, utc_now
from .repository import OnboardingRepository
from .schemas import UpdateInstructorRequest


logger = structlog.get_logger(__name__)


class InstructorService:
    """Instructor profiles as program managers see them."""

    def __init__(self, repository: OnboardingRepository):
        self.repository = repository

    async def list_instructors(
        self,
        principal: Principal,
        track: str | None = None,
        cohort: str | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[Instructor], int]:
        """One page of instructors, newest first, and the filtered total."""
        require_pm(principal)

        instructors = [
            instructor
            for instructor in await self.repository.list_instructors()
            if (track is None or instructor.track == track)
            and (cohort is None or instructor.cohort == cohort)
        ]
        return instructors[offset : offset + limit], len(instructors)

    async def get_instructor(
        self, principal: Principal, instructor_id: UUID
    ) -> Instructor:
        """Any instructor for a PM; an instructor only sees their own profile.

        Raises:
            ResourceNotFoundError: If the instructor does not exist.
            PermissionDeniedError: If an instructor asks for another profile.
        """
        instructor = await self.repository.get_instructor(instructor_id)
        if instructor is None:
            raise ResourceNotFoundError("Instructor not found")
        if not principal.is_pm and instructor.user_id != principal.user_id:
            raise PermissionDeniedError("Instructors can only see their own profile")
        return instructor

    async def update_instructor(
        self,
        principal: Principal,
        instructor_id: UUID,
        request: UpdateInstructorRequest,
    ) -> Instructor:
        """Change profile fields; progress aggregates are untouched."""
        require_pm(principal)
        changes = request.model_dump(exclude_unset=True)
        if changes.get("name") is not None:
            changes["name"] = changes["name"].strip()
        if changes.get("email") is not None:
            changes["email"] = str(changes["email"]).lower()

        async with self.repository.transaction():
            await self.repository.lock(instructor_id)
            instructor = await self.repository.get_instructor(instructor_id)
            if instructor is None:
                raise ResourceNotFoundError("Instructor not found")

            # name and email are required on the profile
            changed = sorted(
                field
                for field, value in changes.items()
                if getattr(instructor, field) != value
                and (value is not None or field in ("track", "cohort"))
            )
            for field in changed:
                setattr(instructor, field, changes[field])

            if changed:
                instructor.updated_at = utc_now()
                await self.repository.save_instructor(instructor)
                await record_audit(
                    self.repository,
                    principal,
                    instructor.id,
                    AuditAction.INSTRUCTOR_UPDATED,
                    "instructor",
                    instructor.id,
                    fields=",".join(changed),
                )

        logger.info(
            "instructor_updated",
            instructor_id=str(instructor_id),
            fields=changed,
        )
        return instructor

    async def delete_instructor(self, principal: Principal, instructor_id: UUID) -> None:
        """Remove an instructor with their steps, tasks, state and uploads.

        Audit entries are kept, including the one recording the removal.
        """
        require_pm(principal)

        async with self.repository.transaction():
            await self.repository.lock(instructor_id)
            instructor = await self.repository.get_instructor(instructor_id)
            if instructor is None:
                raise ResourceNotFoundError("Instructor not found")

            await self.repository.delete_instructor(instructor)
            await record_audit(
                self.repository,
                principal,
                instructor.id,
                AuditAction.INSTRUCTOR_DELETED,
                "instructor",
                instructor.id,
                user_id=instructor.user_id,
                name=instructor.name,
            )

        logger.info(
            "instructor_deleted",
            instructor_id=str(instructor_id),
            user_id=str(instructor.user_id),
        )
