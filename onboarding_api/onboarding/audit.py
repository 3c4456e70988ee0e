"""Audit trail of onboarding actions.

Entries are staged in the caller's unit of work, so they are committed
with the change they describe, or not at all.
"""

from enum import Enum
from typing import Any
from uuid import UUID

import structlog

from onboarding_api.auth.schemas import Principal

from .models import AuditAction, AuditLogEntry
from .repository import OnboardingRepository


logger = structlog.get_logger(__name__)


async def record_audit(
    repository: OnboardingRepository,
    principal: Principal,
    instructor_id: UUID,
    action: AuditAction,
    target_type: str,
    target_id: UUID,
    **details: Any,
) -> AuditLogEntry:
    """Stage an audit entry; ``details`` values are stored as strings."""
    entry = AuditLogEntry(
        instructor_id=instructor_id,
        actor_id=principal.user_id,
        actor_role=principal.role.value,
        action=action,
        target_type=target_type,
        target_id=target_id,
        details={
            key: value.value if isinstance(value, Enum) else str(value)
            for key, value in details.items()
            if value is not None
        },
    )
    await repository.add_audit_entry(entry)

    logger.info(
        "audit_recorded",
        action=action.value,
        instructor_id=str(instructor_id),
        target_type=target_type,
        target_id=str(target_id),
    )
    return entry
