"""Checklist tasks: complete when every item is checked."""

from uuid import UUID

import structlog

from onboarding_api.auth.schemas import Principal

from ..audit import record_audit
from ..content import ChecklistContent, ContentType
from ..exceptions import ResourceNotFoundError
from ..models import AuditAction, ChecklistItemState, Task, utc_now
from ..schemas import (
    ChecklistItemView,
    ChecklistState,
    ChecklistToggleResponse,
    TaskResponse,
)
from .base import ContentHandler


logger = structlog.get_logger(__name__)


class ChecklistHandler(ContentHandler):
    """Unchecking an item of a completed checklist reopens the task."""

    content_types = frozenset({ContentType.CHECKLIST})
    revertible = True

    async def is_complete(self, instructor_id: UUID, task: Task) -> bool:
        content: ChecklistContent = task.content
        states = await self.repository.get_checklist_states(instructor_id, task.id)
        return all(
            item.id in states and states[item.id].checked for item in content.items
        )

    async def describe(self, instructor_id: UUID, task: Task) -> ChecklistState:
        content: ChecklistContent = task.content
        states = await self.repository.get_checklist_states(instructor_id, task.id)

        items = []
        for item in content.items:
            state = states.get(item.id)
            items.append(
                ChecklistItemView(
                    id=item.id,
                    label=item.label,
                    checked=bool(state and state.checked),
                    checked_at=state.checked_at if state else None,
                )
            )

        return ChecklistState(
            items=items,
            checked_count=sum(1 for item in items if item.checked),
            total_items=len(items),
        )

    async def toggle_item(
        self,
        principal: Principal,
        task_id: UUID,
        item_id: UUID,
        checked: bool,
    ) -> ChecklistToggleResponse:
        """Check or uncheck one item for the calling instructor.

        Raises:
            ResourceNotFoundError: If the item is not part of the checklist.
        """
        async with self.repository.transaction():
            instructor, task = await self._load_task(principal, task_id)
            content: ChecklistContent = task.content

            item = next((i for i in content.items if i.id == item_id), None)
            if item is None:
                raise ResourceNotFoundError("Checklist item not found")

            state = ChecklistItemState(
                instructor_id=instructor.id,
                task_id=task.id,
                item_id=item.id,
                checked=checked,
                checked_at=utc_now() if checked else None,
            )
            await self.repository.save_checklist_state(state)

            await record_audit(
                self.repository,
                principal,
                instructor.id,
                AuditAction.CHECKLIST_ITEM_CHECKED
                if checked
                else AuditAction.CHECKLIST_ITEM_UNCHECKED,
                "task",
                task.id,
                item_id=item.id,
                label=item.label,
            )

            await self._sync_status(instructor.id, task)
            progress = await self._progress_summary(task)

        logger.info(
            "checklist_item_toggled",
            task_id=str(task.id),
            item_id=str(item.id),
            checked=checked,
            task_status=task.status.value,
        )

        return ChecklistToggleResponse(
            task=TaskResponse.from_entity(task),
            item=ChecklistItemView(
                id=item.id,
                label=item.label,
                checked=state.checked,
                checked_at=state.checked_at,
            ),
            progress=progress,
        )
