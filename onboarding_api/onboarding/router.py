"""Onboarding API endpoints.

Provides routes for:
- Instructor dashboards
- Checklist, quiz and file-upload interactions (instructors)
- Provisioning, instructor and task administration (program managers)
- Task content editing (program managers)
- Audit log (program managers)
"""

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from onboarding_api.auth.dependencies import (
    CurrentPrincipal,
    InstructorPrincipal,
    PmPrincipal,
)

from .dependencies import (
    ContentAdminServiceDep,
    DashboardServiceDep,
    HandlerRegistryDep,
    InstructorServiceDep,
    ProvisioningServiceDep,
    TaskServiceDep,
    handle_onboarding_error,
)
from .exceptions import OnboardingError
from .schemas import (
    AuditLogListResponse,
    ChecklistItemRequest,
    ChecklistToggleRequest,
    ChecklistToggleResponse,
    CreateInstructorRequest,
    DashboardResponse,
    FileUploadActionResponse,
    FileUploadListResponse,
    FileUploadRequest,
    InstructorListResponse,
    InstructorResponse,
    ProgressSummary,
    QuizQuestionRequest,
    QuizSubmissionRequest,
    QuizSubmissionResponse,
    StepDefinition,
    TaskAdminResponse,
    TaskContentResponse,
    TaskContentUpdateRequest,
    TaskEnabledRequest,
    TaskStatusUpdateRequest,
    UpdateInstructorRequest,
)


router = APIRouter(prefix="/v1", tags=["onboarding"])


# ==============================================================================
# Dashboards
# ==============================================================================


@router.get(
    "/onboarding/me",
    response_model=DashboardResponse,
    summary="Get my onboarding dashboard",
)
async def get_my_dashboard(
    principal: InstructorPrincipal,
    dashboard_service: DashboardServiceDep,
) -> DashboardResponse:
    """Steps, tasks and content state of the calling instructor."""
    try:
        return await dashboard_service.get_my_dashboard(principal)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.get(
    "/instructors/{instructor_id}/dashboard",
    response_model=DashboardResponse,
    summary="Get an instructor's dashboard",
)
async def get_instructor_dashboard(
    instructor_id: UUID,
    principal: PmPrincipal,
    dashboard_service: DashboardServiceDep,
) -> DashboardResponse:
    try:
        return await dashboard_service.get_instructor_dashboard(
            principal, instructor_id
        )
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.get(
    "/instructors/{instructor_id}/audit-logs",
    response_model=AuditLogListResponse,
    summary="List audit log of an instructor",
)
async def list_audit_logs(
    instructor_id: UUID,
    principal: PmPrincipal,
    dashboard_service: DashboardServiceDep,
    limit: int = Query(100, ge=1, le=500),
) -> AuditLogListResponse:
    try:
        return await dashboard_service.list_audit_logs(principal, instructor_id, limit)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


# ==============================================================================
# Provisioning
# ==============================================================================


@router.post(
    "/instructors",
    response_model=InstructorResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create instructor with onboarding plan",
)
async def create_instructor(
    data: CreateInstructorRequest,
    principal: PmPrincipal,
    provisioning_service: ProvisioningServiceDep,
) -> InstructorResponse:
    try:
        instructor = await provisioning_service.create_instructor(principal, data)
        return InstructorResponse.from_entity(instructor)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.post(
    "/instructors/{instructor_id}/recalculate",
    response_model=InstructorResponse,
    summary="Recalculate instructor progress",
)
async def recalculate_instructor(
    instructor_id: UUID,
    principal: PmPrincipal,
    task_service: TaskServiceDep,
) -> InstructorResponse:
    """Recompute step counters and overall progress from task states."""
    try:
        instructor = await task_service.recalculate(principal, instructor_id)
        return InstructorResponse.from_entity(instructor)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.post(
    "/instructors/{instructor_id}/steps",
    response_model=ProgressSummary,
    status_code=status.HTTP_201_CREATED,
    summary="Append a step to an instructor's plan",
)
async def add_step(
    instructor_id: UUID,
    data: StepDefinition,
    principal: PmPrincipal,
    provisioning_service: ProvisioningServiceDep,
) -> ProgressSummary:
    try:
        step, instructor = await provisioning_service.add_step(
            principal, instructor_id, data
        )
        return ProgressSummary.from_entities(step, instructor)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


# ==============================================================================
# Instructor Administration
# ==============================================================================


@router.get(
    "/instructors",
    response_model=InstructorListResponse,
    summary="List instructors",
)
async def list_instructors(
    principal: PmPrincipal,
    instructor_service: InstructorServiceDep,
    track: str | None = Query(None, max_length=100),
    cohort: str | None = Query(None, max_length=100),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> InstructorListResponse:
    """Newest first; ``total`` counts every instructor matching the filters."""
    try:
        instructors, total = await instructor_service.list_instructors(
            principal, track=track, cohort=cohort, offset=offset, limit=limit
        )
        return InstructorListResponse(
            items=[InstructorResponse.from_entity(i) for i in instructors],
            total=total,
        )
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.get(
    "/instructors/{instructor_id}",
    response_model=InstructorResponse,
    summary="Get an instructor",
)
async def get_instructor(
    instructor_id: UUID,
    principal: CurrentPrincipal,
    instructor_service: InstructorServiceDep,
) -> InstructorResponse:
    try:
        instructor = await instructor_service.get_instructor(principal, instructor_id)
        return InstructorResponse.from_entity(instructor)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.patch(
    "/instructors/{instructor_id}",
    response_model=InstructorResponse,
    summary="Update instructor profile",
)
async def update_instructor(
    instructor_id: UUID,
    data: UpdateInstructorRequest,
    principal: PmPrincipal,
    instructor_service: InstructorServiceDep,
) -> InstructorResponse:
    try:
        instructor = await instructor_service.update_instructor(
            principal, instructor_id, data
        )
        return InstructorResponse.from_entity(instructor)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.delete(
    "/instructors/{instructor_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an instructor and their plan",
)
async def delete_instructor(
    instructor_id: UUID,
    principal: PmPrincipal,
    instructor_service: InstructorServiceDep,
) -> Response:
    """Removes steps, tasks, content state and uploads; audit entries stay."""
    try:
        await instructor_service.delete_instructor(principal, instructor_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


# ==============================================================================
# Content Interactions
# ==============================================================================


@router.put(
    "/tasks/{task_id}/checklist/{item_id}",
    response_model=ChecklistToggleResponse,
    summary="Check or uncheck a checklist item",
)
async def toggle_checklist_item(
    task_id: UUID,
    item_id: UUID,
    data: ChecklistToggleRequest,
    principal: CurrentPrincipal,
    handlers: HandlerRegistryDep,
) -> ChecklistToggleResponse:
    try:
        return await handlers.checklist.toggle_item(
            principal, task_id, item_id, data.checked
        )
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.post(
    "/tasks/{task_id}/quiz",
    response_model=QuizSubmissionResponse,
    summary="Submit quiz answers",
)
async def submit_quiz(
    task_id: UUID,
    data: QuizSubmissionRequest,
    principal: CurrentPrincipal,
    handlers: HandlerRegistryDep,
) -> QuizSubmissionResponse:
    """Answers overwrite earlier ones; a completed quiz stays completed."""
    try:
        return await handlers.quiz.submit(principal, task_id, data)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.post(
    "/tasks/{task_id}/files",
    response_model=FileUploadActionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register an uploaded file",
)
async def register_upload(
    task_id: UUID,
    data: FileUploadRequest,
    principal: CurrentPrincipal,
    handlers: HandlerRegistryDep,
) -> FileUploadActionResponse:
    try:
        return await handlers.file_upload.register_upload(principal, task_id, data)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.delete(
    "/files/{file_id}",
    response_model=FileUploadActionResponse,
    summary="Delete an uploaded file",
)
async def delete_upload(
    file_id: UUID,
    principal: CurrentPrincipal,
    handlers: HandlerRegistryDep,
) -> FileUploadActionResponse:
    try:
        return await handlers.file_upload.delete_upload(principal, file_id)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


# ==============================================================================
# Task Administration
# ==============================================================================


@router.patch(
    "/tasks/{task_id}/status",
    response_model=TaskAdminResponse,
    summary="Change task status",
)
async def update_task_status(
    task_id: UUID,
    data: TaskStatusUpdateRequest,
    principal: PmPrincipal,
    task_service: TaskServiceDep,
) -> TaskAdminResponse:
    try:
        return await task_service.update_task_status(principal, task_id, data.status)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.post(
    "/tasks/{task_id}/skip",
    response_model=TaskAdminResponse,
    summary="Skip a task",
)
async def skip_task(
    task_id: UUID,
    principal: PmPrincipal,
    task_service: TaskServiceDep,
) -> TaskAdminResponse:
    try:
        return await task_service.skip_task(principal, task_id)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.patch(
    "/tasks/{task_id}/enabled",
    response_model=TaskAdminResponse,
    summary="Enable or disable a task",
)
async def set_task_enabled(
    task_id: UUID,
    data: TaskEnabledRequest,
    principal: PmPrincipal,
    task_service: TaskServiceDep,
) -> TaskAdminResponse:
    try:
        return await task_service.set_task_enabled(principal, task_id, data.enabled)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.get(
    "/tasks/{task_id}/files",
    response_model=FileUploadListResponse,
    summary="List files uploaded for a task",
)
async def list_task_files(
    task_id: UUID,
    principal: PmPrincipal,
    dashboard_service: DashboardServiceDep,
) -> FileUploadListResponse:
    try:
        return await dashboard_service.list_task_files(principal, task_id)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


# ==============================================================================
# Content Editing
# ==============================================================================


@router.put(
    "/tasks/{task_id}/content",
    response_model=TaskContentResponse,
    summary="Edit task title, description or content",
)
async def update_task_content(
    task_id: UUID,
    data: TaskContentUpdateRequest,
    principal: PmPrincipal,
    content_admin_service: ContentAdminServiceDep,
) -> TaskContentResponse:
    """The content kind cannot change; a changed content re-evaluates the task."""
    try:
        return await content_admin_service.update_task_content(
            principal, task_id, data
        )
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.post(
    "/tasks/{task_id}/questions",
    response_model=TaskContentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a quiz question",
)
async def add_question(
    task_id: UUID,
    data: QuizQuestionRequest,
    principal: PmPrincipal,
    content_admin_service: ContentAdminServiceDep,
) -> TaskContentResponse:
    try:
        return await content_admin_service.add_question(principal, task_id, data)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.put(
    "/tasks/{task_id}/questions/{question_id}",
    response_model=TaskContentResponse,
    summary="Replace a quiz question",
)
async def update_question(
    task_id: UUID,
    question_id: UUID,
    data: QuizQuestionRequest,
    principal: PmPrincipal,
    content_admin_service: ContentAdminServiceDep,
) -> TaskContentResponse:
    try:
        return await content_admin_service.update_question(
            principal, task_id, question_id, data
        )
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.delete(
    "/tasks/{task_id}/questions/{question_id}",
    response_model=TaskContentResponse,
    summary="Delete a quiz question",
)
async def delete_question(
    task_id: UUID,
    question_id: UUID,
    principal: PmPrincipal,
    content_admin_service: ContentAdminServiceDep,
) -> TaskContentResponse:
    try:
        return await content_admin_service.delete_question(
            principal, task_id, question_id
        )
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.post(
    "/tasks/{task_id}/checklist-items",
    response_model=TaskContentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a checklist item",
)
async def add_checklist_item(
    task_id: UUID,
    data: ChecklistItemRequest,
    principal: PmPrincipal,
    content_admin_service: ContentAdminServiceDep,
) -> TaskContentResponse:
    try:
        return await content_admin_service.add_item(principal, task_id, data.label)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.patch(
    "/tasks/{task_id}/checklist-items/{item_id}",
    response_model=TaskContentResponse,
    summary="Relabel a checklist item",
)
async def update_checklist_item(
    task_id: UUID,
    item_id: UUID,
    data: ChecklistItemRequest,
    principal: PmPrincipal,
    content_admin_service: ContentAdminServiceDep,
) -> TaskContentResponse:
    try:
        return await content_admin_service.update_item_label(
            principal, task_id, item_id, data.label
        )
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e


@router.delete(
    "/tasks/{task_id}/checklist-items/{item_id}",
    response_model=TaskContentResponse,
    summary="Delete a checklist item",
)
async def delete_checklist_item(
    task_id: UUID,
    item_id: UUID,
    principal: PmPrincipal,
    content_admin_service: ContentAdminServiceDep,
) -> TaskContentResponse:
    try:
        return await content_admin_service.delete_item(principal, task_id, item_id)
    except OnboardingError as e:
        raise handle_onboarding_error(e) from e
