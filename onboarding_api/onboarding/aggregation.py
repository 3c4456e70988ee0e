"""Progress aggregation rules.

Pure functions over loaded entities; ``ProgressService`` loads, applies
and persists. Keeping them pure makes recomputation idempotent: the
aggregates only depend on the current task states.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .models import OnboardingStep, StepStatus, Task, TaskStatus


@dataclass(frozen=True)
class StepProgress:
    """Counters and status of a step."""

    total_tasks: int
    completed_tasks: int
    status: StepStatus


@dataclass(frozen=True)
class InstructorProgress:
    """Overall progress (0-100) and 1-based current step of an instructor."""

    overall_progress: int
    current_step: int


def progress_percent(part: int, whole: int) -> int:
    """Integer percentage rounded half-up and clamped to [0, 100].

    Examples:
        >>> progress_percent(1, 2)
        50
        >>> progress_percent(2, 3)
        67
        >>> progress_percent(1, 8)
        13
        >>> progress_percent(3, 0)
        0
    """
    if whole <= 0:
        return 0
    percent = (Decimal(100) * part / whole).quantize(Decimal(1), ROUND_HALF_UP)
    return max(0, min(100, int(percent)))


def derive_step_status(total_tasks: int, completed_tasks: int) -> StepStatus:
    """COMPLETED iff all of at least one task are done, IN_PROGRESS if any."""
    if total_tasks > 0 and completed_tasks == total_tasks:
        return StepStatus.COMPLETED
    if completed_tasks > 0:
        return StepStatus.IN_PROGRESS
    return StepStatus.PENDING


def compute_step_progress(tasks: Iterable[Task]) -> StepProgress:
    """Count enabled tasks and enabled completed tasks of a step.

    SKIPPED tasks count toward the total but never as completed.
    """
    enabled = [task for task in tasks if task.is_enabled]
    completed = sum(1 for task in enabled if task.status == TaskStatus.COMPLETED)
    return StepProgress(
        total_tasks=len(enabled),
        completed_tasks=completed,
        status=derive_step_status(len(enabled), completed),
    )


def compute_instructor_progress(steps: Sequence[OnboardingStep]) -> InstructorProgress:
    """Aggregate steps (in display order) into instructor progress.

    Steps without enabled tasks are left out of the percentage. The current
    step is the first step not COMPLETED, the last step when all are, and 1
    when there are no steps.
    """
    counted = [step for step in steps if step.total_tasks > 0]
    completed = sum(1 for step in counted if step.status == StepStatus.COMPLETED)

    current_step = len(steps) or 1
    for position, step in enumerate(steps, start=1):
        if step.status != StepStatus.COMPLETED:
            current_step = position
            break

    return InstructorProgress(
        overall_progress=progress_percent(completed, len(counted)),
        current_step=current_step,
    )


def resolve_task_status(
    current: TaskStatus,
    complete: bool,
    revertible: bool,
) -> TaskStatus:
    """Task status after a content interaction.

    - complete: COMPLETED
    - incomplete, was COMPLETED and the content type reverts: IN_PROGRESS
    - otherwise unchanged (partial progress leaves a PENDING task PENDING)

    SKIPPED tasks are only brought back by an explicit status change.
    """
    if current == TaskStatus.SKIPPED:
        return current
    if complete:
        return TaskStatus.COMPLETED
    if current == TaskStatus.COMPLETED and revertible:
        return TaskStatus.IN_PROGRESS
    return current
