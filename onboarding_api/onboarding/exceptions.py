"""Onboarding errors.

Every error carries a ``code``; ``dependencies.handle_onboarding_error``
maps codes to HTTP status codes.
"""


class OnboardingError(Exception):
    """Base onboarding error."""

    def __init__(self, message: str, code: str = "onboarding_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class ResourceNotFoundError(OnboardingError):
    """Requested instructor, task, item or file does not exist."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, "not_found")


class AggregateNotFoundError(ResourceNotFoundError):
    """A task's step or a step's instructor cannot be resolved.

    Never caused by user input: the data is inconsistent.
    """

    def __init__(self, message: str = "Owning step or instructor not found"):
        OnboardingError.__init__(self, message, "aggregate_not_found")


class PermissionDeniedError(OnboardingError):
    """Caller may not perform the action."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message, "permission_denied")


class InvalidContentTypeError(OnboardingError):
    """Action does not match the task's content type."""

    def __init__(self, message: str = "Action not supported for this task type"):
        super().__init__(message, "invalid_content_type")


class InvalidSubmissionError(OnboardingError):
    """Quiz submission references unknown questions or has wrong answers."""

    def __init__(self, message: str = "Invalid submission"):
        super().__init__(message, "invalid_submission")


class FileRejectedError(OnboardingError):
    """Uploaded file has a forbidden extension or is too large."""

    def __init__(self, message: str = "File rejected"):
        super().__init__(message, "file_rejected")


class InvalidTransitionError(OnboardingError):
    """Task status change not allowed."""

    def __init__(self, message: str = "Task status transition not allowed"):
        super().__init__(message, "invalid_transition")


class TaskDisabledError(OnboardingError):
    """Task is disabled for the instructor."""

    def __init__(self, message: str = "Task is disabled"):
        super().__init__(message, "task_disabled")


class AlreadyExistsError(OnboardingError):
    """Resource already exists (e.g. user already has an instructor profile)."""

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message, "already_exists")


class InvalidContentError(OnboardingError):
    """Content edit would leave a task without questions or items."""

    def __init__(self, message: str = "Invalid task content"):
        super().__init__(message, "invalid_content")
