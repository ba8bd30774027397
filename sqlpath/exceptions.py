"""
sqlpath/exceptions.py
Typed domain exceptions raised by the service layer

Services never import FastAPI; main.py maps these onto the API error
structure from sqlpath.errors.
"""
from typing import Optional


class SQLPathException(Exception):
    """Base exception for the service layer"""
    status_code: int = 500

    def __init__(self, message: str, status_code: int = None):
        self.message = message
        if status_code:
            self.status_code = status_code
        super().__init__(self.message)


class ResourceNotFoundError(SQLPathException):
    """Raised when a requested row doesn't exist."""
    status_code = 404

    def __init__(self, resource: str, identifier=None):
        self.resource = resource
        self.identifier = identifier
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(message, self.status_code)


class LessonLimitReachedError(SQLPathException):
    """
    Raised when the access gate denies a module.

    Carries what the upgrade prompt needs to explain the denial.
    """
    status_code = 402

    def __init__(self, course_id: int, module_id: int, started_in_course: int, limit: int, tier: str):
        self.course_id = course_id
        self.module_id = module_id
        self.started_in_course = started_in_course
        self.limit = limit
        self.tier = tier
        super().__init__(
            f"Lesson limit reached for the {tier} plan "
            f"({started_in_course}/{limit} lessons started in this course)",
            self.status_code
        )


class FeatureNotInPlanError(SQLPathException):
    """Raised when the learner's tier does not include a feature (AI tutor, live instructor)."""
    status_code = 402

    def __init__(self, feature: str, tier: str):
        self.feature = feature
        self.tier = tier
        super().__init__(f"'{feature}' is not included in the {tier} plan", self.status_code)


class ModuleNotStartedError(SQLPathException):
    """Raised when a module the learner never entered is submitted or advanced past."""
    status_code = 403

    def __init__(self, module_id: int):
        self.module_id = module_id
        super().__init__(f"Module {module_id} has not been started", self.status_code)


class ContentNotReadyError(SQLPathException):
    """Raised when a module has no generated challenge yet."""
    status_code = 409

    def __init__(self, message: str = "This lesson's content has not been generated yet"):
        super().__init__(message, self.status_code)


class NotCompletedError(SQLPathException):
    """Raised when a certificate is claimed for unfinished content."""
    status_code = 409

    def __init__(self, message: str):
        super().__init__(message, self.status_code)


class ChallengePayloadError(SQLPathException):
    """Raised when a challenge document fails validation."""
    status_code = 400

    def __init__(self, message: str, errors: Optional[list] = None):
        self.errors = errors or []
        super().__init__(message, self.status_code)


class ContentServiceError(SQLPathException):
    """Generative content service call failed."""
    status_code = 503

    def __init__(self, message: str, retryable: bool = False):
        self.retryable = retryable
        super().__init__(message, self.status_code)


class ContentQuotaError(ContentServiceError):
    """Quota errors persisted after every retry."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Content service quota exhausted after {attempts} attempts",
            retryable=True
        )


class CertificateError(SQLPathException):
    """Rendering, download, upload or persistence of a certificate failed."""
    status_code = 503

    def __init__(self, message: str, step: str):
        self.step = step
        super().__init__(message, self.status_code)


class InvalidRequestError(SQLPathException):
    """Raised when a request is well-formed but inconsistent with stored data."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, self.status_code)
