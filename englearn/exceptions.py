"""
Domain errors raised by the attempt recorder and progress aggregator.

The route layer maps each one to an HTTP status through a single exception
handler registered in ``englearn.main``; services never translate them.
"""


class LearningPlatformError(Exception):
    """Base class for errors surfaced to API clients"""

    status_code = 500
    error_code = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LearningPlatformError):
    """Malformed input: missing answers, out-of-range question index"""

    status_code = 400
    error_code = "validation_error"


class NotFoundError(LearningPlatformError):
    """Unknown user, quiz, module or progress rollup"""

    status_code = 404
    error_code = "not_found"


class ConflictError(LearningPlatformError):
    """Write lost to a concurrent writer (duplicate attempt, stale progress)"""

    status_code = 409
    error_code = "conflict"


class AttemptNotAllowedError(ConflictError):
    """Quiz is closed for this user (perfect first try or attempt ceiling)"""

    error_code = "attempt_not_allowed"


class ServiceUnavailableError(LearningPlatformError):
    """Storage layer still failing after the retry"""

    status_code = 503
    error_code = "service_unavailable"
