"""
errors.py — Application exception taxonomy for Travel Notes.

Every error that should reach the client as a structured response derives
from ApiError.  The handler registered in app.py turns them into

    { "error": "<message>", "code": "<CODE>" }

with the class's status_code.  EnrichmentError is the one exception that is
never surfaced: the image client raises and absorbs it internally.
"""


class ApiError(Exception):
    status_code = 500
    code        = 'INTERNAL_ERROR'

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.message        = message
        self.original_error = original_error


class ValidationError(ApiError):
    status_code = 400
    code        = 'VALIDATION_ERROR'


class AuthenticationError(ApiError):
    status_code = 401
    code        = 'UNAUTHORIZED'


class ForbiddenError(ApiError):
    status_code = 403
    code        = 'FORBIDDEN'


class NotFoundError(ApiError):
    status_code = 404
    code        = 'NOT_FOUND'


class NotFoundOrForbiddenError(ApiError):
    """A note is missing or belongs to someone else.  The two cases share one
    shape so private notes never reveal whether they exist."""
    status_code = 404
    code        = 'NOT_FOUND_OR_FORBIDDEN'

    def __init__(self, message: str = 'Note not found or access denied'):
        super().__init__(message)


class ConfigurationError(ApiError):
    code = 'CONFIGURATION_ERROR'


class DatabaseError(ApiError):
    code = 'DATABASE_ERROR'


class GenerationError(ApiError):
    """The language model returned output that does not satisfy the contract."""
    code = 'GENERATION_ERROR'


class OperationTimeoutError(ApiError):
    status_code = 504
    code        = 'TIMEOUT'


class EnrichmentError(Exception):
    """Image lookup failed.  Always downgraded to a missing image."""
