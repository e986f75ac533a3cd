"""Domain exceptions raised by services.

Each exception carries:
- `message`: readable description returned as the response `detail`
- `code`: stable machine code (e.g. "NOT_FOUND")
- `status_code`: HTTP status the API maps it to
"""


class LivrariaError(Exception):
    """Base class of every domain error."""

    status_code: int = 500

    def __init__(self, message: str, code: str = None):
        self.message = message
        self.code = code or "LIVRARIA_ERROR"
        super().__init__(self.message)


class NotFoundError(LivrariaError):
    status_code = 404

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", "NOT_FOUND")
        self.resource = resource


class PermissionDeniedError(LivrariaError):
    status_code = 403

    def __init__(self, message: str = "forbidden"):
        super().__init__(message, "FORBIDDEN")


class ConflictError(LivrariaError):
    status_code = 409

    def __init__(self, message: str):
        super().__init__(message, "CONFLICT")


class InvalidStateError(LivrariaError):
    """The entity exists but its current state does not allow the operation."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, "INVALID_STATE")


class ValidationFailedError(LivrariaError):
    status_code = 400

    def __init__(self, message: str, field: str = None):
        super().__init__(message, "VALIDATION_ERROR")
        self.field = field


class ContentBlockedError(LivrariaError):
    status_code = 400

    def __init__(self, message: str = "generated content was blocked by safety filters"):
        super().__init__(message, "CONTENT_BLOCKED")


class UpstreamError(LivrariaError):
    status_code = 502

    def __init__(self, message: str):
        super().__init__(message, "UPSTREAM_ERROR")


class ServiceUnavailableError(LivrariaError):
    status_code = 503

    def __init__(self, message: str):
        super().__init__(message, "SERVICE_UNAVAILABLE")
