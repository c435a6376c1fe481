"""Application error taxonomy and the JSON body every failure is rendered as."""

from typing import Any, Dict


class AppError(Exception):
    """Base class for application errors."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(AppError):
    """Bad enum value, malformed id or missing field."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, status_code=400)


class NotFoundError(AppError):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class AuthError(AppError):
    """401 when no credentials were sent, 403 when they were rejected."""

    def __init__(self, message: str = "Missing token", status_code: int = 401):
        super().__init__(message, status_code=status_code)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Not allowed"):
        super().__init__(message, status_code=403)


class GenerationExhausted(AppError):
    """Raised when every ticket number candidate collided."""

    def __init__(self, message: str = "Could not allocate a unique ticket number"):
        super().__init__(message, status_code=503)


class UpstreamError(AppError):
    """QR or image upload collaborator failed or timed out."""

    def __init__(self, message: str = "Upload service failed"):
        super().__init__(message, status_code=502)


class PersistenceError(AppError):
    def __init__(self, message: str = "Storage unavailable"):
        super().__init__(message, status_code=500)


def to_body(error: AppError) -> Dict[str, Any]:
    return {"error": error.message}
