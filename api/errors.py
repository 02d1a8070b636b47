"""Error taxonomy shared by the store, the services and the HTTP layer.

Every error is an ``HTTPException`` so FastAPI renders it with the right
status code wherever it is raised; ``api.main`` installs a handler that shapes
the body as ``{"error": message}``.

Copyright (c) Bryn Gwalad 2025
"""

from fastapi import HTTPException, status


class AppError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message=None, headers=None):
        super().__init__(
            status_code=self.status_code,
            detail=message or self.default_message,
            headers=headers,
        )

    @property
    def message(self) -> str:
        return self.detail


class InvalidInput(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request data"


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"

    def __init__(self, message=None):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class ConstraintViolation(Conflict):
    """Raised by the store when a uniqueness, foreign-key or NOT NULL rule fails.

    Services catch it and re-raise a message meant for the caller.
    """

    default_message = "Constraint violation"


class UploadFailed(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Failed to upload image"
