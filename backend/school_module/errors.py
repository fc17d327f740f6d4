from fastapi import HTTPException, status


class ServiceError(HTTPException):
    """Base for errors surfaced to API callers with a stable code."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal"

    def __init__(self, message: str):
        super().__init__(status_code=self.status_code, detail=message)
        self.message = message


class ValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class Unauthenticated(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"


class Forbidden(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFound(ServiceError):
    # Also raised for rows owned by another institute, so existence never leaks.
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class Conflict(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class Internal(ServiceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal"
