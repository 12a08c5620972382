from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    """HTTPException with a stable machine-readable code.

    Raised by the services and rendered identically by the HTTP exception
    handler and the socket error emitter.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    code = "BAD_REQUEST"
    default_message = "Bad request"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=self.status_code, detail=message or self.default_message)
        self.details = details

    @property
    def message(self) -> str:
        return self.detail

    def to_dict(self) -> Dict[str, Any]:
        payload = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Resource not found."


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_message = "You do not have permission to perform this action."


class InvalidStateError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_STATE"
    default_message = "Operation not allowed in the current state."


class AlreadySubmittedError(InvalidStateError):
    code = "ALREADY_SUBMITTED"
    default_message = "This attempt has already been submitted."


class AttemptExpiredError(AppError):
    status_code = status.HTTP_410_GONE
    code = "ATTEMPT_EXPIRED"
    default_message = "Attempt has expired and been auto-submitted."


class AttemptLimitExceededError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "ATTEMPT_LIMIT_EXCEEDED"
    default_message = "Maximum number of attempts reached for this test."


class ValidationFailedError(AppError):
    status_code = 422
    code = "VALIDATION_ERROR"
    default_message = "Request validation failed."


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"
    default_message = "Could not validate credentials."


class TransientStoreError(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "STORE_UNAVAILABLE"
    default_message = "Could not persist the change, please retry."


class ResultsExpiredError(AppError):
    status_code = status.HTTP_410_GONE
    code = "RESULTS_EXPIRED"
    default_message = "Results have expired and are no longer available."


class ServerError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_SERVER_ERROR"
    default_message = "An unexpected error occurred."
