# Domain errors raised by the service layer and mapped to HTTP responses in main.
from fastapi import status


class QuizCraftError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(QuizCraftError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "not found"


class Forbidden(QuizCraftError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "access denied"


class AttemptLimitExceeded(QuizCraftError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "maximum attempts reached"


class ValidationError(QuizCraftError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "invalid request"


class Unauthenticated(QuizCraftError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "not authenticated"


class InternalError(QuizCraftError):
    default_message = "server error"

    def __init__(self, message=None, error=None):
        super().__init__(message)
        self.error = error

    @classmethod
    def from_exception(cls, exc: Exception) -> "InternalError":
        return cls(error=str(exc) or type(exc).__name__)
