"""Application exception classes and handlers."""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


# --- Authentication (401) ---


class AuthenticationError(AppException):
    """Base authentication error."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message=message, code="AUTHENTICATION_ERROR", status_code=401)


# --- Authorization (403) ---


class AuthorizationError(AppException):
    """Insufficient permissions."""

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message=message, code="AUTHORIZATION_ERROR", status_code=403)


# --- Not Found (404) ---


class ConversationNotFoundError(AppException):
    """Conversation not found."""

    def __init__(self, conversation_id: int | None = None) -> None:
        message = "Conversation not found"
        if conversation_id is not None:
            message = f"Conversation {conversation_id} not found"
        super().__init__(
            message=message,
            code="CONVERSATION_NOT_FOUND",
            status_code=404,
        )


class StudentProfileNotFoundError(AppException):
    """Student profile not found."""

    def __init__(self) -> None:
        super().__init__(
            message="Student profile not found",
            code="STUDENT_PROFILE_NOT_FOUND",
            status_code=404,
        )


class GoalTaskNotFoundError(AppException):
    """Goal task not found for this student."""

    def __init__(self) -> None:
        super().__init__(
            message="Goal task not found",
            code="GOAL_TASK_NOT_FOUND",
            status_code=404,
        )


# --- Upstream (502) ---


class LLMGenerationError(AppException):
    """Text generation failed, timed out, or returned nothing usable."""

    def __init__(self, message: str = "Text generation failed") -> None:
        super().__init__(message=message, code="LLM_GENERATION_ERROR", status_code=502)


# --- Exception Handlers ---


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Central exception handler for AppException."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "status": exc.status_code,
            "message": exc.message,
            "code": exc.code,
        },
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render request validation errors in the common error envelope."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    detail = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=422,
        content={
            "status": 422,
            "message": f"{location}: {detail}" if location else detail,
            "code": "VALIDATION_ERROR",
        },
    )
