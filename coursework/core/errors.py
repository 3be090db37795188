"""Domain errors raised by the submission and grading services.

Every error carries the HTTP status it maps to and a short machine code so
the UI can tell *why* a request was refused (deadline passed, limit reached,
resubmission window closed, ...).
"""

from fastapi import Request
from fastapi.responses import JSONResponse


class SubmissionError(Exception):
    status_code = 400
    code = "submission_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(SubmissionError):
    status_code = 404
    code = "not_found"


class Forbidden(SubmissionError):
    status_code = 403
    code = "forbidden"


class ValidationError(SubmissionError):
    status_code = 422
    code = "validation_error"


class PolicyViolation(SubmissionError):
    code = "policy_violation"


class Rejected(SubmissionError):
    code = "rejected"


class DeadlineExpired(SubmissionError):
    code = "deadline_expired"


class LimitExceeded(SubmissionError):
    code = "limit_exceeded"


class InvalidState(SubmissionError):
    status_code = 409
    code = "invalid_state"


class Conflict(SubmissionError):
    status_code = 409
    code = "conflict"


class StorageError(SubmissionError):
    status_code = 502
    code = "storage_error"


async def submission_error_handler(request: Request, exc: SubmissionError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )
