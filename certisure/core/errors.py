"""Typed failures raised by the certificate core.

Services raise these; the API layer maps them to responses. Lower level
helpers attach structured context (feature, plan, limit, count) and leave the
wording of upgrade prompts to the orchestrating service.
"""

from __future__ import annotations

from typing import Any

from starlette import status


class CertisureError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = {key: value for key, value in context.items() if value is not None}

    def payload(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.context}


class ValidationError(CertisureError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class NotFoundError(CertisureError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ForbiddenError(CertisureError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class QuotaExceededError(ForbiddenError):
    code = "quota_exceeded"


class ConflictError(CertisureError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class InternalError(CertisureError):
    pass
