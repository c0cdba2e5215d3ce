from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    RATE_LIMIT = "RATE_LIMIT"
    SERVER_ERROR = "SERVER_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    DISCOUNT_INVALID = "DISCOUNT_INVALID"
    PHONE_INVALID = "PHONE_INVALID"
    SUBMISSION_CONFLICT = "SUBMISSION_CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class DiscountInvalidReason(str, Enum):
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    INACTIVE = "inactive"
    NOT_STARTED = "not_started"
    NOT_FOUND = "not_found"


class AppException(HTTPException):
    def __init__(
        self,
        *,
        status_code: int,
        code: ErrorCode,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        detail = {
            "message": message,
            "code": code.value,
            "details": details,
        }
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ApiClientError(Exception):
    """Failure of a call to the shop API, normalized once at the transport boundary."""

    def __init__(self, *, status: int | None, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message

    @property
    def is_retryable(self) -> bool:
        return self.code in {ErrorCode.SERVER_ERROR, ErrorCode.NETWORK_ERROR, ErrorCode.RATE_LIMIT}


class DiscountInvalidError(Exception):
    code = ErrorCode.DISCOUNT_INVALID

    def __init__(self, reason: DiscountInvalidReason, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message


def validation_failed(field: str, message: str, details: Any | None = None) -> AppException:
    return AppException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code=ErrorCode.VALIDATION_ERROR,
        message=message,
        details={"field": field, **(details or {})},
    )


def phone_invalid(country_name: str, reason: str | None = None) -> AppException:
    return AppException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code=ErrorCode.PHONE_INVALID,
        message=f"Phone number is invalid for {country_name}",
        details={"field": "phone", "country": country_name, "reason": reason},
    )


def submission_conflict(key: str) -> AppException:
    return AppException(
        status_code=status.HTTP_409_CONFLICT,
        code=ErrorCode.SUBMISSION_CONFLICT,
        message="A submission for this checkout is already in progress",
        details={"key": key},
    )
