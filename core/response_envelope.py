from __future__ import annotations

import inspect
from functools import wraps
from typing import Any, Callable

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.responses import Response

from core.errors import ErrorCode

_DEFAULT_FAILURE = "Request failed"


def _envelope(success: bool, message: str, data: Any, request_id: str | None) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": success, "message": message, "data": data}
    if request_id:
        payload["requestId"] = request_id
    return payload


def success_payload(data: Any, message: str = "Success", *, request_id: str | None = None) -> dict[str, Any]:
    return _envelope(True, message, data, request_id)


def error_payload(message: str, data: Any = None, *, request_id: str | None = None) -> dict[str, Any]:
    return _envelope(False, message, data, request_id)


def request_id_of(request: Request | None) -> str | None:
    if request is None:
        return None
    return getattr(request.state, "request_id", None)


def error_response(
    *,
    status_code: int,
    message: str,
    data: Any = None,
    headers: dict[str, str] | None = None,
    request_id: str | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers=headers,
        content=jsonable_encoder(error_payload(message, data, request_id=request_id)),
    )


def _split_detail(detail: Any) -> tuple[str, dict[str, Any]]:
    """`AppException` details carry their own message and code; anything else is a generic HTTP error."""
    if isinstance(detail, dict) and isinstance(detail.get("message"), str) and detail["message"].strip():
        return detail["message"], {
            "code": detail.get("code", ErrorCode.HTTP_ERROR.value),
            "details": detail.get("details"),
        }
    if isinstance(detail, str) and detail.strip():
        return detail, {"code": ErrorCode.HTTP_ERROR.value, "details": None}
    return _DEFAULT_FAILURE, {"code": ErrorCode.HTTP_ERROR.value, "details": detail or None}


def http_exception_response(exc: HTTPException, request: Request | None = None) -> JSONResponse:
    message, data = _split_detail(exc.detail)
    return error_response(
        status_code=exc.status_code,
        message=message,
        data=data,
        headers=exc.headers,
        request_id=request_id_of(request),
    )


def document_response(
    *,
    message: str = "Success",
    status_code: int = status.HTTP_200_OK,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Wrap a route's return value in the success envelope.

    The request id is echoed only when the endpoint takes a `request: Request`
    argument. Endpoints returning a `Response` are passed through untouched.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Response:
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            if isinstance(result, Response):
                return result

            request = next((value for value in kwargs.values() if isinstance(value, Request)), None)
            return JSONResponse(
                status_code=status_code,
                content=jsonable_encoder(success_payload(result, message, request_id=request_id_of(request))),
            )

        return wrapper

    return decorator
