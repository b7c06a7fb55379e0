"""Error taxonomy and HTTP handlers."""

import logging
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from fortunebot.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class RateLimitError(AppError):
    code = "rate_limited"
    status_code = 429


# --- Outbound dependencies (transient) ---

class UpstreamError(AppError):
    """An external service (store, order API, completion API, LINE) failed."""
    code = "upstream_unavailable"
    status_code = 502


class StoreUnavailableError(UpstreamError):
    code = "store_unavailable"


class OrderLookupError(UpstreamError):
    code = "order_lookup_failed"


class ReplyDeliveryError(UpstreamError):
    code = "reply_delivery_failed"


class CompletionError(UpstreamError):
    code = "completion_failed"


class CompletionQuotaError(RateLimitError):
    """Completion API kept answering 429 (rate limit or exhausted quota)."""
    code = "completion_quota"


# --- Redemption outcomes (user-visible) ---

class OrderNotFoundError(NotFoundError):
    code = "order_not_found"


class OrderNotPaidError(AppError):
    code = "order_not_paid"
    status_code = 402


class ProductUnidentifiedError(AppError):
    code = "product_unidentified"
    status_code = 422


class OrderAlreadyUsedError(ConflictError):
    code = "order_already_used"


class OrderOwnedByAnotherUserError(OrderAlreadyUsedError):
    code = "order_owned_by_another_user"


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str) -> dict:
    return {
        "error": {"code": code, "message": message, "request_id": request_id},
        "detail": message,
    }


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid)
    logger = logging.getLogger("fortunebot")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("fortunebot")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("fortunebot")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
