"""Tests for normalized error responses."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fortunebot.core import errors
from fortunebot.core.errors import (
    AppError,
    OrderLookupError,
    OrderNotPaidError,
    OrderOwnedByAnotherUserError,
    app_error_handler,
)
from fortunebot.core.middleware.request_id import RequestIdMiddleware


def _make_app(exc: AppError):
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(AppError, app_error_handler)

    @app.get("/boom")
    async def boom():
        raise exc

    return app


@pytest.mark.parametrize(
    "exc, status, code",
    [
        (OrderNotPaidError("Order ST1 is not paid"), 402, "order_not_paid"),
        (OrderOwnedByAnotherUserError("Order ST1 belongs to another user"), 409, "order_owned_by_another_user"),
        (OrderLookupError("Order API returned 503"), 502, "order_lookup_failed"),
    ],
)
def test_app_errors_have_standard_shape(exc, status, code):
    resp = TestClient(_make_app(exc)).get("/boom")
    assert resp.status_code == status
    body = resp.json()
    assert body["error"]["code"] == code
    assert body["error"]["request_id"] == resp.headers["x-request-id"]
    assert body["detail"] == exc.message


def test_error_hierarchy():
    assert not hasattr(errors, "ValidationError")
    assert issubclass(OrderOwnedByAnotherUserError, errors.OrderAlreadyUsedError)
    assert issubclass(errors.CompletionQuotaError, errors.RateLimitError)
