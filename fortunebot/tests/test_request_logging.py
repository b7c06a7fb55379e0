"""Request-id middleware, structured logging and metrics helpers."""

import json
import logging

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from fortunebot.core.logging import JsonFormatter, log_event, mask_user_id, request_id_ctx_var
from fortunebot.core.metrics import METRICS, http_requests_total, normalize_path, webhook_events_total
from fortunebot.core.middleware.metrics import MetricsMiddleware
from fortunebot.core.middleware.request_id import RequestIdMiddleware


def _make_app():
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(MetricsMiddleware)

    @app.get("/")
    async def root(request: Request):
        return {"request_id": getattr(request.state, "request_id", None)}

    return app


def test_generates_request_id_when_missing():
    resp = TestClient(_make_app()).get("/")
    assert resp.status_code == 200
    assert resp.headers.get("x-request-id")
    assert resp.headers["x-request-id"] == resp.json()["request_id"]


def test_echoes_provided_request_id(caplog):
    client = TestClient(_make_app())
    with caplog.at_level(logging.INFO, logger="fortunebot"):
        resp = client.get("/", headers={"X-Request-Id": "test-rid-123"})
    assert resp.headers.get("x-request-id") == "test-rid-123"
    assert any(getattr(r, "request_id", None) == "test-rid-123" for r in caplog.records)
    assert request_id_ctx_var.get() is None


def test_metrics_middleware_counts_requests():
    client = TestClient(_make_app())
    client.get("/")
    client.get("/")
    assert http_requests_total.value({"method": "GET", "path": "/", "status": "200"}) == 2
    assert 'http_requests_total{method="GET",path="/",status="200"} 2.0' in METRICS.export_prometheus()


def test_normalize_path_collapses_ids():
    assert normalize_path("/orders/12345") == "/orders/:id"
    assert normalize_path("/webhook") == "/webhook"


def test_mask_user_id():
    assert mask_user_id("U1234567890abcdef") == "U123…cdef"
    assert mask_user_id("short") == "short"
    assert mask_user_id(None) is None


def test_log_event_masks_user_and_truncates(caplog):
    with caplog.at_level(logging.INFO, logger="fortunebot"):
        log_event(
            "info",
            "webhook.message",
            user_id="U1234567890abcdef",
            order_id="ST999999",
            event_type="day_pass",
            extra={"text": "x" * 600},
        )
    record = caplog.records[-1]
    assert record.user_id == "U123…cdef"
    assert record.order_id == "ST999999"
    assert record.text.endswith("...<truncated>")
    assert len(record.text) < 600


def test_json_formatter_includes_structured_fields():
    record = logging.LogRecord("fortunebot", logging.INFO, __file__, 1, "redeem.granted", None, None)
    record.request_id = "rid-1"
    record.order_id = "ST999999"
    record.error_code = None
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "redeem.granted"
    assert payload["request_id"] == "rid-1"
    assert payload["order_id"] == "ST999999"
    assert "error_code" not in payload


def test_counter_export_has_help_and_escapes_labels():
    webhook_events_total.inc(labels={"result": 'bad"sig'})
    body = METRICS.export_prometheus()
    assert "# HELP webhook_events_total Webhook deliveries and events by outcome." in body
    assert "# TYPE webhook_events_total counter" in body
    assert 'webhook_events_total{result="bad\\"sig"} 1.0' in body

    METRICS.reset()
    assert webhook_events_total.value({"result": 'bad"sig'}) == 0
