"""
Webhook API routes.

- POST /webhook: LINE delivery endpoint
- POST /callback: alias kept for channels configured with the older path

The delivery is acknowledged immediately; events are processed in a
background task so slow upstream calls never cause platform retries.
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Header, Request

from fortunebot.core.config import settings
from fortunebot.core.logging import log_event
from fortunebot.core.metrics import webhook_events_total
from fortunebot.features.line.models import parse_events
from fortunebot.features.line.signature import verify_signature
from fortunebot.features.webhook.dispatcher import WebhookDispatcher
from fortunebot.features.webhook.service import build_dispatcher


logger = logging.getLogger("fortunebot")

router = APIRouter(tags=["webhook"])


def signature_required(cfg) -> bool:
    """Unsigned deliveries are never accepted in production."""
    return bool(cfg.LINE_SIGNATURE_REQUIRED) or (cfg.ENV or "").lower() == "production"


def get_dispatcher(request: Request) -> WebhookDispatcher:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if dispatcher is None:
        dispatcher = build_dispatcher(settings)
        request.app.state.dispatcher = dispatcher
    return dispatcher


@router.post("/webhook")
@router.post("/callback")
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_line_signature: Optional[str] = Header(None),
):
    """
    Receive a LINE webhook delivery.

    Always answers 200 {"status": "ok"}; rejected or malformed deliveries
    are logged and dropped without processing.
    """
    body = await request.body()

    if x_line_signature is not None or signature_required(settings):
        if not verify_signature(settings.LINE_CHANNEL_SECRET, body, x_line_signature):
            webhook_events_total.inc(labels={"result": "bad_signature"})
            log_event("warning", "webhook.signature_invalid", error_code="invalid_signature")
            return {"status": "ok"}

    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        webhook_events_total.inc(labels={"result": "malformed"})
        log_event("warning", "webhook.malformed_body", error_code="malformed_payload")
        return {"status": "ok"}

    events = parse_events(payload)
    if events:
        background_tasks.add_task(get_dispatcher(request).dispatch, events)
    logger.info(f"[webhook] accepted {len(events)} event(s)")
    return {"status": "ok"}
