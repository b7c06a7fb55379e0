"""
Inbound LINE webhook events.

Only text messages from a known user with a reply token are handled;
anything else is dropped without a reply.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class TextMessageEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    reply_token: str
    user_id: str
    text: str
    webhook_event_id: Optional[str] = None
    is_redelivery: bool = False

    @classmethod
    def from_raw(cls, event: Any) -> Optional["TextMessageEvent"]:
        if not isinstance(event, dict) or event.get("type") != "message":
            return None
        message = event.get("message")
        source = event.get("source")
        if not isinstance(message, dict) or message.get("type") != "text":
            return None
        if not isinstance(source, dict):
            return None
        reply_token = event.get("replyToken")
        user_id = source.get("userId")
        text = (message.get("text") or "").strip()
        if not reply_token or not user_id or not text:
            return None
        delivery = event.get("deliveryContext") if isinstance(event.get("deliveryContext"), dict) else {}
        return cls(
            reply_token=reply_token,
            user_id=user_id,
            text=text,
            webhook_event_id=event.get("webhookEventId"),
            is_redelivery=bool(delivery.get("isRedelivery", False)),
        )


def parse_events(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    events = payload.get("events")
    if not isinstance(events, list):
        return []
    return events
