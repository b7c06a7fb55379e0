"""LINE Messaging API reply client."""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from fortunebot.core.errors import ReplyDeliveryError


logger = logging.getLogger("fortunebot")

REPLY_PATH = "/v2/bot/message/reply"


def truncate_reply(text: str, limit: int = 4900) -> str:
    """Cap reply length to the platform's per-message limit."""
    if limit <= 0:
        return ""
    return text if len(text) <= limit else text[:limit]


class LineMessagingClient:
    def __init__(
        self,
        access_token: Optional[str],
        api_base: str = "https://api.line.me",
        max_chars: int = 4900,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.api_base = api_base.rstrip("/")
        self.max_chars = max_chars
        self.timeout = timeout
        self.transport = transport

    async def reply_text(self, reply_token: str, text: str) -> str:
        """Send one plain-text reply. Returns the text actually sent."""
        if not self.access_token:
            raise ReplyDeliveryError("LINE_CHANNEL_ACCESS_TOKEN not configured")

        body_text = truncate_reply(text, self.max_chars)
        payload = {
            "replyToken": reply_token,
            "messages": [{"type": "text", "text": body_text}],
        }
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(base_url=self.api_base, timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(REPLY_PATH, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ReplyDeliveryError(f"LINE reply rejected: {e.response.status_code} {e.response.text[:200]}")
        except httpx.HTTPError as e:
            raise ReplyDeliveryError(f"LINE reply failed: {e.__class__.__name__}")
        return body_text
