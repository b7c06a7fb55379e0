"""
Webhook dispatcher.

Routes each inbound text message, in priority order:
1. keyword commands (reset, menu, status); never consume a trial
2. order codes -> redemption
3. anything else -> access check -> chat

Events of one delivery run concurrently and each is isolated: an error
in one event is logged and never reaches the others or the transport.
"""

import asyncio
from typing import Any, Iterable, List, Optional, Pattern

from fortunebot.core.errors import (
    AppError,
    OrderAlreadyUsedError,
    OrderNotFoundError,
    OrderNotPaidError,
    OrderOwnedByAnotherUserError,
    ProductUnidentifiedError,
    UpstreamError,
)
from fortunebot.core.logging import log_event
from fortunebot.core.metrics import webhook_events_total
from fortunebot.features.conversation.service import ChatService
from fortunebot.features.entitlements.service import EntitlementService
from fortunebot.features.line.client import LineMessagingClient
from fortunebot.features.line.models import TextMessageEvent
from fortunebot.features.webhook import messages
from fortunebot.features.webhook.commands import (
    Command,
    build_order_code_pattern,
    extract_order_code,
    match_command,
)
from fortunebot.models.entitlement import AccessState


class WebhookDispatcher:
    def __init__(
        self,
        entitlements: EntitlementService,
        chat: ChatService,
        line: LineMessagingClient,
        *,
        shop_url: str = "https://yourshop.stores.jp",
        order_code_pattern: Optional[Pattern[str]] = None,
    ):
        self.entitlements = entitlements
        self.chat = chat
        self.line = line
        self.shop_url = shop_url
        self.order_code_pattern = order_code_pattern or build_order_code_pattern()

    async def close(self) -> None:
        await self.chat.completions.close()
        await self.entitlements.store.store.close()

    async def dispatch(self, events: Iterable[Any]) -> List[Optional[str]]:
        """Process every event concurrently; returns the reply sent per event (None when skipped/failed)."""
        return list(await asyncio.gather(*(self._handle_safely(e) for e in events)))

    async def _handle_safely(self, raw: Any) -> Optional[str]:
        try:
            reply = await self.handle_event(raw)
        except Exception as exc:
            webhook_events_total.inc(labels={"result": "error"})
            log_event(
                "error",
                "webhook.event_failed",
                error_code=getattr(exc, "code", "internal_error"),
                extra={"error": exc},
                exc_info=True,
            )
            return None
        webhook_events_total.inc(labels={"result": "ignored" if reply is None else "replied"})
        return reply

    async def handle_event(self, raw: Any) -> Optional[str]:
        event = TextMessageEvent.from_raw(raw)
        if event is None:
            return None

        log_event(
            "info",
            "webhook.message",
            user_id=event.user_id,
            extra={"text": event.text[:80], "redelivery": event.is_redelivery},
        )

        try:
            reply = await self.route(event)
        except UpstreamError as exc:
            log_event("error", "webhook.upstream_failed", user_id=event.user_id, error_code=exc.code, extra={"error": exc.message})
            reply = messages.GENERIC_APOLOGY
        if reply is None:
            return None
        return await self.line.reply_text(event.reply_token, reply)

    async def route(self, event: TextMessageEvent) -> Optional[str]:
        command = match_command(event.text)
        if command is not None:
            return await self._run_command(command, event.user_id)

        order_code = extract_order_code(event.text, self.order_code_pattern)
        if order_code is not None:
            return await self._redeem(event.user_id, order_code)

        return await self._chat(event.user_id, event.text)

    async def _run_command(self, command: Command, user_id: str) -> str:
        if command == Command.RESET:
            await self.chat.reset(user_id)
            return messages.RESET_DONE
        if command == Command.STATUS:
            entitlement = await self.entitlements.status(user_id)
            return messages.status(entitlement, self.shop_url, self.entitlements.now())
        return messages.MENU

    async def _redeem(self, user_id: str, order_code: str) -> str:
        try:
            entitlement = await self.entitlements.redeem(user_id, order_code)
        except OrderOwnedByAnotherUserError:
            log_event("warning", "redeem.owned_by_another_user", user_id=user_id, order_id=order_code)
            return messages.ORDER_OWNED_BY_ANOTHER
        except OrderAlreadyUsedError:
            return messages.ORDER_ALREADY_USED
        except OrderNotFoundError:
            return messages.ORDER_NOT_FOUND
        except OrderNotPaidError:
            return messages.ORDER_NOT_PAID
        except ProductUnidentifiedError:
            log_event("warning", "redeem.product_unidentified", user_id=user_id, order_id=order_code)
            return messages.PRODUCT_UNIDENTIFIED
        except UpstreamError as exc:
            log_event("error", "redeem.upstream_failed", user_id=user_id, order_id=order_code, error_code=exc.code, extra={"error": exc.message})
            return messages.VERIFICATION_UNAVAILABLE
        log_event("info", "redeem.granted", user_id=user_id, order_id=entitlement.order_id, event_type=entitlement.plan.value)
        return messages.granted(entitlement)

    async def _chat(self, user_id: str, text: str) -> str:
        try:
            decision = await self.entitlements.check_access(user_id)
        except UpstreamError as exc:
            # Fail closed: no reading without a confirmed standing.
            log_event("error", "access.check_failed", user_id=user_id, error_code=exc.code, extra={"error": exc.message})
            return messages.VERIFICATION_UNAVAILABLE

        if decision.state == AccessState.NO_ENTITLEMENT:
            return messages.purchase_guide(self.shop_url)
        if decision.state == AccessState.EXPIRED:
            return messages.expired(self.shop_url)
        if decision.state == AccessState.EXHAUSTED:
            return messages.repurchase(self.shop_url)

        try:
            result = await self.chat.reply(user_id, text)
        except AppError as exc:
            log_event("error", "chat.failed", user_id=user_id, error_code=exc.code, extra={"error": exc.message})
            return messages.GENERIC_APOLOGY

        if result.generated:
            await self.entitlements.consume(decision)
        return result.text
