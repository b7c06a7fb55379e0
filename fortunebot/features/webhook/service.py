"""Factory that wires the webhook dispatcher from settings."""

from typing import Optional

from fortunebot.core.config import Settings, settings
from fortunebot.features.conversation.history import HistoryStore
from fortunebot.features.conversation.service import ChatService
from fortunebot.features.entitlements.service import EntitlementService
from fortunebot.features.line.client import LineMessagingClient
from fortunebot.features.llm.service import CompletionClient
from fortunebot.features.orders.client import OrderClient
from fortunebot.features.orders.plans import PlanResolver
from fortunebot.features.store.provider import KeyValueStore
from fortunebot.features.store.service import JsonStore, build_store
from fortunebot.features.webhook.commands import build_order_code_pattern
from fortunebot.features.webhook.dispatcher import WebhookDispatcher
from fortunebot.models.entitlement import build_plan_policies


def build_dispatcher(
    cfg: Optional[Settings] = None,
    *,
    store: Optional[KeyValueStore] = None,
    completions: Optional[CompletionClient] = None,
) -> WebhookDispatcher:
    cfg = cfg or settings
    json_store = JsonStore(store or build_store(cfg), prefix=cfg.STORE_KEY_PREFIX)

    orders = OrderClient(
        cfg.STORES_API_KEY,
        base_url=cfg.ORDER_API_BASE,
        auth_header=cfg.ORDER_API_AUTH_HEADER,
        timeout=cfg.HTTP_TIMEOUT_SECONDS,
        trust_single_result=cfg.ORDER_NUMBER_TRUST_SINGLE_RESULT,
    )
    entitlements = EntitlementService(
        json_store,
        orders,
        PlanResolver.from_settings(cfg),
        policies=build_plan_policies(cfg.DAY_PASS_HOURS, cfg.SUBSCRIPTION_REVERIFY),
        order_usage_ttl=cfg.ORDER_USAGE_TTL_SECONDS,
        trial_repeatable=cfg.TRIAL_REPEATABLE,
        gating_enabled=cfg.GATING_ENABLED,
    )
    chat = ChatService(
        HistoryStore(json_store, max_turns=cfg.HISTORY_MAX_TURNS, ttl=cfg.HISTORY_TTL_SECONDS),
        completions or CompletionClient.from_settings(cfg),
        context_turns=cfg.PROMPT_CONTEXT_TURNS,
    )
    line = LineMessagingClient(
        cfg.LINE_CHANNEL_ACCESS_TOKEN,
        api_base=cfg.LINE_API_BASE,
        max_chars=cfg.REPLY_MAX_CHARS,
        timeout=cfg.HTTP_TIMEOUT_SECONDS,
    )
    return WebhookDispatcher(
        entitlements,
        chat,
        line,
        shop_url=cfg.SHOP_URL,
        order_code_pattern=build_order_code_pattern(cfg.ORDER_CODE_PREFIX, cfg.ORDER_NUMERIC_LENGTH),
    )
