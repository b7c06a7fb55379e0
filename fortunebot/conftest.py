# fortunebot/conftest.py
import os

import pytest

os.environ.setdefault("SKIP_ENV_VALIDATION", "1")

from fortunebot.core.metrics import METRICS
from fortunebot.features.conversation.history import HistoryStore
from fortunebot.features.conversation.service import ChatService
from fortunebot.features.entitlements.service import EntitlementService
from fortunebot.features.orders.plans import PlanResolver
from fortunebot.features.store.memory_store import MemoryKeyValueStore
from fortunebot.features.store.service import JsonStore
from fortunebot.features.webhook.dispatcher import WebhookDispatcher
from fortunebot.models.entitlement import PlanKind, build_plan_policies
from fortunebot.tests.mocks import FakeClock, FakeCompletionClient, FakeLineClient, FakeOrderClient


@pytest.fixture(autouse=True)
def reset_metrics():
    """Counters are process-global; start every test from zero."""
    METRICS.reset()
    yield
    METRICS.reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return MemoryKeyValueStore()


@pytest.fixture
def json_store(memory_store):
    return JsonStore(memory_store, prefix="test:")


@pytest.fixture
def order_client():
    return FakeOrderClient()


@pytest.fixture
def resolver():
    return PlanResolver(
        keywords={
            PlanKind.TRIAL: ["お試し"],
            PlanKind.DAY_PASS: ["1日"],
            PlanKind.SUBSCRIPTION: ["定期"],
        },
    )


@pytest.fixture
def entitlements(json_store, order_client, resolver, clock):
    return EntitlementService(
        json_store,
        order_client,
        resolver,
        policies=build_plan_policies(day_pass_hours=24, subscription_reverify=True),
        now_fn=clock,
    )


@pytest.fixture
def completions():
    return FakeCompletionClient()


@pytest.fixture
def history(json_store):
    return HistoryStore(json_store, max_turns=12)


@pytest.fixture
def chat(history, completions):
    return ChatService(history, completions, context_turns=6)


@pytest.fixture
def line_client():
    return FakeLineClient()


@pytest.fixture
def dispatcher(entitlements, chat, line_client):
    return WebhookDispatcher(entitlements, chat, line_client, shop_url="https://shop.example.jp")
