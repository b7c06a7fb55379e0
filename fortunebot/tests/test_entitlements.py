"""Entitlement engine: redemption, access states, trial consumption, re-verification."""

from datetime import timedelta

import pytest

from fortunebot.core.errors import (
    OrderAlreadyUsedError,
    OrderLookupError,
    OrderNotFoundError,
    OrderNotPaidError,
    OrderOwnedByAnotherUserError,
    ProductUnidentifiedError,
)
from fortunebot.core.metrics import redemptions_total
from fortunebot.features.entitlements.service import EntitlementService
from fortunebot.features.store.service import entitlement_key, order_usage_key, trial_marker_key
from fortunebot.models.entitlement import AccessState, Entitlement, OrderUsageRecord, PlanKind


@pytest.mark.asyncio
async def test_day_pass_redemption_sets_24h_expiry(entitlements, order_client, clock, json_store):
    order_client.add("ST999999", title="1日鑑定パス")

    ent = await entitlements.redeem("user-a", "st999999")

    assert ent.plan == PlanKind.DAY_PASS
    assert ent.order_id == "ST999999"
    assert ent.expires_at == clock.current + timedelta(hours=24)
    usage = await json_store.get_model(order_usage_key("ST999999"), OrderUsageRecord)
    assert usage.used is True
    assert usage.owner_user_id == "user-a"
    assert redemptions_total.value({"result": "granted"}) == 1


@pytest.mark.asyncio
async def test_day_pass_expires_after_24h(entitlements, order_client, clock, json_store):
    order_client.add("ST999999", title="1日鑑定パス")
    await entitlements.redeem("user-a", "ST999999")

    clock.advance(hours=23, minutes=59)
    assert (await entitlements.check_access("user-a")).state == AccessState.ACTIVE

    clock.advance(minutes=1)
    decision = await entitlements.check_access("user-a")
    assert decision.state == AccessState.EXPIRED
    assert await json_store.get_raw(entitlement_key("user-a")) is None

    # Deleted on first sight: afterwards the user simply has no entitlement.
    assert (await entitlements.check_access("user-a")).state == AccessState.NO_ENTITLEMENT


@pytest.mark.asyncio
async def test_second_redemption_same_user_rejected(entitlements, order_client):
    order_client.add("ST11112222", title="1日鑑定パス")
    await entitlements.redeem("user-a", "ST11112222")

    with pytest.raises(OrderAlreadyUsedError) as exc_info:
        await entitlements.redeem("user-a", "ST11112222")
    assert not isinstance(exc_info.value, OrderOwnedByAnotherUserError)


@pytest.mark.asyncio
async def test_redemption_by_other_user_rejected(entitlements, order_client):
    order_client.add("ST11112222", title="1日鑑定パス")
    await entitlements.redeem("user-a", "ST11112222")

    with pytest.raises(OrderOwnedByAnotherUserError):
        await entitlements.redeem("user-b", "ST11112222")
    assert (await entitlements.check_access("user-b")).state == AccessState.NO_ENTITLEMENT
    assert redemptions_total.value({"result": "order_owned_by_another_user"}) == 1


@pytest.mark.asyncio
async def test_order_number_and_id_share_usage(entitlements, order_client):
    order_client.add("ST55556666", title="1日鑑定パス", number="1234567890")
    await entitlements.redeem("user-a", "1234567890")

    with pytest.raises(OrderOwnedByAnotherUserError):
        await entitlements.redeem("user-b", "ST55556666")
    with pytest.raises(OrderOwnedByAnotherUserError):
        await entitlements.redeem("user-b", "1234567890")


@pytest.mark.asyncio
async def test_unpaid_order_rejected(entitlements, order_client, json_store):
    order_client.add("ST12121212", paid=False)

    with pytest.raises(OrderNotPaidError):
        await entitlements.redeem("user-a", "ST12121212")
    assert await json_store.get_raw(order_usage_key("ST12121212")) is None


@pytest.mark.asyncio
async def test_unknown_order(entitlements):
    with pytest.raises(OrderNotFoundError):
        await entitlements.redeem("user-a", "ST00000000")


@pytest.mark.asyncio
async def test_unidentified_product(entitlements, order_client):
    order_client.add("ST34343434", title="ステッカー", total=2000)

    with pytest.raises(ProductUnidentifiedError):
        await entitlements.redeem("user-a", "ST34343434")


@pytest.mark.asyncio
async def test_trial_allows_exactly_one_generated_reply(entitlements, order_client, json_store):
    order_client.add("ST77778888", title="お試し鑑定", total=500)
    ent = await entitlements.redeem("user-a", "ST77778888")
    assert ent.plan == PlanKind.TRIAL
    assert ent.expires_at is None

    decision = await entitlements.check_access("user-a")
    assert decision.state == AccessState.ACTIVE
    await entitlements.consume(decision)

    assert (await entitlements.check_access("user-a")).state == AccessState.EXHAUSTED
    assert await json_store.get_raw(trial_marker_key("user-a")) == "ST77778888"


@pytest.mark.asyncio
async def test_consume_leaves_unlimited_plans_untouched(entitlements, order_client, json_store):
    order_client.add("ST99990001", title="1日鑑定パス")
    await entitlements.redeem("user-a", "ST99990001")

    decision = await entitlements.check_access("user-a")
    await entitlements.consume(decision)

    stored = await json_store.get_model(entitlement_key("user-a"), Entitlement)
    assert stored.consumed is False
    assert (await entitlements.check_access("user-a")).state == AccessState.ACTIVE


@pytest.mark.asyncio
async def test_non_repeatable_trial(json_store, order_client, resolver, clock):
    service = EntitlementService(json_store, order_client, resolver, trial_repeatable=False, now_fn=clock)
    order_client.add("ST10000001", title="お試し鑑定", total=500)
    order_client.add("ST10000002", title="お試し鑑定", total=500)

    await service.redeem("user-a", "ST10000001")
    await service.consume(await service.check_access("user-a"))

    with pytest.raises(OrderAlreadyUsedError):
        await service.redeem("user-a", "ST10000002")
    # The second order stays redeemable by someone else.
    assert (await service.redeem("user-b", "ST10000002")).plan == PlanKind.TRIAL


@pytest.mark.asyncio
async def test_subscription_reverified_on_each_check(entitlements, order_client):
    order_client.add("ST20000001", title="定期鑑定プラン", total=3000)
    await entitlements.redeem("user-a", "ST20000001")
    order_client.calls.clear()

    assert (await entitlements.check_access("user-a")).state == AccessState.ACTIVE
    assert order_client.calls == ["ST20000001"]


@pytest.mark.asyncio
async def test_subscription_lapses_when_payment_cancelled(entitlements, order_client, json_store):
    order_client.add("ST20000001", title="定期鑑定プラン", total=3000)
    await entitlements.redeem("user-a", "ST20000001")

    order_client.add("ST20000001", title="定期鑑定プラン", total=3000, paid=False)
    assert (await entitlements.check_access("user-a")).state == AccessState.EXPIRED
    assert await json_store.get_raw(entitlement_key("user-a")) is None


@pytest.mark.asyncio
async def test_subscription_check_fails_closed(entitlements, order_client, json_store):
    order_client.add("ST20000001", title="定期鑑定プラン", total=3000)
    await entitlements.redeem("user-a", "ST20000001")

    order_client.fail("ST20000001", OrderLookupError("Order API unreachable: ConnectTimeout"))
    with pytest.raises(OrderLookupError):
        await entitlements.check_access("user-a")
    # Record kept: a transient outage does not cancel the subscription.
    assert await json_store.get_raw(entitlement_key("user-a")) is not None


@pytest.mark.asyncio
async def test_gating_disabled_is_always_active(json_store, order_client, resolver):
    service = EntitlementService(json_store, order_client, resolver, gating_enabled=False)
    decision = await service.check_access("anyone")
    assert decision.state == AccessState.ACTIVE
    assert decision.allowed


@pytest.mark.asyncio
async def test_new_redemption_overwrites_previous_entitlement(entitlements, order_client):
    order_client.add("ST30000001", title="お試し鑑定", total=500)
    order_client.add("ST30000002", title="1日鑑定パス")
    await entitlements.redeem("user-a", "ST30000001")
    await entitlements.consume(await entitlements.check_access("user-a"))

    await entitlements.redeem("user-a", "ST30000002")
    decision = await entitlements.check_access("user-a")
    assert decision.state == AccessState.ACTIVE
    assert decision.entitlement.plan == PlanKind.DAY_PASS


@pytest.mark.asyncio
async def test_status_is_read_only(entitlements, order_client, clock, json_store):
    order_client.add("ST999999", title="1日鑑定パス")
    await entitlements.redeem("user-a", "ST999999")
    clock.advance(hours=25)

    ent = await entitlements.status("user-a")
    assert ent is not None and ent.is_expired(clock.current)
    assert await json_store.get_raw(entitlement_key("user-a")) is not None
