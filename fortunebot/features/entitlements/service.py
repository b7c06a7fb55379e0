"""
fortunebot/features/entitlements/service.py

Entitlement engine.

Handles:
- Redemption: paid order -> plan -> Entitlement + write-once Order Usage Record
- Access checks: NO_ENTITLEMENT / ACTIVE / EXPIRED / EXHAUSTED
- Trial consumption after a model-generated reply
- Subscription re-verification against the order API (fails closed)

Redemption is two sequential store writes without rollback; a crash
between them leaves an entitlement whose order can be redeemed again.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, Optional
import logging

from fortunebot.core.errors import (
    OrderAlreadyUsedError,
    OrderNotFoundError,
    OrderNotPaidError,
    OrderOwnedByAnotherUserError,
    ProductUnidentifiedError,
)
from fortunebot.core.metrics import redemptions_total
from fortunebot.features.orders.client import OrderClient
from fortunebot.features.orders.plans import PlanResolver
from fortunebot.features.store.service import (
    JsonStore,
    entitlement_key,
    order_usage_key,
    trial_marker_key,
)
from fortunebot.models.entitlement import (
    AccessDecision,
    AccessState,
    Entitlement,
    OrderUsageRecord,
    PlanKind,
    PlanPolicy,
    build_plan_policies,
)


logger = logging.getLogger("fortunebot")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_now(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


class EntitlementService:
    def __init__(
        self,
        store: JsonStore,
        orders: OrderClient,
        resolver: PlanResolver,
        *,
        policies: Optional[Dict[PlanKind, PlanPolicy]] = None,
        order_usage_ttl: Optional[int] = 365 * 24 * 3600,
        trial_repeatable: bool = True,
        gating_enabled: bool = True,
        now_fn: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.orders = orders
        self.resolver = resolver
        self.policies = policies or build_plan_policies()
        self.order_usage_ttl = order_usage_ttl
        self.trial_repeatable = trial_repeatable
        self.gating_enabled = gating_enabled
        self.now_fn = now_fn

    def now(self) -> datetime:
        return _normalize_now(self.now_fn())

    def policy_for(self, plan: PlanKind) -> PlanPolicy:
        return self.policies.get(plan) or PlanPolicy(plan)

    async def get_entitlement(self, user_id: str) -> Optional[Entitlement]:
        return await self.store.get_model(entitlement_key(user_id), Entitlement)

    async def status(self, user_id: str) -> Optional[Entitlement]:
        """Read-only view for the status command; never deletes or re-verifies."""
        return await self.get_entitlement(user_id)

    async def _check_usage(self, user_id: str, order_id: str) -> None:
        record = await self.store.get_model(order_usage_key(order_id), OrderUsageRecord)
        if record is None or not record.used:
            return
        if record.owner_user_id and record.owner_user_id != user_id:
            raise OrderOwnedByAnotherUserError(f"Order {order_id} belongs to another user")
        raise OrderAlreadyUsedError(f"Order {order_id} already redeemed")

    async def redeem(self, user_id: str, order_code: str) -> Entitlement:
        """
        Convert a verified paid order into the user's entitlement.

        Raises:
            OrderOwnedByAnotherUserError: order already redeemed by someone else
            OrderAlreadyUsedError: order already redeemed by this user
            OrderNotFoundError / OrderLookupError: from the order client
            OrderNotPaidError: order exists but payment is not confirmed
            ProductUnidentifiedError: no plan matches the order
        """
        code = order_code.strip().upper()
        try:
            await self._check_usage(user_id, code)
            order = await self.orders.fetch_order(code)
            if order.order_id != code:
                await self._check_usage(user_id, order.order_id)

            if not order.paid:
                raise OrderNotPaidError(f"Order {order.order_id} is not paid ({order.payment_signal})")

            plan = self.resolver.resolve(order)
            if plan is None or plan == PlanKind.NONE:
                raise ProductUnidentifiedError(f"Could not identify product for order {order.order_id}")

            if plan == PlanKind.TRIAL and not self.trial_repeatable:
                if await self.store.get_raw(trial_marker_key(user_id)):
                    raise OrderAlreadyUsedError("Trial already used by this user")
        except Exception as exc:
            redemptions_total.inc(labels={"result": getattr(exc, "code", "error")})
            raise

        now = self.now()
        policy = self.policy_for(plan)
        entitlement = Entitlement(
            user_id=user_id,
            plan=plan,
            order_id=order.order_id,
            granted_at=now,
            expires_at=policy.expiry_from(now),
        )
        usage = OrderUsageRecord(
            order_id=order.order_id,
            owner_user_id=user_id,
            plan=plan,
            redeemed_at=now,
        )

        await self.store.set_model(entitlement_key(user_id), entitlement)
        await self.store.set_model(order_usage_key(order.order_id), usage, ex=self.order_usage_ttl)
        if code != order.order_id:
            await self.store.set_model(order_usage_key(code), usage, ex=self.order_usage_ttl)

        redemptions_total.inc(labels={"result": "granted"})
        logger.info(
            "[entitlement] granted",
            extra={"order_id": order.order_id, "event_type": plan.value, "payment_signal": order.payment_signal},
        )
        return entitlement

    async def _payment_still_valid(self, entitlement: Entitlement) -> bool:
        """Re-check the subscription's order. Lookup failures propagate (fail closed)."""
        if not entitlement.order_id:
            return False
        try:
            order = await self.orders.fetch_order(entitlement.order_id)
        except OrderNotFoundError:
            return False
        return order.paid

    async def check_access(self, user_id: str) -> AccessDecision:
        """
        Current standing of the user.

        Expired or lapsed entitlements are deleted as soon as they are seen.

        Raises:
            OrderLookupError: subscription re-verification could not reach the order API
        """
        if not self.gating_enabled:
            return AccessDecision(AccessState.ACTIVE)

        entitlement = await self.get_entitlement(user_id)
        if entitlement is None or entitlement.plan == PlanKind.NONE:
            return AccessDecision(AccessState.NO_ENTITLEMENT)

        policy = self.policy_for(entitlement.plan)

        if policy.single_use and entitlement.consumed:
            return AccessDecision(AccessState.EXHAUSTED, entitlement)

        if entitlement.is_expired(self.now()):
            await self.store.delete(entitlement_key(user_id))
            logger.info("[entitlement] expired", extra={"order_id": entitlement.order_id})
            return AccessDecision(AccessState.EXPIRED, entitlement)

        if policy.reverify_payment and not await self._payment_still_valid(entitlement):
            await self.store.delete(entitlement_key(user_id))
            logger.info("[entitlement] subscription lapsed", extra={"order_id": entitlement.order_id})
            return AccessDecision(AccessState.EXPIRED, entitlement)

        return AccessDecision(AccessState.ACTIVE, entitlement)

    async def consume(self, decision: AccessDecision) -> None:
        """Spend a single-use entitlement after a successful reply."""
        entitlement = decision.entitlement
        if entitlement is None or not self.policy_for(entitlement.plan).single_use:
            return
        spent = entitlement.model_copy(update={"consumed": True})
        await self.store.set_model(entitlement_key(entitlement.user_id), spent)
        await self.store.set_raw(trial_marker_key(entitlement.user_id), entitlement.order_id or "1")
        logger.info("[entitlement] trial consumed", extra={"order_id": entitlement.order_id})
