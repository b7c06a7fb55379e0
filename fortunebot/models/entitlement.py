"""
fortunebot/models/entitlement.py

Entitlement, plan policy and order usage models.

A user holds at most one Entitlement. Plans are modelled as tagged
PlanPolicy variants so expiry and consumption rules live next to the
plan kind instead of in scattered string comparisons.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict


class PlanKind(str, Enum):
    NONE = "none"
    TRIAL = "trial"
    DAY_PASS = "day_pass"
    SUBSCRIPTION = "subscription"


# Higher wins when one order matches several plans.
PLAN_STRENGTH: Dict[PlanKind, int] = {
    PlanKind.NONE: 0,
    PlanKind.TRIAL: 1,
    PlanKind.DAY_PASS: 2,
    PlanKind.SUBSCRIPTION: 3,
}


@dataclass(frozen=True)
class PlanPolicy:
    kind: PlanKind
    expires_after: Optional[timedelta] = None
    single_use: bool = False
    reverify_payment: bool = False

    def expiry_from(self, granted_at: datetime) -> Optional[datetime]:
        if self.expires_after is None:
            return None
        return granted_at + self.expires_after


def build_plan_policies(day_pass_hours: int = 24, subscription_reverify: bool = True) -> Dict[PlanKind, PlanPolicy]:
    return {
        PlanKind.NONE: PlanPolicy(PlanKind.NONE),
        PlanKind.TRIAL: PlanPolicy(PlanKind.TRIAL, single_use=True),
        PlanKind.DAY_PASS: PlanPolicy(PlanKind.DAY_PASS, expires_after=timedelta(hours=day_pass_hours)),
        PlanKind.SUBSCRIPTION: PlanPolicy(PlanKind.SUBSCRIPTION, reverify_payment=subscription_reverify),
    }


class Entitlement(BaseModel):
    """A user's current right to chat."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    plan: PlanKind
    order_id: Optional[str] = None
    granted_at: datetime
    expires_at: Optional[datetime] = None
    consumed: bool = False

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class OrderUsageRecord(BaseModel):
    """Write-once marker preventing re-redemption of an order."""
    model_config = ConfigDict(frozen=True)

    order_id: str
    used: bool = True
    owner_user_id: Optional[str] = None
    plan: Optional[PlanKind] = None
    redeemed_at: Optional[datetime] = None


class AccessState(str, Enum):
    NO_ENTITLEMENT = "no_entitlement"
    ACTIVE = "active"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class AccessDecision:
    state: AccessState
    entitlement: Optional[Entitlement] = None

    @property
    def allowed(self) -> bool:
        return self.state == AccessState.ACTIVE
