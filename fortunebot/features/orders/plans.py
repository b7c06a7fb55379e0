"""
Plan inference: map a paid order to the plan it grants.

Rules in order: configured product id / SKU, title keywords, then price
bands on the order total. No match means the product is unidentified and
the caller must say so instead of guessing.

Within one title the longest matching keyword decides, so "【1日限定】お試し鑑定"
is a trial rather than a day pass. Keywords that start with a digit only
match when not preceded by another digit ("1日" does not match "11日").
When keywords of different plans tie, the item price band breaks the tie;
if it cannot, the title is ambiguous and the order is unidentified.
"""
import re
from decimal import Decimal
from typing import Dict, Iterable, Optional, Set, Tuple

from fortunebot.core.config import split_csv
from fortunebot.models.entitlement import PLAN_STRENGTH, PlanKind
from fortunebot.models.order import LineItem, NormalizedOrder


class PlanResolver:
    def __init__(
        self,
        product_ids: Optional[Dict[PlanKind, Iterable[str]]] = None,
        keywords: Optional[Dict[PlanKind, Iterable[str]]] = None,
        trial_max_amount: Optional[int] = 500,
        day_pass_max_amount: Optional[int] = 1500,
        subscription_min_amount: Optional[int] = 3000,
    ):
        self.product_ids: Dict[PlanKind, Set[str]] = {
            kind: {str(i).strip().lower() for i in ids if str(i).strip()}
            for kind, ids in (product_ids or {}).items()
        }
        self.keywords: Dict[PlanKind, Set[str]] = {
            kind: {k.strip().lower() for k in words if k.strip()}
            for kind, words in (keywords or {}).items()
        }
        self.trial_max_amount = trial_max_amount
        self.day_pass_max_amount = day_pass_max_amount
        self.subscription_min_amount = subscription_min_amount

    @classmethod
    def from_settings(cls, cfg) -> "PlanResolver":
        return cls(
            product_ids={
                PlanKind.TRIAL: split_csv(cfg.TRIAL_PRODUCT_IDS),
                PlanKind.DAY_PASS: split_csv(cfg.DAY_PASS_PRODUCT_IDS),
                PlanKind.SUBSCRIPTION: split_csv(cfg.SUBSCRIPTION_PRODUCT_IDS),
            },
            keywords={
                PlanKind.TRIAL: split_csv(cfg.TRIAL_KEYWORDS),
                PlanKind.DAY_PASS: split_csv(cfg.DAY_PASS_KEYWORDS),
                PlanKind.SUBSCRIPTION: split_csv(cfg.SUBSCRIPTION_KEYWORDS),
            },
            trial_max_amount=cfg.TRIAL_MAX_AMOUNT,
            day_pass_max_amount=cfg.DAY_PASS_MAX_AMOUNT,
            subscription_min_amount=cfg.SUBSCRIPTION_MIN_AMOUNT,
        )

    def _match_identifier(self, item: LineItem) -> Optional[PlanKind]:
        identifiers = {v.lower() for v in (item.product_id, item.sku) if v}
        best = None
        for kind, ids in self.product_ids.items():
            if identifiers & ids:
                best = _stronger(best, kind)
        return best

    def _match_keyword(self, item: LineItem, order_total: Optional[Decimal]) -> Tuple[bool, Optional[PlanKind]]:
        """Returns (any keyword hit, plan); a hit with no plan means the title is ambiguous."""
        if not item.title:
            return False, None
        title = item.title.lower()
        longest: Dict[PlanKind, int] = {}
        for kind, words in self.keywords.items():
            lengths = [len(word) for word in words if _contains_keyword(title, word)]
            if lengths:
                longest[kind] = max(lengths)
        if not longest:
            return False, None

        top = max(longest.values())
        tied = {kind for kind, length in longest.items() if length == top}
        if len(tied) == 1:
            return True, tied.pop()
        by_price = self._match_amount(item.price if item.price is not None else order_total)
        return True, by_price if by_price in tied else None

    def _match_amount(self, amount: Optional[Decimal]) -> Optional[PlanKind]:
        if amount is None or amount <= 0:
            return None
        if self.subscription_min_amount is not None and amount >= self.subscription_min_amount:
            return PlanKind.SUBSCRIPTION
        if self.trial_max_amount is not None and amount <= self.trial_max_amount:
            return PlanKind.TRIAL
        if self.day_pass_max_amount is not None and amount <= self.day_pass_max_amount:
            return PlanKind.DAY_PASS
        return None

    def resolve(self, order: NormalizedOrder) -> Optional[PlanKind]:
        best = None
        for item in order.items:
            best = _stronger(best, self._match_identifier(item))
        if best:
            return best

        keyword_hit = False
        for item in order.items:
            hit, kind = self._match_keyword(item, order.total_amount)
            keyword_hit = keyword_hit or hit
            best = _stronger(best, kind)
        if best or keyword_hit:
            return best
        return self._match_amount(order.total_amount)


def _contains_keyword(title: str, word: str) -> bool:
    if word[0].isdigit():
        return re.search(r"(?<!\d)" + re.escape(word), title) is not None
    return word in title


def _stronger(current: Optional[PlanKind], candidate: Optional[PlanKind]) -> Optional[PlanKind]:
    if candidate is None:
        return current
    if current is None or PLAN_STRENGTH[candidate] > PLAN_STRENGTH[current]:
        return candidate
    return current
