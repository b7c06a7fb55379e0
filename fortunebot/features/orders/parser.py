"""
Tolerant order-response parser.

Order APIs (and their versions) disagree on envelope shape, status field
names and where payment data lives. Every "which field means paid"
heuristic is kept in this module and nowhere else.

Paid determination, strongest rule first:
1. any cancellation/refund indicator -> not paid (overrides everything)
2. a status field with a paid-like value -> paid
3. a payment/transaction entry with a settlement timestamp -> paid
4. a positive paid amount with no negative signal -> paid (last resort)
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
import re
from typing import Any, Dict, Iterable, List, Optional

from fortunebot.models.order import LineItem, NormalizedOrder


PAID_STATUSES = {
    "paid",
    "captured",
    "authorized",
    "settled",
    "fulfilled",
    "shipped",
    "支払済",
    "支払い済み",
    "入金済",
    "発送済",
}

CANCELLATION_STATUSES = {
    "cancelled",
    "canceled",
    "refunded",
    "partially_refunded",
    "voided",
    "void",
    "chargeback",
    "キャンセル",
    "返金",
    "返金済",
}

# failed/expired only count at order level: a payments list may hold a
# failed attempt followed by a successful one.
NEGATIVE_STATUSES = CANCELLATION_STATUSES | {"failed", "expired"}

STATUS_KEYS = ("status", "payment_status", "paymentStatus", "financial_status", "payment_state", "state")
NEGATIVE_TIMESTAMP_KEYS = ("cancelled_at", "canceled_at", "refunded_at", "voided_at")
SETTLEMENT_KEYS = ("paid_at", "settled_at", "captured_at", "paidAt", "settledAt")
PAYMENT_CONTAINER_KEYS = ("payment", "payments", "transaction", "transactions")
PAID_AMOUNT_KEYS = ("paid_amount", "amount_paid", "total_paid", "paidAmount")
TOTAL_KEYS = ("total", "total_price", "total_amount", "totalPrice", "amount")
ITEM_KEYS = ("items", "line_items", "order_items", "products", "lineItems")
ID_KEYS = ("id", "order_id", "orderId")
NUMBER_KEYS = ("number", "order_number", "orderNumber", "order_no", "code")

_NON_NUMERIC = re.compile(r"[^\d.\-]")


@dataclass(frozen=True)
class PaymentStatus:
    paid: bool
    signal: str


def _first(data: Dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _norm_status(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value).strip().lower()


def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse numbers and strings like '¥1,980' or '3000.00'."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        return parse_amount(_first(value, ("amount", "value", "total")))
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    cleaned = _NON_NUMERIC.sub("", str(value))
    if not cleaned or cleaned in {"-", "."}:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def unwrap_order(payload: Any) -> Optional[Dict[str, Any]]:
    """Return the single order dict from any known envelope, or None."""
    orders = unwrap_orders(payload)
    return orders[0] if orders else None


def unwrap_orders(payload: Any) -> List[Dict[str, Any]]:
    if payload is None:
        return []
    if isinstance(payload, list):
        return [o for o in payload if isinstance(o, dict)]
    if not isinstance(payload, dict):
        return []
    for key in ("order", "data", "orders", "result", "results"):
        if key in payload:
            inner = payload[key]
            if isinstance(inner, (dict, list)):
                return unwrap_orders(inner)
    if _first(payload, ID_KEYS + NUMBER_KEYS) is not None:
        return [payload]
    return []


def _payment_entries(order: Dict[str, Any]) -> List[Dict[str, Any]]:
    entries: List[Dict[str, Any]] = []
    for key in PAYMENT_CONTAINER_KEYS:
        value = order.get(key)
        if isinstance(value, dict):
            entries.append(value)
        elif isinstance(value, list):
            entries.extend(v for v in value if isinstance(v, dict))
    return entries


def _statuses(source: Dict[str, Any]) -> List[str]:
    found = []
    for key in STATUS_KEYS:
        status = _norm_status(source.get(key))
        if status:
            found.append(status)
    return found


def _has_negative_signal(order: Dict[str, Any], payments: List[Dict[str, Any]]) -> Optional[str]:
    for status in _statuses(order):
        if status in NEGATIVE_STATUSES:
            return f"status:{status}"
    for source in [order] + payments:
        for status in _statuses(source):
            if status in CANCELLATION_STATUSES:
                return f"status:{status}"
        if _first(source, NEGATIVE_TIMESTAMP_KEYS) is not None:
            return "cancelled_timestamp"
        if source.get("cancelled") is True or source.get("canceled") is True:
            return "cancelled_flag"
    return None


def determine_payment(order: Dict[str, Any]) -> PaymentStatus:
    payments = _payment_entries(order)

    negative = _has_negative_signal(order, payments)
    if negative:
        return PaymentStatus(False, negative)

    for source in [order] + payments:
        for status in _statuses(source):
            if status in PAID_STATUSES:
                return PaymentStatus(True, f"status:{status}")

    if _first(order, SETTLEMENT_KEYS) is not None:
        return PaymentStatus(True, "settlement_timestamp")
    for entry in payments:
        if _first(entry, SETTLEMENT_KEYS) is not None:
            return PaymentStatus(True, "settlement_timestamp")

    for source in [order] + payments:
        amount = parse_amount(_first(source, PAID_AMOUNT_KEYS))
        if amount is not None and amount > 0:
            return PaymentStatus(True, "paid_amount")

    return PaymentStatus(False, "none")


def _parse_item(raw: Dict[str, Any]) -> LineItem:
    product = raw.get("product") if isinstance(raw.get("product"), dict) else {}
    product_id = _first(raw, ("product_id", "productId", "item_id", "itemId")) or _first(product, ("id", "product_id"))
    if product_id is None and not product:
        product_id = raw.get("id")
    sku = _first(raw, ("sku", "variant_sku", "variantSku")) or _first(product, ("sku",))
    title = _first(raw, ("title", "name", "product_name", "item_name", "productName")) or _first(product, ("title", "name"))
    quantity = raw.get("quantity") or raw.get("qty") or 1
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        quantity = 1
    return LineItem(
        product_id=str(product_id) if product_id is not None else None,
        sku=str(sku) if sku is not None else None,
        title=str(title) if title is not None else None,
        quantity=quantity,
        price=parse_amount(_first(raw, ("price", "unit_price", "amount"))),
    )


def parse_order(payload: Any) -> Optional[NormalizedOrder]:
    """Normalize an order API payload; None when no order is present."""
    order = unwrap_order(payload)
    if order is None:
        return None

    order_id = _first(order, ID_KEYS)
    number = _first(order, NUMBER_KEYS)
    if order_id is None and number is None:
        return None

    raw_items: List[Any] = []
    for key in ITEM_KEYS:
        value = order.get(key)
        if isinstance(value, list):
            raw_items = value
            break
    items = [_parse_item(i) for i in raw_items if isinstance(i, dict)]

    payment = determine_payment(order)
    statuses = _statuses(order)
    customer = order.get("customer") if isinstance(order.get("customer"), dict) else {}

    return NormalizedOrder(
        order_id=str(order_id if order_id is not None else number),
        order_number=str(number) if number is not None else None,
        status=statuses[0] if statuses else None,
        paid=payment.paid,
        payment_signal=payment.signal,
        total_amount=parse_amount(_first(order, TOTAL_KEYS)),
        email=_first(order, ("email",)) or _first(customer, ("email",)),
        items=items,
    )
