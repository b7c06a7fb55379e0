"""
fortunebot/models/order.py

Normalized order record produced by the tolerant order parser.
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class LineItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: Optional[str] = None
    sku: Optional[str] = None
    title: Optional[str] = None
    quantity: int = 1
    price: Optional[Decimal] = None


class NormalizedOrder(BaseModel):
    """
    Order as seen by the entitlement engine.

    `paid` and `payment_signal` come from the parser's payment heuristics;
    `payment_signal` records which rule decided (for logs and tests).
    """
    model_config = ConfigDict(frozen=True)

    order_id: str
    order_number: Optional[str] = None
    status: Optional[str] = None
    paid: bool = False
    payment_signal: str = "none"
    total_amount: Optional[Decimal] = None
    email: Optional[str] = None
    items: List[LineItem] = Field(default_factory=list)
