"""
Order verification client.

Looks an order up by internal id, falling back to the customer-facing
order number. Authentication is tried as a bearer token first and then
as a custom API-key header, since deployments of the order API accept
one or the other.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from fortunebot.core.errors import OrderLookupError, OrderNotFoundError
from fortunebot.features.orders.parser import parse_order, unwrap_orders
from fortunebot.models.order import NormalizedOrder


logger = logging.getLogger("fortunebot")

_AUTH_REJECTED = {401, 403}


class OrderClient:
    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.stores.jp/v1",
        auth_header: str = "X-API-KEY",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        trust_single_result: bool = False,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.auth_header = auth_header
        self.timeout = timeout
        self.transport = transport
        self.trust_single_result = trust_single_result

    def _auth_variants(self):
        if not self.api_key:
            return [{}]
        return [
            {"Authorization": f"Bearer {self.api_key}"},
            {self.auth_header: self.api_key},
        ]

    async def _get(self, client: httpx.AsyncClient, path: str, params: Optional[Dict[str, str]] = None) -> Optional[Any]:
        """GET a JSON document; None on 404. Retries once with the alternate auth header."""
        response = None
        for headers in self._auth_variants():
            response = await client.get(path, params=params, headers={"Accept": "application/json", **headers})
            if response.status_code not in _AUTH_REJECTED:
                break
        if response.status_code == 404:
            return None
        if response.status_code in _AUTH_REJECTED:
            raise OrderLookupError(f"Order API rejected credentials ({response.status_code})")
        if response.status_code >= 400:
            raise OrderLookupError(f"Order API returned {response.status_code}")
        try:
            return response.json()
        except ValueError:
            raise OrderLookupError("Order API returned a non-JSON body")

    async def fetch_order(self, order_code: str) -> NormalizedOrder:
        """
        Fetch and normalize an order.

        Raises:
            OrderNotFoundError: neither lookup found the order
            OrderLookupError: network failure, timeout, auth or server error
        """
        code = order_code.strip()
        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
                payload = await self._get(client, f"/orders/{code}")
                order = parse_order(payload) if payload is not None else None
                if order is None:
                    logger.info("[orders] id lookup missed, trying order number", extra={"order_id": code})
                    payload = await self._get(client, "/orders", params={"number": code})
                    order = self._match_number(payload, code)
        except httpx.HTTPError as e:
            raise OrderLookupError(f"Order API unreachable: {e.__class__.__name__}")

        if order is None:
            raise OrderNotFoundError(f"Order {code} not found")
        return order

    def _match_number(self, payload: Any, code: str) -> Optional[NormalizedOrder]:
        """Pick the candidate whose number or id equals the code; never another customer's order."""
        candidates = [parse_order(raw) for raw in unwrap_orders(payload)]
        candidates = [c for c in candidates if c is not None]
        for candidate in candidates:
            if code in {candidate.order_number, candidate.order_id}:
                return candidate
        if self.trust_single_result and len(candidates) == 1 and candidates[0].order_number is None:
            return candidates[0]
        if candidates:
            logger.warning(
                "[orders] number lookup returned no exact match",
                extra={"order_id": code, "candidates": len(candidates)},
            )
        return None
