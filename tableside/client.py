"""
HTTP client for the customer-facing table flows.

Used by the simulator and by integration tests. Every call returns the
``data`` part of the API envelope; error envelopes are raised as
``TableOrderingError``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Optional

import httpx

logger = logging.getLogger(__name__)

TERMINAL_ORDER_STATUSES = {"served", "completed", "cancelled"}


class TableOrderingError(Exception):
    """The API answered with an error envelope or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class TableOrderingClient:
    def __init__(
        self,
        base_url: str,
        restaurant_id: str,
        table_id: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.restaurant_id = restaurant_id
        self.table_id = table_id
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout, transport=transport
        )

    async def __aenter__(self) -> "TableOrderingClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise TableOrderingError(f"API not reachable: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.status_code >= 400:
            raise TableOrderingError(
                payload.get("error") or f"Request failed ({response.status_code})",
                status_code=response.status_code,
                detail=payload.get("detail") or response.text,
            )
        return payload.get("data")

    # ------------------------------------------------------------------
    # Menu & cart
    # ------------------------------------------------------------------

    async def get_menu(self) -> dict[str, Any]:
        return await self._request("GET", f"/restaurants/{self.restaurant_id}/menu")

    async def get_table_menu(self) -> dict[str, Any]:
        """Menu plus this table's open orders, as shown after a QR scan."""
        return await self._request(
            "GET", f"/restaurants/{self.restaurant_id}/tables/{self.table_id}/menu"
        )

    async def get_table_status(self) -> dict[str, Any]:
        return await self._request(
            "GET", f"/restaurants/{self.restaurant_id}/tables/{self.table_id}/status"
        )

    async def quote(self, items: list[dict[str, Any]]) -> dict[str, Any]:
        return await self._request(
            "POST", f"/restaurants/{self.restaurant_id}/cart/quote", json={"items": items}
        )

    # ------------------------------------------------------------------
    # Orders & payment
    # ------------------------------------------------------------------

    async def create_order(self, items: list[dict[str, Any]], **customer) -> dict[str, Any]:
        body = {"table_id": self.table_id, "items": items, **customer}
        return await self._request("POST", f"/restaurants/{self.restaurant_id}/orders", json=body)

    async def get_order(self, order_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/orders/{order_id}")

    async def create_payment_intent(self, order_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/orders/{order_id}/payment-intent")

    async def confirm_payment(self, order_id: str) -> dict[str, Any]:
        return await self._request("POST", f"/orders/{order_id}/confirm-payment")

    async def watch_order(
        self,
        order_id: str,
        interval: float = 30.0,
        stop_event: Optional[asyncio.Event] = None,
        deadline: Optional[float] = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """
        Yield the order every time its status changes.

        Polls at a fixed interval and ends when the order reaches a terminal
        status, ``stop_event`` is set, or ``deadline`` seconds have passed.
        """
        stop_event = stop_event or asyncio.Event()
        expires_at = time.monotonic() + deadline if deadline is not None else None
        last_seen = None

        while not stop_event.is_set():
            order = await self.get_order(order_id)
            state = (order["status"], order["payment_status"])
            if state != last_seen:
                last_seen = state
                yield order
            if order["status"] in TERMINAL_ORDER_STATUSES:
                return

            wait = interval
            if expires_at is not None:
                wait = min(wait, expires_at - time.monotonic())
                if wait <= 0:
                    logger.info(f"Stopped watching order {order_id}: deadline reached")
                    return
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=wait)
            except asyncio.TimeoutError:
                continue

    # ------------------------------------------------------------------
    # Service requests & reviews
    # ------------------------------------------------------------------

    async def call_server(self, message: Optional[str] = None) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/restaurants/{self.restaurant_id}/service-requests/call-server",
            json={"table_id": self.table_id, "message": message},
        )

    async def create_service_requests(self, requests: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return await self._request(
            "POST",
            f"/restaurants/{self.restaurant_id}/service-requests",
            json={"table_id": self.table_id, "requests": requests},
        )

    async def submit_review(self, customer_name: str, rating: int, comment: str, **extra) -> dict[str, Any]:
        body = {
            "customer_name": customer_name,
            "rating": rating,
            "comment": comment,
            "table_number": self.table_id,
            **extra,
        }
        return await self._request("POST", f"/restaurants/{self.restaurant_id}/reviews", json=body)

    async def mark_helpful(self, review_id: str) -> int:
        data = await self._request(
            "POST", f"/restaurants/{self.restaurant_id}/reviews/{review_id}/helpful"
        )
        return data["helpful_count"]
