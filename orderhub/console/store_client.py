"""
Order Hub Console — Order Store REST client

Maps transport failures and HTTP answers onto the domain error taxonomy:
  timeout / network error → ConnectivityError
  404                     → NotFound
  409                     → InvalidTransition
  anything else non-2xx   → OrderStoreError
"""
import logging
from typing import Any

import httpx

from orderhub.core.config import get_settings
from orderhub.core.errors import ConnectivityError, InvalidTransition, NotFound, OrderStoreError

settings = get_settings()
logger = logging.getLogger(__name__)


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("detail", body))
    return str(body)


class OrderStoreClient:
    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.ORDER_HUB_URL,
            headers=headers,
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> "OrderStoreClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise ConnectivityError(f"Order store did not respond in time ({method} {url}).") from exc
        except httpx.RequestError as exc:
            raise ConnectivityError(f"Order store unreachable: {exc}") from exc

        if response.status_code == 404:
            raise NotFound(_detail(response))
        if response.status_code == 409:
            raise InvalidTransition(_detail(response))
        if not response.is_success:
            logger.warning("%s %s failed with %d", method, url, response.status_code)
            raise OrderStoreError(_detail(response), status_code=response.status_code)
        return response.json()

    # ── Public ───────────────────────────────────────────────
    async def create_order(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request("POST", "/orders", json=payload)

    async def get_order(self, order_id: int) -> dict[str, Any]:
        return await self._request("GET", f"/orders/{order_id}")

    async def get_tracking(self, order_id: int) -> dict[str, Any]:
        return await self._request("GET", f"/orders/{order_id}/tracking")

    # ── Operator ─────────────────────────────────────────────
    async def list_orders(self, **filters) -> dict[str, Any]:
        params = {k: v for k, v in filters.items() if v is not None}
        return await self._request("GET", "/admin/orders", params=params)

    async def list_all_orders(self, **filters) -> list[dict[str, Any]]:
        """Walk every page of /admin/orders."""
        page = 1
        orders: list[dict[str, Any]] = []
        while True:
            body = await self.list_orders(page=page, limit=settings.ORDERS_MAX_PAGE_SIZE, **filters)
            orders.extend(body["data"])
            if not body["pagination"]["has_next"]:
                return orders
            page += 1

    async def update_status(self, order_id: int, order_status: str, admin_notes: str | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"order_status": order_status}
        if admin_notes is not None:
            body["admin_notes"] = admin_notes
        return await self._request("PUT", f"/admin/orders/{order_id}/status", json=body)

    async def confirm_payment(self, order_id: int, admin_notes: str | None = None) -> dict[str, Any]:
        return await self._request(
            "POST", f"/admin/orders/{order_id}/confirm-payment", json={"admin_notes": admin_notes}
        )

    async def reject_payment(self, order_id: int, admin_notes: str | None = None) -> dict[str, Any]:
        return await self._request(
            "POST", f"/admin/orders/{order_id}/reject-payment", json={"admin_notes": admin_notes}
        )

    async def cancel_order(self, order_id: int, admin_notes: str | None = None) -> dict[str, Any]:
        return await self._request("POST", f"/admin/orders/{order_id}/cancel", json={"admin_notes": admin_notes})
