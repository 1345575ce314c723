"""Client-side order operations and the local order cache."""

from datetime import datetime
from typing import Optional

from launderer.client.api import ApiClient
from launderer.enums import OrderStatus, ServiceType
from launderer.schemas import OrderResponse, StatusHistoryResponse


class OrderManager:
    """Keeps ``orders`` (all, newest first) and ``active_orders`` (non-terminal).

    Writes are last-write-wins: whichever refresh finishes last owns the cache
    entry.
    """

    def __init__(self, api: ApiClient):
        self.api = api
        self.orders: list[OrderResponse] = []
        self.active_orders: list[OrderResponse] = []

    async def create_order(
        self,
        pickup_address: dict,
        delivery_address: dict,
        scheduled_time: datetime,
        service_type: ServiceType = ServiceType.STANDARD,
        item_count: int = 0,
        notes: Optional[str] = None,
    ) -> OrderResponse:
        body = {
            "pickupAddress": pickup_address,
            "deliveryAddress": delivery_address,
            "scheduledTime": scheduled_time.isoformat(),
            "serviceType": ServiceType(service_type).value,
            "itemCount": item_count,
        }
        if notes is not None:
            body["notes"] = notes

        response = await self.api.post("/orders", body)
        order = OrderResponse.model_validate(response["order"])
        self.orders.insert(0, order)
        if not order.status.is_terminal:
            self.active_orders.insert(0, order)
        return order

    async def fetch_orders(self, status: Optional[OrderStatus] = None) -> list[OrderResponse]:
        params = {"status": OrderStatus(status).value} if status else None
        response = await self.api.get("/orders", params=params)
        orders = [OrderResponse.model_validate(o) for o in response["orders"]]
        self.orders = orders
        self.active_orders = [o for o in orders if not o.status.is_terminal]
        return orders

    async def fetch_order_details(self, order_id: str) -> tuple[OrderResponse, list[StatusHistoryResponse]]:
        response = await self.api.get(f"/orders/{order_id}")
        order = OrderResponse.model_validate(response["order"])
        history = [StatusHistoryResponse.model_validate(h) for h in response.get("statusHistory") or []]
        self._store(order)
        return order, history

    async def refresh_order(self, order_id: str) -> OrderResponse:
        order, _ = await self.fetch_order_details(order_id)
        return order

    async def cancel_order(self, order_id: str) -> OrderResponse:
        response = await self.api.post(f"/orders/{order_id}/cancel")
        order = OrderResponse.model_validate(response["order"])
        self._store(order)
        return order

    def _store(self, order: OrderResponse) -> None:
        self.orders = [order if o.id == order.id else o for o in self.orders]
        if order.status.is_terminal:
            self.active_orders = [o for o in self.active_orders if o.id != order.id]
        else:
            self.active_orders = [order if o.id == order.id else o for o in self.active_orders]
