from typing import Optional

from launderer.client.api import DEFAULT_BASE_URL, ApiClient
from launderer.client.orders import OrderManager
from launderer.client.tracking import POLL_INTERVAL_SECONDS, TrackingCoordinator


class ClientSession:
    """Wires the API client, order cache and order tracking for one signed-in user.

    Views receive this object (or its parts) explicitly instead of reaching for
    module-level singletons.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        token: Optional[str] = None,
        transport=None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ):
        self.token = token
        self.api = ApiClient(base_url, token_provider=lambda: self.token, transport=transport)
        self.orders = OrderManager(self.api)
        self.tracking = TrackingCoordinator(self.orders.refresh_order, interval=poll_interval)

    def sign_in(self, token: str) -> None:
        self.token = token

    async def logout(self) -> None:
        self.tracking.stop_all()
        self.token = None
        self.orders.orders = []
        self.orders.active_orders = []

    async def aclose(self) -> None:
        self.tracking.stop_all()
        await self.api.aclose()
