from launderer.client.api import ApiClient, ApiError
from launderer.client.orders import OrderManager
from launderer.client.session import ClientSession
from launderer.client.tracking import TrackingCoordinator, TrackingHandle

__all__ = [
    "ApiClient",
    "ApiError",
    "ClientSession",
    "OrderManager",
    "TrackingCoordinator",
    "TrackingHandle",
]
