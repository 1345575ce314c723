"""Real-time order tracking by polling.

A :class:`TrackingCoordinator` runs at most one polling task per order id.
Each task re-fetches the order every ``interval`` seconds until the order
reaches a terminal status or tracking is stopped. Cancellation is cooperative:
the flag is checked before and after every wait, and the wait itself wakes as
soon as the flag is set.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from launderer.enums import OrderStatus

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 30.0


class TrackingHandle:
    def __init__(self, order_id: str):
        self.order_id = order_id
        self.task: Optional[asyncio.Task] = None
        self._cancel_event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        self._cancel_event.set()

    async def wait(self, interval: float) -> None:
        """Sleep for ``interval`` seconds, returning early if cancelled."""
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass


class TrackingCoordinator:
    def __init__(
        self,
        fetch_order: Callable[[str], Awaitable],
        interval: float = POLL_INTERVAL_SECONDS,
    ):
        self._fetch_order = fetch_order
        self.interval = interval
        self._handles: dict[str, TrackingHandle] = {}

    @property
    def tracked_order_ids(self) -> list[str]:
        return list(self._handles)

    def is_tracking(self, order_id: str) -> bool:
        return order_id in self._handles

    def start(self, order_id: str) -> TrackingHandle:
        """Start polling an order, replacing any poller already running for it.

        Must be called from a running event loop.
        """
        self.stop(order_id)
        handle = TrackingHandle(order_id)
        self._handles[order_id] = handle
        handle.task = asyncio.get_running_loop().create_task(self._poll(handle))
        return handle

    def stop(self, order_id: str) -> None:
        handle = self._handles.pop(order_id, None)
        if handle is not None:
            handle.cancel()

    def stop_all(self) -> None:
        handles = list(self._handles.values())
        self._handles.clear()
        for handle in handles:
            handle.cancel()

    async def _poll(self, handle: TrackingHandle) -> None:
        try:
            while not handle.cancelled:
                await handle.wait(self.interval)
                if handle.cancelled:
                    break

                try:
                    order = await self._fetch_order(handle.order_id)
                except Exception:
                    # keep tracking through transient failures
                    logger.warning(f"Failed to fetch order updates for {handle.order_id}", exc_info=True)
                    continue

                if OrderStatus(order.status).is_terminal:
                    logger.info(f"Order {handle.order_id} is {OrderStatus(order.status).value}, stopping updates")
                    break
        finally:
            # a replacement handle may already own this slot
            if self._handles.get(handle.order_id) is handle:
                del self._handles[handle.order_id]
