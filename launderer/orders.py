"""Order lifecycle: creation, status transitions, cancellation, driver tracking.

Every status change goes through :meth:`OrderService._transition`, which
updates the order and appends the matching history entry in one commit.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from launderer import config, pricing
from launderer.auth import Identity, find_user
from launderer.enums import OrderStatus
from launderer.errors import ConflictError, ForbiddenError, NotFoundError, ProfileNotFoundError
from launderer.models import Order, OrderStatusHistory
from launderer.schemas import DriverAssignment, LocationUpdate, OrderCreate, StatusUpdate

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: frozenset({OrderStatus.PICKED_UP, OrderStatus.CANCELLED}),
    OrderStatus.PICKED_UP: frozenset({OrderStatus.IN_LAUNDRY, OrderStatus.CANCELLED}),
    OrderStatus.IN_LAUNDRY: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.OUT_FOR_DELIVERY, OrderStatus.CANCELLED}),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def allowed_next(current) -> frozenset:
    return ALLOWED_TRANSITIONS[OrderStatus(current)]


class OrderService:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_orders(
        self,
        identity: Identity,
        status: Optional[OrderStatus] = None,
        limit: int = config.DEFAULT_ORDER_PAGE_SIZE,
        offset: int = 0,
    ) -> list[Order]:
        user = find_user(self.db, identity)
        if user is None:
            return []

        query = self.db.query(Order).filter(Order.user_id == user.id)
        if status is not None:
            query = query.filter(Order.status == OrderStatus(status).value)
        return query.order_by(Order.created_at.desc()).limit(limit).offset(offset).all()

    def get_order(self, identity: Identity, order_id: str) -> tuple[Order, list[OrderStatusHistory]]:
        """An order owned by the caller, with its history newest first."""
        order = self._owned_order(identity, order_id)
        history = (
            self.db.query(OrderStatusHistory)
            .filter(OrderStatusHistory.order_id == order.id)
            .order_by(OrderStatusHistory.id.desc())
            .all()
        )
        return order, history

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_order(self, identity: Identity, data: OrderCreate) -> Order:
        user = find_user(self.db, identity)
        if user is None:
            raise ProfileNotFoundError()

        order = Order(
            user_id=user.id,
            pickup_address=data.pickupAddress.model_dump(exclude_none=True),
            delivery_address=data.deliveryAddress.model_dump(exclude_none=True),
            scheduled_time=data.scheduledTime,
            service_type=data.serviceType.value,
            item_count=data.itemCount,
            price=pricing.base_price(data.serviceType),
            notes=data.notes,
            status=OrderStatus.PENDING.value,
        )
        self.db.add(order)
        self.db.flush()
        self.db.add(
            OrderStatusHistory(
                order_id=order.id,
                old_status=None,
                new_status=OrderStatus.PENDING.value,
                changed_by=identity.clerk_id,
            )
        )
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Order {order.id} created for user {user.id} ({order.service_type}, {order.price})")
        return order

    def update_status(self, identity: Identity, order_id: str, data: StatusUpdate) -> Order:
        """Set any status (driver/operator path, not owner-scoped)."""
        order = self._get(order_id)
        if config.ENFORCE_STATUS_TRANSITIONS and data.status not in allowed_next(order.status):
            raise ConflictError(f"Cannot change status from {order.status} to {data.status.value}")
        return self._transition(order, data.status, changed_by=identity.clerk_id, notes=data.notes)

    def cancel_order(self, identity: Identity, order_id: str) -> Order:
        order = self._owned_order(identity, order_id)
        if OrderStatus(order.status).is_terminal:
            raise ConflictError("Order cannot be cancelled")
        return self._transition(
            order, OrderStatus.CANCELLED, changed_by=identity.clerk_id, notes="Cancelled by customer"
        )

    def assign_driver(self, identity: Identity, order_id: str, data: DriverAssignment) -> Order:
        if data.driverId and data.driverId != identity.clerk_id and not identity.is_admin:
            raise ForbiddenError("Only admins can assign other drivers")
        driver_id = data.driverId or identity.clerk_id

        order = self._get(order_id)
        if OrderStatus(order.status).is_terminal:
            raise ConflictError("Order is already closed")
        if order.driver_id and order.driver_id != driver_id and not identity.is_admin:
            raise ConflictError("Order is assigned to another driver")

        order.driver_id = driver_id
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Order {order.id} assigned to driver {driver_id}")
        return order

    def update_driver_location(self, identity: Identity, order_id: str, data: LocationUpdate) -> Order:
        """Overwrite the order's last known driver position."""
        order = self._get(order_id)
        if not identity.is_admin and order.driver_id != identity.clerk_id:
            raise NotFoundError("Order not found")

        order.driver_location = {
            "latitude": data.latitude,
            "longitude": data.longitude,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        self.db.commit()
        self.db.refresh(order)
        return order

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, order_id: str) -> Order:
        order = self.db.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def _owned_order(self, identity: Identity, order_id: str) -> Order:
        user = find_user(self.db, identity)
        if user is None:
            raise NotFoundError("User not found")
        order = self.db.query(Order).filter(Order.id == order_id, Order.user_id == user.id).first()
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def _transition(self, order: Order, new_status: OrderStatus, changed_by=None, notes=None) -> Order:
        old_status = order.status
        order.status = OrderStatus(new_status).value
        self.db.add(
            OrderStatusHistory(
                order_id=order.id,
                old_status=old_status,
                new_status=order.status,
                changed_by=changed_by,
                notes=notes,
            )
        )
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Order {order.id} status {old_status} -> {order.status}")
        return order
