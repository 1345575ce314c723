from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    PICKED_UP = "picked_up"
    IN_LAUNDRY = "in_laundry"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})


class ServiceType(str, Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    PREMIUM = "premium"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class Role(str, Enum):
    CUSTOMER = "customer"
    DRIVER = "driver"
    ADMIN = "admin"
