import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from launderer.database import Base
from launderer.enums import OrderStatus, PaymentStatus, ServiceType


def generate_id():
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    clerk_id = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    default_address = Column(JSON, nullable=True)
    # Always a list; [] means "no saved addresses"
    saved_addresses = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    orders = relationship("Order", back_populates="user", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="user", cascade="all, delete-orphan")


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    pickup_address = Column(JSON, nullable=False)
    delivery_address = Column(JSON, nullable=False)
    scheduled_time = Column(DateTime(timezone=True), index=True, nullable=False)
    status = Column(String(32), index=True, nullable=False, default=OrderStatus.PENDING.value)
    service_type = Column(String(32), nullable=False, default=ServiceType.STANDARD.value)
    item_count = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=False)  # fixed at creation
    driver_id = Column(String(255), index=True, nullable=True)  # driver's identity-provider id
    driver_location = Column(JSON, nullable=True)  # {latitude, longitude, timestamp}
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="orders")
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )
    payments = relationship("Payment", back_populates="order", cascade="all, delete-orphan")


class OrderStatusHistory(Base):
    """Append-only log of order status changes."""

    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    old_status = Column(String(32), nullable=True)  # null only on the creation entry
    new_status = Column(String(32), nullable=False)
    changed_by = Column(String(255), nullable=True)  # identity-provider id of the actor
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    order = relationship("Order", back_populates="status_history")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=generate_id)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    stripe_payment_id = Column(String(255), unique=True, nullable=True)  # Stripe Charge ID
    stripe_payment_intent_id = Column(String(255), index=True, nullable=True)  # Stripe PaymentIntent ID
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(32), nullable=False, default=PaymentStatus.PENDING.value)  # pending | completed | failed | refunded
    payment_method_id = Column(String(255), nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    order = relationship("Order", back_populates="payments")
    user = relationship("User", back_populates="payments")
