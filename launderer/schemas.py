"""Request and response schemas.

Request bodies use the camelCase field names the mobile client sends; responses
mirror the database rows (snake_case).
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from launderer.enums import OrderStatus, PaymentStatus, ServiceType
from launderer.validators import (
    validate_latitude,
    validate_longitude,
    validate_optional_latitude,
    validate_optional_longitude,
)

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class Address(BaseModel):
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zipCode: str = Field(min_length=1)
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @field_validator("latitude", mode="before")
    @classmethod
    def check_latitude(cls, v):
        return validate_optional_latitude(v)

    @field_validator("longitude", mode="before")
    @classmethod
    def check_longitude(cls, v):
        return validate_optional_longitude(v)


class SavedAddress(Address):
    label: str = Field(min_length=1, max_length=100)


class ProfileRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    defaultAddress: Optional[Address] = None


class OrderCreate(BaseModel):
    pickupAddress: Address
    deliveryAddress: Address
    scheduledTime: datetime
    serviceType: ServiceType
    itemCount: int = Field(default=0, ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)


class StatusUpdate(BaseModel):
    status: OrderStatus
    notes: Optional[str] = Field(default=None, max_length=500)


class LocationUpdate(BaseModel):
    latitude: float
    longitude: float

    @field_validator("latitude", mode="before")
    @classmethod
    def check_latitude(cls, v):
        return validate_latitude(v)

    @field_validator("longitude", mode="before")
    @classmethod
    def check_longitude(cls, v):
        return validate_longitude(v)


class DriverAssignment(BaseModel):
    # Only admins may name a driver; drivers always claim for themselves
    driverId: Optional[str] = Field(default=None, min_length=1, max_length=255)


class PaymentCharge(BaseModel):
    orderId: UUID
    paymentMethodId: str = Field(min_length=1, max_length=255)


class PriceQuoteRequest(BaseModel):
    serviceType: ServiceType
    itemCount: int = Field(default=0, ge=0)
    addons: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    clerk_id: str
    name: Optional[str] = None
    phone: Optional[str] = None
    default_address: Optional[dict] = None
    saved_addresses: list[dict] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("saved_addresses", mode="before")
    @classmethod
    def always_a_list(cls, v):
        return [] if v is None else v


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    pickup_address: dict
    delivery_address: dict
    scheduled_time: datetime
    status: OrderStatus
    service_type: ServiceType
    item_count: int
    price: Decimal
    driver_id: Optional[str] = None
    driver_location: Optional[dict] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer("price")
    def serialize_price(self, value: Decimal) -> float:
        return float(value)


class StatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: str
    old_status: Optional[OrderStatus] = None
    new_status: OrderStatus
    changed_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    user_id: str
    stripe_payment_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None
    amount: Decimal
    status: PaymentStatus
    payment_method_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_serializer("amount")
    def serialize_amount(self, value: Decimal) -> float:
        return float(value)
