from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from launderer import config, pricing
from launderer.auth import Identity, require_driver, verify_token
from launderer.database import get_db
from launderer.enums import OrderStatus
from launderer.identity import IdentityProviderClient, get_identity_client
from launderer.orders import OrderService
from launderer.payments import PaymentService
from launderer.profiles import ProfileService
from launderer.schemas import (
    DriverAssignment,
    LocationUpdate,
    OrderCreate,
    OrderResponse,
    PaymentCharge,
    PaymentResponse,
    PriceQuoteRequest,
    ProfileRequest,
    SavedAddress,
    StatusHistoryResponse,
    StatusUpdate,
    UserResponse,
)

router = APIRouter(prefix="/api")


def get_profile_service(db: Session = Depends(get_db)) -> ProfileService:
    return ProfileService(db)


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db)


def get_payment_service(
    db: Session = Depends(get_db),
    identity_client: IdentityProviderClient = Depends(get_identity_client),
) -> PaymentService:
    return PaymentService(db, identity_client)


def _user(user):
    return {"success": True, "user": UserResponse.model_validate(user)}


def _order(order):
    return {"success": True, "order": OrderResponse.model_validate(order)}


# ============================================================================
# PROFILE
# ============================================================================


@router.post("/auth/profile", tags=["Profile"])
def upsert_profile(
    data: ProfileRequest,
    identity: Identity = Depends(verify_token),
    service: ProfileService = Depends(get_profile_service),
):
    return _user(service.upsert_profile(identity, data))


@router.get("/auth/profile", tags=["Profile"])
def get_profile(
    identity: Identity = Depends(verify_token),
    service: ProfileService = Depends(get_profile_service),
):
    return _user(service.get_profile(identity))


@router.put("/auth/profile", tags=["Profile"])
def update_profile(
    data: ProfileRequest,
    identity: Identity = Depends(verify_token),
    service: ProfileService = Depends(get_profile_service),
):
    return _user(service.update_profile(identity, data))


@router.post("/auth/profile/addresses", tags=["Profile"])
def add_address(
    address: SavedAddress,
    identity: Identity = Depends(verify_token),
    service: ProfileService = Depends(get_profile_service),
):
    return _user(service.add_address(identity, address))


@router.delete("/auth/profile/addresses/{index}", tags=["Profile"])
def remove_address(
    index: int = Path(ge=0),
    identity: Identity = Depends(verify_token),
    service: ProfileService = Depends(get_profile_service),
):
    return _user(service.remove_address(identity, index))


# ============================================================================
# ORDERS
# ============================================================================


@router.post("/orders", status_code=201, tags=["Orders"])
def create_order(
    data: OrderCreate,
    identity: Identity = Depends(verify_token),
    service: OrderService = Depends(get_order_service),
):
    return _order(service.create_order(identity, data))


@router.get("/orders", tags=["Orders"])
def list_orders(
    status: Optional[OrderStatus] = Query(None),
    limit: int = Query(config.DEFAULT_ORDER_PAGE_SIZE, ge=1, le=config.MAX_ORDER_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(verify_token),
    service: OrderService = Depends(get_order_service),
):
    orders = service.list_orders(identity, status=status, limit=limit, offset=offset)
    return {
        "success": True,
        "orders": [OrderResponse.model_validate(o) for o in orders],
        "count": len(orders),
    }


@router.get("/orders/{order_id}", tags=["Orders"])
def get_order(
    order_id: str,
    identity: Identity = Depends(verify_token),
    service: OrderService = Depends(get_order_service),
):
    order, history = service.get_order(identity, order_id)
    return {
        "success": True,
        "order": OrderResponse.model_validate(order),
        "statusHistory": [StatusHistoryResponse.model_validate(h) for h in history],
    }


@router.put("/orders/{order_id}", tags=["Orders"])
def update_order_status(
    order_id: str,
    data: StatusUpdate,
    identity: Identity = Depends(require_driver),
    service: OrderService = Depends(get_order_service),
):
    return _order(service.update_status(identity, order_id, data))


@router.put("/orders/{order_id}/driver", tags=["Orders"])
def assign_driver(
    order_id: str,
    data: DriverAssignment,
    identity: Identity = Depends(require_driver),
    service: OrderService = Depends(get_order_service),
):
    return _order(service.assign_driver(identity, order_id, data))


@router.put("/orders/{order_id}/location", tags=["Orders"])
def update_driver_location(
    order_id: str,
    data: LocationUpdate,
    identity: Identity = Depends(require_driver),
    service: OrderService = Depends(get_order_service),
):
    return _order(service.update_driver_location(identity, order_id, data))


@router.post("/orders/{order_id}/cancel", tags=["Orders"])
def cancel_order(
    order_id: str,
    identity: Identity = Depends(verify_token),
    service: OrderService = Depends(get_order_service),
):
    return _order(service.cancel_order(identity, order_id))


# ============================================================================
# PAYMENTS (the Stripe webhook lives in main.py, outside this router)
# ============================================================================


@router.post("/payments/charge", tags=["Payments"])
def charge_payment(
    data: PaymentCharge,
    identity: Identity = Depends(verify_token),
    service: PaymentService = Depends(get_payment_service),
):
    payment, client_secret = service.charge(identity, data)
    return {
        "success": True,
        "payment": PaymentResponse.model_validate(payment),
        "clientSecret": client_secret,
    }


@router.get("/payments", tags=["Payments"])
def list_payments(
    identity: Identity = Depends(verify_token),
    service: PaymentService = Depends(get_payment_service),
):
    payments = service.list_payments(identity)
    return {"success": True, "payments": [PaymentResponse.model_validate(p) for p in payments]}


@router.get("/payments/{order_id}", tags=["Payments"])
def get_payment(
    order_id: str,
    identity: Identity = Depends(verify_token),
    service: PaymentService = Depends(get_payment_service),
):
    return {"success": True, "payment": PaymentResponse.model_validate(service.get_payment(identity, order_id))}


# ============================================================================
# PRICING
# ============================================================================


@router.post("/pricing/calculate", tags=["Pricing"])
def calculate_price(data: PriceQuoteRequest):
    return {"success": True, "pricing": pricing.quote(data.serviceType, data.itemCount, data.addons)}


@router.get("/pricing/tiers", tags=["Pricing"])
def get_pricing_tiers():
    return {"success": True, "tiers": pricing.tiers()}
