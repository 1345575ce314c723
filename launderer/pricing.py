"""Pricing table: service tiers and add-on surcharges.

Prices are tier based. Item count is accepted by :func:`quote` but does not
change the total; the base price covers a standard load.
"""

from decimal import ROUND_HALF_UP, Decimal

from launderer.enums import ServiceType

CENTS = Decimal("0.01")

PRICING_TIERS = {
    ServiceType.STANDARD: {
        "name": "Standard",
        "base_price": Decimal("25.00"),
        "description": "3-5 business days",
        "features": [
            "Wash and fold",
            "Basic detergent",
            "Standard packaging",
        ],
    },
    ServiceType.EXPRESS: {
        "name": "Express",
        "base_price": Decimal("40.00"),
        "description": "24-48 hours",
        "features": [
            "Wash and fold",
            "Premium detergent",
            "Next-day delivery",
            "Eco-friendly packaging",
        ],
    },
    ServiceType.PREMIUM: {
        "name": "Premium",
        "base_price": Decimal("60.00"),
        "description": "Same day delivery",
        "features": [
            "Wash and fold",
            "Luxury detergent",
            "Same-day delivery",
            "Hand washing available",
            "Premium packaging",
            "Stain treatment included",
        ],
    },
}

ADDON_PRICES = {
    "stain_treatment": Decimal("10.00"),
    "delicate_care": Decimal("15.00"),
    "ironing": Decimal("20.00"),
    "dry_cleaning": Decimal("25.00"),
}


def base_price(service_type) -> Decimal:
    return PRICING_TIERS[ServiceType(service_type)]["base_price"]


def addon_price(addon: str) -> Decimal:
    """Surcharge for an add-on; unknown add-ons are free."""
    return ADDON_PRICES.get(addon, Decimal("0.00"))


def quote(service_type, item_count: int = 0, addons=()) -> dict:
    tier_key = ServiceType(service_type)
    tier = PRICING_TIERS[tier_key]

    addon_lines = [{"name": addon, "price": addon_price(addon)} for addon in addons]
    total = tier["base_price"] + sum((line["price"] for line in addon_lines), Decimal("0"))

    return {
        "serviceType": tier_key.value,
        "serviceName": tier["name"],
        "basePrice": tier["base_price"],
        "itemCount": item_count,
        "addons": addon_lines,
        "totalPrice": total.quantize(CENTS, rounding=ROUND_HALF_UP),
        "description": tier["description"],
        "features": list(tier["features"]),
    }


def tiers() -> dict:
    return {
        key.value: {
            "name": tier["name"],
            "basePrice": tier["base_price"],
            "description": tier["description"],
            "features": list(tier["features"]),
        }
        for key, tier in PRICING_TIERS.items()
    }


def to_minor_units(amount) -> int:
    """Convert a decimal currency amount to integer cents."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
