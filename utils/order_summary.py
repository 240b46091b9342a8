"""Turns cart lines, an optional coupon and a delivery choice into priced totals.

The summary is recomputed on every cart view, checkout preview and order
placement. Nothing here writes anywhere: the coupon redemption counter is
only bumped when an order is actually placed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

from config import PRICING
from utils.coupons import CouponTerms, compute_discount, validate_coupon
from utils.delivery import DeliveryTier, quote_delivery
from utils.errors import InvalidInput
from utils.money import ZERO, money, to_decimal


class DeliveryMode(str, Enum):
    DELIVERY = "Delivery"
    PICKUP = "Pickup"

    @classmethod
    def parse(cls, value) -> "DeliveryMode":
        if isinstance(value, cls):
            return value
        for mode in cls:
            if str(value).strip().lower() == mode.value.lower():
                return mode
        raise InvalidInput(f"Unknown delivery mode: {value!r}")


@dataclass(frozen=True)
class CartLine:
    product_id: int
    unit_price: Decimal
    quantity: Decimal
    weight_per_unit_kg: Optional[Decimal] = None
    vendor_id: Optional[int] = None
    category_id: Optional[int] = None
    category_name: Optional[str] = None

    def __post_init__(self):
        price = to_decimal(self.unit_price)
        quantity = to_decimal(self.quantity)
        if self.weight_per_unit_kg is None or to_decimal(self.weight_per_unit_kg) == 0:
            weight = PRICING.default_weight_per_unit_kg
        else:
            weight = to_decimal(self.weight_per_unit_kg)

        if price < 0:
            raise InvalidInput(f"Product {self.product_id} has a negative price")
        if quantity <= 0:
            raise InvalidInput(f"Product {self.product_id} needs a positive quantity")
        if weight < 0:
            raise InvalidInput(f"Product {self.product_id} has a negative weight")

        object.__setattr__(self, "unit_price", price)
        object.__setattr__(self, "quantity", quantity)
        object.__setattr__(self, "weight_per_unit_kg", weight)

    @property
    def mrp(self) -> Decimal:
        return money(self.unit_price * self.quantity)

    @property
    def weight_kg(self) -> Decimal:
        return self.weight_per_unit_kg * self.quantity


@dataclass(frozen=True)
class DeliveryContext:
    vendor_coordinate: Any
    buyer_coordinate: Any
    vendor_delivery_radius_km: Optional[float] = None
    vendor_state_code: Optional[str] = None
    buyer_state_code: Optional[str] = None
    parcel_weight_kg: Optional[Decimal] = None


@dataclass(frozen=True)
class ItemSummary:
    product_id: int
    quantity: Decimal
    unit_price: Decimal
    mrp: Decimal
    discount: Decimal
    total: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "quantity": float(self.quantity),
            "unit_price": float(self.unit_price),
            "mrp": float(self.mrp),
            "discount": float(self.discount),
            "total": float(self.total),
        }


@dataclass(frozen=True)
class OrderSummary:
    items: Tuple[ItemSummary, ...]
    total_mrp: Decimal
    total_discount: Decimal
    delivery_charge: Decimal
    grand_total: Decimal
    delivery_mode: DeliveryMode
    delivery_tier: DeliveryTier
    parcel_weight_kg: Decimal
    distance_km: Optional[float] = None
    coupon_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "summary": {
                "total_mrp": float(self.total_mrp),
                "discount": float(self.total_discount),
                "delivery_charge": float(self.delivery_charge),
                "grand_total": float(self.grand_total),
            },
            "delivery": {
                "mode": self.delivery_mode.value,
                "tier": self.delivery_tier.value,
                "distance_km": round(self.distance_km, 2) if self.distance_km is not None else None,
                "parcel_weight_kg": float(self.parcel_weight_kg),
            },
            "coupon_code": self.coupon_code,
        }


def assemble_order_summary(
    lines: Sequence[CartLine],
    coupon: Optional[CouponTerms] = None,
    delivery_mode=DeliveryMode.DELIVERY,
    delivery_context: Optional[DeliveryContext] = None,
    *,
    user_id: Optional[int] = None,
    at_time: Optional[datetime] = None,
) -> OrderSummary:
    """Price ``lines`` for checkout.

    Coupon problems raise a :class:`~utils.coupons.CouponError`; delivery
    problems never do, they fall back to a flat charge instead.
    """
    if not lines:
        raise InvalidInput("At least one line item is required")

    mode = DeliveryMode.parse(delivery_mode)
    total_mrp = sum((line.mrp for line in lines), ZERO)
    parcel_weight = sum((line.weight_kg for line in lines), Decimal("0"))

    if coupon is not None:
        validate_coupon(coupon, at_time, user_id)
        discounts = compute_discount(coupon, lines).per_item
    else:
        discounts = (ZERO,) * len(lines)

    distance = None
    if mode == DeliveryMode.PICKUP:
        delivery_charge, tier = ZERO, DeliveryTier.PICKUP
    elif delivery_context is None:
        quote = quote_delivery(None, None, parcel_weight_kg=parcel_weight)
        delivery_charge, tier = quote.amount, quote.tier
    else:
        if delivery_context.parcel_weight_kg is not None:
            parcel_weight = to_decimal(delivery_context.parcel_weight_kg)
        quote = quote_delivery(
            delivery_context.vendor_coordinate,
            delivery_context.buyer_coordinate,
            delivery_context.vendor_delivery_radius_km,
            parcel_weight,
        )
        delivery_charge, tier, distance = quote.amount, quote.tier, quote.distance_km

    items = tuple(
        ItemSummary(
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
            mrp=line.mrp,
            discount=discount,
            total=line.mrp - discount,
        )
        for line, discount in zip(lines, discounts)
    )
    total_discount = sum(discounts, ZERO)

    return OrderSummary(
        items=items,
        total_mrp=money(total_mrp),
        total_discount=money(total_discount),
        delivery_charge=money(delivery_charge),
        grand_total=money(total_mrp - total_discount + delivery_charge),
        delivery_mode=mode,
        delivery_tier=tier,
        parcel_weight_kg=parcel_weight,
        distance_km=distance,
        coupon_code=coupon.code if coupon is not None else None,
    )
