"""Utility helpers for delivery-related calculations."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional

from config import PRICING
from utils.errors import InvalidCoordinate, InvalidInput, RateLookupError
from utils.geo import distance_km, distance_text, is_unset, validate_coordinate
from utils.money import money, to_decimal
from utils.rate_table import long_haul_rate

logger = logging.getLogger(__name__)


class DeliveryTier(str, Enum):
    LOCAL = "local"
    LONG_HAUL = "long_haul"
    FALLBACK = "fallback"
    PICKUP = "pickup"


class DeliveryQuote(NamedTuple):
    amount: Decimal
    tier: DeliveryTier
    distance_km: Optional[float]


def _parcel_weight(parcel_weight_kg) -> Decimal:
    weight = to_decimal(parcel_weight_kg)
    if not weight.is_finite() or weight < 0:
        raise InvalidInput(f"Parcel weight must be non-negative, got {parcel_weight_kg!r}")
    return weight


def _require_well_formed(coordinate) -> None:
    try:
        validate_coordinate(coordinate)
    except InvalidCoordinate as exc:
        raise InvalidInput(str(exc)) from exc


def local_charge(distance: float) -> Decimal:
    """Flat charge for the first couple of km, then a per-km surcharge."""
    if distance <= PRICING.local_base_distance_km:
        return money(PRICING.local_base_charge)

    extra_km = to_decimal(distance) - to_decimal(PRICING.local_base_distance_km)
    return money(PRICING.local_base_charge + extra_km * PRICING.local_per_km_charge)


def quote_delivery(vendor_coord, buyer_coord, radius_km=None, parcel_weight_kg=0) -> DeliveryQuote:
    """Price a delivery from the vendor to the buyer.

    Unknown locations and rate-table misses degrade to flat fallback
    charges so that checkout is never blocked on a delivery estimate.
    Only caller bugs (negative weight, out-of-range coordinates) raise.
    """
    weight_kg = _parcel_weight(parcel_weight_kg or 0)

    if is_unset(vendor_coord) or is_unset(buyer_coord):
        logger.warning("Delivery location missing, using fallback charge")
        return DeliveryQuote(money(PRICING.fallback_delivery_charge), DeliveryTier.FALLBACK, None)

    _require_well_formed(vendor_coord)
    _require_well_formed(buyer_coord)

    try:
        distance = distance_km(vendor_coord, buyer_coord)
    except InvalidCoordinate as exc:
        logger.warning("Could not measure delivery distance (%s), using fallback charge", exc)
        return DeliveryQuote(money(PRICING.fallback_delivery_charge), DeliveryTier.FALLBACK, None)

    radius = PRICING.default_delivery_radius_km if radius_km is None else float(radius_km)

    if distance <= radius:
        return DeliveryQuote(local_charge(distance), DeliveryTier.LOCAL, distance)

    try:
        rate = long_haul_rate(weight_kg * 1000, distance)
    except RateLookupError as exc:
        logger.warning("Rate table lookup failed (%s), using long-haul fallback", exc)
        rate = PRICING.long_haul_fallback_charge

    return DeliveryQuote(money(rate), DeliveryTier.LONG_HAUL, distance)


def compute_delivery_charge(vendor_coord, buyer_coord, radius_km=None, parcel_weight_kg=0) -> Decimal:
    return quote_delivery(vendor_coord, buyer_coord, radius_km, parcel_weight_kg).amount


def estimate_delivery_date(
    distance: Optional[float],
    radius_km: Optional[float],
    vendor_state: Optional[str] = None,
    buyer_state: Optional[str] = None,
    order_time: Optional[datetime] = None,
) -> Optional[datetime]:
    if distance is None:
        return None

    order_time = order_time or datetime.now(timezone.utc)
    radius = PRICING.default_delivery_radius_km if radius_km is None else float(radius_km)

    if distance <= radius:
        if order_time.hour >= PRICING.same_day_cutoff_hour:
            return order_time + timedelta(days=1)
        return order_time

    if vendor_state and buyer_state and vendor_state.strip().upper() == buyer_state.strip().upper():
        return order_time + timedelta(days=PRICING.long_haul_days_same_state)
    return order_time + timedelta(days=PRICING.long_haul_days_other_state)


def estimate_delivery_cost(
    vendor_coord,
    buyer_coord,
    parcel_weight_kg,
    *,
    radius_km=None,
    vendor_state: Optional[str] = None,
    buyer_state: Optional[str] = None,
    currency: str = "INR",
    order_time: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Return a delivery cost estimate between a vendor and a destination."""

    quote = quote_delivery(vendor_coord, buyer_coord, radius_km, parcel_weight_kg)
    eta = estimate_delivery_date(quote.distance_km, radius_km, vendor_state, buyer_state, order_time)

    return {
        "amount": float(quote.amount),
        "currency": currency,
        "strategy": quote.tier.value,
        "weight_kg": float(_parcel_weight(parcel_weight_kg or 0)),
        "distance_km": round(quote.distance_km, 2) if quote.distance_km is not None else None,
        "distance_text": distance_text(buyer_coord, vendor_coord) if quote.distance_km is not None else "N/A",
        "estimated_delivery": eta.isoformat() if eta else None,
    }
