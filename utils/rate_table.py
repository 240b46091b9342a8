"""Speed-post style rate card for parcels shipped beyond a vendor's radius."""

from __future__ import annotations

import math
from decimal import Decimal, ROUND_CEILING, InvalidOperation
from typing import Dict, NamedTuple, Tuple

from utils.errors import RateLookupError
from utils.money import money, to_decimal

WEIGHT_STEP_GRAMS = 50
MAX_WEIGHT_GRAMS = 20000

# (slab key, upper bound in km)
DISTANCE_SLABS: Tuple[Tuple[str, float], ...] = (
    ("upto200", 200),
    ("upto1000", 1000),
    ("upto2000", 2000),
    ("above2000", math.inf),
)

# weight tier (g) -> rate per distance slab, in DISTANCE_SLABS order
SPEED_POST_RATES: Dict[int, Tuple[int, int, int, int]] = {
    50: (18, 41, 41, 41),
    200: (30, 41, 47, 71),
    500: (35, 59, 71, 83),
    1000: (47, 77, 106, 165),
    1500: (59, 94, 142, 189),
    2000: (71, 112, 177, 236),
    2500: (83, 130, 212, 283),
    3000: (94, 148, 248, 330),
    3500: (106, 165, 283, 378),
    4000: (118, 183, 319, 425),
    4500: (130, 201, 354, 472),
    5000: (142, 218, 389, 519),
    6000: (165, 254, 460, 755),
    8000: (212, 325, 602, 991),
    10000: (260, 395, 743, 1227),
    15000: (378, 572, 1097, 1463),
    20000: (496, 749, 1451, 2407),
}

WEIGHT_TIERS = tuple(sorted(SPEED_POST_RATES))


class LongHaulQuote(NamedTuple):
    rate: Decimal
    weight_tier: int
    distance_slab: str


def round_weight(weight_grams) -> int:
    """Round up to the next 50 g step, capped at the heaviest tier."""
    try:
        grams = to_decimal(weight_grams)
    except InvalidOperation as exc:
        raise RateLookupError(f"Invalid parcel weight: {weight_grams!r}") from exc

    if not grams.is_finite() or grams < 0:
        raise RateLookupError(f"Invalid parcel weight: {weight_grams!r}")

    steps = (grams / WEIGHT_STEP_GRAMS).to_integral_value(rounding=ROUND_CEILING)
    return min(int(steps) * WEIGHT_STEP_GRAMS, MAX_WEIGHT_GRAMS)


def weight_tier(weight_grams) -> int:
    rounded = round_weight(weight_grams)
    return next((tier for tier in WEIGHT_TIERS if rounded <= tier), WEIGHT_TIERS[-1])


def distance_slab(distance_km) -> Tuple[str, int]:
    try:
        km = float(distance_km)
    except (TypeError, ValueError) as exc:
        raise RateLookupError(f"Invalid distance: {distance_km!r}") from exc

    if math.isnan(km) or km < 0:
        raise RateLookupError(f"Invalid distance: {distance_km!r}")

    for index, (key, limit) in enumerate(DISTANCE_SLABS):
        if km <= limit:
            return key, index
    return DISTANCE_SLABS[-1][0], len(DISTANCE_SLABS) - 1


def long_haul_quote(weight_grams, distance_km) -> LongHaulQuote:
    tier = weight_tier(weight_grams)
    slab, index = distance_slab(distance_km)
    return LongHaulQuote(money(SPEED_POST_RATES[tier][index]), tier, slab)


def long_haul_rate(weight_grams, distance_km) -> Decimal:
    return long_haul_quote(weight_grams, distance_km).rate
