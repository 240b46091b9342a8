"""Exceptions raised by the pricing helpers."""


class PricingError(Exception):
    """Base class for checkout pricing failures."""


class InvalidInput(PricingError, ValueError):
    """A caller passed values no order can have (negative weight, price or quantity)."""


class InvalidCoordinate(PricingError, ValueError):
    """A location is missing, unset (0, 0) or outside the valid ranges."""


class RateLookupError(PricingError, LookupError):
    """The long-haul rate table cannot price the parcel."""
