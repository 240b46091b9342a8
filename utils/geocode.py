"""Resolving stored addresses to coordinates.

The geocoder itself is whatever callable the app is configured with
(``GEOCODER``); it receives a formatted address and returns ``[lng, lat]``
or ``None``. A slow or failing geocoder must never hold up checkout, so
calls run under a timeout and any failure resolves to ``None``.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Callable, Optional

from utils.errors import InvalidCoordinate
from utils.geo import Coordinate, is_unset, validate_coordinate

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="geocoder")


def format_address(record: Any) -> Optional[str]:
    if record is None:
        return None

    parts = [
        getattr(record, "address_line", None),
        getattr(record, "city", None),
        getattr(record, "region", None) or getattr(record, "state", None),
        getattr(record, "postal_code", None),
        getattr(record, "country", None),
    ]
    filtered = [part.strip() for part in parts if part and part.strip()]
    return ", ".join(filtered) if filtered else None


def geocode(address: str, geocoder: Callable[[str], Any], timeout: Optional[float]) -> Optional[Coordinate]:
    future = _executor.submit(geocoder, address)
    try:
        raw = future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        logger.warning("Geocoder timed out after %ss for %r", timeout, address)
        return None
    except Exception as exc:
        logger.warning("Geocoder failed for %r: %s", address, exc)
        return None

    if raw is None:
        return None
    try:
        return validate_coordinate(raw)
    except InvalidCoordinate as exc:
        logger.warning("Geocoder returned an unusable location for %r: %s", address, exc)
        return None


def resolve_coordinate(
    record: Any,
    geocoder: Optional[Callable[[str], Any]] = None,
    timeout: Optional[float] = None,
) -> Optional[Coordinate]:
    """Stored coordinate of ``record``, geocoding its address when none is stored.

    A freshly geocoded location is written back onto the record; the
    caller decides whether to commit it.
    """
    if record is None:
        return None

    stored = record.coordinate
    if not is_unset(stored):
        return stored

    if geocoder is None:
        return None

    address = format_address(record)
    if not address:
        return None

    coordinate = geocode(address, geocoder, timeout)
    if coordinate is not None:
        record.longitude = coordinate.longitude
        record.latitude = coordinate.latitude
    return coordinate
