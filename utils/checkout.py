"""Gathers cart, coupon and address state for pricing a buyer's checkout."""

from __future__ import annotations

from datetime import datetime
from typing import List, NamedTuple, Optional

from flask import current_app

from extensions import db
from models import Cart, CartItem, Coupon, Location, User
from utils.coupons import CouponNotFound
from utils.geocode import resolve_coordinate
from utils.order_summary import (
    DeliveryContext,
    DeliveryMode,
    OrderSummary,
    assemble_order_summary,
)


class CheckoutError(Exception):
    """The cart cannot be priced as requested."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class CheckoutQuote(NamedTuple):
    cart: Cart
    items: List[CartItem]
    vendor: User
    address: Optional[Location]
    coupon: Optional[Coupon]
    summary: OrderSummary


def find_coupon(code: Optional[str]) -> Optional[Coupon]:
    if not code or not code.strip():
        return None

    coupon = Coupon.query.filter_by(code=code.strip().upper()).first()
    if not coupon:
        raise CouponNotFound()
    return coupon


def select_vendor_items(cart: Optional[Cart], vendor_id: Optional[int] = None) -> List[CartItem]:
    """Cart items for one vendor; carts spanning vendors must name one."""
    if not cart or not cart.items:
        raise CheckoutError("Cart is empty")

    if vendor_id is not None:
        items = [item for item in cart.items if item.product.vendor_id == vendor_id]
        if not items:
            raise CheckoutError(f"No items from vendor {vendor_id} in cart")
        return items

    if len(cart.vendor_ids()) > 1:
        raise CheckoutError("Cart has items from several vendors; select a vendor to check out")
    return list(cart.items)


def find_shipping_address(buyer: User, address_id: Optional[int] = None) -> Optional[Location]:
    if address_id is not None:
        address = db.session.get(Location, address_id)
        if not address or address.user_id != buyer.id:
            raise CheckoutError("Shipping address not found", 404)
        return address

    return (
        Location.query.filter_by(user_id=buyer.id)
        .order_by(Location.is_default.desc(), Location.id.asc())
        .first()
    )


def delivery_context_for(vendor: User, address: Optional[Location]) -> DeliveryContext:
    geocoder = current_app.config.get("GEOCODER")
    timeout = current_app.config.get("GEOCODER_TIMEOUT_SECONDS")

    return DeliveryContext(
        vendor_coordinate=resolve_coordinate(vendor, geocoder, timeout),
        buyer_coordinate=resolve_coordinate(address, geocoder, timeout),
        vendor_delivery_radius_km=vendor.effective_delivery_radius_km,
        vendor_state_code=vendor.state_code,
        buyer_state_code=address.state_code if address else None,
    )


def price_cart(
    buyer: User,
    *,
    delivery_mode=DeliveryMode.DELIVERY,
    coupon_code: Optional[str] = None,
    address_id: Optional[int] = None,
    vendor_id: Optional[int] = None,
    at_time: Optional[datetime] = None,
) -> CheckoutQuote:
    """Price the buyer's cart as it stands now.

    Raises :class:`CheckoutError` for cart/address problems and
    :class:`~utils.coupons.CouponError` when the coupon cannot be used.
    """
    mode = DeliveryMode.parse(delivery_mode)
    cart = Cart.query.filter_by(buyer_id=buyer.id).first()
    items = select_vendor_items(cart, vendor_id)
    vendor = items[0].product.vendor

    coupon = find_coupon(coupon_code)

    address = None
    context = None
    if mode == DeliveryMode.DELIVERY:
        address = find_shipping_address(buyer, address_id)
        context = delivery_context_for(vendor, address)

    summary = assemble_order_summary(
        [item.to_line() for item in items],
        coupon.to_terms(user_id=buyer.id) if coupon else None,
        mode,
        context,
        user_id=buyer.id,
        at_time=at_time,
    )
    return CheckoutQuote(cart, items, vendor, address, coupon, summary)
