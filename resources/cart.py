from datetime import datetime, timezone
from flask import Blueprint, current_app, request
from flask_restful import Api, Resource
from marshmallow import ValidationError
from extensions import db
from models import Cart, CartItem, Product
from schemas import CheckoutSchema
from utils.auth import buyer_required
from utils.checkout import CheckoutError, price_cart
from utils.coupons import CouponError
from utils.errors import InvalidInput


cart_bp = Blueprint("cart", __name__)
api = Api(cart_bp)

checkout_schema = CheckoutSchema()


def _normalise_items(raw_items):
    """Map a cart payload onto ``{product_id: quantity}``.

    Repeated products are merged and non-positive quantities dropped, so
    a PUT with ``quantity: 0`` removes a line.
    """
    if not isinstance(raw_items, list):
        raise ValueError("Items must be provided as a list")

    quantities = {}
    for index, item in enumerate(raw_items):
        if not isinstance(item, dict):
            raise ValueError(f"Item at position {index} is invalid")

        try:
            product_id = int(item.get("product_id"))
            quantity = int(item.get("quantity"))
        except (TypeError, ValueError):
            raise ValueError(f"Product ID and quantity must be integers for item {index}")

        if quantity > 0:
            quantities[product_id] = quantities.get(product_id, 0) + quantity

    for product_id, quantity in quantities.items():
        product = db.session.get(Product, product_id)
        if not product:
            raise LookupError(f"Product {product_id} was not found")
        if not product.is_available or product.quantity < quantity:
            raise ValueError(f"{product.name} is not available in the requested quantity")

    return quantities


def _get_or_create_cart(buyer_id):
    cart = Cart.query.filter_by(buyer_id=buyer_id).first()
    if not cart:
        cart = Cart(buyer_id=buyer_id)
        db.session.add(cart)
        db.session.flush()
    return cart


class CartResource(Resource):
    @buyer_required
    def get(self, current_user):
        cart = _get_or_create_cart(current_user.id)
        db.session.commit()

        return {"cart": cart.to_dict()}, 200

    @buyer_required
    def put(self, current_user):
        data = request.get_json(silent=True) or {}
        raw_items = data.get("items", [])

        cart = _get_or_create_cart(current_user.id)

        try:
            quantities = _normalise_items(raw_items)
        except LookupError as exc:
            db.session.rollback()
            return {"error": str(exc)}, 404
        except ValueError as exc:
            db.session.rollback()
            return {"error": str(exc)}, 400

        CartItem.query.filter_by(cart_id=cart.id).delete()

        for product_id, quantity in quantities.items():
            db.session.add(CartItem(cart_id=cart.id, product_id=product_id, quantity=quantity))

        cart.updated_at = datetime.now(timezone.utc)

        db.session.commit()
        db.session.refresh(cart)

        message = "Cart updated" if quantities else "Cart cleared"
        return {"message": message, "cart": cart.to_dict()}, 200


class CartSummary(Resource):
    @buyer_required
    def get(self, current_user):
        """Checkout preview: prices the cart without redeeming anything."""
        try:
            options = checkout_schema.load(request.args)
        except ValidationError as exc:
            return {"errors": exc.messages}, 400

        try:
            quote = price_cart(
                current_user,
                delivery_mode=options["delivery_mode"],
                coupon_code=options["coupon_code"],
                address_id=options["address_id"],
                vendor_id=options["vendor_id"],
            )
        except CouponError as exc:
            db.session.rollback()
            return exc.to_dict(), 400
        except CheckoutError as exc:
            db.session.rollback()
            return {"error": str(exc)}, exc.status_code
        except InvalidInput as exc:
            db.session.rollback()
            current_app.logger.error("Cart %s could not be priced: %s", current_user.id, exc)
            return {"error": str(exc)}, 400

        # keeps any coordinates the geocoder just resolved
        db.session.commit()

        return {
            "vendor": quote.vendor.to_dict(),
            "address": quote.address.to_dict() if quote.address else None,
            **quote.summary.to_dict(),
        }, 200


api.add_resource(CartResource, "/cart")
api.add_resource(CartSummary, "/cart/summary")
