from datetime import datetime, timezone
from flask import Blueprint, current_app, request
from flask_restful import Api, Resource
from marshmallow import ValidationError
from extensions import db
from models import CartItem, Order, OrderItem, OrderStatus, PaymentStatus, RoleName
from schemas import CheckoutSchema, OrderSchema
from utils.auth import any_authenticated_user, buyer_required
from utils.checkout import CheckoutError, price_cart
from utils.coupon_usage import record_usage
from utils.coupons import CouponError
from utils.errors import InvalidInput

# Create blueprint for orders
orders_bp = Blueprint('orders', __name__)
api = Api(orders_bp)

checkout_schema = CheckoutSchema()
order_schema = OrderSchema()
orders_schema = OrderSchema(many=True)


def _unavailable_items(items):
    return [
        item.product.name
        for item in items
        if not item.product.is_available or item.product.quantity < item.quantity
    ]


def _build_order(current_user, quote, options):
    summary = quote.summary

    order = Order(
        buyer_id=current_user.id,
        vendor_id=quote.vendor.id,
        shipping_address_id=quote.address.id if quote.address else None,
        delivery_mode=summary.delivery_mode.value,
        payment_method=options["payment_method"],
        coupon_code=summary.coupon_code,
        total_mrp=summary.total_mrp,
        total_discount=summary.total_discount,
        delivery_charge=summary.delivery_charge,
        grand_total=summary.grand_total,
        parcel_weight_kg=summary.parcel_weight_kg,
        delivery_tier=summary.delivery_tier.value,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
    )
    db.session.add(order)
    db.session.flush()  # Get order ID

    for cart_item, priced in zip(quote.items, summary.items):
        product = cart_item.product
        db.session.add(OrderItem(
            order_id=order.id,
            product_id=product.id,
            quantity=cart_item.quantity,
            unit_price=priced.unit_price,
            weight_per_unit=product.weight_per_unit,
            mrp=priced.mrp,
            discount=priced.discount,
            total=priced.total,
        ))

        # Update product quantity
        product.quantity -= cart_item.quantity

    return order


class OrderList(Resource):
    @buyer_required
    def post(self, current_user):
        """Place an order for the selected vendor's cart items"""
        try:
            options = checkout_schema.load(request.get_json(silent=True) or {})
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
            return {"error": str(exc)}, 400

        unavailable = _unavailable_items(quote.items)
        if unavailable:
            db.session.rollback()
            return {"error": f"Not available in the requested quantity: {', '.join(unavailable)}"}, 400

        try:
            if quote.coupon:
                record_usage(quote.coupon, current_user.id)

            order = _build_order(current_user, quote, options)

            # Remove the ordered items; other vendors' items stay in the cart
            CartItem.query.filter(CartItem.id.in_([item.id for item in quote.items])).delete(
                synchronize_session=False
            )
            quote.cart.updated_at = datetime.now(timezone.utc)

            db.session.commit()

        except CouponError as exc:
            db.session.rollback()
            current_app.logger.warning(
                "Order by user %s lost coupon %s: %s", current_user.id, options["coupon_code"], exc.code.value
            )
            return exc.to_dict(), 409

        except Exception as e:
            db.session.rollback()
            current_app.logger.exception("Failed to create order for user %s", current_user.id)
            return {"error": f"Failed to create order: {str(e)}"}, 500

        current_app.logger.info(
            "Order %s placed by user %s: total %s", order.id, current_user.id, order.grand_total
        )
        return {
            "message": "Order created successfully",
            "order": order_schema.dump(order),
            **quote.summary.to_dict(),
        }, 201

    @any_authenticated_user
    def get(self, current_user):
        """Get orders for current user"""
        role = current_user.role

        if role == RoleName.BUYER:
            query = Order.query.filter_by(buyer_id=current_user.id)
        elif role == RoleName.VENDOR:
            query = Order.query.filter_by(vendor_id=current_user.id)
        else:
            query = Order.query

        orders = query.order_by(Order.placed_at.desc(), Order.id.desc()).all()
        return {"orders": orders_schema.dump(orders)}, 200


class OrderDetail(Resource):
    @any_authenticated_user
    def get(self, order_id, current_user):
        """Get order details"""
        order = db.get_or_404(Order, order_id)

        if current_user.role != RoleName.ADMIN and current_user.id not in (order.buyer_id, order.vendor_id):
            return {"error": "Access denied"}, 403

        return {"order": order_schema.dump(order)}, 200


# Register resources
api.add_resource(OrderList, '/orders')
api.add_resource(OrderDetail, '/orders/<int:order_id>')
