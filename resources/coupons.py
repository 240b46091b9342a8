from flask import Blueprint, current_app, request
from flask_restful import Api, Resource
from marshmallow import ValidationError
from extensions import db
from models import Category, Coupon, Product, RoleName
from schemas import ApplyCouponSchema, CouponSchema
from utils.auth import buyer_required, vendor_or_admin_required
from utils.checkout import CheckoutError, price_cart
from utils.coupons import ALL_PRODUCTS, CouponError, CouponStatus, coupon_window
from utils.errors import InvalidInput

# Create blueprint for coupons
coupons_bp = Blueprint("coupons", __name__)
api = Api(coupons_bp)

coupon_schema = CouponSchema()
apply_schema = ApplyCouponSchema()


def _resolve_categories(values):
    """Map category ids or names onto Category rows once, at save time."""
    categories = []
    for value in values:
        if isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit()):
            category = db.session.get(Category, int(value))
        else:
            category = Category.query.filter(db.func.lower(Category.name) == str(value).strip().lower()).first()
        if not category:
            raise LookupError(f"Category {value!r} was not found")
        categories.append(category)
    return categories


def _resolve_products(product_ids, current_user):
    products = []
    for product_id in product_ids:
        product = db.session.get(Product, product_id)
        if not product:
            raise LookupError(f"Product {product_id} was not found")
        if current_user.role == RoleName.VENDOR and product.vendor_id != current_user.id:
            raise PermissionError(f"Product {product_id} belongs to another vendor")
        products.append(product)
    return products


def _apply_eligibility(coupon, data, current_user):
    applies_to = data.get("applies_to")
    product_ids = data.get("applicable_products")

    if applies_to:
        if any(str(value).strip().lower() == ALL_PRODUCTS.lower() for value in applies_to):
            coupon.applies_to_all = True
            coupon.categories = []
        else:
            coupon.applies_to_all = False
            coupon.categories = _resolve_categories(applies_to)
        coupon.products = []
    elif product_ids:
        coupon.applies_to_all = False
        coupon.categories = []
        coupon.products = _resolve_products(product_ids, current_user)


def _can_manage(coupon, current_user):
    return current_user.role == RoleName.ADMIN or coupon.vendor_id == current_user.id


class CouponList(Resource):
    @vendor_or_admin_required
    def get(self, current_user):
        """List coupons; vendors only see their own"""
        query = Coupon.query
        if current_user.role == RoleName.VENDOR:
            query = query.filter_by(vendor_id=current_user.id)

        coupons = query.order_by(Coupon.created_at.desc()).all()
        return {"coupons": [coupon.to_dict() for coupon in coupons]}, 200

    @vendor_or_admin_required
    def post(self, current_user):
        """Create a coupon"""
        try:
            data = coupon_schema.load(request.get_json(silent=True) or {})
        except ValidationError as exc:
            return {"errors": exc.messages}, 400

        if Coupon.query.filter_by(code=data["code"]).first():
            return {"error": "Coupon code already exists"}, 400

        coupon = Coupon(
            code=data["code"],
            discount_type=data["discount_type"],
            discount_value=data["discount_value"],
            minimum_order=data["minimum_order"],
            usage_limit_per_user=data["usage_limit_per_user"],
            total_usage_limit=data["total_usage_limit"],
            start_date=data["start_date"],
            expiry_date=data["expiry_date"],
            status=data.get("status", CouponStatus.ACTIVE.value),
            vendor_id=current_user.id if current_user.role == RoleName.VENDOR else None,
            created_by=current_user.id,
        )

        try:
            _apply_eligibility(coupon, data, current_user)
        except LookupError as exc:
            return {"error": str(exc)}, 404
        except PermissionError as exc:
            return {"error": str(exc)}, 403

        try:
            db.session.add(coupon)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            current_app.logger.exception("Failed to create coupon %s", data["code"])
            return {"error": f"Failed to create coupon: {str(e)}"}, 500

        current_app.logger.info("Coupon %s created by user %s", coupon.code, current_user.id)
        return {"message": "Coupon created successfully", "coupon": coupon.to_dict()}, 201


class CouponDetail(Resource):
    @vendor_or_admin_required
    def get(self, coupon_id, current_user):
        coupon = db.get_or_404(Coupon, coupon_id)
        if not _can_manage(coupon, current_user):
            return {"error": "Access denied"}, 403
        return {"coupon": coupon.to_dict()}, 200

    @vendor_or_admin_required
    def put(self, coupon_id, current_user):
        """Update coupon"""
        coupon = db.get_or_404(Coupon, coupon_id)
        if not _can_manage(coupon, current_user):
            return {"error": "Access denied"}, 403

        try:
            data = coupon_schema.load(request.get_json(silent=True) or {}, partial=True)
        except ValidationError as exc:
            return {"errors": exc.messages}, 400

        if "code" in data and data["code"] != coupon.code:
            if Coupon.query.filter_by(code=data["code"]).first():
                return {"error": "Coupon code already exists"}, 400

        # a partial update still has to keep a valid window
        try:
            start, expiry = coupon_window(
                data.get("start_date", coupon.start_date),
                data.get("expiry_date", coupon.expiry_date),
            )
        except ValueError as exc:
            return {"errors": {"expiry_date": [str(exc)]}}, 400

        updatable_fields = [
            "code", "discount_type", "discount_value", "minimum_order",
            "usage_limit_per_user", "total_usage_limit", "status",
        ]
        for field in updatable_fields:
            if field in data:
                setattr(coupon, field, data[field])
        coupon.start_date, coupon.expiry_date = start, expiry

        try:
            _apply_eligibility(coupon, data, current_user)
            db.session.commit()
        except LookupError as exc:
            db.session.rollback()
            return {"error": str(exc)}, 404
        except PermissionError as exc:
            db.session.rollback()
            return {"error": str(exc)}, 403
        except Exception as e:
            db.session.rollback()
            current_app.logger.exception("Failed to update coupon %s", coupon_id)
            return {"error": f"Failed to update coupon: {str(e)}"}, 500

        return {"message": "Coupon updated successfully", "coupon": coupon.to_dict()}, 200

    @vendor_or_admin_required
    def delete(self, coupon_id, current_user):
        """Disable coupon; redeemed coupons stay on record for past orders"""
        coupon = db.get_or_404(Coupon, coupon_id)
        if not _can_manage(coupon, current_user):
            return {"error": "Access denied"}, 403

        coupon.status = CouponStatus.DISABLED.value
        db.session.commit()

        return {"message": "Coupon disabled", "coupon": coupon.to_dict()}, 200


class CouponApply(Resource):
    @buyer_required
    def post(self, current_user):
        """Check a coupon against the cart and return the discounted summary"""
        try:
            options = apply_schema.load(request.get_json(silent=True) or {})
        except ValidationError as exc:
            return {"errors": exc.messages}, 400

        try:
            quote = price_cart(
                current_user,
                delivery_mode=options["delivery_mode"],
                coupon_code=options["code"],
                address_id=options["address_id"],
                vendor_id=options["vendor_id"],
            )
        except CouponError as exc:
            db.session.rollback()
            current_app.logger.info("Coupon %s rejected for user %s: %s", options["code"], current_user.id, exc.code.value)
            return exc.to_dict(), 400
        except CheckoutError as exc:
            db.session.rollback()
            return {"error": str(exc)}, exc.status_code
        except InvalidInput as exc:
            db.session.rollback()
            current_app.logger.error("Cart %s could not be priced: %s", current_user.id, exc)
            return {"error": str(exc)}, 400

        db.session.commit()

        return {
            "message": "Coupon applied",
            "coupon": quote.coupon.to_dict(),
            **quote.summary.to_dict(),
        }, 200


# Register resources
api.add_resource(CouponList, "/coupons")
api.add_resource(CouponApply, "/coupons/apply")
api.add_resource(CouponDetail, "/coupons/<int:coupon_id>")
