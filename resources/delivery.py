from flask import Blueprint, current_app, request
from flask_restful import Api, Resource
from extensions import db
from models import RoleName, User
from utils.auth import buyer_required
from utils.checkout import CheckoutError, delivery_context_for, find_shipping_address
from utils.delivery import estimate_delivery_cost
from utils.errors import InvalidInput
from config import PRICING

# Create blueprint for delivery estimates
delivery_bp = Blueprint("delivery", __name__)
api = Api(delivery_bp)


class DeliveryEstimate(Resource):
    @buyer_required
    def get(self, current_user):
        """Delivery charge and ETA from a vendor to one of the buyer's addresses"""
        vendor_id = request.args.get("vendor_id", type=int)
        address_id = request.args.get("address_id", type=int)
        weight_kg = request.args.get("weight_kg", type=float)

        if vendor_id is None:
            return {"error": "vendor_id is required"}, 400

        vendor = db.session.get(User, vendor_id)
        if not vendor or vendor.role != RoleName.VENDOR:
            return {"error": "Vendor not found"}, 404

        try:
            address = find_shipping_address(current_user, address_id)
        except CheckoutError as exc:
            return {"error": str(exc)}, exc.status_code

        context = delivery_context_for(vendor, address)
        if weight_kg is None:
            weight_kg = PRICING.default_weight_per_unit_kg

        try:
            estimate = estimate_delivery_cost(
                context.vendor_coordinate,
                context.buyer_coordinate,
                weight_kg,
                radius_km=context.vendor_delivery_radius_km,
                vendor_state=context.vendor_state_code,
                buyer_state=context.buyer_state_code,
                currency=current_app.config["CURRENCY"],
            )
        except InvalidInput as exc:
            db.session.rollback()
            return {"error": str(exc)}, 400

        db.session.commit()

        return {
            "vendor_id": vendor.id,
            "address_id": address.id if address else None,
            "delivery": estimate,
        }, 200


api.add_resource(DeliveryEstimate, "/delivery/estimate")
