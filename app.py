import json
import logging
from decimal import Decimal
from flask import Flask
from config import Config
from extensions import db, ma, jwt, migrate


# Custom JSON encoder for Decimal types
class DecimalEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        return super(DecimalEncoder, self).default(obj)


def configure_logging(app):
    """Configure logging settings"""
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    app.logger.setLevel(level)


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(app)

    # flask-restful serialises responses itself
    app.config.setdefault("RESTFUL_JSON", {"cls": DecimalEncoder})

    # Initialize extensions
    db.init_app(app)
    ma.init_app(app)
    jwt.init_app(app)
    migrate.init_app(app, db)

    # Import resources here (after extensions init)
    from resources.cart import cart_bp
    from resources.coupons import coupons_bp
    from resources.delivery import delivery_bp
    from resources.orders import orders_bp
    from seed import register_commands

    # Register endpoints
    app.register_blueprint(cart_bp, url_prefix="/api")
    app.register_blueprint(coupons_bp, url_prefix="/api")
    app.register_blueprint(delivery_bp, url_prefix="/api")
    app.register_blueprint(orders_bp, url_prefix="/api")

    register_commands(app)

    @app.route("/")
    def health():
        return {"status": "ok", "service": "farmkart-backend"}

    return app


if __name__ == "__main__":
    app = create_app()
    with app.app_context():
        db.create_all()
    app.run(host="0.0.0.0", port=5000, debug=True)
