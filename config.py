import os
from dataclasses import dataclass
from decimal import Decimal
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


@dataclass(frozen=True)
class PricingDefaults:
    """Single home for the pricing constants used across checkout."""

    default_weight_per_unit_kg: Decimal = Decimal("0.2")
    default_delivery_radius_km: float = 5.0

    # Local tier: flat charge up to the base distance, then linear per km
    local_base_charge: Decimal = Decimal("50.00")
    local_base_distance_km: float = 2.0
    local_per_km_charge: Decimal = Decimal("10.00")

    # Used when a location is unknown or the rate table cannot price a parcel
    fallback_delivery_charge: Decimal = Decimal("50.00")
    long_haul_fallback_charge: Decimal = Decimal("200.00")

    same_day_cutoff_hour: int = 17
    long_haul_days_same_state: int = 3
    long_haul_days_other_state: int = 4


PRICING = PricingDefaults()


class Config:
    # --- General ---
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    JSON_SORT_KEYS = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    CURRENCY = os.getenv("CURRENCY", "INR")

    # flask-restful swallows jwt errors otherwise
    PROPAGATE_EXCEPTIONS = True

    # --- Auth (tokens are issued by the identity service) ---
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-jwt-secret")

    # --- Database Configuration ---
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL", "sqlite:///" + os.path.join(basedir, "farmkart.db")
    ).replace("postgres://", "postgresql://")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # --- Geocoding ---
    # Callable taking an address string and returning [lng, lat] or None.
    GEOCODER = None
    GEOCODER_TIMEOUT_SECONDS = float(os.getenv("GEOCODER_TIMEOUT_SECONDS", "8"))


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET_KEY = "test-jwt-secret-with-enough-length-for-hs256"
    LOG_LEVEL = "WARNING"
    GEOCODER_TIMEOUT_SECONDS = 1.0
