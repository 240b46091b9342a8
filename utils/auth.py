from functools import wraps
from flask_jwt_extended import jwt_required, get_jwt_identity
from extensions import db
from models import User, RoleName


def _load_current_user():
    """Return ``(user, None)`` or ``(None, error_response)`` for the JWT subject."""
    try:
        current_user_id = int(get_jwt_identity())
    except (TypeError, ValueError):
        return None, ({"error": "Invalid token subject"}, 422)

    user = db.session.get(User, current_user_id)

    if not user:
        return None, ({"error": "User not found"}, 404)

    if not user.is_verified:
        return None, ({"error": "Account not verified"}, 403)

    return user, None


def role_required(*allowed_roles):
    """
    Decorator to require specific roles for endpoint access.
    Usage: @role_required(RoleName.VENDOR, RoleName.ADMIN)
    """
    def decorator(f):
        @wraps(f)
        @jwt_required()
        def decorated_function(*args, **kwargs):
            user, error = _load_current_user()
            if error:
                return error

            if user.role not in allowed_roles:
                return {
                    "error": "Insufficient permissions",
                    "required_roles": [role.value for role in allowed_roles],
                    "current_role": user.get_role_name(),
                }, 403

            # Add current user to kwargs for easy access in endpoints
            kwargs['current_user'] = user
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def buyer_required(f):
    """Decorator to require buyer role."""
    return role_required(RoleName.BUYER)(f)


def vendor_or_admin_required(f):
    """Decorator to require vendor or admin role."""
    return role_required(RoleName.VENDOR, RoleName.ADMIN)(f)


def any_authenticated_user(f):
    """Decorator to require any authenticated and verified user."""
    @wraps(f)
    @jwt_required()
    def decorated_function(*args, **kwargs):
        user, error = _load_current_user()
        if error:
            return error

        kwargs['current_user'] = user
        return f(*args, **kwargs)

    return decorated_function
