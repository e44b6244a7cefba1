"""Custom decorators for authorization."""
from functools import wraps
from flask import g
from flask_jwt_extended import get_jwt_identity
from qrattend.models.user import User, UserRole
from qrattend.utils.helpers import error_response


def _load_user():
    identity = get_jwt_identity()
    try:
        return User.get_by_id(int(identity))
    except (TypeError, ValueError):
        return None


def roles_required(*roles: UserRole):
    """Require an authenticated, active user holding one of roles.

    The resolved engine Actor is stored on ``g.actor``.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = _load_user()

            if not user or not user.is_active:
                return error_response("User not found", 404)

            if roles and user.role not in roles:
                return error_response("Insufficient permissions", 403)

            g.current_user = user
            g.actor = user.to_actor()
            return f(*args, **kwargs)
        return decorated_function
    return decorator


session_manager_required = roles_required(UserRole.ADMIN, UserRole.INSTRUCTOR, UserRole.CR)

authenticated_user_required = roles_required()
