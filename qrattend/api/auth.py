"""Authentication API endpoints."""
from flask import Blueprint, g
from flask_jwt_extended import jwt_required
from qrattend import limiter
from qrattend.services.auth_service import AuthService
from qrattend.utils.decorators import authenticated_user_required
from qrattend.utils.helpers import success_response, error_response
from qrattend.utils.validators import Validator

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint."""
    return success_response(message="Auth service is running")


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    """Login with email and password."""
    data = Validator.json_body()

    email = (Validator.optional_string(data, "email") or "").strip()
    password = Validator.optional_string(data, "password") or ""

    if not email or not password:
        return error_response("Email and password are required", 400)

    result, error = AuthService.login(email, password)

    if error:
        return error_response(error, 401)

    return success_response(data=result, message="Login successful")


@auth_bp.route("/me", methods=["GET"])
@jwt_required()
@authenticated_user_required
def get_current_user():
    """Get current user profile."""
    return success_response(data=g.current_user.to_dict())
