"""Authentication service for user management."""
from typing import Optional, Tuple

from flask_jwt_extended import create_access_token

from qrattend import db
from qrattend.models.user import User
from qrattend.utils.helpers import utcnow


class AuthService:
    @staticmethod
    def login(email: str, password: str) -> Tuple[Optional[dict], Optional[str]]:
        """Authenticate user and return an access token."""
        if not email or not password:
            return None, "Email and password are required"

        user = User.query.filter_by(email=email.lower().strip()).first()

        if not user or not user.check_password(password):
            return None, "Invalid email or password"

        if not user.is_active:
            return None, "Account is deactivated"

        user.last_login = utcnow()
        db.session.commit()

        # Identity must be a string for JWT subject claims
        access_token = create_access_token(identity=str(user.id))

        return {
            "access_token": access_token,
            "user": user.to_dict()
        }, None
