"""User model for authentication and authorization."""
from enum import Enum
from werkzeug.security import generate_password_hash, check_password_hash
from qrattend import db
from qrattend.models.base import BaseModel
from qrattend.services.domain import Actor, ActorRole


class UserRole(Enum):
    """User roles enumeration."""
    ADMIN = 'admin'
    INSTRUCTOR = 'instructor'
    CR = 'cr'
    STUDENT = 'student'


class User(BaseModel):
    """User model for all system users."""

    __tablename__ = 'users'

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.STUDENT)
    # Class representatives are bound to one section
    section_id = db.Column(db.Integer, db.ForeignKey('sections.id'), nullable=True)
    # Set for student accounts
    student_id = db.Column(db.Integer, db.ForeignKey('students.id'), nullable=True, unique=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login = db.Column(db.DateTime, nullable=True)

    def set_password(self, password: str) -> None:
        """Set user password with hashing."""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        """Check if provided password matches user's password."""
        return check_password_hash(self.password_hash, password)

    def to_actor(self) -> Actor:
        return Actor(id=self.id, role=ActorRole(self.role.value), section_id=self.section_id)

    def to_dict(self, exclude: list = None) -> dict:
        """Convert to dictionary excluding sensitive data."""
        exclude = (exclude or []) + ['password_hash']

        result = super().to_dict(exclude=exclude)
        result['role'] = self.role.value if self.role else None

        return result

    def __repr__(self) -> str:
        return f'<User {self.email}>'
