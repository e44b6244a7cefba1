"""Validation utilities for request payloads."""
from datetime import date
from typing import Any, Dict, List

from flask import request

from qrattend.utils.errors import BadRequestError


class Validator:
    """Validation helper class."""

    @staticmethod
    def json_body() -> Dict[str, Any]:
        """Return the JSON object body or raise BadRequestError."""
        data = request.get_json(silent=True)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise BadRequestError("Request body must be a JSON object")
        return data

    @staticmethod
    def validate_required_fields(data: Dict, required_fields: List[str]) -> None:
        """Raise for the first missing or empty required field."""
        for field in required_fields:
            if field not in data or data[field] in (None, ''):
                raise BadRequestError(f"{field} is required")

    @staticmethod
    def optional_number(data: Dict, field: str):
        value = data.get(field)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise BadRequestError(f"{field} must be a number")
        return value

    @staticmethod
    def optional_bool(data: Dict, field: str, default: bool) -> bool:
        value = data.get(field)
        if value is None:
            return default
        if not isinstance(value, bool):
            raise BadRequestError(f"{field} must be a boolean")
        return value

    @staticmethod
    def optional_string(data: Dict, field: str, max_length: int = 255):
        value = data.get(field)
        if value is None:
            return None
        if not isinstance(value, str):
            raise BadRequestError(f"{field} must be a string")
        if len(value) > max_length:
            raise BadRequestError(f"{field} is too long")
        return value

    @staticmethod
    def identifier(value, field: str) -> int:
        """Coerce an entity id from JSON or a query string."""
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            raise BadRequestError(f"{field} must be an integer id")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise BadRequestError(f"{field} must be an integer id")

    @staticmethod
    def optional_date(value, field: str):
        if not value:
            return None
        try:
            return date.fromisoformat(value)
        except (TypeError, ValueError):
            raise BadRequestError(f"{field} must be an ISO date (YYYY-MM-DD)")
