"""Error taxonomy for the attendance session engine."""


class EngineError(Exception):
    """Base error carrying a stable kind and an HTTP status."""

    kind = 'Internal'
    status_code = 500

    def __init__(self, message: str = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict:
        return {
            'error': True,
            'kind': self.kind,
            'message': self.message,
            'status_code': self.status_code
        }


class NotFoundError(EngineError):
    """Referenced session, student, course or section is absent."""
    kind = 'NotFound'
    status_code = 404


class ConflictError(EngineError):
    """Requested transition collides with the current state."""
    kind = 'Conflict'
    status_code = 409


class SessionClosedError(ConflictError):
    """Close requested on a session that is no longer active."""
    status_code = 400


class GoneError(EngineError):
    """Session has reached a terminal, time-driven state."""
    kind = 'Gone'
    status_code = 410


class ForbiddenError(EngineError):
    """Actor or student is not entitled to the operation."""
    kind = 'Forbidden'
    status_code = 403


class BadRequestError(EngineError):
    """Structurally invalid request."""
    kind = 'BadRequest'
    status_code = 400


class MalformedPayloadError(EngineError):
    """QR payload failed to decode, decrypt or authenticate."""
    kind = 'Malformed'
    status_code = 400


class InternalError(EngineError):
    """Store or infrastructure failure."""
    kind = 'Internal'
    status_code = 500
