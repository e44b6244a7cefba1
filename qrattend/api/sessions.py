"""QR attendance session API endpoints."""
from flask import Blueprint, current_app, g, request
from flask_jwt_extended import jwt_required
from qrattend import limiter
from qrattend.models.user import UserRole
from qrattend.services.domain import ActorRole, GeoPoint
from qrattend.services.engine import get_engine
from qrattend.services.qr_service import QRService
from qrattend.utils.decorators import authenticated_user_required, session_manager_required
from qrattend.utils.errors import ForbiddenError
from qrattend.utils.helpers import success_response
from qrattend.utils.validators import Validator

sessions_bp = Blueprint('sessions', __name__)


def _ensure_section_access(section_id: int, message: str) -> None:
    actor = g.actor
    if actor.role == ActorRole.CR and actor.section_id != section_id:
        raise ForbiddenError(message)


@sessions_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Session service is running')


@sessions_bp.route('', methods=['POST'])
@limiter.limit("30 per hour")
@jwt_required()
@session_manager_required
def open_session():
    """Open a QR attendance session for a section's course."""
    data = Validator.json_body()
    Validator.validate_required_fields(data, ['sectionId', 'courseId'])

    section_id = Validator.identifier(data['sectionId'], 'sectionId')
    course_id = Validator.identifier(data['courseId'], 'courseId')
    _ensure_section_access(section_id, 'You can only create sessions for your assigned section')

    session = get_engine().manager.open(
        g.actor,
        section_id,
        course_id,
        duration_minutes=Validator.optional_number(data, 'durationMinutes'),
        anchor=GeoPoint.from_dict(data.get('location')),
        allowed_radius=Validator.optional_number(data, 'allowedRadius'),
        anti_cheat_enabled=Validator.optional_bool(data, 'antiCheatEnabled', True)
    )

    return success_response(
        data={
            'session': session.to_dict(),
            'qr_payload': session.qr_payload,
            'qr_image': QRService.render_data_url(session.qr_payload),
            'expires_in': session.max_duration_minutes
        },
        message='QR code session generated successfully',
        status_code=201
    )


@sessions_bp.route('/scan', methods=['POST'])
@limiter.limit("120 per minute")
@jwt_required()
@authenticated_user_required
def scan():
    """Mark attendance from a scanned QR payload."""
    data = Validator.json_body()
    user = g.current_user

    # Students may only mark themselves
    if user.role == UserRole.STUDENT:
        student_id = user.student_id
        claimed = data.get('studentId')
        if student_id is None or (claimed is not None and
                                  Validator.identifier(claimed, 'studentId') != student_id):
            raise ForbiddenError('You can only mark your own attendance')
    else:
        Validator.validate_required_fields(data, ['studentId'])
        student_id = Validator.identifier(data['studentId'], 'studentId')

    Validator.validate_required_fields(data, ['payload'])
    payload = Validator.optional_string(data, 'payload', max_length=4096)

    result = get_engine().scanner.record_scan(
        student_id,
        payload,
        sample=GeoPoint.from_dict(data.get('location')),
        device_info=Validator.optional_string(data, 'deviceInfo')
    )

    return success_response(data=result.to_dict(), message='Attendance marked successfully!')


@sessions_bp.route('/active/<int:section_id>/<int:course_id>', methods=['GET'])
@jwt_required()
@session_manager_required
def get_active_session(section_id, course_id):
    """Get the current active session for a section's course."""
    _ensure_section_access(section_id, 'You can only view sessions for your assigned section')

    session = get_engine().manager.get_active(section_id, course_id)
    return success_response(data=session.to_dict(), message='Active session retrieved successfully')


@sessions_bp.route('/<session_id>/close', methods=['PUT'])
@jwt_required()
@session_manager_required
def close_session(session_id):
    """Close a session, optionally generating its attendance record."""
    data = Validator.json_body()
    generate_record = Validator.optional_bool(data, 'generateAttendanceRecord', True)

    manager = get_engine().manager
    result = manager.close(g.actor, session_id, generate_record=generate_record)
    return success_response(data=result.to_dict(manager.clock()), message='Session closed successfully')


@sessions_bp.route('/<session_id>/stats', methods=['GET'])
@jwt_required()
@session_manager_required
def session_stats(session_id):
    """Attendance counts and rate for a session."""
    manager = get_engine().manager
    _ensure_section_access(manager.get(session_id).section_id,
                           'You can only view sessions for your assigned section')

    return success_response(data=manager.stats(session_id),
                            message='Session statistics retrieved successfully')


@sessions_bp.route('/<session_id>/record', methods=['GET'])
@jwt_required()
@session_manager_required
def session_record(session_id):
    """Present/absent entries derived from a session, without persisting them."""
    manager = get_engine().manager
    session = manager.get(session_id)
    _ensure_section_access(session.section_id, 'You can only view sessions for your assigned section')

    entries = manager.rollup(session)
    return success_response(data={
        'session_id': session.session_id,
        'entries': [e.to_dict() for e in entries]
    })


@sessions_bp.route('/history', methods=['GET'])
@jwt_required()
@session_manager_required
def session_history():
    """Paginated session history, newest first."""
    args = request.args
    max_page_size = current_app.config['MAX_PAGE_SIZE']

    section_id = args.get('sectionId')
    course_id = args.get('courseId')
    page = Validator.identifier(args.get('page', 1), 'page')
    limit = Validator.identifier(args.get('limit', current_app.config['DEFAULT_PAGE_SIZE']), 'limit')

    history = get_engine().manager.history(
        g.actor,
        section_id=Validator.identifier(section_id, 'sectionId') if section_id else None,
        course_id=Validator.identifier(course_id, 'courseId') if course_id else None,
        date_from=Validator.optional_date(args.get('from'), 'from'),
        date_to=Validator.optional_date(args.get('to'), 'to'),
        page=page,
        per_page=min(max(limit, 1), max_page_size)
    )
    return success_response(data=history, message='Session history retrieved successfully')
