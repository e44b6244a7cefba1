"""QR Attendance Session Engine - Application Factory."""
import logging
import os
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)


def create_app(config_name: str = None, config_overrides: dict = None) -> Flask:
    """Application factory pattern.

    ``config_overrides`` is applied on top of the named configuration.
    """
    app = Flask(__name__)

    # Load configuration
    from qrattend.config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Setup logging
    setup_logging(app)

    # Session engine
    from qrattend.services.engine import init_engine
    init_engine(app)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Setup database
    setup_database(app)

    # Add CLI commands
    register_commands(app)

    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'QR Attendance Session Engine',
            'version': '1.0.0'
        })

    return app


def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from qrattend.api.auth import auth_bp
    from qrattend.api.sessions import sessions_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(sessions_bp, url_prefix='/api/sessions')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from qrattend.utils.errors import EngineError
    from qrattend.utils.helpers import engine_error_response, error_response, handle_error
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(EngineError)
    def handle_engine_error(error):
        if error.status_code >= 500:
            app.logger.error(f"Engine failure: {error.message}")
        return engine_error_response(error)

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e.description, e.code)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return handle_error("Internal server error", 500)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return error_response('Token has expired', 401)

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return error_response('Invalid token', 401)

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return error_response('Authorization token required', 401)


def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    if not app.debug and not app.testing:
        if not os.path.exists('logs'):
            os.mkdir('logs')

        file_handler = logging.FileHandler('logs/app.log')
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s [%(name)s]: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
        # Service modules log under the package logger
        package_logger = logging.getLogger('qrattend')
        package_logger.addHandler(file_handler)
        package_logger.setLevel(logging.INFO)

        app.logger.setLevel(logging.INFO)
        app.logger.info('QR Attendance Session Engine startup')


def setup_database(app: Flask) -> None:
    """Setup database connections."""
    with app.app_context():
        # Import all models
        from qrattend.models import (  # noqa: F401
            User, UserRole, Section, Course, Student,
            AttendanceSession, SessionAttendance,
            AttendanceRecord, AttendanceRecordEntry
        )


def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

        from qrattend.models.user import User, UserRole

        admin = User.query.filter_by(email='admin@qrattend.local').first()
        if not admin:
            admin = User(
                email='admin@qrattend.local',
                name='Administrator',
                role=UserRole.ADMIN
            )
            admin.set_password('admin123456')
            db.session.add(admin)
            db.session.commit()
            click.echo('Created admin user: admin@qrattend.local / admin123456')

    @app.cli.command('seed-db')
    def seed_db():
        """Seed database with test data."""
        from qrattend.services.seed_service import SeedService

        SeedService.seed_all()
        click.echo('Database seeded successfully!')

    @app.cli.command('expire-sessions')
    def expire_sessions():
        """Deactivate attendance sessions past their expiry."""
        from qrattend.services.engine import get_engine

        count = get_engine().manager.expire_sweep()
        click.echo(f'Expired {count} session(s).')
