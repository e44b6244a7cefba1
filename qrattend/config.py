"""Configuration module for the QR attendance session engine."""
import os
from datetime import timedelta


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # JWT Configuration
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_ALGORITHM = 'HS256'

    # CORS
    CORS_ORIGINS = ["http://localhost:*", "http://127.0.0.1:*"]

    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "200 per day, 50 per hour"

    # QR payload encryption
    QR_ENCRYPTION_KEY = os.environ.get('QR_ENCRYPTION_KEY') or 'dev-qr-encryption-key-change-me!'

    # Session lifecycle
    SESSION_DEFAULT_DURATION_MINUTES = int(os.environ.get('SESSION_DEFAULT_DURATION_MINUTES', 15))
    SESSION_MIN_DURATION_MINUTES = 5
    SESSION_MAX_DURATION_MINUTES = 120
    SESSION_DEFAULT_RADIUS_METERS = float(os.environ.get('SESSION_DEFAULT_RADIUS_METERS', 100))
    SESSION_MIN_RADIUS_METERS = 10
    SESSION_MAX_RADIUS_METERS = 1000

    # Scanning
    SCAN_WINDOW_BUFFER_MINUTES = int(os.environ.get('SCAN_WINDOW_BUFFER_MINUTES', 5))
    SPOOF_MAX_SPEED_MPS = float(os.environ.get('SPOOF_MAX_SPEED_MPS', 15.0))
    SPOOF_ACCURACY_THRESHOLD_METERS = 5.0

    # 'sql' persists sessions through SQLAlchemy, 'memory' keeps them in-process
    SESSION_STORE = os.environ.get('SESSION_STORE', 'sql')

    # Pagination
    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or \
        'sqlite:///qrattend_dev.db'


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL')

    # Redis backs the rate limiter in production
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'

    # Enhanced security
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Stricter limits
    RATELIMIT_DEFAULT = "100 per day, 20 per hour"
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=5)
    RATELIMIT_ENABLED = False
    QR_ENCRYPTION_KEY = 'test-qr-encryption-key'


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """Get configuration by name."""
    return config.get(config_name or os.environ.get('FLASK_ENV', 'default'), config['default'])
