import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default):
    return os.environ.get(name, str(default)).lower() in ('1', 'true', 'yes')


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # JWT
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or os.environ.get('JWT_SECRET') or SECRET_KEY
    JWT_ALGORITHM = 'HS256'
    JWT_EXPIRES_SECONDS = int(os.environ.get('JWT_EXPIRES_SECONDS', 3600))
    OAUTH_JWT_EXPIRES_SECONDS = int(os.environ.get('OAUTH_JWT_EXPIRES_SECONDS', 7200))

    # Database
    basedir = os.path.dirname(os.path.dirname(__file__))
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        f'sqlite:///{os.path.join(basedir, "instance", "portfolio.db")}'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Mail
    MAIL_SERVER = os.environ.get('MAIL_SERVER', 'smtp.gmail.com')
    MAIL_PORT = int(os.environ.get('MAIL_PORT', 587))
    MAIL_USE_TLS = _env_bool('MAIL_USE_TLS', True)
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME') or os.environ.get('EMAIL_USER')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD') or os.environ.get('EMAIL_PASS')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER') or MAIL_USERNAME
    CONTACT_NOTIFY_EMAIL = os.environ.get('CONTACT_NOTIFY_EMAIL') or MAIL_USERNAME

    # Bootstrap admin
    ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL')
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD')

    # Public URLs
    FRONTEND_URL = os.environ.get('FRONTEND_URL', 'http://localhost:5173').rstrip('/')
    BACKEND_URL = os.environ.get('BACKEND_URL', 'http://localhost:5000').rstrip('/')
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', FRONTEND_URL).split(',')

    # OAuth providers; a provider without credentials is disabled
    GOOGLE_CLIENT_ID = os.environ.get('GOOGLE_CLIENT_ID')
    GOOGLE_CLIENT_SECRET = os.environ.get('GOOGLE_CLIENT_SECRET')
    GITHUB_CLIENT_ID = os.environ.get('GITHUB_CLIENT_ID')
    GITHUB_CLIENT_SECRET = os.environ.get('GITHUB_CLIENT_SECRET')
    OAUTH_HTTP_TIMEOUT = int(os.environ.get('OAUTH_HTTP_TIMEOUT', 10))

    # Rate limiting
    RATELIMIT_ENABLED = _env_bool('RATELIMIT_ENABLED', True)
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_HEADERS_ENABLED = True

    # Newsletter dispatch
    NEWSLETTER_BATCH_SIZE = int(os.environ.get('NEWSLETTER_BATCH_SIZE', 10))
    NEWSLETTER_BATCH_DELAY = float(os.environ.get('NEWSLETTER_BATCH_DELAY', 1.0))
    NEWSLETTER_TRACK_CLICKS = _env_bool('NEWSLETTER_TRACK_CLICKS', True)

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FILE = os.environ.get('LOG_FILE')

    # Pagination
    ITEMS_PER_PAGE = 10
    MAX_ITEMS_PER_PAGE = 100

    REQUIRED_ENV = ()
    EXPOSE_ERROR_DETAILS = True


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    SESSION_COOKIE_SECURE = True
    EXPOSE_ERROR_DETAILS = False
    REQUIRED_ENV = ('DATABASE_URL', 'JWT_SECRET_KEY', 'SECRET_KEY')


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SECRET_KEY = 'testing-secret'
    JWT_SECRET_KEY = 'testing-jwt-secret'
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'
    MAIL_SUPPRESS_SEND = True
    MAIL_DEFAULT_SENDER = 'noreply@example.com'
    CONTACT_NOTIFY_EMAIL = 'owner@example.com'
    NEWSLETTER_BATCH_DELAY = 0
    FRONTEND_URL = 'http://frontend.test'
    BACKEND_URL = 'http://backend.test'
    GOOGLE_CLIENT_ID = None
    GOOGLE_CLIENT_SECRET = None
    GITHUB_CLIENT_ID = None
    GITHUB_CLIENT_SECRET = None
    LOG_LEVEL = 'WARNING'
    LOG_FILE = None


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
