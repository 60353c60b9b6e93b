"""Flask application factory."""

import logging
import os
from logging.handlers import RotatingFileHandler

from flask import Flask, request

from .config import config
from .extensions import db, migrate, login_manager, bcrypt, mail, limiter, cors


def setup_logging(app):
    """Root logging format and level, plus an optional rotating log file."""
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-40s %(levelname)-8s %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    root = logging.getLogger()
    root.setLevel(level)
    if not any(getattr(h, '_portfolio_handler', False) for h in root.handlers):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        stream_handler._portfolio_handler = True
        root.addHandler(stream_handler)

        log_file = app.config.get('LOG_FILE')
        if log_file:
            os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
            file_handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=5)
            file_handler.setFormatter(formatter)
            file_handler._portfolio_handler = True
            root.addHandler(file_handler)


def validate_environment(app, config_name):
    missing = [name for name in app.config.get('REQUIRED_ENV', ()) if not os.environ.get(name)]
    if missing:
        raise RuntimeError(f'Missing required environment variables for {config_name}: {", ".join(missing)}')


def create_app(config_name=None, **overrides):
    """Create and configure the Flask application."""
    if config_name is None:
        config_name = os.environ.get('FLASK_CONFIG', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    app.config.update(overrides)

    validate_environment(app, config_name)
    setup_logging(app)

    # SQLite needs the database directory to exist
    uri = app.config['SQLALCHEMY_DATABASE_URI']
    if uri.startswith('sqlite:///') and ':memory:' not in uri:
        os.makedirs(os.path.dirname(os.path.abspath(uri[len('sqlite:///'):])), exist_ok=True)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    bcrypt.init_app(app)
    mail.init_app(app)
    limiter.init_app(app)
    cors.init_app(app, resources={r'/api/*': {'origins': app.config['CORS_ORIGINS']}},
                  supports_credentials=True)

    # Register blueprints
    from .routes import register_blueprints
    register_blueprints(app)

    from .errors import register_error_handlers
    register_error_handlers(app)

    # User loader for Flask-Login; API requests authenticate with bearer tokens
    from .models import User
    from .services.auth_service import load_user_from_request, unauthorized

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    login_manager.request_loader(load_user_from_request)
    login_manager.unauthorized_handler(unauthorized)

    from .cli import register_commands
    register_commands(app)

    request_logger = logging.getLogger('portfolio_backend.requests')

    @app.after_request
    def log_request(response):
        if request.path.startswith('/api/'):
            request_logger.debug('%s %s %s', request.method, request.path, response.status_code)
        return response

    app.logger.info('Application created with %s configuration', config_name)
    return app
