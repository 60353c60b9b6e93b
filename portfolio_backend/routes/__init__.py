"""Routes package - register all blueprints."""

from flask import Flask


def register_blueprints(app: Flask):
    """Register all blueprints with the application."""
    from .main import main_bp
    from .auth import auth_bp
    from .oauth import oauth_bp
    from .contact import contact_bp
    from .dashboard import dashboard_bp
    from .newsletter import newsletter_bp

    app.register_blueprint(main_bp, url_prefix='/api')
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(oauth_bp, url_prefix='/api/oauth')
    app.register_blueprint(contact_bp, url_prefix='/api/contact')
    app.register_blueprint(dashboard_bp, url_prefix='/api/dashboard')
    app.register_blueprint(newsletter_bp, url_prefix='/api/newsletter')
