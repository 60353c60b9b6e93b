"""Role-based access decorators for JSON endpoints."""

from functools import wraps

from flask_login import current_user, login_required

from portfolio_backend.errors import AuthorizationError
from portfolio_backend.models import Role


def roles_required(*roles):
    """Require an authenticated user holding one of the given roles."""
    allowed = {Role(role) for role in roles}

    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            if current_user.role not in allowed:
                raise AuthorizationError('Insufficient permissions')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def admin_required(f):
    """Decorator to require admin role."""
    return roles_required(Role.ADMIN)(f)
