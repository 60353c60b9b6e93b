"""Token issuance, bearer-token identity and local login with auto-provisioning."""

import logging
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app, g

from portfolio_backend.errors import AuthenticationError, AuthorizationError, EmailDeliveryError
from portfolio_backend.extensions import db
from portfolio_backend.models import User, Role, AuthProvider
from portfolio_backend.services.email_service import email_service, generate_random_password

logger = logging.getLogger(__name__)


def generate_token(user, expires_in=None):
    """Signed token carrying userId, email and role."""
    if expires_in is None:
        expires_in = current_app.config['JWT_EXPIRES_SECONDS']
    now = datetime.now(timezone.utc)
    payload = {
        'userId': user.id,
        'email': user.email,
        'role': user.role.value,
        'iat': now,
        'exp': now + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET_KEY'],
                      algorithm=current_app.config['JWT_ALGORITHM'])


def decode_token(token):
    """Decode a token or raise AuthenticationError with TOKEN_EXPIRED / INVALID_TOKEN."""
    try:
        return jwt.decode(token, current_app.config['JWT_SECRET_KEY'],
                          algorithms=[current_app.config['JWT_ALGORITHM']])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError('Token has expired', code='TOKEN_EXPIRED')
    except jwt.InvalidTokenError:
        raise AuthenticationError('Invalid token', code='INVALID_TOKEN')


def bearer_token(request):
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        return None
    return token.strip()


def load_user_from_request(request):
    """Flask-Login request loader; records why authentication failed in g.auth_error."""
    token = bearer_token(request)
    if token is None:
        g.auth_error = 'NO_TOKEN'
        return None
    try:
        payload = decode_token(token)
    except AuthenticationError as exc:
        g.auth_error = exc.code
        return None
    user_id = payload.get('userId')
    user = db.session.get(User, user_id) if isinstance(user_id, int) else None
    if user is None or not user.is_active:
        g.auth_error = 'INVALID_USER'
        return None
    return user


def unauthorized():
    """Flask-Login unauthorized handler for JSON clients."""
    code = g.get('auth_error', 'NO_TOKEN')
    messages = {
        'NO_TOKEN': 'Access token required',
        'INVALID_TOKEN': 'Invalid token',
        'TOKEN_EXPIRED': 'Token has expired',
        'INVALID_USER': 'User not found or inactive',
    }
    raise AuthenticationError(messages.get(code, 'Authentication required'), code=code)


def login(email, password, confirm_account_creation=False):
    """Local login. Returns (body, status) for the login endpoint.

    An unknown email asks for confirmation first; once confirmed, a customer
    account with a generated password is created and the password is mailed.
    """
    user = User.find_by_email(email)

    if user is None:
        if not confirm_account_creation:
            return {
                'success': False,
                'requiresConfirmation': True,
                'email': email.strip().lower(),
                'message': 'No account exists for this email. Confirm to create one.',
            }, 200
        return _provision_customer(email)

    if not user.check_password(password):
        logger.info('Failed login for %s', user.email)
        raise AuthenticationError('Invalid email or password', code='INVALID_CREDENTIALS')
    if not user.is_active:
        raise AuthorizationError('This account has been deactivated', code='ACCOUNT_DISABLED')

    user.update_last_login()
    db.session.commit()
    logger.info('User %s logged in', user.email)
    return {
        'success': True,
        'message': 'Login successful',
        'token': generate_token(user),
        'user': user.to_dict(),
    }, 200


def _provision_customer(email):
    password = generate_random_password()
    user = User(email=email, role=Role.CUSTOMER, auth_provider=AuthProvider.LOCAL)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    logger.info('Provisioned customer account %s', user.email)

    try:
        email_service.send_login_credentials(user, password)
    except EmailDeliveryError:
        logger.error('Credentials email for new account %s could not be sent', user.email)
        return {
            'success': False,
            'accountCreated': True,
            'emailSent': False,
            'error': 'Account created, but the credentials email could not be sent',
            'code': 'EMAIL_DELIVERY_FAILED',
        }, 500

    return {
        'success': True,
        'accountCreated': True,
        'emailSent': True,
        'message': 'Account created. Your login credentials have been sent by email.',
    }, 201


def ensure_admin_account(email, password):
    """Create or promote the bootstrap admin. Returns (user, created)."""
    user = User.find_by_email(email)
    created = False
    if user is None:
        user = User(email=email, role=Role.ADMIN, first_name='Admin',
                    is_email_verified=True, auth_provider=AuthProvider.LOCAL)
        user.set_password(password)
        db.session.add(user)
        created = True
    elif user.role != Role.ADMIN:
        user.role = Role.ADMIN
        user.assigned_admin_id = None
    db.session.flush()
    assigned = User.assign_unassigned_customers(user)
    db.session.commit()
    logger.info('Admin %s %s; %d customers assigned', user.email,
                'created' if created else 'ensured', assigned)
    return user, created
