"""Local authentication routes."""

from flask import Blueprint, jsonify, redirect, request, url_for
from flask_login import current_user, login_required
from flask_limiter.util import get_remote_address

from portfolio_backend.extensions import limiter
from portfolio_backend.forms.auth import LoginForm
from portfolio_backend.services import auth_service, oauth_service

auth_bp = Blueprint('auth', __name__)

LOGIN_LIMIT = '10 per 15 minutes'
ACCOUNT_CREATION_IP_LIMIT = '3 per 15 minutes'
ACCOUNT_CREATION_EMAIL_LIMIT = '2 per hour'


def _login_email_key():
    payload = request.get_json(silent=True) or {}
    email = payload.get('email')
    if isinstance(email, str) and email.strip():
        return f'email:{email.strip().lower()}'
    return get_remote_address()


def _failed_login(response):
    return response.status_code >= 400


def _account_created(response):
    body = response.get_json(silent=True) or {}
    return body.get('accountCreated') is True


@auth_bp.route('/login', methods=['POST'])
@limiter.limit(LOGIN_LIMIT, deduct_when=_failed_login)
@limiter.limit(ACCOUNT_CREATION_IP_LIMIT, deduct_when=_account_created,
               key_func=get_remote_address, scope='account-creation-ip')
@limiter.limit(ACCOUNT_CREATION_EMAIL_LIMIT, deduct_when=_account_created,
               key_func=_login_email_key, scope='account-creation-email')
def login():
    """Log in, or create a customer account after explicit confirmation."""
    form = LoginForm().validate_or_raise()
    body, status = auth_service.login(
        form.email.data,
        form.password.data,
        confirm_account_creation=form.confirmAccountCreation.data,
    )
    return jsonify(body), status


@auth_bp.route('/profile')
@login_required
def profile():
    return jsonify({'success': True, 'data': {'user': current_user.to_dict()}})


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """Tokens are stateless; the client discards its copy."""
    return jsonify({'success': True, 'message': 'Logged out'})


@auth_bp.route('/rate-limit-status')
def rate_limit_status():
    return jsonify({
        'success': True,
        'data': {
            'enabled': limiter.enabled,
            'limits': {
                'login': LOGIN_LIMIT,
                'accountCreationPerIp': ACCOUNT_CREATION_IP_LIMIT,
                'accountCreationPerEmail': ACCOUNT_CREATION_EMAIL_LIMIT,
            },
        },
    })


@auth_bp.route('/oauth-status')
def oauth_status():
    return jsonify({'success': True, 'data': oauth_service.provider_status()})


@auth_bp.route('/<provider>/callback')
def legacy_callback(provider):
    """Older provider registrations point here; forward to the OAuth blueprint."""
    return redirect(url_for('oauth.callback', provider=provider, **request.args))
