"""Google and GitHub OAuth redirects and callbacks."""

import json
import logging
import secrets
from urllib.parse import urlencode

from flask import Blueprint, current_app, jsonify, redirect, request, session

from portfolio_backend.errors import APIError
from portfolio_backend.services import oauth_service
from portfolio_backend.services.auth_service import generate_token

logger = logging.getLogger(__name__)

oauth_bp = Blueprint('oauth', __name__)


def _error_redirect(error, message):
    query = urlencode({'error': error, 'message': message})
    return redirect(f"{current_app.config['FRONTEND_URL']}/oauth-error?{query}")


@oauth_bp.route('/status')
def status():
    providers = oauth_service.provider_status()
    return jsonify({'success': True, 'data': {
        'providers': providers,
        'anyEnabled': any(providers.values()),
    }})


@oauth_bp.route('/<provider>')
def authorize(provider):
    """Send the browser to the provider's consent page."""
    state = secrets.token_urlsafe(24)
    url = oauth_service.authorization_url(provider, state)
    session[f'oauth_state_{provider}'] = state
    return redirect(url)


@oauth_bp.route('/<provider>/callback')
def callback(provider):
    """Finish the OAuth flow and hand a token to the frontend."""
    expected_state = session.pop(f'oauth_state_{provider}', None)
    if request.args.get('error'):
        return _error_redirect('access_denied', request.args.get('error_description') or request.args['error'])
    if not expected_state or request.args.get('state') != expected_state:
        logger.warning('OAuth %s callback with mismatched state', provider)
        return _error_redirect('invalid_state', 'Login session expired, please try again')
    code = request.args.get('code')
    if not code:
        return _error_redirect('missing_code', 'No authorization code received')

    try:
        access_token = oauth_service.exchange_code(provider, code)
        profile = oauth_service.fetch_profile(provider, access_token)
        user, _ = oauth_service.find_or_create_oauth_user(provider, profile)
    except APIError as exc:
        return _error_redirect('authentication_failed', exc.message)

    if not user.is_active:
        return _error_redirect('account_disabled', 'This account has been deactivated')

    try:
        token = generate_token(user, current_app.config['OAUTH_JWT_EXPIRES_SECONDS'])
    except (TypeError, ValueError) as exc:
        logger.error('Token generation for %s failed: %s', user.email, exc)
        return _error_redirect('token_generation_failed', str(exc))

    user_json = json.dumps({
        'id': user.id,
        'email': user.email,
        'name': user.full_name,
        'avatar': user.avatar,
        'role': user.role.value,
        'authProvider': provider,
    })
    query = urlencode({'token': token, 'user': user_json})
    return redirect(f"{current_app.config['FRONTEND_URL']}/oauth-success?{query}")
