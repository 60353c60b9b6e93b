"""Google and GitHub OAuth: authorization URLs, code exchange and user resolution."""

import logging
from urllib.parse import urlencode

import requests
from flask import current_app

from portfolio_backend.errors import APIError, EmailDeliveryError, ServiceUnavailableError
from portfolio_backend.extensions import db
from portfolio_backend.models import User, Role, AuthProvider
from portfolio_backend.services.email_service import email_service

logger = logging.getLogger(__name__)

PROVIDERS = {
    'google': {
        'auth_url': 'https://accounts.google.com/o/oauth2/v2/auth',
        'token_url': 'https://oauth2.googleapis.com/token',
        'userinfo_url': 'https://www.googleapis.com/oauth2/v2/userinfo',
        'scopes': ['profile', 'email'],
    },
    'github': {
        'auth_url': 'https://github.com/login/oauth/authorize',
        'token_url': 'https://github.com/login/oauth/access_token',
        'userinfo_url': 'https://api.github.com/user',
        'emails_url': 'https://api.github.com/user/emails',
        'scopes': ['user:email'],
    },
}


class OAuthError(APIError):
    status_code = 502
    code = 'OAUTH_FAILED'


def _credentials(provider):
    prefix = provider.upper()
    return (current_app.config.get(f'{prefix}_CLIENT_ID'),
            current_app.config.get(f'{prefix}_CLIENT_SECRET'))


def is_enabled(provider):
    client_id, client_secret = _credentials(provider)
    return provider in PROVIDERS and bool(client_id and client_secret)


def provider_status():
    return {name: is_enabled(name) for name in PROVIDERS}


def callback_url(provider):
    return f"{current_app.config['BACKEND_URL']}/api/oauth/{provider}/callback"


def require_enabled(provider):
    if provider not in PROVIDERS:
        raise APIError(f'Unknown OAuth provider: {provider}', status_code=404, code='NOT_FOUND')
    if not is_enabled(provider):
        raise ServiceUnavailableError(f'{provider} login is not configured', code='PROVIDER_DISABLED')


def authorization_url(provider, state):
    require_enabled(provider)
    config = PROVIDERS[provider]
    client_id, _ = _credentials(provider)
    params = {
        'client_id': client_id,
        'redirect_uri': callback_url(provider),
        'response_type': 'code',
        'scope': ' '.join(config['scopes']),
        'state': state,
    }
    return f"{config['auth_url']}?{urlencode(params)}"


def exchange_code(provider, code):
    """Trade the authorization code for an access token."""
    require_enabled(provider)
    client_id, client_secret = _credentials(provider)
    data = {
        'code': code,
        'client_id': client_id,
        'client_secret': client_secret,
        'redirect_uri': callback_url(provider),
        'grant_type': 'authorization_code',
    }
    try:
        response = requests.post(PROVIDERS[provider]['token_url'], data=data,
                                 headers={'Accept': 'application/json'},
                                 timeout=current_app.config['OAUTH_HTTP_TIMEOUT'])
        response.raise_for_status()
        token_data = response.json()
    except (requests.exceptions.RequestException, ValueError) as exc:
        logger.debug('Token exchange error details: %s', exc)
        logger.error('%s token exchange failed', provider)
        raise OAuthError('Could not exchange authorization code') from exc
    access_token = token_data.get('access_token')
    if not access_token:
        raise OAuthError(token_data.get('error_description') or 'No access token returned')
    return access_token


def _get_json(url, access_token):
    headers = {'Authorization': f'Bearer {access_token}', 'Accept': 'application/json'}
    try:
        response = requests.get(url, headers=headers, timeout=current_app.config['OAUTH_HTTP_TIMEOUT'])
        response.raise_for_status()
        return response.json()
    except (requests.exceptions.RequestException, ValueError) as exc:
        logger.error('OAuth profile request to %s failed: %s', url, exc)
        raise OAuthError('Could not load profile from provider') from exc


def fetch_profile(provider, access_token):
    """Normalized profile: provider id, email, names and avatar."""
    data = _get_json(PROVIDERS[provider]['userinfo_url'], access_token)
    if provider == 'google':
        profile = {
            'id': str(data['id']),
            'email': data.get('email'),
            'first_name': data.get('given_name'),
            'last_name': data.get('family_name'),
            'avatar': data.get('picture'),
        }
    elif provider == 'github':
        name = (data.get('name') or data.get('login') or '').split(' ', 1)
        profile = {
            'id': str(data['id']),
            'email': data.get('email'),
            'first_name': name[0] or None,
            'last_name': name[1] if len(name) > 1 else None,
            'avatar': data.get('avatar_url'),
        }
        if not profile['email']:
            profile['email'] = _github_primary_email(access_token)
    else:
        raise OAuthError(f'Unsupported provider: {provider}')
    if not profile['email']:
        raise OAuthError('The provider did not share an email address', code='NO_EMAIL')
    return profile


def _github_primary_email(access_token):
    emails = _get_json(PROVIDERS['github']['emails_url'], access_token)
    verified = [e for e in emails if e.get('verified')]
    for entry in verified:
        if entry.get('primary'):
            return entry['email']
    return verified[0]['email'] if verified else None


def find_or_create_oauth_user(provider, profile):
    """Resolve a provider profile to a local user by provider id, then email. Returns (user, created)."""
    provider_enum = AuthProvider(provider)
    id_field = f'{provider}_id'
    user = User.find_by_oauth(provider_enum, profile['id']) or User.find_by_email(profile['email'])

    if user is not None:
        if not getattr(user, id_field):
            setattr(user, id_field, profile['id'])
        if not user.avatar and profile.get('avatar'):
            user.avatar = profile['avatar']
        user.update_last_login()
        db.session.commit()
        logger.info('OAuth login (%s) for existing user %s', provider, user.email)
        return user, False

    user = User(
        email=profile['email'],
        first_name=profile.get('first_name'),
        last_name=profile.get('last_name'),
        avatar=profile.get('avatar'),
        role=Role.CUSTOMER,
        auth_provider=provider_enum,
        is_email_verified=True,
    )
    setattr(user, id_field, profile['id'])
    user.update_last_login()
    db.session.add(user)
    db.session.commit()
    logger.info('Created customer %s via %s', user.email, provider)

    try:
        email_service.send_oauth_welcome_email(user, provider)
    except EmailDeliveryError:
        logger.warning('Welcome email for %s could not be sent', user.email)
    return user, True
