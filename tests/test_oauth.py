"""Google/GitHub OAuth: provider status, callback flow and user resolution."""

from urllib.parse import parse_qs, urlparse

import pytest
import requests

from portfolio_backend.extensions import db
from portfolio_backend.models import User, Role, AuthProvider
from portfolio_backend.services import oauth_service

GOOGLE_PROFILE = {
    'id': '1234567890',
    'email': 'Oauth@Example.com',
    'first_name': 'Olli',
    'last_name': 'Auth',
    'avatar': 'https://example.com/avatar.png',
}


@pytest.fixture
def google_enabled(app):
    app.config['GOOGLE_CLIENT_ID'] = 'google-id'
    app.config['GOOGLE_CLIENT_SECRET'] = 'google-secret'


class FakeResponse:
    def __init__(self, data, status_code=200):
        self._data = data
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f'{self.status_code} error')

    def json(self):
        return self._data


def test_status_without_credentials(client):
    data = client.get('/api/oauth/status').get_json()['data']
    assert data == {'providers': {'google': False, 'github': False}, 'anyEnabled': False}


def test_disabled_provider_is_unavailable(client):
    response = client.get('/api/oauth/google')
    assert response.status_code == 503
    assert response.get_json()['code'] == 'PROVIDER_DISABLED'


def test_unknown_provider(client):
    assert client.get('/api/oauth/myspace').status_code == 404


def test_authorize_redirects_with_state(client, google_enabled):
    response = client.get('/api/oauth/google')
    assert response.status_code == 302
    location = urlparse(response.headers['Location'])
    assert location.netloc == 'accounts.google.com'
    params = parse_qs(location.query)
    assert params['redirect_uri'] == ['http://backend.test/api/oauth/google/callback']
    assert params['state'][0]


def test_callback_rejects_state_mismatch(client, google_enabled):
    response = client.get('/api/oauth/google/callback?code=abc&state=forged')
    assert response.status_code == 302
    location = urlparse(response.headers['Location'])
    assert location.path == '/oauth-error'
    assert parse_qs(location.query)['error'] == ['invalid_state']


def test_callback_success_hands_token_to_frontend(app, client, google_enabled, admin_id, sent_emails,
                                                  monkeypatch):
    monkeypatch.setattr(oauth_service.requests, 'post',
                        lambda *args, **kwargs: FakeResponse({'access_token': 'provider-token'}))
    monkeypatch.setattr(oauth_service.requests, 'get', lambda *args, **kwargs: FakeResponse({
        'id': 42, 'email': 'new.oauth@example.com', 'given_name': 'Nina', 'family_name': 'Neu',
        'picture': 'https://example.com/nina.png',
    }))

    authorize = client.get('/api/oauth/google')
    state = parse_qs(urlparse(authorize.headers['Location']).query)['state'][0]
    response = client.get(f'/api/oauth/google/callback?code=abc&state={state}')

    location = urlparse(response.headers['Location'])
    assert location.netloc == 'frontend.test'
    assert location.path == '/oauth-success'
    params = parse_qs(location.query)
    assert params['token'][0]

    profile = client.get('/api/auth/profile', headers={'Authorization': f"Bearer {params['token'][0]}"})
    assert profile.get_json()['data']['user']['email'] == 'new.oauth@example.com'

    with app.app_context():
        user = User.find_by_email('new.oauth@example.com')
        assert user.google_id == '42'
        assert user.auth_provider == AuthProvider.GOOGLE
        assert user.assigned_admin_id == admin_id
    assert sent_emails[0]['to'] == 'new.oauth@example.com'


def test_callback_reports_provider_failure(client, google_enabled, monkeypatch):
    monkeypatch.setattr(oauth_service.requests, 'post',
                        lambda *args, **kwargs: FakeResponse({}, status_code=500))
    authorize = client.get('/api/oauth/google')
    state = parse_qs(urlparse(authorize.headers['Location']).query)['state'][0]
    response = client.get(f'/api/oauth/google/callback?code=abc&state={state}')
    params = parse_qs(urlparse(response.headers['Location']).query)
    assert params['error'] == ['authentication_failed']


def test_new_oauth_user_is_verified_customer(app, sent_emails):
    with app.app_context():
        user, created = oauth_service.find_or_create_oauth_user('google', GOOGLE_PROFILE)
        assert created is True
        assert user.email == 'oauth@example.com'
        assert user.role == Role.CUSTOMER
        assert user.is_email_verified is True
        assert user.password_hash is None
        assert user.check_password('anything') is False


def test_existing_user_gets_provider_id_backfilled(app, customer_id, sent_emails):
    profile = dict(GOOGLE_PROFILE, email='kunde@example.com')
    with app.app_context():
        user, created = oauth_service.find_or_create_oauth_user('google', profile)
        assert created is False
        assert user.id == customer_id
        assert user.google_id == '1234567890'
        assert user.avatar == 'https://example.com/avatar.png'
        assert db.session.get(User, customer_id).role == Role.CUSTOMER
    assert sent_emails == []


def test_github_profile_falls_back_to_primary_email(app, monkeypatch):
    responses = {
        oauth_service.PROVIDERS['github']['userinfo_url']: {
            'id': 7, 'login': 'octo', 'name': 'Octo Cat', 'email': None, 'avatar_url': None},
        oauth_service.PROVIDERS['github']['emails_url']: [
            {'email': 'secondary@example.com', 'verified': True, 'primary': False},
            {'email': 'primary@example.com', 'verified': True, 'primary': True},
        ],
    }
    monkeypatch.setattr(oauth_service.requests, 'get', lambda url, **kwargs: FakeResponse(responses[url]))
    with app.app_context():
        profile = oauth_service.fetch_profile('github', 'token')
    assert profile['email'] == 'primary@example.com'
    assert profile['first_name'] == 'Octo'
    assert profile['last_name'] == 'Cat'


def test_provider_id_wins_over_changed_email(app, customer_id, sent_emails):
    with app.app_context():
        oauth_service.find_or_create_oauth_user('google', dict(GOOGLE_PROFILE, email='kunde@example.com'))
        user, created = oauth_service.find_or_create_oauth_user(
            'google', dict(GOOGLE_PROFILE, email='renamed@example.com'))
        assert created is False
        assert user.id == customer_id
        assert User.find_by_email('renamed@example.com') is None
