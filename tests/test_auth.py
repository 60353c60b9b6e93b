"""Local login, auto-provisioning and bearer-token authentication."""

import string

from portfolio_backend.errors import EmailDeliveryError
from portfolio_backend.extensions import db
from portfolio_backend.models import User, Role
from portfolio_backend.services import auth_service
from portfolio_backend.services.email_service import email_service, generate_random_password


def test_unknown_email_requires_confirmation(app, client):
    response = client.post('/api/auth/login', json={'email': 'new@example.com', 'password': 'whatever'})
    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is False
    assert body['requiresConfirmation'] is True
    assert body['email'] == 'new@example.com'
    with app.app_context():
        assert User.find_by_email('new@example.com') is None


def test_confirmed_creation_provisions_customer_and_mails_password(app, client, admin_id, sent_emails):
    response = client.post('/api/auth/login', json={
        'email': 'New@Example.com',
        'password': 'ignored',
        'confirmAccountCreation': True,
    })
    assert response.status_code == 201
    body = response.get_json()
    assert body['accountCreated'] is True
    assert body['emailSent'] is True
    assert 'token' not in body

    assert len(sent_emails) == 1
    assert sent_emails[0]['to'] == 'new@example.com'

    with app.app_context():
        user = User.find_by_email('new@example.com')
        assert user.role == Role.CUSTOMER
        assert user.assigned_admin_id == admin_id
        assert user.password_hash and user.password_hash != 'ignored'


def test_provisioned_password_allows_login(app, client, sent_emails, monkeypatch):
    captured = {}

    def fake_credentials(user, password):
        captured['password'] = password
        return {'messageId': '<1@test>', 'accepted': [user.email]}

    monkeypatch.setattr(email_service, 'send_login_credentials', fake_credentials)
    client.post('/api/auth/login', json={'email': 'fresh@example.com', 'password': 'x',
                                         'confirmAccountCreation': True})

    response = client.post('/api/auth/login', json={'email': 'fresh@example.com',
                                                    'password': captured['password']})
    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is True
    assert body['token']
    assert body['user']['role'] == 'kunde'


def test_provisioned_passwords_are_distinct(app, monkeypatch):
    passwords = []
    monkeypatch.setattr(email_service, 'send_login_credentials',
                        lambda user, password: passwords.append(password))
    with app.test_request_context():
        auth_service.login('a@example.com', 'x', confirm_account_creation=True)
        auth_service.login('b@example.com', 'x', confirm_account_creation=True)
    assert len(passwords) == 2
    assert passwords[0] != passwords[1]


def test_credentials_mail_failure_keeps_account(app, client, monkeypatch):
    def failing(user, password):
        raise EmailDeliveryError('smtp down')

    monkeypatch.setattr(email_service, 'send_login_credentials', failing)
    response = client.post('/api/auth/login', json={'email': 'lost@example.com', 'password': 'x',
                                                    'confirmAccountCreation': True})
    assert response.status_code == 500
    body = response.get_json()
    assert body['accountCreated'] is True
    assert body['emailSent'] is False
    assert body['code'] == 'EMAIL_DELIVERY_FAILED'
    with app.app_context():
        assert User.find_by_email('lost@example.com') is not None


def test_wrong_password_is_rejected(client, customer_id):
    response = client.post('/api/auth/login', json={'email': 'kunde@example.com', 'password': 'nope'})
    assert response.status_code == 401
    assert response.get_json()['code'] == 'INVALID_CREDENTIALS'


def test_existing_email_never_reprovisions(app, client, customer_id, sent_emails):
    response = client.post('/api/auth/login', json={'email': 'kunde@example.com', 'password': 'nope',
                                                    'confirmAccountCreation': True})
    assert response.status_code == 401
    assert sent_emails == []


def test_inactive_account_cannot_log_in(app, client, customer_id):
    with app.app_context():
        db.session.get(User, customer_id).is_active = False
        db.session.commit()
    response = client.post('/api/auth/login', json={'email': 'kunde@example.com', 'password': 'Secret123!'})
    assert response.status_code == 403
    assert response.get_json()['code'] == 'ACCOUNT_DISABLED'


def test_login_validation(client):
    response = client.post('/api/auth/login', json={'email': 'not-an-email'})
    assert response.status_code == 400
    body = response.get_json()
    assert body['code'] == 'VALIDATION_ERROR'
    assert 'email' in body['details']
    assert 'password' in body['details']


def test_login_rejects_non_string_email(client):
    response = client.post('/api/auth/login', json={'email': 5, 'password': 'x'})
    assert response.status_code == 400
    assert response.get_json()['details'] == {'email': ['Must be a string']}


def test_profile_requires_token(client):
    response = client.get('/api/auth/profile')
    assert response.status_code == 401
    assert response.get_json()['code'] == 'NO_TOKEN'


def test_profile_rejects_garbage_token(client):
    response = client.get('/api/auth/profile', headers={'Authorization': 'Bearer not.a.token'})
    assert response.status_code == 401
    assert response.get_json()['code'] == 'INVALID_TOKEN'


def test_profile_rejects_expired_token(app, client, customer_id):
    with app.app_context():
        token = auth_service.generate_token(db.session.get(User, customer_id), expires_in=-60)
    response = client.get('/api/auth/profile', headers={'Authorization': f'Bearer {token}'})
    assert response.status_code == 401
    assert response.get_json()['code'] == 'TOKEN_EXPIRED'


def test_profile_rejects_deactivated_user(app, client, customer_id, auth_headers):
    headers = auth_headers(customer_id)
    with app.app_context():
        db.session.get(User, customer_id).is_active = False
        db.session.commit()
    response = client.get('/api/auth/profile', headers=headers)
    assert response.status_code == 401
    assert response.get_json()['code'] == 'INVALID_USER'


def test_profile_with_valid_token(client, customer_id, auth_headers):
    response = client.get('/api/auth/profile', headers=auth_headers(customer_id))
    assert response.status_code == 200
    assert response.get_json()['data']['user']['email'] == 'kunde@example.com'


def test_token_claims(app, admin_id):
    with app.app_context():
        user = db.session.get(User, admin_id)
        claims = auth_service.decode_token(auth_service.generate_token(user))
    assert claims['userId'] == admin_id
    assert claims['email'] == 'admin@example.com'
    assert claims['role'] == 'admin'
    assert claims['exp'] - claims['iat'] == app.config['JWT_EXPIRES_SECONDS']


def test_generated_password_composition():
    for _ in range(20):
        password = generate_random_password()
        assert len(password) == 12
        assert any(c in string.ascii_uppercase for c in password)
        assert any(c in string.ascii_lowercase for c in password)
        assert any(c in string.digits for c in password)
        assert any(c in '!@#$%^&*' for c in password)


def test_ensure_admin_assigns_orphaned_customers(app, make_user):
    orphan_id = make_user('orphan@example.com')
    with app.app_context():
        assert db.session.get(User, orphan_id).assigned_admin_id is None
        admin, created = auth_service.ensure_admin_account('boss@example.com', 'AdminPass1!')
        assert created is True
        assert db.session.get(User, orphan_id).assigned_admin_id == admin.id

        again, created = auth_service.ensure_admin_account('boss@example.com', 'AdminPass1!')
        assert created is False
        assert again.id == admin.id


def test_rate_limit_status(client):
    response = client.get('/api/auth/rate-limit-status')
    assert response.status_code == 200
    assert response.get_json()['data']['limits']['login'] == '10 per 15 minutes'
