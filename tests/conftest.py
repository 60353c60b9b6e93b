# tests/conftest.py
"""Pytest configuration and shared fixtures.

Requests run in their own app context, so fixtures hand out ids and
tests open ``app.app_context()`` when they touch the database directly.
"""

from datetime import datetime, timedelta

import pytest

from portfolio_backend import create_app
from portfolio_backend.extensions import db
from portfolio_backend.models import User, Role, Project, NewsletterSubscriber, NewsletterTemplate
from portfolio_backend.services.auth_service import generate_token
from portfolio_backend.services.email_service import email_service


# ===== FLASK APP FIXTURES =====

@pytest.fixture
def app():
    """Flask app instance with a fresh in-memory database."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Flask CLI runner."""
    return app.test_cli_runner()


# ===== MAIL FIXTURES =====

@pytest.fixture
def sent_emails(monkeypatch):
    """Capture outgoing mail instead of handing it to Flask-Mail."""
    outbox = []

    def fake_send(to, subject, html, text=None, headers=None, reply_to=None):
        outbox.append({'to': to, 'subject': subject, 'html': html, 'text': text,
                       'headers': headers or {}, 'reply_to': reply_to})
        return {'messageId': f'<{len(outbox)}@test>', 'accepted': [to]}

    monkeypatch.setattr(email_service, 'send_email', fake_send)
    return outbox


# ===== USER FIXTURES =====

def _create_user(email, role, password='Secret123!', **kwargs):
    user = User(email=email, role=role, **kwargs)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user.id


@pytest.fixture
def make_user(app):
    """Factory creating a user and returning its id."""
    def factory(email, role=Role.CUSTOMER, password='Secret123!', **kwargs):
        with app.app_context():
            return _create_user(email, role, password, **kwargs)
    return factory


@pytest.fixture
def admin_id(make_user):
    return make_user('admin@example.com', Role.ADMIN, first_name='Ada', last_name='Admin')


@pytest.fixture
def customer_id(admin_id, make_user):
    """A customer created after the admin, so it is auto-assigned."""
    return make_user('kunde@example.com', Role.CUSTOMER, first_name='Karl', last_name='Kunde')


@pytest.fixture
def other_customer_id(admin_id, make_user):
    return make_user('other@example.com', Role.CUSTOMER, first_name='Olga')


@pytest.fixture
def auth_headers(app):
    """Bearer headers for a user id."""
    def factory(user_id):
        with app.app_context():
            token = generate_token(db.session.get(User, user_id))
        return {'Authorization': f'Bearer {token}'}
    return factory


# ===== DOMAIN FIXTURES =====

@pytest.fixture
def project_id(app, admin_id, customer_id):
    with app.app_context():
        project = Project(
            name='Relaunch',
            customer_id=customer_id,
            assigned_admin_id=admin_id,
            deadline=datetime.utcnow() + timedelta(days=30),
        )
        db.session.add(project)
        db.session.commit()
        return project.id


@pytest.fixture
def make_subscribers(app):
    """Create `count` subscribers, confirmed unless told otherwise; returns their ids."""
    def factory(count, confirmed=True, prefix='reader'):
        ids = []
        with app.app_context():
            for index in range(count):
                subscriber = NewsletterSubscriber(email=f'{prefix}{index}@example.com',
                                                  first_name=f'Leser{index}')
                if confirmed:
                    subscriber.confirm()
                db.session.add(subscriber)
                db.session.flush()
                ids.append(subscriber.id)
            db.session.commit()
        return ids
    return factory


@pytest.fixture
def template_id(app, admin_id):
    with app.app_context():
        template = NewsletterTemplate(
            name='Oktober',
            subject='Neuigkeiten für {{firstName}}',
            html_content=('<html><body><p>Hallo {{firstName}},</p>'
                          '<a href="https://example.com/blog">Blog</a></body></html>'),
            created_by_id=admin_id,
        )
        db.session.add(template)
        db.session.commit()
        return template.id
