"""Contact form intake and admin triage."""

from sqlalchemy.exc import IntegrityError

from portfolio_backend.errors import EmailDeliveryError
from portfolio_backend.models import Contact, NewsletterSubscriber
from portfolio_backend.services.email_service import email_service
from portfolio_backend.services.newsletter_service import newsletter_service

VALID_CONTACT = {
    'name': 'Max Mustermann',
    'email': 'Max@Example.com',
    'projectType': 'ecommerce',
    'budget': '10000-plus',
    'message': 'Ich brauche einen neuen Shop.',
}


def test_submit_contact(app, client, sent_emails):
    response = client.post('/api/contact', json=VALID_CONTACT)
    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is True
    assert body['data']['emailsSent'] == {'admin': True, 'customer': True}

    with app.app_context():
        contact = Contact.query.one()
        assert contact.email == 'max@example.com'
        assert contact.status == 'new'
        assert contact.priority == 'high'
        assert 'ecommerce' in contact.tags

    recipients = {mail['to'] for mail in sent_emails}
    assert recipients == {'owner@example.com', 'max@example.com'}
    owner_mail = next(mail for mail in sent_emails if mail['to'] == 'owner@example.com')
    assert owner_mail['reply_to'] == 'max@example.com'


def test_submit_survives_mail_failure(app, client, monkeypatch):
    def failing(*args, **kwargs):
        raise EmailDeliveryError('smtp down')

    monkeypatch.setattr(email_service, 'send_email', failing)
    response = client.post('/api/contact', json=VALID_CONTACT)
    assert response.status_code == 200
    assert response.get_json()['data']['emailsSent'] == {'admin': False, 'customer': False}
    with app.app_context():
        assert Contact.query.count() == 1


def test_invalid_contact_is_rejected(app, client):
    response = client.post('/api/contact', json={'name': '', 'email': 'kaputt', 'message': ''})
    assert response.status_code == 400
    details = response.get_json()['details']
    assert {'name', 'email', 'message'} <= set(details)
    with app.app_context():
        assert Contact.query.count() == 0


def test_small_budget_keeps_normal_priority(app, client, sent_emails):
    client.post('/api/contact', json={**VALID_CONTACT, 'budget': 'unter-2500'})
    with app.app_context():
        assert Contact.query.one().priority == 'normal'


def test_unknown_budget_is_rejected(client):
    response = client.post('/api/contact', json={**VALID_CONTACT, 'budget': 'unendlich'})
    assert response.status_code == 400
    assert 'budget' in response.get_json()['details']


def test_newsletter_opt_in_starts_double_opt_in(app, client, sent_emails):
    client.post('/api/contact', json={**VALID_CONTACT, 'newsletter': True})
    with app.app_context():
        subscriber = NewsletterSubscriber.find_by_email('max@example.com')
        assert subscriber is not None
        assert subscriber.is_confirmed is False
        assert subscriber.source == 'contact_form'
        assert subscriber.first_name == 'Max'
    assert any('newsletter/confirm/' in mail['html'] for mail in sent_emails)


def test_listing_is_admin_only(client, customer_id, auth_headers):
    assert client.get('/api/contact').status_code == 401
    assert client.get('/api/contact', headers=auth_headers(customer_id)).status_code == 403


def test_admin_triage(app, client, admin_id, auth_headers, sent_emails):
    client.post('/api/contact', json=VALID_CONTACT)
    headers = auth_headers(admin_id)

    listing = client.get('/api/contact?search=shop', headers=headers).get_json()['data']
    assert listing['pagination']['totalItems'] == 1
    contact_id = listing['contacts'][0]['id']

    detail = client.get(f'/api/contact/{contact_id}', headers=headers).get_json()['data']
    assert detail['status'] == 'read'

    triage = {'replied': True, 'adminNotes': 'Angebot raus', 'tags': ['Shop', 'shop ', 'vip']}
    response = client.patch(f'/api/contact/{contact_id}', json=triage, headers=headers)
    data = response.get_json()['data']
    assert data['isReplied'] is True
    assert data['repliedBy'] == 'admin@example.com'
    assert data['tags'] == ['shop', 'vip']

    stats = client.get('/api/contact/statistics', headers=headers).get_json()['data']
    assert stats['total'] == 1
    assert stats['unreplied'] == 0


def test_minimal_contact(app, client, sent_emails):
    response = client.post('/api/contact', json={'name': 'A', 'email': 'a@b.com', 'message': 'hi'})
    assert response.status_code == 200
    with app.app_context():
        contact = Contact.query.one()
        assert contact.status == 'new'
        assert contact.newsletter is False
        assert contact.project_type == 'website'
        assert NewsletterSubscriber.query.count() == 0


def test_non_string_values_are_rejected(app, client):
    response = client.post('/api/contact', json={'name': 123, 'email': 'a@b.com', 'message': 'hi'})
    assert response.status_code == 400
    body = response.get_json()
    assert body['code'] == 'VALIDATION_ERROR'
    assert body['details'] == {'name': ['Must be a string']}
    with app.app_context():
        assert Contact.query.count() == 0


def test_failed_opt_in_keeps_contact(app, client, sent_emails, monkeypatch):
    def duplicate(*args, **kwargs):
        raise IntegrityError('INSERT INTO newsletter_subscribers', {}, Exception('UNIQUE constraint failed'))

    monkeypatch.setattr(newsletter_service, 'subscribe', duplicate)
    response = client.post('/api/contact', json={**VALID_CONTACT, 'newsletter': True})
    assert response.status_code == 200
    assert response.get_json()['data']['emailsSent'] == {'admin': True, 'customer': True}
    with app.app_context():
        assert Contact.query.count() == 1
