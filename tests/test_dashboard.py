"""Dashboard access rules, project lifecycle and project messages."""

from portfolio_backend.extensions import db
from portfolio_backend.models import Message, Project, Role, User


def _create_project(client, headers, customer_id, **overrides):
    payload = {'name': 'Shop', 'customerId': customer_id, 'deadline': '2030-01-31', 'type': 'ecommerce'}
    payload.update(overrides)
    return client.post('/api/dashboard/projects', json=payload, headers=headers)


def test_dashboard_requires_authentication(client):
    response = client.get('/api/dashboard/')
    assert response.status_code == 401


def test_admin_overview_lists_customers(client, admin_id, customer_id, project_id, auth_headers):
    response = client.get('/api/dashboard/', headers=auth_headers(admin_id))
    assert response.status_code == 200
    data = response.get_json()['data']
    assert [c['id'] for c in data['customers']] == [customer_id]
    assert data['stats']['totalProjects'] == 1
    assert data['stats']['totalCustomers'] == 1


def test_customer_overview_shows_assigned_admin(client, admin_id, customer_id, auth_headers):
    response = client.get('/api/dashboard/', headers=auth_headers(customer_id))
    data = response.get_json()['data']
    assert data['assignedAdmin']['id'] == admin_id
    assert data['stats']['hasAssignedAdmin'] is True


def test_admin_creates_project_for_own_customer(app, client, admin_id, customer_id, auth_headers):
    response = _create_project(client, auth_headers(admin_id), customer_id, tags=['shop', ' '])
    assert response.status_code == 201
    project = response.get_json()['data']
    assert project['status'] == 'planning'
    assert project['progress'] == 0
    assert project['assignedAdmin'] == admin_id
    assert project['tags'] == ['shop']


def test_customer_cannot_create_project(client, customer_id, auth_headers):
    response = _create_project(client, auth_headers(customer_id), customer_id)
    assert response.status_code == 403
    assert response.get_json()['code'] == 'INSUFFICIENT_PERMISSIONS'


def test_project_for_foreign_customer_is_rejected(client, make_user, admin_id, customer_id, auth_headers):
    second_admin = make_user('second@example.com', role=Role.ADMIN)
    response = _create_project(client, auth_headers(second_admin), customer_id)
    assert response.status_code == 400
    assert 'customerId' in response.get_json()['details']


def test_customer_cannot_see_other_customers_project(client, project_id, other_customer_id, auth_headers):
    response = client.get(f'/api/dashboard/projects/{project_id}', headers=auth_headers(other_customer_id))
    assert response.status_code == 404

    listing = client.get('/api/dashboard/projects', headers=auth_headers(other_customer_id))
    assert listing.get_json()['data'] == []


def test_customer_sees_own_project(client, project_id, customer_id, auth_headers):
    response = client.get(f'/api/dashboard/projects/{project_id}', headers=auth_headers(customer_id))
    assert response.status_code == 200
    assert response.get_json()['data']['project']['id'] == project_id


def test_status_change_posts_system_message(app, client, admin_id, project_id, auth_headers):
    response = client.put(f'/api/dashboard/projects/{project_id}', json={'status': 'inProgress'},
                          headers=auth_headers(admin_id))
    assert response.status_code == 200
    assert response.get_json()['data']['status'] == 'inProgress'
    with app.app_context():
        messages = Message.query.filter_by(project_id=project_id).all()
        assert len(messages) == 1
        assert messages[0].sender_role == 'system'
        assert db.session.get(Project, project_id).messages_count == 1


def test_invalid_transition_is_rejected(client, admin_id, project_id, auth_headers):
    response = client.put(f'/api/dashboard/projects/{project_id}', json={'status': 'completed'},
                          headers=auth_headers(admin_id))
    assert response.status_code == 400


def test_full_progress_completes_project(client, admin_id, project_id, auth_headers):
    headers = auth_headers(admin_id)
    response = client.put(f'/api/dashboard/projects/{project_id}', json={'progress': 100}, headers=headers)
    assert response.status_code == 400
    project = client.get(f'/api/dashboard/projects/{project_id}', headers=headers).get_json()['data']['project']
    assert project['status'] == 'planning'
    assert project['progress'] == 0

    client.put(f'/api/dashboard/projects/{project_id}', json={'status': 'inProgress'}, headers=headers)
    response = client.put(f'/api/dashboard/projects/{project_id}', json={'progress': 100}, headers=headers)
    data = response.get_json()['data']
    assert data['status'] == 'completed'
    assert data['progress'] == 100

    response = client.put(f'/api/dashboard/projects/{project_id}', json={'progress': 50}, headers=headers)
    assert response.status_code == 400


def test_completed_status_sets_full_progress(app, project_id):
    with app.app_context():
        project = db.session.get(Project, project_id)
        project.update_status('inProgress')
        project.update_status('completed')
        assert project.progress == 100


def test_deleted_project_disappears(client, admin_id, customer_id, project_id, auth_headers):
    response = client.delete(f'/api/dashboard/projects/{project_id}', headers=auth_headers(admin_id))
    assert response.status_code == 200
    response = client.get(f'/api/dashboard/projects/{project_id}', headers=auth_headers(customer_id))
    assert response.status_code == 404


def test_messages_and_read_receipts(app, client, admin_id, customer_id, project_id, auth_headers):
    response = client.post('/api/dashboard/messages', json={'projectId': project_id, 'content': 'Hallo!'},
                           headers=auth_headers(customer_id))
    assert response.status_code == 201
    message = response.get_json()['data']
    assert message['senderRole'] == 'kunde'

    unread = client.get('/api/dashboard/messages', headers=auth_headers(admin_id)).get_json()['data']
    assert unread['unreadCount'] == 1

    for _ in range(2):
        response = client.put(f"/api/dashboard/messages/{message['id']}/read", headers=auth_headers(admin_id))
        assert response.status_code == 200

    with app.app_context():
        stored = db.session.get(Message, message['id'])
        assert len(stored.reads) == 1
        assert Message.unread_count_for(db.session.get(User, admin_id)) == 0
        assert db.session.get(Project, project_id).messages_count == 1


def test_reply_threads_under_parent(app, client, admin_id, customer_id, project_id, auth_headers):
    parent = client.post('/api/dashboard/messages', json={'projectId': project_id, 'content': 'Frage'},
                         headers=auth_headers(customer_id)).get_json()['data']
    response = client.post(f"/api/dashboard/messages/{parent['id']}/reply", json={'content': 'Antwort'},
                           headers=auth_headers(admin_id))
    assert response.status_code == 201
    reply = response.get_json()['data']
    assert reply['senderRole'] == 'admin'
    with app.app_context():
        assert db.session.get(Message, parent['id']).has_replies is True
        assert db.session.get(Message, reply['id']).parent_message_id == parent['id']


def test_message_to_foreign_project_is_hidden(client, project_id, other_customer_id, auth_headers):
    response = client.post('/api/dashboard/messages', json={'projectId': project_id, 'content': 'Hi'},
                           headers=auth_headers(other_customer_id))
    assert response.status_code == 404


def test_mark_all_read(client, admin_id, customer_id, project_id, auth_headers):
    for text in ('eins', 'zwei'):
        client.post('/api/dashboard/messages', json={'projectId': project_id, 'content': text},
                    headers=auth_headers(customer_id))
    response = client.post('/api/dashboard/messages/read-all', json={}, headers=auth_headers(admin_id))
    assert response.get_json()['data']['marked'] == 2


def test_deactivate_customer(app, client, admin_id, customer_id, auth_headers):
    response = client.delete(f'/api/dashboard/customers/{customer_id}', headers=auth_headers(admin_id))
    assert response.status_code == 200
    with app.app_context():
        assert db.session.get(User, customer_id).is_active is False


def test_profile_update(client, customer_id, auth_headers):
    response = client.put('/api/dashboard/profile', json={'company': 'Kunde GmbH'},
                          headers=auth_headers(customer_id))
    assert response.get_json()['data']['company'] == 'Kunde GmbH'


def test_message_with_attachment(client, customer_id, project_id, auth_headers):
    payload = {
        'projectId': project_id,
        'content': 'Logo anbei',
        'attachments': [{'filename': 'a1b2.png', 'originalName': 'logo.png', 'mimeType': 'image/png',
                         'size': 2048, 'path': 'uploads/a1b2.png'}],
    }
    response = client.post('/api/dashboard/messages', json=payload, headers=auth_headers(customer_id))
    assert response.status_code == 201
    message = response.get_json()['data']
    assert message['messageType'] == 'image'
    assert message['hasAttachment'] is True
    assert message['attachments'][0]['originalName'] == 'logo.png'
    assert message['attachments'][0]['size'] == 2048


def test_attachment_metadata_is_validated(client, customer_id, project_id, auth_headers):
    payload = {'projectId': project_id, 'content': 'Datei', 'attachments': [{'filename': 'x.pdf'}]}
    response = client.post('/api/dashboard/messages', json=payload, headers=auth_headers(customer_id))
    assert response.status_code == 400
    assert 'attachments' in response.get_json()['details']


def test_only_sender_edits_message(client, admin_id, customer_id, project_id, auth_headers):
    message = client.post('/api/dashboard/messages', json={'projectId': project_id, 'content': 'Entwurf'},
                          headers=auth_headers(customer_id)).get_json()['data']
    url = f"/api/dashboard/messages/{message['id']}"

    response = client.put(url, json={'content': 'Fremd'}, headers=auth_headers(admin_id))
    assert response.status_code == 403

    response = client.put(url, json={'content': 'Endfassung'}, headers=auth_headers(customer_id))
    data = response.get_json()['data']
    assert data['content'] == 'Endfassung'
    assert data['editedAt'] is not None


def test_deleted_message_is_hidden(app, client, admin_id, customer_id, project_id, auth_headers):
    message = client.post('/api/dashboard/messages', json={'projectId': project_id, 'content': 'Weg damit'},
                          headers=auth_headers(customer_id)).get_json()['data']
    url = f"/api/dashboard/messages/{message['id']}"

    assert client.delete(url, headers=auth_headers(admin_id)).status_code == 200
    assert client.put(f'{url}/read', headers=auth_headers(admin_id)).status_code == 404
    with app.app_context():
        stored = db.session.get(Message, message['id'])
        assert stored.is_active is False
        assert stored.deleted_at is not None


def test_conversation_thread(client, admin_id, customer_id, project_id, auth_headers):
    parent = client.post('/api/dashboard/messages', json={'projectId': project_id, 'content': 'Frage'},
                         headers=auth_headers(customer_id)).get_json()['data']
    for text in ('Antwort eins', 'Antwort zwei'):
        client.post(f"/api/dashboard/messages/{parent['id']}/reply", json={'content': text},
                    headers=auth_headers(admin_id))

    response = client.get(f"/api/dashboard/messages/{parent['id']}/thread", headers=auth_headers(customer_id))
    thread = response.get_json()['data']
    assert [m['content'] for m in thread] == ['Frage', 'Antwort eins', 'Antwort zwei']
