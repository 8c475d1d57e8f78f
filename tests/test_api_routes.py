"""Tests for the HTTP API (routes/api_routes.py, routes/admin_routes.py)."""
import re

import pytest

from config import config
from utils.kv_store import APPROVED_USERS, PENDING_REGISTRATIONS


def submit(client, api, data):
    response = client.post(api('/register'), json=data)
    assert response.status_code == 200
    return response.get_json()['registrationId']


class TestHealth:
    def test_prefixed_health(self, client, api):
        response = client.get(api('/health'))
        assert response.status_code == 200
        assert response.get_json() == {'status': 'ok'}

    def test_root_health(self, client):
        assert client.get('/health').get_json() == {'status': 'ok'}

    def test_unknown_route_is_json(self, client, api):
        response = client.get(api('/nope'))
        assert response.status_code == 404
        assert response.get_json()['success'] is False


class TestAdminLogin:
    def test_valid(self, client, api):
        response = client.post(api('/admin/login'), json={'username': config.ADMIN_USERNAME, 'password': config.ADMIN_PASSWORD})
        body = response.get_json()
        assert response.status_code == 200
        assert body['success'] is True
        assert body['userType'] == 'admin'
        assert body['token']

    def test_invalid(self, client, api):
        response = client.post(api('/admin/login'), json={'username': 'admin', 'password': 'nope'})
        assert response.status_code == 401
        assert response.get_json() == {'success': False, 'message': 'Invalid credentials'}

    def test_missing_body(self, client, api):
        response = client.post(api('/admin/login'), data='not json', content_type='text/plain')
        assert response.status_code == 401


class TestRegistrationFlow:
    def test_register(self, client, api, patron_registration):
        response = client.post(api('/register'), json=patron_registration)
        body = response.get_json()
        assert body['success'] is True
        assert body['registrationId'].startswith('reg_')
        assert 'Admin approval required' in body['message']

    def test_register_non_object(self, client, api):
        response = client.post(api('/register'), json=[1, 2])
        assert response.status_code == 400
        assert response.get_json()['success'] is False

    def test_approve_scenario(self, client, api, patron_registration):
        registration_id = submit(client, api, patron_registration)
        pending = client.get(api('/admin/pending-registrations')).get_json()
        assert pending['success'] is True
        assert len(pending['data']) == 1

        response = client.post(api('/admin/approve-registration'), json={'registrationId': registration_id})
        body = response.get_json()
        assert response.status_code == 200
        assert body['success'] is True
        assert re.match(r'^ptrn\d{4}$', body['userId'])
        assert len(body['password']) == 8

        assert client.get(api('/admin/pending-registrations')).get_json()['data'] == []
        approved = client.get(api('/admin/approved-users')).get_json()['data']
        assert len(approved) == 1
        assert approved[0]['userId'] == body['userId']

        logs = client.get(api('/admin/email-logs')).get_json()['data']
        assert len(logs) == 1
        assert logs[0]['subject'] == 'BlueMercantile Account Approved'

    def test_approve_unknown(self, client, api, patron_registration):
        submit(client, api, patron_registration)
        response = client.post(api('/admin/approve-registration'), json={'registrationId': 'reg_0'})
        assert response.status_code == 404
        assert response.get_json() == {'success': False, 'message': 'Registration not found'}
        assert len(client.get(api('/admin/pending-registrations')).get_json()['data']) == 1
        assert client.get(api('/admin/approved-users')).get_json()['data'] == []

    def test_approve_missing_id(self, client, api):
        response = client.post(api('/admin/approve-registration'), json={})
        assert response.status_code == 400

    def test_reject(self, client, api, patron_registration):
        registration_id = submit(client, api, patron_registration)
        response = client.post(
            api('/admin/reject-registration'),
            json={'registrationId': registration_id, 'reason': 'Incomplete documents'}
        )
        assert response.get_json() == {'success': True, 'message': 'Registration rejected successfully'}
        assert client.get(api('/admin/pending-registrations')).get_json()['data'] == []
        assert client.get(api('/admin/approved-users')).get_json()['data'] == []
        logs = client.get(api('/admin/email-logs')).get_json()['data']
        assert logs[0]['to'] == 't@example.com'
        assert 'Incomplete documents' in logs[0]['content']

    def test_reject_unknown(self, client, api):
        response = client.post(api('/admin/reject-registration'), json={'registrationId': 'reg_0', 'reason': 'x'})
        assert response.status_code == 404

    def test_reject_already_approved_is_conflict(self, client, api, store, patron_registration):
        registration = dict(patron_registration, id='reg_1_abcdef', status='pending')
        store.set(PENDING_REGISTRATIONS, [registration])
        store.set(APPROVED_USERS, [dict(registration, userId='ptrn1234', password='Abc12345', notified=False)])

        response = client.post(
            api('/admin/reject-registration'), json={'registrationId': 'reg_1_abcdef', 'reason': 'spam'}
        )
        assert response.status_code == 409
        assert response.get_json()['success'] is False
        assert len(store.get(PENDING_REGISTRATIONS)) == 1

    def test_store_failure_is_500(self, client, api, store, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError('database unreachable')
        monkeypatch.setattr(store, '_read', broken)
        response = client.get(api('/admin/pending-registrations'))
        assert response.status_code == 500
        assert response.get_json() == {'success': False, 'message': 'Failed to fetch registrations'}


class TestUserAdministration:
    @pytest.fixture
    def credentials(self, client, api, patron_registration):
        registration_id = submit(client, api, patron_registration)
        return client.post(api('/admin/approve-registration'), json={'registrationId': registration_id}).get_json()

    def test_user_login(self, client, api, credentials):
        response = client.post(
            api('/user/login'),
            json={'userId': credentials['userId'], 'password': credentials['password']}
        )
        body = response.get_json()
        assert response.status_code == 200
        assert body['success'] is True
        assert body['userId'] == credentials['userId']
        assert body['userType'] == 'patron'
        assert body['userData']['fullName'] == 'Test User'
        assert 'password' not in body['userData']

    def test_user_login_wrong_password(self, client, api, credentials):
        response = client.post(api('/user/login'), json={'userId': credentials['userId'], 'password': 'x'})
        assert response.status_code == 401
        assert response.get_json()['success'] is False

    def test_ban_blocks_login(self, client, api, credentials):
        response = client.post(
            api('/admin/toggle-user-status'),
            json={'userId': credentials['userId'], 'banned': True}
        )
        assert response.get_json() == {'success': True, 'message': 'User banned successfully'}

        login = client.post(
            api('/user/login'),
            json={'userId': credentials['userId'], 'password': credentials['password']}
        )
        assert login.status_code == 403

        client.post(api('/admin/toggle-user-status'), json={'userId': credentials['userId'], 'banned': False})
        login = client.post(
            api('/user/login'),
            json={'userId': credentials['userId'], 'password': credentials['password']}
        )
        assert login.status_code == 200

    def test_toggle_unknown_user(self, client, api, credentials):
        response = client.post(api('/admin/toggle-user-status'), json={'userId': 'ptrn0000', 'banned': True})
        assert response.status_code == 404
        assert response.get_json() == {'success': False, 'message': 'User not found'}

    def test_toggle_requires_bool(self, client, api, credentials):
        response = client.post(
            api('/admin/toggle-user-status'),
            json={'userId': credentials['userId'], 'banned': 'yes'}
        )
        assert response.status_code == 400

    def test_change_password(self, client, api, credentials):
        response = client.post(
            api('/admin/change-password'),
            json={'userId': credentials['userId'], 'newPassword': 'Fresh123'}
        )
        assert response.get_json() == {'success': True, 'message': 'Password changed successfully'}
        login = client.post(api('/user/login'), json={'userId': credentials['userId'], 'password': 'Fresh123'})
        assert login.status_code == 200

    def test_change_password_unknown_user(self, client, api, credentials):
        response = client.post(api('/admin/change-password'), json={'userId': 'ptrn0000', 'newPassword': 'a'})
        assert response.status_code == 404

    def test_retry_notifications_nothing_pending(self, client, api, credentials):
        body = client.post(api('/admin/retry-notifications')).get_json()
        assert body['success'] is True
        assert body['userIds'] == []


class TestAdminToken:
    @pytest.fixture(autouse=True)
    def require_token(self, monkeypatch):
        monkeypatch.setattr(config, 'REQUIRE_ADMIN_TOKEN', True)

    def test_rejects_missing_token(self, client, api):
        response = client.get(api('/admin/pending-registrations'))
        assert response.status_code == 401

    def test_rejects_user_token(self, client, api):
        from routes.api_routes import issue_token
        token = issue_token('patron', 'ptrn1234')
        response = client.get(api('/admin/pending-registrations'), headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401

    def test_accepts_admin_token(self, client, api):
        token = client.post(
            api('/admin/login'), json={'username': config.ADMIN_USERNAME, 'password': config.ADMIN_PASSWORD}
        ).get_json()['token']
        response = client.get(api('/admin/pending-registrations'), headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 200

    def test_forged_token(self, client, api):
        response = client.get(api('/admin/pending-registrations'), headers={'Authorization': 'Bearer admin-token'})
        assert response.status_code == 401
