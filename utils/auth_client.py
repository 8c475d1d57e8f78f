"""Client for the BlueMercantile API and the logged-in user session.

``SessionContext`` is created once by the application and handed to every
component that needs the current user. Components observe login / logout
through ``subscribe``, which returns the matching unsubscribe callable.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import httpx

from utils.client_storage import STORAGE_KEYS, ClientStorage

logger = logging.getLogger(__name__)


class ApiClient:
    """Thin JSON client. Network failures come back as ``{'success': False, ...}``."""

    def __init__(self, base_url: str | None = None, client: httpx.Client | None = None,
                 timeout: float = 30.0) -> None:
        if base_url is None:
            from config import config
            base_url = config.API_BASE_URL
        self.base_url = base_url.rstrip('/')
        self.client = client or httpx.Client(timeout=timeout)
        self.token: str | None = None

    def _headers(self) -> dict:
        headers = {'Content-Type': 'application/json'}
        if self.token:
            headers['Authorization'] = f"Bearer {self.token}"
        return headers

    def _send(self, method: str, path: str, payload: dict | None, failure_message: str) -> dict:
        try:
            response = self.client.request(
                method, f"{self.base_url}{path}", json=payload, headers=self._headers()
            )
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("%s %s failed: %s", method, path, e)
            return {'success': False, 'message': failure_message}

        if not isinstance(data, dict):
            return {'success': False, 'message': failure_message}
        return data

    def get(self, path: str, failure_message: str) -> dict:
        return self._send('GET', path, None, failure_message)

    def post(self, path: str, payload: dict, failure_message: str) -> dict:
        return self._send('POST', path, payload, failure_message)

    def close(self) -> None:
        self.client.close()


class SessionContext:
    """The current user, persisted in client storage and observable."""

    def __init__(self, api: ApiClient, storage: ClientStorage) -> None:
        self.api = api
        self.storage = storage
        self._listeners: list[Callable[[dict | None], None]] = []

        saved = storage.get(STORAGE_KEYS['USER'])
        self.user: dict | None = saved if isinstance(saved, dict) else None
        self.api.token = self.user.get('token') if self.user else None

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[dict | None], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_user(self, user: dict | None) -> None:
        self.user = user
        self.api.token = user.get('token') if user else None
        if user is None:
            self.storage.remove(STORAGE_KEYS['USER'])
        else:
            self.storage.set(STORAGE_KEYS['USER'], user)
        for listener in list(self._listeners):
            try:
                listener(self.user)
            except Exception:
                logger.exception("Session listener failed")

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    @property
    def current_user(self) -> dict | None:
        return self.user

    def is_authenticated(self) -> bool:
        return self.user is not None

    def is_admin(self) -> bool:
        return bool(self.user) and self.user.get('userType') == 'admin'

    def login_admin(self, username: str, password: str) -> dict:
        data = self.api.post('/admin/login', {'username': username, 'password': password}, 'Login failed')
        if not data.get('success'):
            return {'success': False, 'message': data.get('message')}

        self._set_user({'userId': 'admin', 'userType': 'admin', 'token': data.get('token')})
        return {'success': True}

    def login_user(self, user_id: str, password: str) -> dict:
        data = self.api.post('/user/login', {'userId': user_id, 'password': password}, 'Login failed')
        if not data.get('success'):
            return {'success': False, 'message': data.get('message')}

        user_data = data.get('userData') or {}
        self._set_user({
            'userId': data.get('userId'),
            'userType': data.get('userType'),
            'token': data.get('token'),
            'userData': user_data,
            'fullName': user_data.get('fullName'),
            'email': user_data.get('email'),
        })
        return {'success': True}

    def register(self, registration: dict[str, Any]) -> dict:
        return self.api.post('/register', registration, 'Registration failed')

    def logout(self) -> None:
        self._set_user(None)

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def get_pending_registrations(self) -> dict:
        return self.api.get('/admin/pending-registrations', 'Failed to fetch registrations')

    def approve_registration(self, registration_id: str) -> dict:
        return self.api.post('/admin/approve-registration', {'registrationId': registration_id},
                             'Approval failed')

    def reject_registration(self, registration_id: str, reason: str) -> dict:
        return self.api.post('/admin/reject-registration',
                             {'registrationId': registration_id, 'reason': reason}, 'Rejection failed')

    def get_approved_users(self) -> dict:
        return self.api.get('/admin/approved-users', 'Failed to fetch users')

    def toggle_user_status(self, user_id: str, banned: bool) -> dict:
        return self.api.post('/admin/toggle-user-status', {'userId': user_id, 'banned': banned},
                             'Failed to update user status')

    def change_user_password(self, user_id: str, new_password: str) -> dict:
        return self.api.post('/admin/change-password', {'userId': user_id, 'newPassword': new_password},
                             'Failed to change password')

    def get_email_logs(self) -> dict:
        return self.api.get('/admin/email-logs', 'Failed to fetch email logs')

    def retry_notifications(self) -> dict:
        return self.api.post('/admin/retry-notifications', {}, 'Failed to resend notifications')
