"""
Registration approval workflow — BlueMercantile.

A registration moves through exactly one transition:

    pending --approve--> approved   (ApprovedUser created, credentials mailed)
    pending --reject-->  (deleted)  (rejection mailed, record discarded)

Approval is idempotent. The approved user is written first with
``notified=False``, then the registration leaves the pending list, then the
credentials email goes out and the user is flagged ``notified=True``.
Approving an id that already produced a user finishes whichever of those
steps is missing and returns the credentials that were issued the first
time, so a retry after a partial failure never creates a second account.
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from utils.credentials import generate_password, generate_user_id
from utils.kv_store import APPROVED_USERS, PENDING_REGISTRATIONS, KVStore
from utils.notifications import (
    APPROVAL_SUBJECT, REJECTION_SUBJECT, NotificationSink, approval_email, rejection_email
)

logger = logging.getLogger(__name__)

STATUS_PENDING = 'pending'
STATUS_APPROVED = 'approved'

# Fields owned by the workflow; a registrant cannot set them
RESERVED_FIELDS = ('id', 'status', 'submittedAt', 'userId', 'password', 'banned', 'approvedAt', 'notified')


class RegistrationError(Exception):
    pass


class RegistrationNotFoundError(RegistrationError):
    pass


class UserNotFoundError(RegistrationError):
    pass


class RegistrationValidationError(RegistrationError):
    pass


class RegistrationConflictError(RegistrationError):
    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _generate_registration_id() -> str:
    return f"reg_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


def _find(items: list, field: str, value) -> Optional[dict]:
    for item in items:
        if item.get(field) == value:
            return item
    return None


class RegistrationService:
    def __init__(self, store: KVStore, notifier: Optional[NotificationSink] = None):
        self.store = store
        self.notifier = notifier or NotificationSink(store)

    # ------------------------------------------------------------------
    # Pending registrations
    # ------------------------------------------------------------------

    def submit(self, data: dict) -> dict:
        """Store a new pending registration. No duplicate detection is done."""
        if not isinstance(data, dict):
            raise RegistrationValidationError('Registration data must be a JSON object')

        registration = {k: v for k, v in data.items() if k not in RESERVED_FIELDS}
        registration.update({
            'id': _generate_registration_id(),
            'submittedAt': _now(),
            'status': STATUS_PENDING
        })

        self.store.mutate(PENDING_REGISTRATIONS, lambda pending: pending.append(registration), default=[])
        logger.info("Registration %s submitted (%s)", registration['id'], registration.get('userType'))
        return registration

    def list_pending(self) -> List[dict]:
        return self.store.get(PENDING_REGISTRATIONS, default=[])

    def approve(self, registration_id: str) -> dict:
        """
        Promote a pending registration to an approved user.

        Returns:
            dict with userId, password and notified.

        Raises:
            RegistrationNotFoundError: if the id is neither pending nor
                already approved. Nothing is modified in that case.
        """
        registration = _find(self.list_pending(), 'id', registration_id)
        user = _find(self.list_approved(), 'id', registration_id)

        if registration is None and user is None:
            raise RegistrationNotFoundError(f"Registration {registration_id} not found")

        if user is None:
            user = self.store.mutate(
                APPROVED_USERS,
                lambda users: self._append_approved_user(users, registration),
                default=[]
            )

        if registration is not None:
            try:
                self._remove_pending(registration_id)
            except RegistrationNotFoundError:
                # Removed by a concurrent approval
                pass

        if not user.get('notified'):
            user['notified'] = self._send_credentials(user)

        logger.info("Registration %s approved as %s", registration_id, user['userId'])
        return {
            'userId': user['userId'],
            'password': user['password'],
            'notified': user['notified']
        }

    def reject(self, registration_id: str, reason: str = '') -> dict:
        """
        Discard a pending registration and mail the reason to the registrant.

        The reason is kept only in the email log.

        Raises:
            RegistrationNotFoundError: if the id is not pending.
            RegistrationConflictError: if an approval already created a user
                for this id. Approving it again finishes that approval.
        """
        if _find(self.list_approved(), 'id', registration_id) is not None:
            raise RegistrationConflictError(
                f"Registration {registration_id} has already been approved"
            )

        registration = self._remove_pending(registration_id)

        try:
            self.notifier.send(
                registration.get('email'),
                REJECTION_SUBJECT,
                rejection_email(registration.get('fullName', ''), reason)
            )
        except Exception:
            logger.exception("Rejection email for %s could not be recorded", registration_id)

        logger.info("Registration %s rejected", registration_id)
        return registration

    # ------------------------------------------------------------------
    # Approved users
    # ------------------------------------------------------------------

    def list_approved(self) -> List[dict]:
        return self.store.get(APPROVED_USERS, default=[])

    def authenticate(self, user_id: str, password: str) -> Optional[dict]:
        for user in self.list_approved():
            if user.get('userId') == user_id and user.get('password') == password:
                return user
        return None

    def set_banned(self, user_id: str, banned: bool) -> dict:
        return self._update_user(user_id, 'banned', bool(banned))

    def change_password(self, user_id: str, new_password: str) -> dict:
        if not new_password:
            raise RegistrationValidationError('New password is required')
        return self._update_user(user_id, 'password', new_password)

    def retry_notifications(self) -> List[str]:
        """Resend credentials to every approved user not yet notified."""
        delivered = []
        for user in self.list_approved():
            if user.get('notified', True):
                continue
            if self._send_credentials(user):
                delivered.append(user['userId'])
        return delivered

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _append_approved_user(self, users: list, registration: dict) -> dict:
        # A concurrent approval of the same registration may have won
        existing = _find(users, 'id', registration['id'])
        if existing is not None:
            return existing

        user = dict(registration)
        user.update({
            'userId': generate_user_id(
                registration.get('userType'),
                existing={u.get('userId') for u in users}
            ),
            'password': generate_password(),
            'banned': False,
            'notified': False,
            'approvedAt': _now(),
            'status': STATUS_APPROVED
        })
        users.append(user)
        return user

    def _remove_pending(self, registration_id: str) -> dict:
        def remove(pending: list) -> dict:
            for i, item in enumerate(pending):
                if item.get('id') == registration_id:
                    return pending.pop(i)
            raise RegistrationNotFoundError(f"Registration {registration_id} not found")

        return self.store.mutate(PENDING_REGISTRATIONS, remove, default=[])

    def _send_credentials(self, user: dict) -> bool:
        try:
            self.notifier.send(
                user.get('email'),
                APPROVAL_SUBJECT,
                approval_email(user.get('fullName', ''), user['userId'], user['password'])
            )
        except Exception:
            logger.exception("Credentials email for %s could not be recorded", user['userId'])
            return False

        try:
            self._update_user(user['userId'], 'notified', True)
        except Exception:
            logger.exception("Could not flag %s as notified", user['userId'])
        return True

    def _update_user(self, user_id: str, field: str, value) -> dict:
        def update(users: list) -> dict:
            user = _find(users, 'userId', user_id)
            if user is None:
                raise UserNotFoundError(f"User {user_id} not found")
            user[field] = value
            return user

        return self.store.mutate(APPROVED_USERS, update, default=[])
