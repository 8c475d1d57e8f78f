"""
Admin API routes — BlueMercantile.

Lets the program admin:
- Log in with the configured admin credentials
- Review pending registrations and approve or reject them
- List approved users, ban / unban them and rotate their passwords
- Read the outbound email log and resend undelivered credentials

When config.REQUIRE_ADMIN_TOKEN is set, every route except /login needs
the token returned by /login in an ``Authorization: Bearer`` header.
"""

import logging
from functools import wraps

from flask import Blueprint, request, jsonify

from config import config
from routes.api_routes import (
    AuthenticationError, failure, handle_errors, issue_token, json_body, read_token,
    registration_service
)
from utils.registrations import RegistrationValidationError

logger = logging.getLogger(__name__)

admin_bp = Blueprint('admin', __name__)


def require_admin(f):
    """Decorator: reject the request unless it carries an admin token."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if config.REQUIRE_ADMIN_TOKEN:
            header = request.headers.get('Authorization', '')
            token = header[len('Bearer '):] if header.startswith('Bearer ') else ''
            payload = read_token(token) if token else None
            if not payload or payload.get('role') != 'admin':
                return failure('Admin authentication required', 401)
        return f(*args, **kwargs)
    return decorated


@admin_bp.route('/login', methods=['POST'])
@handle_errors('Login failed')
def login():
    data = json_body()
    username = str(data.get('username', '')).strip()
    password = str(data.get('password', ''))

    if username != config.ADMIN_USERNAME or password != config.ADMIN_PASSWORD:
        logger.warning("Failed admin login for '%s'", username)
        raise AuthenticationError()

    return jsonify({
        "success": True,
        "token": issue_token('admin', 'admin'),
        "userType": "admin"
    })


@admin_bp.route('/pending-registrations', methods=['GET'])
@require_admin
@handle_errors('Failed to fetch registrations')
def pending_registrations():
    return jsonify({"success": True, "data": registration_service().list_pending()})


@admin_bp.route('/approve-registration', methods=['POST'])
@require_admin
@handle_errors('Approval failed')
def approve_registration():
    registration_id = json_body().get('registrationId')
    if not registration_id:
        raise RegistrationValidationError('registrationId is required')

    credentials = registration_service().approve(registration_id)

    return jsonify({
        "success": True,
        "message": "Registration approved successfully",
        "userId": credentials['userId'],
        "password": credentials['password'],
        "notified": credentials['notified']
    })


@admin_bp.route('/reject-registration', methods=['POST'])
@require_admin
@handle_errors('Rejection failed')
def reject_registration():
    data = json_body()
    registration_id = data.get('registrationId')
    if not registration_id:
        raise RegistrationValidationError('registrationId is required')

    registration_service().reject(registration_id, str(data.get('reason') or ''))

    return jsonify({"success": True, "message": "Registration rejected successfully"})


@admin_bp.route('/approved-users', methods=['GET'])
@require_admin
@handle_errors('Failed to fetch users')
def approved_users():
    return jsonify({"success": True, "data": registration_service().list_approved()})


@admin_bp.route('/toggle-user-status', methods=['POST'])
@require_admin
@handle_errors('Failed to update user status')
def toggle_user_status():
    data = json_body()
    user_id = data.get('userId')
    banned = data.get('banned')
    if not user_id:
        raise RegistrationValidationError('userId is required')
    if not isinstance(banned, bool):
        raise RegistrationValidationError('banned must be true or false')

    registration_service().set_banned(user_id, banned)

    return jsonify({
        "success": True,
        "message": f"User {'banned' if banned else 'unbanned'} successfully"
    })


@admin_bp.route('/change-password', methods=['POST'])
@require_admin
@handle_errors('Failed to change password')
def change_password():
    data = json_body()
    user_id = data.get('userId')
    if not user_id:
        raise RegistrationValidationError('userId is required')

    new_password = data.get('newPassword')
    if not isinstance(new_password, str) or not new_password:
        raise RegistrationValidationError('newPassword is required')

    registration_service().change_password(user_id, new_password)

    return jsonify({"success": True, "message": "Password changed successfully"})


@admin_bp.route('/email-logs', methods=['GET'])
@require_admin
@handle_errors('Failed to fetch email logs')
def email_logs():
    from utils.kv_store import get_kv_store
    from utils.notifications import NotificationSink
    return jsonify({"success": True, "data": NotificationSink(get_kv_store()).list_logs()})


@admin_bp.route('/retry-notifications', methods=['POST'])
@require_admin
@handle_errors('Failed to resend notifications')
def retry_notifications():
    delivered = registration_service().retry_notifications()
    return jsonify({
        "success": True,
        "message": f"{len(delivered)} notification(s) sent",
        "userIds": delivered
    })
