"""
Public API endpoints — BlueMercantile.

Endpoints (under config.API_PREFIX):
    GET  /health      - Liveness probe
    POST /register    - Submit a registration for admin approval
    POST /user/login  - Log in an approved patron / credit client

Every response is JSON. Failures use the shape {"success": false, "message": ...}
so clients can branch on ``success`` instead of on HTTP errors.
"""

import logging
from functools import wraps

from flask import Blueprint, request, jsonify
from itsdangerous import BadSignature, URLSafeSerializer

from config import config
from utils.registrations import (
    RegistrationConflictError, RegistrationNotFoundError, RegistrationValidationError, UserNotFoundError
)

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__)


class AuthenticationError(Exception):
    pass


class AccountBannedError(Exception):
    pass


def failure(message: str, status: int):
    return jsonify({"success": False, "message": message}), status


def handle_errors(default_message: str):
    """Convert exceptions raised by a view into the uniform failure shape."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except RegistrationValidationError as e:
                return failure(str(e), 400)
            except AuthenticationError:
                return failure('Invalid credentials', 401)
            except AccountBannedError:
                return failure('Account is banned', 403)
            except RegistrationNotFoundError:
                return failure('Registration not found', 404)
            except UserNotFoundError:
                return failure('User not found', 404)
            except RegistrationConflictError as e:
                return failure(str(e), 409)
            except Exception:
                logger.exception("%s %s failed", request.method, request.path)
                return failure(default_message, 500)
        return decorated
    return decorator


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _serializer() -> URLSafeSerializer:
    return URLSafeSerializer(config.SECRET_KEY, salt='bluemercantile-auth')


def issue_token(role: str, user_id: str) -> str:
    return _serializer().dumps({'role': role, 'userId': user_id})


def read_token(token: str):
    """Return the token payload, or None if the signature does not match."""
    try:
        return _serializer().loads(token)
    except BadSignature:
        return None


def registration_service():
    from utils.kv_store import get_kv_store
    from utils.registrations import RegistrationService
    return RegistrationService(get_kv_store())


@api_bp.route('/health', methods=['GET'])
def health():
    return jsonify({"status": "ok"})


@api_bp.route('/register', methods=['POST'])
@handle_errors('Registration failed')
def register():
    data = request.get_json(silent=True)
    if data is None:
        data = {}

    registration = registration_service().submit(data)

    return jsonify({
        "success": True,
        "message": "Registration submitted successfully. Admin approval required.",
        "registrationId": registration['id']
    })


@api_bp.route('/user/login', methods=['POST'])
@handle_errors('Login failed')
def user_login():
    data = json_body()
    user_id = str(data.get('userId', '')).strip()
    password = str(data.get('password', ''))

    user = registration_service().authenticate(user_id, password)
    if user is None:
        raise AuthenticationError()
    if user.get('banned'):
        raise AccountBannedError()

    user_data = {k: v for k, v in user.items() if k != 'password'}
    return jsonify({
        "success": True,
        "token": issue_token(user.get('userType') or 'creditClient', user['userId']),
        "userType": user.get('userType'),
        "userId": user['userId'],
        "userData": user_data
    })
