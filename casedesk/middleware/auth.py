from functools import wraps
from flask import request, jsonify
from config.config import Config
from casedesk.utils.security import verify_token, user_id_from_claims
from casedesk.utils.logger import get_logger

logger = get_logger(__name__)


def _request_token():
    """Token from the Authorization header or the backend's own auth header"""
    auth_header = request.headers.get('Authorization')
    if auth_header:
        parts = auth_header.split()
        if len(parts) != 2 or parts[0] != 'Bearer':
            return None, 'Invalid authorization header format'
        return parts[1], None

    token = request.headers.get(Config.BACKEND_AUTH_HEADER)
    if token:
        return token.strip(), None
    return None, 'Authorization header missing'


def require_auth(f):
    """Decorator to require authentication"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token, error = _request_token()
        if not token:
            return jsonify({'error': error}), 401

        claims = verify_token(token)
        if not claims:
            return jsonify({'error': 'Invalid or expired token'}), 401

        user_id = user_id_from_claims(claims)
        if not user_id:
            return jsonify({'error': 'Token does not identify a user'}), 401

        current_user = dict(claims)
        current_user['id'] = user_id
        current_user['token'] = token
        return f(current_user=current_user, *args, **kwargs)

    return decorated_function


def require_role(allowed_roles):
    """Decorator to require specific roles"""
    def decorator(f):
        @wraps(f)
        def decorated_function(current_user, *args, **kwargs):
            if current_user.get('role') not in allowed_roles:
                logger.warning(f"Role {current_user.get('role')!r} denied for {request.path}")
                return jsonify({'error': 'Insufficient permissions'}), 403
            return f(current_user, *args, **kwargs)
        return decorated_function
    return decorator


def require_admin(f):
    """Decorator to require admin role"""
    return require_role(['admin'])(f)


def require_case_creator(f):
    """Decorator to require a role that may create cases"""
    return require_role(['admin', 'client'])(f)
