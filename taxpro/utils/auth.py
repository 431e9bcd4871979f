"""
Bearer-token authentication and authorization helpers.

Tokens are stateless HS256 JWTs carrying the user's id, email and role.
Flask-Login's request loader turns the Authorization header into
`current_user`; the decorators below layer role and ownership checks on top
of `login_required`.
"""

from flask import current_app, g, request
from flask_login import current_user, login_required
from functools import wraps
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional
import logging
import re
import uuid

import jwt

from taxpro import login_manager
from taxpro.errors import AuthenticationError, AuthorizationError, NotFoundError

logger = logging.getLogger(__name__)

JWT_ALGORITHM = 'HS256'

_DURATION_PATTERN = re.compile(r'^(\d+)\s*([smhd]?)$')
_DURATION_UNITS = {'': 'seconds', 's': 'seconds', 'm': 'minutes', 'h': 'hours', 'd': 'days'}

# Messages per failure kind recorded by the request loader
AUTH_ERROR_MESSAGES = {
    'missing': 'Access denied. No token provided.',
    'invalid': 'Access denied. Invalid token.',
    'expired': 'Access denied. Token expired.',
    'not_found': 'Access denied. User not found.',
    'unverified': 'Access denied. Please verify your email address.',
}


def parse_expiry(value) -> timedelta:
    """Parse an expiry such as '7d', '12h', '30m' or a number of seconds."""
    if isinstance(value, timedelta):
        return value
    match = _DURATION_PATTERN.match(str(value).strip())
    if not match:
        raise ValueError(f'Invalid token expiry: {value!r}')
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


def create_access_token(user, expires_in=None) -> str:
    """Sign a token for the user; expiry defaults to JWT_EXPIRES_IN."""
    lifetime = parse_expiry(expires_in if expires_in is not None else current_app.config['JWT_EXPIRES_IN'])
    now = datetime.now(timezone.utc)
    payload = {
        'id': str(user.id),
        'email': user.email,
        'role': user.role,
        'iat': now,
        'exp': now + lifetime,
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Verify signature and expiry.

    Raises:
        AuthenticationError: kind 'expired' or 'invalid'
    """
    try:
        return jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError(AUTH_ERROR_MESSAGES['expired'], kind='expired')
    except jwt.InvalidTokenError:
        raise AuthenticationError(AUTH_ERROR_MESSAGES['invalid'], kind='invalid')


def bearer_token() -> Optional[str]:
    header = request.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        return None
    return header[len('Bearer '):].strip() or None


def resolve_principal():
    """
    Resolve the user behind the request's bearer token.

    Raises:
        AuthenticationError: with the kind of failure
    """
    from taxpro.models.user import User

    token = bearer_token()
    if token is None:
        raise AuthenticationError(AUTH_ERROR_MESSAGES['missing'], kind='missing')

    payload = decode_access_token(token)
    try:
        user_id = uuid.UUID(str(payload.get('id')))
    except ValueError:
        raise AuthenticationError(AUTH_ERROR_MESSAGES['invalid'], kind='invalid')

    user = User.find_by_id(user_id)
    if user is None:
        raise AuthenticationError(AUTH_ERROR_MESSAGES['not_found'], kind='not_found')
    if not user.is_verified:
        raise AuthenticationError(AUTH_ERROR_MESSAGES['unverified'], kind='unverified')
    return user


@login_manager.request_loader
def load_user_from_request(req):
    """Flask-Login hook: return the principal or None, remembering why it failed."""
    try:
        return resolve_principal()
    except AuthenticationError as e:
        g.auth_error = e
        return None


@login_manager.unauthorized_handler
def unauthorized():
    error = g.pop('auth_error', None)
    if error is None:
        error = AuthenticationError(AUTH_ERROR_MESSAGES['missing'], kind='missing')
    if error.kind != 'missing':
        logger.info(f"Rejected {request.method} {request.path}: {error.kind}")
    raise error


def roles_required(*roles):
    """Decorator to require an authenticated user holding one of `roles`."""
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            if current_user.role not in roles:
                from taxpro.utils.audit_log import AuditLogger
                AuditLogger.log_access_denied(current_user, f'role {current_user.role} not in {list(roles)}')
                raise AuthorizationError('Access denied. Insufficient permissions.')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def check_ownership(resolve_owner_ids: Callable[..., Optional[Iterable]], not_found: str = 'Resource not found'):
    """
    Decorator restricting a route to the owners of its resource.

    `resolve_owner_ids` receives the route's view arguments and returns the
    ids of users allowed to act on the resource, or None when the resource
    does not exist. Admins bypass the check.
    """
    def decorator(f):
        @wraps(f)
        @login_required
        def decorated_function(*args, **kwargs):
            if current_user.is_admin:
                return f(*args, **kwargs)

            owner_ids = resolve_owner_ids(**kwargs)
            if owner_ids is None:
                raise NotFoundError(not_found)
            if current_user.id not in set(owner_ids):
                from taxpro.utils.audit_log import AuditLogger
                AuditLogger.log_access_denied(current_user, f'not an owner of {request.path}')
                raise AuthorizationError('Access denied. You can only access your own resources.')
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def ensure_owner(owner_ids: Iterable) -> None:
    """Inline form of check_ownership for handlers that load the resource themselves."""
    if current_user.is_admin:
        return
    if current_user.id not in set(owner_ids):
        from taxpro.utils.audit_log import AuditLogger
        AuditLogger.log_access_denied(current_user, f'not an owner of {request.path}')
        raise AuthorizationError('Access denied')
