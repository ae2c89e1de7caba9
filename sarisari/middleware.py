"""Middleware for caller identity and store context."""
from functools import wraps

from flask import g, request

from sarisari.utils.api_response import error


def _int_header(name):
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def load_identity():
    """
    Load caller identity into g (Flask's per-request global).

    Authentication happens upstream; the gateway forwards the result as
    X-User-Id, X-User-Role and X-Store-Id headers. Sets g.identity to
    {user_id, role, store_id} when a user id is present, else None.
    """
    g.identity = None
    g.store_id = None

    user_id = _int_header('X-User-Id')
    if user_id is None:
        return

    g.store_id = _int_header('X-Store-Id')
    g.identity = {
        'user_id': user_id,
        'role': request.headers.get('X-User-Role', 'cashier'),
        'store_id': g.store_id,
    }


def require_identity(f):
    """Decorator: reject requests without a caller identity (401)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('identity') is None:
            return error('Authentication required', 401)
        return f(*args, **kwargs)
    return decorated_function


def require_role(*roles):
    """
    Decorator: require one of the given roles.

    Must be used AFTER require_identity.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if g.identity['role'] not in roles:
                return error('Forbidden', 403, required_roles=list(roles))
            return f(*args, **kwargs)
        return decorated_function
    return decorator
