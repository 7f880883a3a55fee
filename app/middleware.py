"""Middleware for tenant context."""
from functools import wraps
from flask import session, g, jsonify, current_app

from app.services.tenant_guard import is_valid_tenant_id


def load_tenant_context():
    """
    Load current tenant and user into g (Flask's per-request global).

    The authentication layer stores tenant_id and user_id in the Flask
    session; this only reads them. A malformed tenant id is dropped so no
    query ever runs with it.
    """
    g.tenant_id = None
    g.user_id = None

    tenant_id = session.get('tenant_id')
    if tenant_id:
        tenant_id = str(tenant_id)
        if is_valid_tenant_id(tenant_id):
            g.tenant_id = tenant_id
        else:
            current_app.logger.warning(f"Ignoring malformed tenant_id in session: {tenant_id!r}")
            session.pop('tenant_id', None)

    user_id = session.get('user_id')
    if user_id is not None:
        try:
            g.user_id = int(user_id)
        except (TypeError, ValueError):
            g.user_id = None


def require_tenant(f):
    """
    Decorator: Require tenant to be selected.

    Returns 401 JSON when no tenant is in the session.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('tenant_id') is None:
            return jsonify({
                'status': 'error',
                'message': 'Debes seleccionar un negocio primero.'
            }), 401
        return f(*args, **kwargs)
    return decorated_function
