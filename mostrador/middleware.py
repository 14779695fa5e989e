"""Middleware for authentication and tenant context."""
from functools import wraps
from flask import session, g, current_app
from mostrador.database import get_session
from mostrador.exceptions import AuthenticationError
from mostrador.models import AppUser, UserTenant, Tenant


def load_user_and_tenant():
    """
    Load current user and tenant into g (Flask's per-request global).

    Called before each request to establish user and tenant context.
    Sets g.user, g.tenant_id, and g.user_role if authenticated.
    """
    g.user = None
    g.user_id = None
    g.tenant_id = None
    g.user_role = None

    user_id = session.get('user_id')
    if not user_id:
        return

    db_session = get_session()
    user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
    if not user:
        return

    g.user = user
    g.user_id = user.id

    tenant_id = session.get('tenant_id')
    if not tenant_id:
        return

    # Verify user has access to this tenant
    user_tenant = db_session.query(UserTenant).filter_by(
        user_id=user.id,
        tenant_id=tenant_id,
        active=True
    ).first()

    if not user_tenant:
        session.pop('tenant_id', None)
        return

    tenant = db_session.query(Tenant).filter_by(id=tenant_id).first()
    if tenant is None or not tenant.active:
        current_app.logger.warning(f"[AUTH] User {user.id} rejected: tenant {tenant_id} is inactive")
        session.pop('tenant_id', None)
        return

    g.tenant_id = tenant_id
    g.user_role = user_tenant.role


def require_login(f):
    """Decorator: Require an authenticated operator (401 otherwise)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise AuthenticationError('Debes iniciar sesión')
        return f(*args, **kwargs)
    return decorated_function


def require_tenant(f):
    """
    Decorator: Require tenant to be selected.

    Must be used AFTER require_login.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('tenant_id') is None:
            raise AuthenticationError('Debes seleccionar un negocio primero')
        return f(*args, **kwargs)
    return decorated_function
