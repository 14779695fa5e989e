"""
Permission decorators for role-based access control.
Extends the basic require_login and require_tenant decorators with role checks.
"""

from functools import wraps
from flask import g
from mostrador.exceptions import AuthenticationError, UnauthorizedError


# Permission map
PERMISSION_MAP = {
    'OWNER': 'all',  # Owner has all permissions
    'ADMIN': [
        'view_sales', 'create_sales', 'cancel_sales', 'create_refunds',
        'view_cash', 'open_cash', 'close_cash', 'register_cash_movement', 'view_cash_history',
        'register_customer_payment', 'edit_credit_limit',
    ],
    'STAFF': [
        'view_sales',
        'create_sales',  # POS access
        'view_cash', 'open_cash', 'close_cash',
        'register_customer_payment',
    ]
}


def role_has_permission(role, permission_name):
    role_permissions = PERMISSION_MAP.get(role, [])
    if role_permissions == 'all':
        return True
    return permission_name in role_permissions


def require_permission(permission_name):
    """
    Decorator to check for specific permission.

    Permission mapping by role:
    - OWNER: All permissions
    - ADMIN: Sales, refunds, cancellations, cash and customer credit
    - STAFF: POS, own shift and customer payments

    Usage:
        @require_permission('create_sales')
        @require_permission('close_cash')
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Must be logged in with a tenant selected
            if not g.get('user') or not g.get('tenant_id'):
                raise AuthenticationError()

            user_role = g.get('user_role')
            if not user_role or not role_has_permission(user_role, permission_name):
                raise UnauthorizedError(f'No tienes permiso para: {permission_name}')

            return f(*args, **kwargs)

        return decorated_function
    return decorator
