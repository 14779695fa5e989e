"""
Audit logging service for money, stock and shift events.

Entries are added to the caller's session and committed together with the
business change they describe; the caller is responsible for committing.
"""
import json
import logging

from flask import has_request_context, request

from mostrador.models.audit_log import AuditLog, AuditAction

logger = logging.getLogger(__name__)


def log_action(
    session,
    action: AuditAction,
    tenant_id: int,
    user_id: int,
    resource_type: str = None,
    resource_id: int = None,
    details: dict = None
):
    """
    Add an audit entry to the session.

    Args:
        session: Database session
        action: AuditAction enum value
        tenant_id: Tenant the action belongs to
        user_id: Operator performing the action
        resource_type: Type of resource affected (e.g. 'sale', 'customer')
        resource_id: ID of the affected resource
        details: Dict with additional details (JSON encoded, Decimals as strings)
    """
    ip_address = request.remote_addr if has_request_context() else None

    entry = AuditLog(
        tenant_id=tenant_id,
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=json.dumps(details, default=str) if details else None,
        ip_address=ip_address,
    )
    session.add(entry)

    logger.debug(f"[AUDIT] {action.value} by user {user_id} on {resource_type} {resource_id}")
    return entry


def get_audit_logs(
    session,
    tenant_id: int,
    limit: int = 100,
    action_filter: AuditAction = None,
    resource_type_filter: str = None,
    resource_id_filter: int = None
):
    """
    Retrieve audit logs for a tenant, newest first.

    Returns:
        List of AuditLog objects
    """
    query = session.query(AuditLog).filter(AuditLog.tenant_id == tenant_id)

    if action_filter:
        query = query.filter(AuditLog.action == action_filter)

    if resource_type_filter:
        query = query.filter(AuditLog.resource_type == resource_type_filter)

    if resource_id_filter:
        query = query.filter(AuditLog.resource_id == resource_id_filter)

    return query.order_by(AuditLog.id.desc()).limit(limit).all()
