"""
Audit logging service for tracking tenant-scoped mutations.
"""
from app.models.audit_log import AuditLog, AuditAction
from app.services.tenant_guard import scope_query
from flask import request, has_request_context
from datetime import datetime
import json
import logging

logger = logging.getLogger(__name__)


def log_action(
    session,
    action: AuditAction,
    tenant_id: str,
    user_id: int = None,
    resource_type: str = None,
    resource_id: int = None,
    details: dict = None
):
    """
    Add an auditable action to the session.
    
    Args:
        session: Database session
        action: AuditAction enum value
        tenant_id: Tenant that owns the affected resource
        user_id: Acting user, when known
        resource_type: Type of resource affected (e.g., 'sale', 'product')
        resource_id: ID of the affected resource
        details: Dict with additional details (will be JSON encoded)
    
    Returns:
        The pending AuditLog entry. Caller is responsible for committing.
    """
    ip_address = request.remote_addr if has_request_context() else None
    
    details_json = None
    if details:
        try:
            details_json = json.dumps(details, default=str)
        except (TypeError, ValueError) as e:
            logger.warning(f"Failed to serialize audit details: {e}")
            details_json = str(details)
    
    audit_entry = AuditLog(
        tenant_id=tenant_id,
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details_json,
        ip_address=ip_address,
        created_at=datetime.utcnow()
    )
    session.add(audit_entry)
    return audit_entry


def get_audit_logs(
    session,
    tenant_id: str,
    limit: int = 100,
    offset: int = 0,
    action_filter: AuditAction = None,
    resource_type_filter: str = None,
    resource_id_filter: int = None
):
    """
    Retrieve audit logs for a tenant with optional filters.
    
    Returns:
        List of AuditLog objects, newest first
    """
    query = scope_query(session, AuditLog, tenant_id)
    
    if action_filter:
        query = query.filter(AuditLog.action == action_filter)
    
    if resource_type_filter:
        query = query.filter(AuditLog.resource_type == resource_type_filter)
    
    if resource_id_filter is not None:
        query = query.filter(AuditLog.resource_id == resource_id_filter)
    
    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    query = query.limit(limit).offset(offset)
    
    return query.all()
