"""
Multi-tenant data isolation guard.

Every service reads through scope_query() and checks loaded records with
assert_tenant() before mutating them.
"""
import json
import logging
import re

from app.exceptions import TenantMismatchError

logger = logging.getLogger(__name__)

TENANT_ID_REGEX = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$',
    re.IGNORECASE
)


def is_valid_tenant_id(tenant_id) -> bool:
    """Check the identifier shape without raising."""
    return isinstance(tenant_id, str) and bool(TENANT_ID_REGEX.match(tenant_id))


def validate_tenant_id(tenant_id) -> str:
    """
    Validate tenant ID format.
    
    Returns:
        The tenant id unchanged
    
    Raises:
        TenantMismatchError: If the id is missing or malformed
    """
    if not tenant_id:
        raise TenantMismatchError('tenant_id es requerido')
    if not is_valid_tenant_id(tenant_id):
        raise TenantMismatchError(f'Formato de tenant_id inválido: {tenant_id!r}')
    return tenant_id


def assert_tenant(record, expected_tenant_id: str):
    """
    Ensure a loaded record carries the caller's tenant.
    
    Raises:
        TenantMismatchError: If record.tenant_id is absent, malformed or differs
    """
    validate_tenant_id(expected_tenant_id)
    
    record_tenant_id = getattr(record, 'tenant_id', None)
    if not record_tenant_id:
        raise TenantMismatchError(
            f'{type(record).__name__} no tiene tenant_id'
        )
    if not is_valid_tenant_id(record_tenant_id):
        raise TenantMismatchError(
            f'{type(record).__name__} tiene un tenant_id inválido'
        )
    if record_tenant_id != expected_tenant_id:
        logger.error(
            f"[TENANT-{expected_tenant_id}] Tenant mismatch on {type(record).__name__} "
            f"id={getattr(record, 'id', None)}"
        )
        raise TenantMismatchError(
            f'Tenant ID mismatch: expected {expected_tenant_id}, got {record_tenant_id}'
        )
    return record


def scope_query(session, model, tenant_id: str):
    """Query on model already filtered by tenant (every read path starts here)."""
    validate_tenant_id(tenant_id)
    return session.query(model).filter(model.tenant_id == tenant_id)


def validate_query_results(results, expected_tenant_id: str):
    """
    Validate that query results belong to the expected tenant.
    
    Raises:
        TenantMismatchError: If any row belongs to another tenant
    """
    leaked = [
        row for row in results
        if getattr(row, 'tenant_id', None) and row.tenant_id != expected_tenant_id
    ]
    if leaked:
        logger.error(
            f"[TENANT-{expected_tenant_id}] Data leak detected! "
            f"Found {len(leaked)} records from other tenants"
        )
        raise TenantMismatchError('Violación de aislamiento de datos detectada')
    return results


def audit_log(operation, tenant_id: str, details: dict = None, session=None,
              user_id: int = None, resource_type: str = None, resource_id: int = None):
    """
    Record a tenant-scoped mutation for later audit.
    
    Logs the operation and, when a session is given, persists an AuditLog row
    in its own commit. Never raises: failures are logged and the business
    operation is not affected.
    """
    operation_name = getattr(operation, 'value', operation)
    try:
        logger.info(
            f"[TENANT-{tenant_id}] {operation_name} "
            f"{json.dumps(details, default=str) if details else ''}"
        )
    except (TypeError, ValueError):
        logger.info(f"[TENANT-{tenant_id}] {operation_name}")
    
    if session is None:
        return
    
    try:
        from app.services.audit_service import log_action
        log_action(
            session,
            operation,
            tenant_id=tenant_id,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details
        )
        session.commit()
    except Exception as e:
        # Audit failures must not break business logic
        session.rollback()
        logger.error(f"[TENANT-{tenant_id}] Failed to create audit log for {operation_name}: {e}")
