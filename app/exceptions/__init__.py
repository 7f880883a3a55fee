"""Custom exceptions for the cash-session and reconciliation engine."""

class SaasError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        rv['error'] = type(self).__name__
        return rv

class BusinessLogicError(SaasError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(SaasError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class TenantMismatchError(SaasError):
    """A record is missing, malformed or foreign to the caller's tenant. Never retried."""
    def __init__(self, message="Tenant mismatch", payload=None):
        super().__init__(message, 403, payload)

class AlreadyCancelledError(BusinessLogicError):
    """The sale was already cancelled; callers need no further action."""
    def __init__(self, sale_id, payload=None):
        self.sale_id = sale_id
        super().__init__(f'La venta #{sale_id} ya está cancelada', status_code=409, payload=payload)

class UnresolvedComponentError(SaasError):
    """A composite product references a component that cannot be resolved in the tenant."""
    def __init__(self, product_id, component_product_id, reason='no encontrado'):
        self.product_id = product_id
        self.component_product_id = component_product_id
        if component_product_id is None:
            message = f'El producto {product_id} no se puede resolver: {reason}'
        else:
            message = (
                f'Componente {component_product_id} del producto {product_id} '
                f'no se puede resolver: {reason}'
            )
        super().__init__(message, 422)

class StorageConflictError(SaasError):
    """Concurrent modification or transaction failure; the whole operation may be retried."""
    def __init__(self, message="Conflicto de concurrencia, intente de nuevo", payload=None):
        super().__init__(message, 409, payload)
