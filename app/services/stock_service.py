"""
Stock ledger service - Multi-Tenant.

adjust_stock() is the only primitive that changes warehouse stock. Sales
call it with negative deltas and cancellations with positive ones, so both
stay symmetric. Deltas are applied as atomic increments in the database,
never as read-modify-write.
"""
from decimal import Decimal
from typing import List, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql import func

from app.exceptions import SaasError, BusinessLogicError, NotFoundError
from app.models import Product, Warehouse, WarehouseStock, AuditAction
from app.services.concurrency import STORAGE_ERRORS, integrity_violation, lock_for_update, storage_conflict
from app.services.tenant_guard import scope_query, assert_tenant, validate_query_results, audit_log
from app.utils.number_format import to_quantity

logger = logging.getLogger(__name__)


def _get_product(session, tenant_id: str, product_id: int) -> Product:
    product = scope_query(session, Product, tenant_id).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError(f'Producto ID {product_id} no encontrado o no pertenece a su negocio')
    return assert_tenant(product, tenant_id)


def _get_warehouse(session, tenant_id: str, warehouse_id: int) -> Warehouse:
    warehouse = scope_query(session, Warehouse, tenant_id).filter(Warehouse.id == warehouse_id).first()
    if not warehouse:
        raise NotFoundError(f'Almacén ID {warehouse_id} no encontrado o no pertenece a su negocio')
    return assert_tenant(warehouse, tenant_id)


def _upsert_insert(dialect_name: str):
    """Dialect-specific INSERT supporting ON CONFLICT, or None."""
    if dialect_name == 'postgresql':
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect_name == 'sqlite':
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None


def _apply_delta(session, tenant_id: str, product_id: int, warehouse_id: int, delta: Decimal):
    """Atomically add delta to the (tenant, product, warehouse) row, creating it if absent."""
    insert = _upsert_insert(session.get_bind().dialect.name)

    if insert is not None:
        stmt = insert(WarehouseStock).values(
            tenant_id=tenant_id,
            product_id=product_id,
            warehouse_id=warehouse_id,
            stock=delta
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=['tenant_id', 'product_id', 'warehouse_id'],
            set_={
                'stock': WarehouseStock.stock + stmt.excluded.stock,
                'updated_at': func.now()
            }
        )
        session.execute(stmt)
        return

    # Generic backends: increment, insert on first movement, retry the increment if we raced
    key_filter = (
        WarehouseStock.tenant_id == tenant_id,
        WarehouseStock.product_id == product_id,
        WarehouseStock.warehouse_id == warehouse_id,
    )
    updated = session.query(WarehouseStock).filter(*key_filter).update(
        {WarehouseStock.stock: WarehouseStock.stock + delta},
        synchronize_session=False
    )
    if updated:
        return

    try:
        with session.begin_nested():
            session.add(WarehouseStock(
                tenant_id=tenant_id,
                product_id=product_id,
                warehouse_id=warehouse_id,
                stock=delta
            ))
    except IntegrityError:
        session.query(WarehouseStock).filter(*key_filter).update(
            {WarehouseStock.stock: WarehouseStock.stock + delta},
            synchronize_session=False
        )


def get_stock(session, tenant_id: str, product_id: int, warehouse_id: int) -> Decimal:
    """Current warehouse stock (0 when the row does not exist yet)."""
    value = scope_query(session, WarehouseStock, tenant_id).filter(
        WarehouseStock.product_id == product_id,
        WarehouseStock.warehouse_id == warehouse_id
    ).with_entities(WarehouseStock.stock).scalar()
    return Decimal(str(value)) if value is not None else Decimal('0')


def adjust_stock(session, tenant_id: str, product_id: int, warehouse_id: int, delta,
                 commit: bool = True, user_id: int = None) -> Decimal:
    """
    Apply a signed decimal delta to warehouse stock (tenant-scoped).

    Never rejects a delta that leaves stock negative: negative stock is an
    oversold signal, not an error.

    Args:
        session: SQLAlchemy session
        tenant_id: Tenant ID (REQUIRED for security)
        product_id: Product whose stock moves
        warehouse_id: Warehouse holding the stock
        delta: Signed quantity (Decimal, int or numeric string)
        commit: False when the caller owns the unit of work
        user_id: Acting user, for the audit trail

    Returns:
        Stock after the adjustment

    Raises:
        NotFoundError: product or warehouse not in the tenant
        TenantMismatchError: malformed tenant id
        StorageConflictError: the store rejected the write (retryable)
    """
    try:
        try:
            delta = to_quantity(delta, 'delta')
        except ValueError as e:
            raise BusinessLogicError(str(e))

        _get_product(session, tenant_id, product_id)
        _get_warehouse(session, tenant_id, warehouse_id)
        _apply_delta(session, tenant_id, product_id, warehouse_id, delta)

        if commit:
            session.commit()

    except SaasError:
        if commit:
            session.rollback()
        raise
    except IntegrityError as e:
        if commit:
            session.rollback()
        raise integrity_violation(e, 'ajustar stock') from e
    except STORAGE_ERRORS as e:
        if commit:
            session.rollback()
        raise storage_conflict(e, 'ajustar stock') from e

    new_stock = get_stock(session, tenant_id, product_id, warehouse_id)
    if new_stock < 0:
        logger.warning(
            f"[TENANT-{tenant_id}] Oversold: product {product_id} in warehouse {warehouse_id} at {new_stock}"
        )

    if commit:
        audit_log(
            AuditAction.STOCK_ADJUSTED, tenant_id,
            {'product_id': product_id, 'warehouse_id': warehouse_id, 'delta': delta, 'stock': new_stock},
            session=session, user_id=user_id, resource_type='product', resource_id=product_id
        )
    return new_stock


def set_stock(session, tenant_id: str, product_id: int, warehouse_id: int, counted,
              user_id: int = None) -> dict:
    """
    Record a physical count: move stock to the counted quantity.

    The difference is applied through adjust_stock() so counts follow the
    same increment path as sales.

    Returns:
        dict with previous, counted and variance quantities
    """
    try:
        try:
            counted = to_quantity(counted, 'conteo')
        except ValueError as e:
            raise BusinessLogicError(str(e))
        if counted < 0:
            raise BusinessLogicError('El conteo físico no puede ser negativo')

        # Serialize against concurrent counts of the same key
        lock_for_update(scope_query(session, WarehouseStock, tenant_id).filter(
            WarehouseStock.product_id == product_id,
            WarehouseStock.warehouse_id == warehouse_id
        )).first()

        previous = get_stock(session, tenant_id, product_id, warehouse_id)
        variance = counted - previous
        adjust_stock(session, tenant_id, product_id, warehouse_id, variance, commit=False)
        session.commit()

    except SaasError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        raise integrity_violation(e, 'registrar conteo') from e
    except STORAGE_ERRORS as e:
        session.rollback()
        raise storage_conflict(e, 'registrar conteo') from e

    result = {
        'product_id': product_id,
        'warehouse_id': warehouse_id,
        'previous': previous,
        'counted': counted,
        'variance': variance
    }
    audit_log(
        AuditAction.STOCK_COUNTED, tenant_id, result,
        session=session, user_id=user_id, resource_type='product', resource_id=product_id
    )
    return result


def list_oversold(session, tenant_id: str, warehouse_id: Optional[int] = None) -> List[WarehouseStock]:
    """Warehouse rows with negative stock (physical counts lagging the system)."""
    query = scope_query(session, WarehouseStock, tenant_id).filter(WarehouseStock.stock < 0)
    if warehouse_id is not None:
        query = query.filter(WarehouseStock.warehouse_id == warehouse_id)
    return validate_query_results(query.order_by(WarehouseStock.stock.asc()).all(), tenant_id)


def recompute_product_stock(session, tenant_id: str, product_id: int) -> Decimal:
    """
    Refresh the denormalized Product.stock projection from warehouse rows.

    Composite products keep whatever value they have: their availability
    lives in the components.
    """
    product = _get_product(session, tenant_id, product_id)
    if product.is_composite:
        return Decimal(str(product.stock or 0))

    total = scope_query(session, WarehouseStock, tenant_id).filter(
        WarehouseStock.product_id == product_id
    ).with_entities(func.coalesce(func.sum(WarehouseStock.stock), 0)).scalar()

    product.stock = to_quantity(total)
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise integrity_violation(e, 'recalcular stock') from e
    except STORAGE_ERRORS as e:
        session.rollback()
        raise storage_conflict(e, 'recalcular stock') from e
    return product.stock
