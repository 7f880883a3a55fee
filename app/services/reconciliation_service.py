"""
Sale cancellation with stock and cash reversal - Multi-Tenant.

Cancelling is a tombstone: the sale keeps its rows and moves to
`cancelled`. Stock comes back through the same adjust_stock() primitive the
sale used, decomposed into components for composite products, and each
cash payment is offset by a new `sale_cancellation` row. Everything
commits together or not at all.
"""
from datetime import datetime
from decimal import Decimal
import logging

from sqlalchemy.exc import IntegrityError

from app.exceptions import SaasError, AlreadyCancelledError, NotFoundError
from app.models import (
    Sale, SaleItem, SalePayment, SaleStatus, CashTransactionType,
    AuditAction, cancel_reference
)
from app.services.cache_service import invalidate_cash_cache
from app.services.cash_register_service import get_cash_register, append_transaction
from app.services.composite_service import stock_moves_for
from app.services.concurrency import (
    STORAGE_ERRORS, integrity_violation, lock_for_update, storage_conflict, run_with_retry
)
from app.services.stock_service import adjust_stock
from app.services.tenant_guard import scope_query, assert_tenant, validate_tenant_id, audit_log

logger = logging.getLogger(__name__)


def cancel_sale(session, tenant_id: str, sale_id: int, user_id: int = None) -> dict:
    """
    Cancel a sale and reverse its stock and cash effects (tenant-scoped).

    Steps:
    1. Lock the sale; reject if missing, foreign or already cancelled
    2. Load its items
    3. Restore stock per item (components for composite products)
    4. Offset each cash payment with a CANCEL-{id} row on the sale's register
    5. Flip status with a conditional update (the race guard)
    6. Commit; any failure rolls back every step

    Args:
        session: SQLAlchemy session
        tenant_id: Tenant ID (REQUIRED for security)
        sale_id: Sale to cancel
        user_id: Acting user, for the ledger and audit trail

    Returns:
        dict with sale_id, status, restored stock moves and reversed cash

    Raises:
        NotFoundError: sale absent or owned by another tenant
        AlreadyCancelledError: sale already cancelled (nothing changed)
        UnresolvedComponentError: broken composite definition (nothing changed)
        StorageConflictError: store failure (nothing changed, retryable)
    """
    validate_tenant_id(tenant_id)

    try:
        # Step 1: Lock sale row; the tenant filter keeps foreign sales invisible
        sale = lock_for_update(
            scope_query(session, Sale, tenant_id).filter(Sale.id == sale_id)
        ).first()
        if not sale:
            raise NotFoundError(f'Venta #{sale_id} no encontrada o no pertenece a su negocio')
        assert_tenant(sale, tenant_id)

        if sale.status == SaleStatus.CANCELLED:
            raise AlreadyCancelledError(sale_id)

        # Step 2: Items
        items = scope_query(session, SaleItem, tenant_id).filter(
            SaleItem.sale_id == sale.id
        ).order_by(SaleItem.id).all()

        # Step 3: Stock back into the sale's warehouse
        restored = []
        for item in items:
            for product_id, quantity in stock_moves_for(session, tenant_id, item.product_id, item.quantity):
                new_stock = adjust_stock(
                    session, tenant_id, product_id, sale.warehouse_id, quantity, commit=False
                )
                restored.append({
                    'sale_item_id': item.id,
                    'product_id': product_id,
                    'quantity': quantity,
                    'new_stock': new_stock
                })

        # Step 4: Cash reversal, only for the cash leg and only if a register was involved
        reversed_cash = Decimal('0.00')
        if sale.cash_register_id is not None:
            payments = scope_query(session, SalePayment, tenant_id).filter(
                SalePayment.sale_id == sale.id
            ).order_by(SalePayment.id).all()
            cash_payments = [p for p in payments if p.is_cash]

            if cash_payments:
                register = get_cash_register(session, tenant_id, sale.cash_register_id)
                for payment in cash_payments:
                    row = append_transaction(
                        session, tenant_id, register,
                        CashTransactionType.SALE_CANCELLATION, payment.amount,
                        reference=cancel_reference(sale.id),
                        description=f'Cancelación de venta #{sale.id}',
                        user_id=user_id
                    )
                    reversed_cash += -row.amount

        # Step 5: Conditional status flip; zero rows means someone else cancelled first
        flipped = scope_query(session, Sale, tenant_id).filter(
            Sale.id == sale.id,
            Sale.status != SaleStatus.CANCELLED
        ).update({
            Sale.status: SaleStatus.CANCELLED,
            Sale.cancelled_at: datetime.now()
        }, synchronize_session=False)
        if not flipped:
            raise AlreadyCancelledError(sale_id)

        # Step 6: One commit for everything
        session.commit()

    except SaasError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        raise integrity_violation(e, f'cancelar la venta #{sale_id}') from e
    except STORAGE_ERRORS as e:
        session.rollback()
        raise storage_conflict(e, f'cancelar la venta #{sale_id}') from e
    except Exception:
        # Unexpected failure mid-way: nothing may stay applied
        session.rollback()
        raise

    if reversed_cash:
        invalidate_cash_cache(tenant_id)

    result = {
        'sale_id': sale_id,
        'status': SaleStatus.CANCELLED.value,
        'restored': restored,
        'reversed_cash': reversed_cash
    }
    audit_log(
        AuditAction.SALE_CANCELLED, tenant_id,
        {'restored': len(restored), 'reversed_cash': reversed_cash},
        session=session, user_id=user_id, resource_type='sale', resource_id=sale_id
    )
    return result


def cancel_sale_with_retry(session, tenant_id: str, sale_id: int, user_id: int = None,
                           attempts: int = 3) -> dict:
    """cancel_sale() re-run from step 1 on StorageConflictError."""
    return run_with_retry(
        lambda: cancel_sale(session, tenant_id, sale_id, user_id=user_id),
        session=session,
        attempts=attempts
    )
