"""
Sales service with transactional logic - Multi-Tenant.
Handles sale registration, stock consumption, cash ledger entries and the
split-payment integrity checks.
"""
from decimal import Decimal
from datetime import datetime
from typing import List, Dict, Any
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql import func

from app.exceptions import SaasError, BusinessLogicError, NotFoundError
from app.models import (
    Product, Sale, SaleItem, SalePayment, SaleStatus, Warehouse,
    CashRegisterStatus, CashTransactionType, PaymentMethod,
    AuditAction, normalize_payment_method, sale_reference
)
from app.services.cache_service import invalidate_cash_cache
from app.services.cash_register_service import get_cash_register, append_transaction
from app.services.composite_service import stock_moves_for
from app.services.concurrency import STORAGE_ERRORS, integrity_violation, storage_conflict
from app.services.stock_service import adjust_stock
from app.services.tenant_guard import scope_query, assert_tenant, validate_tenant_id, audit_log
from app.utils.number_format import (
    MONEY_QUANT, to_decimal, to_money, to_quantity, is_integral, within_tolerance
)

logger = logging.getLogger(__name__)


def get_sale(session, tenant_id: str, sale_id: int) -> Sale:
    """Load a sale of the tenant or raise NotFoundError."""
    sale = scope_query(session, Sale, tenant_id).filter(Sale.id == sale_id).first()
    if not sale:
        raise NotFoundError(f'Venta #{sale_id} no encontrada o no pertenece a su negocio')
    return assert_tenant(sale, tenant_id)


def _check_lines(items, payments) -> None:
    """Reject malformed item and payment entries before touching the database."""
    if not isinstance(items, list) or not isinstance(payments, list):
        raise BusinessLogicError('items y payments deben ser listas')
    for item in items:
        if not isinstance(item, dict):
            raise BusinessLogicError('Cada producto debe ser un objeto con product_id y quantity')
        if item.get('product_id') is None:
            raise BusinessLogicError('product_id es requerido')
        if item.get('quantity') is None:
            raise BusinessLogicError('quantity es requerido')
        try:
            int(item['product_id'])
        except (TypeError, ValueError):
            raise BusinessLogicError(f"product_id inválido: {item['product_id']!r}")
    for p in payments:
        if not isinstance(p, dict):
            raise BusinessLogicError('Cada pago debe ser un objeto con method y amount')


def create_sale(
    session,
    tenant_id: str,
    user_id: int,
    warehouse_id: int,
    items: List[Dict[str, Any]],
    payments: List[Dict[str, Any]],
    cash_register_id: int = None,
    tax=0,
    discount=0,
    status: SaleStatus = SaleStatus.COMPLETED,
    currency: str = 'MXN'
) -> Sale:
    """
    Register a sale with full transactional processing (tenant-scoped).

    Steps:
    1. Validate warehouse, register and products belong to the tenant
    2. Build lines (quantity * unit_price) and totals
    3. Validate payments add up to the total
    4. Create Sale, SaleItems and SalePayments
    5. Consume stock (components for composite products) via adjust_stock
    6. Append the VENTA-{id} cash row for the cash leg
    7. Commit

    Args:
        items: [{'product_id', 'quantity', 'unit_price' (optional, defaults to product price)}]
        payments: [{'method', 'amount', 'currency'?, 'exchange_rate'?, 'reference'?}]

    Returns:
        The committed Sale

    Raises:
        BusinessLogicError: For validation errors
        NotFoundError: Product/warehouse/register not in the tenant
        UnresolvedComponentError: Broken composite definition
        StorageConflictError: Store rejected the unit of work (retryable)
    """
    validate_tenant_id(tenant_id)
    if not items:
        raise BusinessLogicError('La venta no tiene productos')
    _check_lines(items, payments)
    if status == SaleStatus.CANCELLED:
        raise BusinessLogicError('Una venta no puede crearse cancelada')

    try:
        # 1. Ownership checks
        warehouse = scope_query(session, Warehouse, tenant_id).filter(Warehouse.id == warehouse_id).first()
        if not warehouse:
            raise NotFoundError(f'Almacén ID {warehouse_id} no encontrado o no pertenece a su negocio')

        register = None
        if cash_register_id is not None:
            register = get_cash_register(session, tenant_id, cash_register_id)
            if register.status != CashRegisterStatus.OPEN:
                raise BusinessLogicError(f'La caja #{cash_register_id} está cerrada', status_code=409)

        product_ids = {int(item['product_id']) for item in items}
        products = {
            p.id: p for p in scope_query(session, Product, tenant_id).filter(
                Product.id.in_(product_ids)
            ).all()
        }
        if len(products) != len(product_ids):
            raise NotFoundError('Uno o más productos no encontrados o no pertenecen a su negocio')

        # 2. Lines and totals
        lines = []
        subtotal = Decimal('0.00')
        for item in items:
            product = products[int(item['product_id'])]
            try:
                quantity = to_quantity(item['quantity'])
                unit_price = to_money(item.get('unit_price', product.price), 'precio')
            except ValueError as e:
                raise BusinessLogicError(str(e))
            if quantity <= 0:
                raise BusinessLogicError('La cantidad debe ser mayor a 0')
            if not product.active:
                raise BusinessLogicError(f'El producto "{product.name}" no está activo')
            if not product.allow_decimals and not is_integral(quantity):
                raise BusinessLogicError(f'El producto "{product.name}" no admite cantidades decimales')

            line_total = (quantity * unit_price).quantize(MONEY_QUANT)
            lines.append((product, quantity, unit_price, line_total))
            subtotal += line_total

        try:
            tax = to_money(tax, 'impuesto')
            discount = to_money(discount, 'descuento')
        except ValueError as e:
            raise BusinessLogicError(str(e))
        total = subtotal + tax - discount
        if total < 0:
            raise BusinessLogicError('El total de la venta no puede ser negativo')

        # 3. Payments
        if not payments:
            raise BusinessLogicError('La venta no tiene pagos')
        payment_rows = []
        for p in payments:
            try:
                method = normalize_payment_method(p.get('method'))
                amount = to_money(p.get('amount'))
                exchange_rate = to_decimal(p.get('exchange_rate', '1'), 'tipo de cambio')
            except ValueError as e:
                raise BusinessLogicError(str(e))
            if amount <= 0:
                raise BusinessLogicError('El monto de cada pago debe ser mayor a 0')
            if exchange_rate <= 0:
                raise BusinessLogicError('El tipo de cambio debe ser mayor a 0')
            payment_rows.append((method, amount, exchange_rate, p))

        payments_total = sum((amount for _, amount, _, _ in payment_rows), Decimal('0.00'))
        if payments_total != total:
            raise BusinessLogicError(
                f'La suma de pagos (${payments_total}) no coincide con el total (${total})'
            )

        # 4. Sale, items and payments
        sale = Sale(
            tenant_id=tenant_id,
            warehouse_id=warehouse_id,
            cash_register_id=cash_register_id,
            user_id=user_id,
            status=status,
            subtotal=subtotal,
            tax=tax,
            discount=discount,
            total=total,
            payment_method=payment_rows[0][0] if len(payment_rows) == 1 else 'MIXED',
            created_at=datetime.now()
        )
        session.add(sale)
        session.flush()

        for product, quantity, unit_price, line_total in lines:
            session.add(SaleItem(
                tenant_id=tenant_id,
                sale_id=sale.id,
                product_id=product.id,
                quantity=quantity,
                unit_price=unit_price,
                total=line_total
            ))

        cash_total = Decimal('0.00')
        for method, amount, exchange_rate, p in payment_rows:
            session.add(SalePayment(
                tenant_id=tenant_id,
                sale_id=sale.id,
                payment_method=method,
                amount=amount,
                currency=p.get('currency', currency),
                exchange_rate=exchange_rate,
                reference=p.get('reference')
            ))
            if method == PaymentMethod.CASH.value:
                cash_total += amount
        session.flush()

        # 5. Stock consumption, mirrored by the cancellation workflow
        for product, quantity, _, _ in lines:
            for move_product_id, move_qty in stock_moves_for(session, tenant_id, product.id, quantity):
                adjust_stock(session, tenant_id, move_product_id, warehouse_id, -move_qty, commit=False)

        # 6. Legacy cash row for the cash leg (not used by the balance fold)
        if register is not None and cash_total > 0:
            append_transaction(
                session, tenant_id, register, CashTransactionType.SALE, cash_total,
                reference=sale_reference(sale.id),
                description=f'Venta efectivo #{sale.id}',
                user_id=user_id
            )

        session.commit()

    except SaasError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        raise integrity_violation(e, 'registrar venta') from e
    except STORAGE_ERRORS as e:
        session.rollback()
        raise storage_conflict(e, 'registrar venta') from e
    except Exception:
        # Unexpected failure mid-way: nothing may stay applied
        session.rollback()
        raise

    if cash_register_id is not None:
        invalidate_cash_cache(tenant_id)
    audit_log(
        AuditAction.SALE_CREATED, tenant_id,
        {'total': total, 'warehouse_id': warehouse_id, 'cash_register_id': cash_register_id},
        session=session, user_id=user_id, resource_type='sale', resource_id=sale.id
    )
    return sale


def complete_sale(session, tenant_id: str, sale_id: int) -> Sale:
    """Transition a pending sale to completed."""
    try:
        updated = scope_query(session, Sale, tenant_id).filter(
            Sale.id == sale_id,
            Sale.status == SaleStatus.PENDING
        ).update({Sale.status: SaleStatus.COMPLETED}, synchronize_session=False)
        if not updated:
            sale = get_sale(session, tenant_id, sale_id)
            raise BusinessLogicError(
                f'La venta #{sale_id} está {sale.status.value} y no puede completarse',
                status_code=409
            )
        session.commit()
    except SaasError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        raise integrity_violation(e, 'completar venta') from e
    except STORAGE_ERRORS as e:
        session.rollback()
        raise storage_conflict(e, 'completar venta') from e
    return get_sale(session, tenant_id, sale_id)


def find_payment_mismatches(session, tenant_id: str, tolerance=MONEY_QUANT) -> List[Dict[str, Any]]:
    """
    Sales whose SalePayment amounts do not add up to the total.

    Sales with no payments at all are reported with payments_total 0.
    """
    paid = scope_query(session, SalePayment, tenant_id).with_entities(
        SalePayment.sale_id.label('sale_id'),
        func.sum(SalePayment.amount).label('paid')
    ).group_by(SalePayment.sale_id).subquery()

    rows = scope_query(session, Sale, tenant_id).outerjoin(
        paid, paid.c.sale_id == Sale.id
    ).with_entities(Sale.id, Sale.total, paid.c.paid).order_by(Sale.id).all()

    mismatches = []
    for sale_id, total, paid_total in rows:
        paid_total = to_money(paid_total if paid_total is not None else 0)
        if not within_tolerance(paid_total, total, tolerance):
            mismatches.append({
                'sale_id': sale_id,
                'total': to_money(total),
                'payments_total': paid_total,
                'difference': paid_total - to_money(total)
            })
    return mismatches


def find_subtotal_mismatches(session, tenant_id: str, tolerance=MONEY_QUANT) -> List[Dict[str, Any]]:
    """Sales whose item totals do not add up to the subtotal."""
    items = scope_query(session, SaleItem, tenant_id).with_entities(
        SaleItem.sale_id.label('sale_id'),
        func.sum(SaleItem.total).label('items_total')
    ).group_by(SaleItem.sale_id).subquery()

    rows = scope_query(session, Sale, tenant_id).outerjoin(
        items, items.c.sale_id == Sale.id
    ).with_entities(Sale.id, Sale.subtotal, items.c.items_total).order_by(Sale.id).all()

    mismatches = []
    for sale_id, subtotal, items_total in rows:
        items_total = to_money(items_total if items_total is not None else 0)
        if not within_tolerance(items_total, subtotal, tolerance):
            mismatches.append({
                'sale_id': sale_id,
                'subtotal': to_money(subtotal),
                'items_total': items_total,
                'difference': items_total - to_money(subtotal)
            })
    return mismatches
