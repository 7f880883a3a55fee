"""
Cash register (caja) service - Multi-Tenant.

Cash transactions are an append-only ledger. The register balance is
derived by fold_cash_movements(), the single formula used by the summary,
the expected balance and the closing snapshot:

    expected = opening
             + sum(cash SalePayments of the register)
             + sum(amount of income, expense, withdrawal, sale_cancellation rows)

Legacy `sale` rows are kept for traceability but never enter the fold;
cash sales are counted from SalePayments so split payments only add their
cash leg, and cancellations are offset by their `sale_cancellation` rows.
"""
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
import logging

from sqlalchemy.exc import IntegrityError

from app.exceptions import SaasError, BusinessLogicError, NotFoundError
from app.models import (
    CashRegister, CashRegisterStatus, CashTransaction, CashTransactionType,
    POSITIVE_TYPES, NEGATIVE_TYPES, Sale, SalePayment, SaleStatus, PaymentMethod, Warehouse,
    AuditAction, cancel_reference
)
from app.services.cache_service import get_cache, invalidate_cash_cache, CASH_MODULE
from app.services.concurrency import STORAGE_ERRORS, integrity_violation, lock_for_update, storage_conflict
from app.services.tenant_guard import scope_query, assert_tenant, validate_query_results, audit_log
from app.utils.number_format import to_money

logger = logging.getLogger(__name__)

MANUAL_TYPES = (
    CashTransactionType.INCOME,
    CashTransactionType.EXPENSE,
    CashTransactionType.WITHDRAWAL,
)


@dataclass(frozen=True)
class CashSummary:
    """Result of folding a register's movements. Expenses and withdrawals are magnitudes."""
    opening_amount: Decimal
    total_cash_sales: Decimal
    total_income: Decimal
    total_expenses: Decimal
    total_withdrawals: Decimal
    total_cancellations: Decimal
    expected_balance: Decimal

    def to_dict(self) -> dict:
        return asdict(self)


def fold_cash_movements(opening_amount, cash_payments: Iterable,
                        transactions: Iterable[Tuple[CashTransactionType, Decimal]]) -> CashSummary:
    """
    Fold a register's money movements into its summary.

    Args:
        opening_amount: Opening float of the register
        cash_payments: Amounts of the cash SalePayments that count for the register
        transactions: (type, signed amount) of its CashTransactions

    Returns:
        CashSummary
    """
    zero = Decimal('0.00')
    opening = to_money(opening_amount)
    payments = sum((to_money(amount) for amount in cash_payments), zero)

    signed = {t: zero for t in CashTransactionType}
    for tx_type, amount in transactions:
        signed[tx_type] += to_money(amount)

    cancellations = signed[CashTransactionType.SALE_CANCELLATION]
    expected = (
        opening
        + payments
        + signed[CashTransactionType.INCOME]
        + signed[CashTransactionType.EXPENSE]
        + signed[CashTransactionType.WITHDRAWAL]
        + cancellations
    )

    return CashSummary(
        opening_amount=opening,
        total_cash_sales=payments + cancellations,
        total_income=signed[CashTransactionType.INCOME],
        total_expenses=-signed[CashTransactionType.EXPENSE],
        total_withdrawals=-signed[CashTransactionType.WITHDRAWAL],
        total_cancellations=-cancellations,
        expected_balance=expected
    )


def signed_amount(tx_type: CashTransactionType, amount) -> Decimal:
    """Store amount with the sign convention of its type."""
    magnitude = abs(to_money(amount))
    if tx_type in NEGATIVE_TYPES:
        return -magnitude
    if tx_type in POSITIVE_TYPES:
        return magnitude
    raise BusinessLogicError(f'Tipo de movimiento sin signo definido: {tx_type}')


def _coerce_type(tx_type) -> CashTransactionType:
    if isinstance(tx_type, CashTransactionType):
        return tx_type
    try:
        return CashTransactionType(str(tx_type).lower().strip())
    except ValueError:
        raise BusinessLogicError(f'Tipo de movimiento inválido: {tx_type}')


def get_cash_register(session, tenant_id: str, cash_register_id: int, for_update: bool = False) -> CashRegister:
    """Load a register of the tenant or raise NotFoundError."""
    query = scope_query(session, CashRegister, tenant_id).filter(CashRegister.id == cash_register_id)
    if for_update:
        query = lock_for_update(query)
    register = query.first()
    if not register:
        raise NotFoundError(f'Caja #{cash_register_id} no encontrada o no pertenece a su negocio')
    return assert_tenant(register, tenant_id)


def get_open_cash_register(session, tenant_id: str, warehouse_id: int = None,
                           user_id: int = None) -> Optional[CashRegister]:
    """The open register for a warehouse and/or user, if any."""
    query = scope_query(session, CashRegister, tenant_id).filter(
        CashRegister.status == CashRegisterStatus.OPEN
    )
    if warehouse_id is not None:
        query = query.filter(CashRegister.warehouse_id == warehouse_id)
    if user_id is not None:
        query = query.filter(CashRegister.user_id == user_id)
    return query.order_by(CashRegister.opened_at.desc(), CashRegister.id.desc()).first()


def append_transaction(session, tenant_id: str, register: CashRegister, tx_type,
                       amount, reference: str = None, description: str = None,
                       category: str = None, user_id: int = None) -> CashTransaction:
    """
    Append one signed row to the register's ledger.

    Does not commit: the caller owns the unit of work.
    """
    assert_tenant(register, tenant_id)
    tx_type = _coerce_type(tx_type)
    row = CashTransaction(
        tenant_id=tenant_id,
        cash_register_id=register.id,
        user_id=user_id,
        type=tx_type,
        amount=signed_amount(tx_type, amount),
        reference=reference,
        category=category,
        description=description
    )
    session.add(row)
    session.flush()
    return row


def _counted_cash_payments(session, tenant_id: str, cash_register_id: int) -> List[Decimal]:
    """
    Cash payment amounts of the register's sales.

    Cancelled sales stay in the sum only when their CANCEL row exists on
    this register; that row is what offsets them. Sales cancelled without a
    reversal row are left out so they are not counted as cash received.
    """
    reversed_refs = {
        ref for (ref,) in scope_query(session, CashTransaction, tenant_id).filter(
            CashTransaction.cash_register_id == cash_register_id,
            CashTransaction.type == CashTransactionType.SALE_CANCELLATION
        ).with_entities(CashTransaction.reference).all()
    }

    rows = scope_query(session, SalePayment, tenant_id).join(
        Sale, Sale.id == SalePayment.sale_id
    ).filter(
        Sale.tenant_id == tenant_id,
        Sale.cash_register_id == cash_register_id,
        SalePayment.payment_method == PaymentMethod.CASH.value
    ).with_entities(SalePayment.amount, Sale.id, Sale.status).all()

    return [
        amount for amount, sale_id, status in rows
        if status != SaleStatus.CANCELLED or cancel_reference(sale_id) in reversed_refs
    ]


def _summarize(session, tenant_id: str, register: CashRegister) -> CashSummary:
    transactions = scope_query(session, CashTransaction, tenant_id).filter(
        CashTransaction.cash_register_id == register.id
    ).with_entities(CashTransaction.type, CashTransaction.amount).all()
    return fold_cash_movements(
        register.opening_amount,
        _counted_cash_payments(session, tenant_id, register.id),
        transactions
    )


def compute_expected_balance(session, tenant_id: str, cash_register_id: int) -> Decimal:
    """Expected cash in the drawer right now."""
    register = get_cash_register(session, tenant_id, cash_register_id)
    return _summarize(session, tenant_id, register).expected_balance


def get_cash_register_summary(session, tenant_id: str, cash_register_id: int) -> dict:
    """
    Summary of a register (tenant-scoped), cached per tenant.

    Returns:
        dict with opening_amount, total_cash_sales, total_income,
        total_expenses, total_withdrawals, total_cancellations,
        expected_balance, plus register status and closing snapshot.
    """
    def load():
        register = get_cash_register(session, tenant_id, cash_register_id)
        summary = _summarize(session, tenant_id, register).to_dict()
        summary.update({
            'cash_register_id': register.id,
            'status': register.status.value,
            'closing_amount': register.closing_amount,
            'variance': register.variance,
        })
        return summary

    return get_cache().memoize(tenant_id, CASH_MODULE, f'summary:{cash_register_id}', load)


def open_cash_register(session, tenant_id: str, user_id: int, warehouse_id: int,
                       opening_amount, name: str = None) -> CashRegister:
    """Open a register; only one may be open per warehouse."""
    try:
        if user_id is None:
            raise BusinessLogicError('Se requiere un usuario para abrir la caja', status_code=401)

        warehouse = scope_query(session, Warehouse, tenant_id).filter(Warehouse.id == warehouse_id).first()
        if not warehouse:
            raise NotFoundError(f'Almacén ID {warehouse_id} no encontrado o no pertenece a su negocio')

        try:
            opening_amount = to_money(opening_amount, 'monto inicial')
        except ValueError as e:
            raise BusinessLogicError(str(e))
        if opening_amount < 0:
            raise BusinessLogicError('El monto inicial no puede ser negativo')

        if get_open_cash_register(session, tenant_id, warehouse_id=warehouse_id):
            raise BusinessLogicError(f'Ya hay una caja abierta en "{warehouse.name}"', status_code=409)

        register = CashRegister(
            tenant_id=tenant_id,
            warehouse_id=warehouse_id,
            user_id=user_id,
            name=name or f'Caja {warehouse.name}',
            opening_amount=opening_amount,
            status=CashRegisterStatus.OPEN,
            opened_at=datetime.now()
        )
        session.add(register)
        session.commit()

    except SaasError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        raise integrity_violation(e, 'abrir caja') from e
    except STORAGE_ERRORS as e:
        session.rollback()
        raise storage_conflict(e, 'abrir caja') from e

    audit_log(
        AuditAction.CASH_REGISTER_OPENED, tenant_id,
        {'warehouse_id': warehouse_id, 'opening_amount': opening_amount},
        session=session, user_id=user_id, resource_type='cash_register', resource_id=register.id
    )
    return register


def record_cash_transaction(session, tenant_id: str, cash_register_id: int, tx_type, amount,
                            description: str = None, category: str = None,
                            user_id: int = None) -> CashTransaction:
    """
    Record a manual income, expense or withdrawal on an open register.

    amount is given as a positive number; it is stored signed by type.
    """
    try:
        tx_type = _coerce_type(tx_type)
        if tx_type not in MANUAL_TYPES:
            raise BusinessLogicError(f'El tipo "{tx_type.value}" no se puede registrar manualmente')

        try:
            amount = to_money(amount)
        except ValueError as e:
            raise BusinessLogicError(str(e))
        if amount <= 0:
            raise BusinessLogicError('El monto debe ser mayor a 0')

        register = get_cash_register(session, tenant_id, cash_register_id, for_update=True)
        if register.status != CashRegisterStatus.OPEN:
            raise BusinessLogicError(f'La caja #{cash_register_id} está cerrada', status_code=409)

        row = append_transaction(
            session, tenant_id, register, tx_type, amount,
            description=description, category=category, user_id=user_id
        )
        session.commit()

    except SaasError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        raise integrity_violation(e, 'registrar movimiento') from e
    except STORAGE_ERRORS as e:
        session.rollback()
        raise storage_conflict(e, 'registrar movimiento') from e

    invalidate_cash_cache(tenant_id)
    audit_log(
        AuditAction.CASH_TRANSACTION_CREATED, tenant_id,
        {'cash_register_id': cash_register_id, 'type': tx_type.value, 'amount': row.amount},
        session=session, user_id=user_id, resource_type='cash_register', resource_id=cash_register_id
    )
    return row


def close_cash_register(session, tenant_id: str, cash_register_id: int, counted_amount,
                        user_id: int = None) -> dict:
    """
    Close a register storing expected balance, counted cash and variance.

    The variance (counted - expected) is reported, never corrected.
    """
    try:
        try:
            counted_amount = to_money(counted_amount, 'monto contado')
        except ValueError as e:
            raise BusinessLogicError(str(e))
        if counted_amount < 0:
            raise BusinessLogicError('El monto contado no puede ser negativo')

        register = get_cash_register(session, tenant_id, cash_register_id, for_update=True)
        if register.status == CashRegisterStatus.CLOSED:
            raise BusinessLogicError(f'La caja #{cash_register_id} ya está cerrada', status_code=409)

        summary = _summarize(session, tenant_id, register)
        variance = counted_amount - summary.expected_balance

        closed = scope_query(session, CashRegister, tenant_id).filter(
            CashRegister.id == cash_register_id,
            CashRegister.status == CashRegisterStatus.OPEN
        ).update({
            CashRegister.status: CashRegisterStatus.CLOSED,
            CashRegister.closed_at: datetime.now(),
            CashRegister.expected_amount: summary.expected_balance,
            CashRegister.closing_amount: counted_amount,
            CashRegister.variance: variance,
        }, synchronize_session=False)
        if not closed:
            raise BusinessLogicError(f'La caja #{cash_register_id} ya está cerrada', status_code=409)

        session.commit()

    except SaasError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        raise integrity_violation(e, 'cerrar caja') from e
    except STORAGE_ERRORS as e:
        session.rollback()
        raise storage_conflict(e, 'cerrar caja') from e

    if variance != 0:
        logger.warning(
            f"[TENANT-{tenant_id}] Cash register {cash_register_id} closed with variance {variance}"
        )

    result = summary.to_dict()
    result.update({
        'cash_register_id': cash_register_id,
        'status': CashRegisterStatus.CLOSED.value,
        'closing_amount': counted_amount,
        'variance': variance,
    })
    invalidate_cash_cache(tenant_id)
    audit_log(
        AuditAction.CASH_REGISTER_CLOSED, tenant_id, result,
        session=session, user_id=user_id, resource_type='cash_register', resource_id=cash_register_id
    )
    return result


def list_cash_register_closures(session, tenant_id: str, user_id: int = None) -> List[CashRegister]:
    """Closed registers, newest first; restricted to one cashier when user_id is given."""
    query = scope_query(session, CashRegister, tenant_id).filter(
        CashRegister.status == CashRegisterStatus.CLOSED
    )
    if user_id is not None:
        query = query.filter(CashRegister.user_id == user_id)
    rows = query.order_by(CashRegister.closed_at.desc(), CashRegister.id.desc()).all()
    return validate_query_results(rows, tenant_id)


def list_cash_transactions(session, tenant_id: str, cash_register_id: int = None,
                           tx_type=None) -> List[CashTransaction]:
    """Ledger rows in insertion order, optionally filtered by register and type."""
    query = scope_query(session, CashTransaction, tenant_id)
    if cash_register_id is not None:
        query = query.filter(CashTransaction.cash_register_id == cash_register_id)
    if tx_type is not None:
        query = query.filter(CashTransaction.type == _coerce_type(tx_type))
    return validate_query_results(query.order_by(CashTransaction.id.asc()).all(), tenant_id)
