"""Cash register (caja) blueprint - Multi-Tenant."""
from typing import Optional

from flask import Blueprint, request, jsonify, g, Response

from app.database import get_session
from app.exceptions import BusinessLogicError
from app.middleware import require_tenant
from app.models import CashRegister, CashTransaction
from app.services.cash_register_service import (
    get_cash_register_summary, open_cash_register, close_cash_register,
    record_cash_transaction, list_cash_register_closures, list_cash_transactions
)

cash_register_bp = Blueprint('cash_register', __name__, url_prefix='/cash-register')


def _parse_int(value, field: str) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        raise BusinessLogicError(f'{field} inválido: {value!r}')


def _register_to_dict(register: CashRegister) -> dict:
    return {
        'id': register.id,
        'name': register.name,
        'warehouse_id': register.warehouse_id,
        'user_id': register.user_id,
        'status': register.status.value,
        'opening_amount': register.opening_amount,
        'opened_at': register.opened_at.isoformat() if register.opened_at else None,
        'closed_at': register.closed_at.isoformat() if register.closed_at else None,
        'expected_amount': register.expected_amount,
        'closing_amount': register.closing_amount,
        'variance': register.variance,
    }


def _transaction_to_dict(row: CashTransaction) -> dict:
    return {
        'id': row.id,
        'cash_register_id': row.cash_register_id,
        'type': row.type.value,
        'amount': row.amount,
        'reference': row.reference,
        'category': row.category,
        'description': row.description,
        'created_at': row.created_at.isoformat() if row.created_at else None,
    }


@cash_register_bp.route('/open', methods=['POST'])
@require_tenant
def open_register() -> Response:
    db_session = get_session()
    data = request.get_json(silent=True) or {}

    warehouse_id = _parse_int(data.get('warehouse_id'), 'warehouse_id')
    if warehouse_id is None:
        raise BusinessLogicError('warehouse_id es requerido')

    register = open_cash_register(
        db_session, g.tenant_id, g.user_id, warehouse_id,
        data.get('opening_amount', 0), name=data.get('name')
    )
    return jsonify(_register_to_dict(register)), 201


@cash_register_bp.route('/<int:cash_register_id>/summary', methods=['GET'])
@require_tenant
def summary(cash_register_id: int) -> Response:
    db_session = get_session()
    return jsonify(get_cash_register_summary(db_session, g.tenant_id, cash_register_id))


@cash_register_bp.route('/<int:cash_register_id>/close', methods=['POST'])
@require_tenant
def close_register(cash_register_id: int) -> Response:
    """Close the register with the counted cash; variance is reported, not corrected."""
    db_session = get_session()
    data = request.get_json(silent=True) or {}
    if data.get('counted_amount') is None:
        raise BusinessLogicError('counted_amount es requerido')

    result = close_cash_register(
        db_session, g.tenant_id, cash_register_id, data['counted_amount'], user_id=g.user_id
    )
    return jsonify(result)


@cash_register_bp.route('/<int:cash_register_id>/transactions', methods=['GET'])
@require_tenant
def transactions(cash_register_id: int) -> Response:
    db_session = get_session()
    rows = list_cash_transactions(
        db_session, g.tenant_id, cash_register_id=cash_register_id,
        tx_type=request.args.get('type') or None
    )
    return jsonify([_transaction_to_dict(row) for row in rows])


@cash_register_bp.route('/<int:cash_register_id>/transactions', methods=['POST'])
@require_tenant
def create_transaction(cash_register_id: int) -> Response:
    """Manual income, expense or withdrawal."""
    db_session = get_session()
    data = request.get_json(silent=True) or {}
    if not data.get('type'):
        raise BusinessLogicError('type es requerido')

    row = record_cash_transaction(
        db_session, g.tenant_id, cash_register_id, data['type'], data.get('amount'),
        description=data.get('description'), category=data.get('category'), user_id=g.user_id
    )
    return jsonify(_transaction_to_dict(row)), 201


@cash_register_bp.route('/closures', methods=['GET'])
@require_tenant
def closures() -> Response:
    db_session = get_session()
    registers = list_cash_register_closures(
        db_session, g.tenant_id, user_id=_parse_int(request.args.get('user_id'), 'user_id')
    )
    return jsonify([_register_to_dict(register) for register in registers])
