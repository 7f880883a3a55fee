"""Inventory blueprint: stock adjustments, physical counts and oversold report."""
from typing import Optional

from flask import Blueprint, request, jsonify, g, Response

from app.database import get_session
from app.exceptions import BusinessLogicError
from app.middleware import require_tenant
from app.services.stock_service import adjust_stock, set_stock, list_oversold

inventory_bp = Blueprint('inventory', __name__, url_prefix='/inventory')


def _require_int(data: dict, field: str) -> int:
    value = data.get(field)
    if value is None or value == '':
        raise BusinessLogicError(f'{field} es requerido')
    try:
        return int(value)
    except (ValueError, TypeError):
        raise BusinessLogicError(f'{field} inválido: {value!r}')


def _optional_int(value, field: str) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        raise BusinessLogicError(f'{field} inválido: {value!r}')


@inventory_bp.route('/adjust', methods=['POST'])
@require_tenant
def adjust() -> Response:
    """Apply a signed delta to a product's stock in a warehouse."""
    db_session = get_session()
    data = request.get_json(silent=True) or {}
    product_id = _require_int(data, 'product_id')
    warehouse_id = _require_int(data, 'warehouse_id')
    if data.get('delta') is None:
        raise BusinessLogicError('delta es requerido')

    stock = adjust_stock(
        db_session, g.tenant_id, product_id, warehouse_id, data['delta'], user_id=g.user_id
    )
    return jsonify({'product_id': product_id, 'warehouse_id': warehouse_id, 'stock': stock})


@inventory_bp.route('/count', methods=['POST'])
@require_tenant
def count() -> Response:
    """Record a physical count for one product in one warehouse."""
    db_session = get_session()
    data = request.get_json(silent=True) or {}
    product_id = _require_int(data, 'product_id')
    warehouse_id = _require_int(data, 'warehouse_id')
    if data.get('counted') is None:
        raise BusinessLogicError('counted es requerido')

    result = set_stock(
        db_session, g.tenant_id, product_id, warehouse_id, data['counted'], user_id=g.user_id
    )
    return jsonify(result)


@inventory_bp.route('/oversold', methods=['GET'])
@require_tenant
def oversold() -> Response:
    db_session = get_session()
    rows = list_oversold(
        db_session, g.tenant_id,
        warehouse_id=_optional_int(request.args.get('warehouse_id'), 'warehouse_id')
    )
    return jsonify([
        {'product_id': row.product_id, 'warehouse_id': row.warehouse_id, 'stock': row.stock}
        for row in rows
    ])
