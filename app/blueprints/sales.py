"""Sales blueprint: registration, cancellation and integrity checks - Multi-Tenant."""
from decimal import Decimal
from typing import Optional

from flask import Blueprint, request, jsonify, current_app, g, Response

from app.database import get_session
from app.exceptions import BusinessLogicError
from app.middleware import require_tenant
from app.models import Sale, SaleStatus
from app.services.reconciliation_service import cancel_sale_with_retry
from app.services.sales_service import (
    create_sale, get_sale, find_payment_mismatches, find_subtotal_mismatches
)
from app.utils.number_format import to_money

sales_bp = Blueprint('sales', __name__, url_prefix='/sales')


def _parse_int(value, field: str) -> Optional[int]:
    """Parse an optional integer field of a JSON body."""
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        raise BusinessLogicError(f'{field} inválido: {value!r}')


def _sale_to_dict(sale: Sale) -> dict:
    return {
        'id': sale.id,
        'status': sale.status.value,
        'warehouse_id': sale.warehouse_id,
        'cash_register_id': sale.cash_register_id,
        'subtotal': sale.subtotal,
        'tax': sale.tax,
        'discount': sale.discount,
        'total': sale.total,
        'payment_method': sale.payment_method,
        'created_at': sale.created_at.isoformat() if sale.created_at else None,
        'cancelled_at': sale.cancelled_at.isoformat() if sale.cancelled_at else None,
        'items': [
            {
                'product_id': item.product_id,
                'quantity': item.quantity,
                'unit_price': item.unit_price,
                'total': item.total,
            }
            for item in sale.items
        ],
        'payments': [
            {
                'method': payment.payment_method,
                'amount': payment.amount,
                'currency': payment.currency,
            }
            for payment in sale.payments
        ],
    }


@sales_bp.route('', methods=['POST'])
@require_tenant
def register_sale() -> Response:
    """Register a sale from a JSON body with items and payments."""
    db_session = get_session()
    data = request.get_json(silent=True) or {}

    warehouse_id = _parse_int(data.get('warehouse_id'), 'warehouse_id')
    if warehouse_id is None:
        raise BusinessLogicError('warehouse_id es requerido')

    status = data.get('status', SaleStatus.COMPLETED.value)
    try:
        status = SaleStatus(status)
    except ValueError:
        raise BusinessLogicError(f'Estado de venta inválido: {status!r}')

    sale = create_sale(
        db_session,
        g.tenant_id,
        g.user_id,
        warehouse_id,
        data.get('items') or [],
        data.get('payments') or [],
        cash_register_id=_parse_int(data.get('cash_register_id'), 'cash_register_id'),
        tax=data.get('tax', 0),
        discount=data.get('discount', 0),
        status=status,
        currency=current_app.config.get('DEFAULT_CURRENCY', 'MXN')
    )
    return jsonify(_sale_to_dict(sale)), 201


@sales_bp.route('/<int:sale_id>', methods=['GET'])
@require_tenant
def sale_detail(sale_id: int) -> Response:
    """Sale with its items and payments."""
    db_session = get_session()
    return jsonify(_sale_to_dict(get_sale(db_session, g.tenant_id, sale_id)))


@sales_bp.route('/<int:sale_id>/cancel', methods=['POST'])
@require_tenant
def cancel(sale_id: int) -> Response:
    """Cancel a sale, restoring stock and reversing its cash payments."""
    db_session = get_session()
    result = cancel_sale_with_retry(
        db_session,
        g.tenant_id,
        sale_id,
        user_id=g.user_id,
        attempts=current_app.config.get('STORAGE_RETRY_ATTEMPTS', 3)
    )
    current_app.logger.info(
        f"[TENANT-{g.tenant_id}] Sale {sale_id} cancelled by user {g.user_id}"
    )
    return jsonify(result)


@sales_bp.route('/integrity', methods=['GET'])
@require_tenant
def integrity() -> Response:
    """Sales whose payments or items do not add up."""
    db_session = get_session()
    tolerance = to_money(current_app.config.get('MONEY_TOLERANCE', Decimal('0.01')))
    return jsonify({
        'payment_mismatches': find_payment_mismatches(db_session, g.tenant_id, tolerance),
        'subtotal_mismatches': find_subtotal_mismatches(db_session, g.tenant_id, tolerance),
    })
