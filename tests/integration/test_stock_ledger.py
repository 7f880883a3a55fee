"""Integration tests for warehouse stock adjustments and physical counts."""

import pytest
from decimal import Decimal

from app.exceptions import NotFoundError, BusinessLogicError
from app.models import Product, WarehouseStock, AuditLog, AuditAction
from app.services.stock_service import (
    adjust_stock, get_stock, set_stock, list_oversold, recompute_product_stock
)


class TestAdjustStock:

    def test_creates_row_on_first_movement(self, session, tenant1, warehouse1):
        product = Product(tenant_id=tenant1.id, name='Cable', sku='CB-1', price=Decimal('5'))
        session.add(product)
        session.commit()

        assert get_stock(session, tenant1.id, product.id, warehouse1.id) == Decimal('0')
        new_stock = adjust_stock(session, tenant1.id, product.id, warehouse1.id, Decimal('2.5'))

        assert new_stock == Decimal('2.5')
        rows = session.query(WarehouseStock).filter(WarehouseStock.product_id == product.id).all()
        assert len(rows) == 1

    def test_increments_accumulate(self, session, tenant1, warehouse1, product_a):
        adjust_stock(session, tenant1.id, product_a.id, warehouse1.id, Decimal('-0.125'))
        adjust_stock(session, tenant1.id, product_a.id, warehouse1.id, '0,5')

        assert get_stock(session, tenant1.id, product_a.id, warehouse1.id) == Decimal('10.375')

    def test_negative_stock_is_allowed(self, session, tenant1, warehouse1, product_piece):
        new_stock = adjust_stock(session, tenant1.id, product_piece.id, warehouse1.id, -8)

        assert new_stock == Decimal('-3')
        oversold = list_oversold(session, tenant1.id)
        assert [row.product_id for row in oversold] == [product_piece.id]

    def test_audited(self, session, tenant1, warehouse1, product_a):
        adjust_stock(session, tenant1.id, product_a.id, warehouse1.id, 1, user_id=1)

        entries = session.query(AuditLog).filter(
            AuditLog.tenant_id == tenant1.id,
            AuditLog.action == AuditAction.STOCK_ADJUSTED,
            AuditLog.resource_id == product_a.id
        ).all()
        # One from the fixture, one from this adjustment
        assert len(entries) == 2

    def test_invalid_delta(self, session, tenant1, warehouse1, product_a):
        with pytest.raises(BusinessLogicError):
            adjust_stock(session, tenant1.id, product_a.id, warehouse1.id, 'mucho')

    def test_foreign_product_not_found(self, session, tenant1, warehouse1, product_tenant2):
        with pytest.raises(NotFoundError):
            adjust_stock(session, tenant1.id, product_tenant2.id, warehouse1.id, 1)

    def test_foreign_warehouse_not_found(self, session, tenant1, warehouse2, product_a):
        with pytest.raises(NotFoundError):
            adjust_stock(session, tenant1.id, product_a.id, warehouse2.id, 1)


class TestSetStock:

    def test_records_variance(self, session, tenant1, warehouse1, product_a):
        result = set_stock(session, tenant1.id, product_a.id, warehouse1.id, '7.5')

        assert result['previous'] == Decimal('10')
        assert result['counted'] == Decimal('7.5')
        assert result['variance'] == Decimal('-2.5')
        assert get_stock(session, tenant1.id, product_a.id, warehouse1.id) == Decimal('7.5')

    def test_rejects_negative_count(self, session, tenant1, warehouse1, product_a):
        with pytest.raises(BusinessLogicError):
            set_stock(session, tenant1.id, product_a.id, warehouse1.id, -1)
        assert get_stock(session, tenant1.id, product_a.id, warehouse1.id) == Decimal('10')


class TestRecomputeProductStock:

    def test_sums_warehouses(self, session, tenant1, warehouse1, product_a):
        assert recompute_product_stock(session, tenant1.id, product_a.id) == Decimal('10')
        session.refresh(product_a)
        assert product_a.stock == Decimal('10')

    def test_composite_untouched(self, session, tenant1, composite):
        assert recompute_product_stock(session, tenant1.id, composite.id) == Decimal('7')
