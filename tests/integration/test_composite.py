"""Integration tests for composite product resolution."""

import pytest
from decimal import Decimal

from app.exceptions import BusinessLogicError, NotFoundError, UnresolvedComponentError
from app.models import Product, ProductComponent, Sale, WarehouseStock
from app.services.composite_service import (
    resolve, expand, stock_moves_for, add_component, get_composite_cost,
    SimpleProduct, CompositeProduct
)


def _composite(session, tenant_id, sku='KIT-X'):
    product = Product(tenant_id=tenant_id, name='Kit X', sku=sku, price=Decimal('1'), is_composite=True)
    session.add(product)
    session.commit()
    return product


class TestResolve:

    def test_simple(self, session, tenant1, product_a):
        assert resolve(session, tenant1.id, product_a.id) == SimpleProduct(product_a.id)

    def test_composite_one_level(self, session, tenant1, composite, product_a, product_b):
        resolved = resolve(session, tenant1.id, composite.id)

        assert isinstance(resolved, CompositeProduct)
        assert [(c.product_id, c.quantity) for c in resolved.components] == [
            (product_a.id, Decimal('2')),
            (product_b.id, Decimal('0.5')),
        ]

    def test_missing_parent(self, session, tenant1):
        with pytest.raises(NotFoundError):
            resolve(session, tenant1.id, 999)

    def test_foreign_component_is_unresolved(self, session, tenant1, product_tenant2):
        kit = _composite(session, tenant1.id)
        session.add(ProductComponent(tenant_id=tenant1.id, parent_product_id=kit.id,
                                     component_product_id=product_tenant2.id, quantity=Decimal('1')))
        session.commit()

        with pytest.raises(UnresolvedComponentError) as exc_info:
            resolve(session, tenant1.id, kit.id)
        assert exc_info.value.component_product_id == product_tenant2.id

    def test_nested_composite_is_unresolved(self, session, tenant1, composite):
        outer = _composite(session, tenant1.id, sku='KIT-OUTER')
        session.add(ProductComponent(tenant_id=tenant1.id, parent_product_id=outer.id,
                                     component_product_id=composite.id, quantity=Decimal('1')))
        session.commit()

        with pytest.raises(UnresolvedComponentError):
            expand(session, tenant1.id, outer.id, 1)

    def test_self_reference_is_unresolved(self, session, tenant1):
        kit = _composite(session, tenant1.id)
        session.add(ProductComponent(tenant_id=tenant1.id, parent_product_id=kit.id,
                                     component_product_id=kit.id, quantity=Decimal('1')))
        session.commit()

        with pytest.raises(UnresolvedComponentError):
            resolve(session, tenant1.id, kit.id)


class TestExpand:

    def test_simple_expands_to_nothing(self, session, tenant1, product_a):
        assert expand(session, tenant1.id, product_a.id, 3) == []
        assert stock_moves_for(session, tenant1.id, product_a.id, 3) == [(product_a.id, Decimal('3'))]

    def test_multiplies_by_sale_quantity(self, session, tenant1, composite, product_a, product_b):
        assert expand(session, tenant1.id, composite.id, '0.125') == [
            (product_a.id, Decimal('0.250')),
            (product_b.id, Decimal('0.063')),
        ]

    def test_composite_without_components_is_unresolved(self, session, tenant1, warehouse1, make_sale):
        kit = _composite(session, tenant1.id)
        kit_id = kit.id

        with pytest.raises(UnresolvedComponentError):
            stock_moves_for(session, tenant1.id, kit_id, 1)

        with pytest.raises(UnresolvedComponentError):
            make_sale(
                [{'product_id': kit_id, 'quantity': 1}],
                [{'method': 'CASH', 'amount': '1.00'}]
            )

        assert session.query(WarehouseStock).filter(WarehouseStock.product_id == kit_id).count() == 0
        assert session.query(Sale).count() == 0


class TestAddComponent:

    def test_adds(self, session, tenant1, product_a, product_piece):
        kit = _composite(session, tenant1.id)
        add_component(session, tenant1.id, kit.id, product_a.id, '1.5', cost='6.00')
        add_component(session, tenant1.id, kit.id, product_piece.id, 1)

        moves = expand(session, tenant1.id, kit.id, 2)
        assert moves == [(product_a.id, Decimal('3.000')), (product_piece.id, Decimal('2.000'))]

    def test_rejects_composite_component(self, session, tenant1, composite):
        kit = _composite(session, tenant1.id)
        with pytest.raises(BusinessLogicError):
            add_component(session, tenant1.id, kit.id, composite.id, 1)

    def test_rejects_self(self, session, tenant1):
        kit = _composite(session, tenant1.id)
        with pytest.raises(BusinessLogicError):
            add_component(session, tenant1.id, kit.id, kit.id, 1)

    def test_rejects_simple_parent(self, session, tenant1, product_a, product_b):
        with pytest.raises(BusinessLogicError):
            add_component(session, tenant1.id, product_a.id, product_b.id, 1)

    def test_rejects_duplicate(self, session, tenant1, composite, product_a):
        with pytest.raises(BusinessLogicError):
            add_component(session, tenant1.id, composite.id, product_a.id, 1)

    def test_rejects_non_positive_quantity(self, session, tenant1, product_a):
        kit = _composite(session, tenant1.id)
        with pytest.raises(BusinessLogicError):
            add_component(session, tenant1.id, kit.id, product_a.id, 0)

    def test_rejects_foreign_component(self, session, tenant1, product_tenant2):
        kit = _composite(session, tenant1.id)
        with pytest.raises(NotFoundError):
            add_component(session, tenant1.id, kit.id, product_tenant2.id, 1)


def test_composite_cost(session, tenant1, composite):
    # 2 x 6.00 + 0.5 x 2.50
    assert get_composite_cost(session, tenant1.id, composite.id) == Decimal('13.25')
