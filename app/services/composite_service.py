"""
Composite product ("conjunto") resolution - Multi-Tenant.

A composite product holds simple components only. Resolution goes exactly
one level deep; a component that is itself composite is a data-integrity
fault, never something to recurse into.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Tuple, Union
import logging

from sqlalchemy.exc import IntegrityError

from app.exceptions import SaasError, BusinessLogicError, NotFoundError, UnresolvedComponentError
from app.models import Product, ProductComponent, AuditAction
from app.services.concurrency import STORAGE_ERRORS, integrity_violation, storage_conflict
from app.services.tenant_guard import scope_query, assert_tenant, audit_log
from app.utils.number_format import to_quantity, to_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Component:
    product_id: int
    quantity: Decimal
    cost: Decimal = None


@dataclass(frozen=True)
class SimpleProduct:
    product_id: int


@dataclass(frozen=True)
class CompositeProduct:
    product_id: int
    components: List[Component] = field(default_factory=list)


ResolvedProduct = Union[SimpleProduct, CompositeProduct]


def _get_product(session, tenant_id: str, product_id: int) -> Product:
    product = scope_query(session, Product, tenant_id).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError(f'Producto ID {product_id} no encontrado o no pertenece a su negocio')
    return assert_tenant(product, tenant_id)


def resolve(session, tenant_id: str, product_id: int) -> ResolvedProduct:
    """
    Resolve a product into SimpleProduct or CompositeProduct (one level).

    Raises:
        NotFoundError: product not in the tenant
        UnresolvedComponentError: a component is missing from the tenant,
            is the product itself, or is composite
    """
    product = _get_product(session, tenant_id, product_id)
    if not product.is_composite:
        return SimpleProduct(product.id)

    rows = scope_query(session, ProductComponent, tenant_id).filter(
        ProductComponent.parent_product_id == product.id
    ).order_by(ProductComponent.id).all()

    component_ids = [row.component_product_id for row in rows]
    found = {
        p.id: p for p in scope_query(session, Product, tenant_id).filter(
            Product.id.in_(component_ids)
        ).all()
    } if component_ids else {}

    components = []
    for row in rows:
        if row.component_product_id == product.id:
            raise UnresolvedComponentError(product.id, row.component_product_id, 'referencia circular')
        component = found.get(row.component_product_id)
        if component is None:
            raise UnresolvedComponentError(product.id, row.component_product_id)
        if component.is_composite:
            raise UnresolvedComponentError(product.id, row.component_product_id, 'el componente es un conjunto')
        components.append(Component(
            product_id=component.id,
            quantity=Decimal(str(row.quantity)),
            cost=Decimal(str(row.cost)) if row.cost is not None else None
        ))

    return CompositeProduct(product.id, components)


def expand(session, tenant_id: str, product_id: int, sale_quantity) -> List[Tuple[int, Decimal]]:
    """
    Expand a product sold at sale_quantity into component stock moves.

    Returns:
        [(component_product_id, component.quantity * sale_quantity), ...];
        empty for a simple product, in which case the caller moves the
        product itself.
    """
    sale_quantity = to_quantity(sale_quantity)
    resolved = resolve(session, tenant_id, product_id)
    if isinstance(resolved, SimpleProduct):
        return []
    return [
        (component.product_id, to_quantity(component.quantity * sale_quantity))
        for component in resolved.components
    ]


def stock_moves_for(session, tenant_id: str, product_id: int, quantity) -> List[Tuple[int, Decimal]]:
    """
    Stock moves for one sold line: the product itself when simple, its
    components when composite. A composite with no components cannot move
    stock and raises UnresolvedComponentError.
    """
    quantity = to_quantity(quantity)
    resolved = resolve(session, tenant_id, product_id)
    if isinstance(resolved, SimpleProduct):
        return [(product_id, quantity)]
    if not resolved.components:
        raise UnresolvedComponentError(product_id, None, 'el conjunto no tiene componentes')
    return [
        (component.product_id, to_quantity(component.quantity * quantity))
        for component in resolved.components
    ]


def add_component(session, tenant_id: str, parent_product_id: int, component_product_id: int,
                  quantity, cost=None, user_id: int = None) -> ProductComponent:
    """
    Attach a simple component to a composite product.

    Enforces single-level containment at write time: the parent must be
    composite, the component must be simple and different from the parent.
    """
    try:
        parent = _get_product(session, tenant_id, parent_product_id)
        component = _get_product(session, tenant_id, component_product_id)

        if not parent.is_composite:
            raise BusinessLogicError(f'El producto "{parent.name}" no es un conjunto')
        if component.id == parent.id:
            raise BusinessLogicError('Un conjunto no puede contenerse a sí mismo')
        if component.is_composite:
            raise BusinessLogicError(
                f'El componente "{component.name}" es un conjunto; solo se admiten productos simples'
            )

        try:
            quantity = to_quantity(quantity)
            cost = to_money(cost, 'costo') if cost is not None else None
        except ValueError as e:
            raise BusinessLogicError(str(e))
        if quantity <= 0:
            raise BusinessLogicError('La cantidad del componente debe ser mayor a 0')

        existing = scope_query(session, ProductComponent, tenant_id).filter(
            ProductComponent.parent_product_id == parent.id,
            ProductComponent.component_product_id == component.id
        ).first()
        if existing:
            raise BusinessLogicError(f'"{component.name}" ya es componente de "{parent.name}"')

        row = ProductComponent(
            tenant_id=tenant_id,
            parent_product_id=parent.id,
            component_product_id=component.id,
            quantity=quantity,
            cost=cost
        )
        session.add(row)
        session.commit()

    except SaasError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        raise integrity_violation(e, 'agregar componente') from e
    except STORAGE_ERRORS as e:
        session.rollback()
        raise storage_conflict(e, 'agregar componente') from e

    audit_log(
        AuditAction.COMPONENT_ADDED, tenant_id,
        {'parent_product_id': parent_product_id, 'component_product_id': component_product_id, 'quantity': quantity},
        session=session, user_id=user_id, resource_type='product', resource_id=parent_product_id
    )
    return row


def get_composite_cost(session, tenant_id: str, product_id: int) -> Decimal:
    """Cost of one composite unit: sum of component cost x quantity (missing costs count as 0)."""
    resolved = resolve(session, tenant_id, product_id)
    if isinstance(resolved, SimpleProduct):
        product = _get_product(session, tenant_id, product_id)
        return to_money(product.cost or 0)
    return to_money(sum(
        ((c.cost or Decimal('0')) * c.quantity for c in resolved.components),
        Decimal('0')
    ))
