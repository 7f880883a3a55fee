"""Product Component model - one line of a composite product's recipe."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class ProductComponent(Base):
    """
    Product Component (componente de un conjunto).
    
    quantity is consumed per one unit of the parent. The component itself
    must be a simple product (single-level containment).
    """
    
    __tablename__ = 'product_component'
    __table_args__ = (
        UniqueConstraint('parent_product_id', 'component_product_id', name='uq_parent_component'),
    )
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(String(36), ForeignKey('tenant.id'), nullable=False, index=True)
    parent_product_id = Column(BigInteger, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    component_product_id = Column(BigInteger, ForeignKey('product.id', ondelete='CASCADE'), nullable=False)
    quantity = Column(Numeric(10, 3), nullable=False, default=1)
    cost = Column(Numeric(10, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    parent = relationship('Product', foreign_keys=[parent_product_id], back_populates='components')
    component = relationship('Product', foreign_keys=[component_product_id])
    
    def __repr__(self):
        return (
            f"<ProductComponent(parent={self.parent_product_id}, "
            f"component={self.component_product_id}, qty={self.quantity})>"
        )
