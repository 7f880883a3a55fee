"""Product model."""
from sqlalchemy import Column, String, Numeric, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class Product(Base):
    """Product (producto simple o conjunto)."""
    
    __tablename__ = 'product'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'sku', name='uq_product_tenant_sku'),
    )
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(String(36), ForeignKey('tenant.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    sku = Column(String(64), nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    cost = Column(Numeric(10, 2), nullable=True)
    
    # Composite products consume component stock instead of their own
    is_composite = Column(Boolean, nullable=False, default=False)
    
    # Denormalized projection of warehouse_stock; informational only
    stock = Column(Numeric(12, 3), nullable=False, default=0)
    
    unit_type = Column(String(20), nullable=False, default='piece')  # piece, kg, gram, liter, ml, meter
    allow_decimals = Column(Boolean, nullable=False, default=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    tenant = relationship('Tenant')
    components = relationship(
        'ProductComponent',
        foreign_keys='ProductComponent.parent_product_id',
        back_populates='parent',
        cascade='all, delete-orphan'
    )
    
    def __repr__(self):
        return f"<Product(id={self.id}, sku='{self.sku}', composite={self.is_composite})>"
