"""Warehouse Stock model."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class WarehouseStock(Base):
    """
    Warehouse Stock - authoritative quantity per (tenant, product, warehouse).
    
    Created by the first movement, never deleted (only zeroed). Negative
    values mean oversold and are allowed.
    """
    
    __tablename__ = 'warehouse_stock'
    __table_args__ = (
        UniqueConstraint('tenant_id', 'product_id', 'warehouse_id', name='uq_warehouse_stock_key'),
    )
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(String(36), ForeignKey('tenant.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False)
    warehouse_id = Column(BigInteger, ForeignKey('warehouse.id'), nullable=False)
    stock = Column(Numeric(12, 3), nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    
    # Relationships
    product = relationship('Product')
    warehouse = relationship('Warehouse')
    
    def __repr__(self):
        return (
            f"<WarehouseStock(product_id={self.product_id}, "
            f"warehouse_id={self.warehouse_id}, stock={self.stock})>"
        )
