"""Warehouse (almacén) model."""
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK


class Warehouse(Base):
    """Warehouse - a physical stock location owned by a tenant."""
    
    __tablename__ = 'warehouse'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(String(36), ForeignKey('tenant.id'), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    address = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    tenant = relationship('Tenant')
    
    def __repr__(self):
        return f"<Warehouse(id={self.id}, name='{self.name}')>"
