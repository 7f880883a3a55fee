"""Sale model."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK
import enum


class SaleStatus(enum.Enum):
    """Sale status enum."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Sale(Base):
    """Sale (venta). Cancellation is a tombstone: rows are never deleted."""
    
    __tablename__ = 'sale'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(String(36), ForeignKey('tenant.id'), nullable=False, index=True)
    warehouse_id = Column(BigInteger, ForeignKey('warehouse.id'), nullable=False)
    cash_register_id = Column(BigInteger, ForeignKey('cash_register.id'), nullable=True, index=True)
    user_id = Column(BigInteger, nullable=True)
    status = Column(Enum(SaleStatus, name='sale_status'), nullable=False, default=SaleStatus.COMPLETED)
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    tax = Column(Numeric(10, 2), nullable=False, default=0)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False)
    
    # Legacy single-method field kept for older readers; payments holds the real split
    payment_method = Column(String(20), nullable=True)
    
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    
    # Relationships
    warehouse = relationship('Warehouse')
    cash_register = relationship('CashRegister', back_populates='sales')
    items = relationship('SaleItem', back_populates='sale', cascade='all, delete-orphan')
    payments = relationship('SalePayment', back_populates='sale', cascade='all, delete-orphan')
    
    def __repr__(self):
        return f"<Sale(id={self.id}, total={self.total}, status={self.status.value})>"
