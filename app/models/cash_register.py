"""Cash Register model - one open/close cycle of a till."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK
import enum


class CashRegisterStatus(enum.Enum):
    """Cash register status enum."""
    OPEN = "open"
    CLOSED = "closed"


class CashRegister(Base):
    """Cash Register (caja / turno)."""
    
    __tablename__ = 'cash_register'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(String(36), ForeignKey('tenant.id'), nullable=False, index=True)
    warehouse_id = Column(BigInteger, ForeignKey('warehouse.id'), nullable=False)
    user_id = Column(BigInteger, nullable=False)
    name = Column(String(120), nullable=False)
    opening_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(CashRegisterStatus, name='cash_register_status'), nullable=False, default=CashRegisterStatus.OPEN)
    opened_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    closed_at = Column(DateTime(timezone=True), nullable=True)
    
    # Closing snapshot; variance = closing_amount - expected_amount, never auto-corrected
    expected_amount = Column(Numeric(10, 2), nullable=True)
    closing_amount = Column(Numeric(10, 2), nullable=True)
    variance = Column(Numeric(10, 2), nullable=True)
    
    # Relationships
    warehouse = relationship('Warehouse')
    sales = relationship('Sale', back_populates='cash_register')
    transactions = relationship('CashTransaction', back_populates='cash_register', order_by='CashTransaction.id')
    
    def __repr__(self):
        return f"<CashRegister(id={self.id}, status={self.status.value}, opening={self.opening_amount})>"
