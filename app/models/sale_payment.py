"""Sale Payment model for mixed payment methods."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK
import enum


class PaymentMethod(enum.Enum):
    """Payment method enum."""
    CASH = "CASH"
    CARD = "CARD"
    TRANSFER = "TRANSFER"
    CREDIT = "CREDIT"


def normalize_payment_method(value) -> str:
    """
    Normalize payment method value to string for DB storage.
    
    Args:
        value: Can be None, PaymentMethod enum, or string
    
    Returns:
        str: one of the PaymentMethod values
    
    Raises:
        ValueError: If value is invalid
    """
    # Default to CASH if None
    if value is None:
        return PaymentMethod.CASH.value
    
    if isinstance(value, PaymentMethod):
        return value.value
    
    normalized = str(value).upper().strip()
    if normalized in PaymentMethod.__members__:
        return normalized
    
    raise ValueError(f"Invalid payment method: {value}")


class SalePayment(Base):
    """
    Sale Payment - Individual payment for a sale.
    
    Allows mixed payment methods (e.g., CASH + CARD).
    Multiple payments can be associated with a single sale; their amounts
    add up to Sale.total.
    """
    
    __tablename__ = 'sale_payment'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(String(36), ForeignKey('tenant.id'), nullable=False, index=True)
    sale_id = Column(BigInteger, ForeignKey('sale.id', ondelete='CASCADE'), nullable=False, index=True)
    
    payment_method = Column(String(20), nullable=False)  # CASH, CARD, TRANSFER, CREDIT
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default='MXN')
    exchange_rate = Column(Numeric(10, 4), nullable=False, default=1)
    reference = Column(String(120), nullable=True)  # Authorization number, etc.
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    sale = relationship('Sale', back_populates='payments')
    
    @property
    def is_cash(self) -> bool:
        return self.payment_method == PaymentMethod.CASH.value
    
    def __repr__(self):
        return f"<SalePayment(id={self.id}, sale_id={self.sale_id}, method={self.payment_method}, amount={self.amount})>"
