"""Cash Transaction model - append-only signed movements of a cash register."""
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Text, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base, BigIntPK
import enum


class CashTransactionType(enum.Enum):
    """Cash transaction type enum."""
    SALE = "sale"
    SALE_CANCELLATION = "sale_cancellation"
    INCOME = "income"
    EXPENSE = "expense"
    WITHDRAWAL = "withdrawal"


# Sign each type is stored with
POSITIVE_TYPES = frozenset({CashTransactionType.SALE, CashTransactionType.INCOME})
NEGATIVE_TYPES = frozenset({
    CashTransactionType.SALE_CANCELLATION,
    CashTransactionType.EXPENSE,
    CashTransactionType.WITHDRAWAL,
})


def sale_reference(sale_id) -> str:
    return f'VENTA-{sale_id}'


def cancel_reference(sale_id) -> str:
    return f'CANCEL-{sale_id}'


class CashTransaction(Base):
    """Cash Transaction (movimiento de caja). Rows are never updated or deleted."""
    
    __tablename__ = 'cash_transaction'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(String(36), ForeignKey('tenant.id'), nullable=False, index=True)
    cash_register_id = Column(BigInteger, ForeignKey('cash_register.id'), nullable=False, index=True)
    user_id = Column(BigInteger, nullable=True)
    type = Column(Enum(CashTransactionType, name='cash_transaction_type'), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    reference = Column(String(64), nullable=True, index=True)
    category = Column(String(80), nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    cash_register = relationship('CashRegister', back_populates='transactions')
    
    def __repr__(self):
        return f"<CashTransaction(id={self.id}, type={self.type.value}, amount={self.amount})>"
