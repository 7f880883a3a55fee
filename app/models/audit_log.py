"""
Audit Log model for tracking tenant-scoped mutations.
"""
from sqlalchemy import Column, BigInteger, String, Text, DateTime, ForeignKey, Enum as SQLEnum
from datetime import datetime
import enum

from app.database import Base, BigIntPK


class AuditAction(enum.Enum):
    """Enumeration of auditable actions."""
    # Sales
    SALE_CREATED = "SALE_CREATED"
    SALE_CANCELLED = "SALE_CANCELLED"
    
    # Stock
    STOCK_ADJUSTED = "STOCK_ADJUSTED"
    STOCK_COUNTED = "STOCK_COUNTED"
    COMPONENT_ADDED = "COMPONENT_ADDED"
    
    # Cash register
    CASH_REGISTER_OPENED = "CASH_REGISTER_OPENED"
    CASH_REGISTER_CLOSED = "CASH_REGISTER_CLOSED"
    CASH_TRANSACTION_CREATED = "CASH_TRANSACTION_CREATED"


class AuditLog(Base):
    """
    Audit log for tracking user actions.
    Multi-tenant: filtered by tenant_id.
    """
    __tablename__ = 'audit_log'
    
    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    tenant_id = Column(String(36), ForeignKey('tenant.id'), nullable=False, index=True)
    user_id = Column(BigInteger, nullable=True)
    action = Column(SQLEnum(AuditAction), nullable=False, index=True)
    resource_type = Column(String(50))  # e.g., 'sale', 'product', 'cash_register'
    resource_id = Column(BigInteger)  # ID of the affected resource
    details = Column(Text)  # JSON with additional details
    ip_address = Column(String(45))  # IPv4 or IPv6
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    
    def __repr__(self):
        return f"<AuditLog {self.action.value} by user {self.user_id} at {self.created_at}>"
