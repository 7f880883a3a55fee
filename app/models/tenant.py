"""Tenant model - the isolation key every other record carries."""
import uuid
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.sql import func
from app.database import Base


def new_tenant_id() -> str:
    """UUID-shaped tenant identifier."""
    return str(uuid.uuid4())


class Tenant(Base):
    """Tenant model - each business/organization."""
    
    __tablename__ = 'tenant'
    
    id = Column(String(36), primary_key=True, default=new_tenant_id)
    slug = Column(String(80), nullable=False, unique=True)  # URL-safe identifier
    name = Column(String(200), nullable=False)  # Display name
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    def __repr__(self):
        return f"<Tenant(id={self.id}, slug='{self.slug}', name='{self.name}')>"
