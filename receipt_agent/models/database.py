# receipt_agent/models/database.py
from sqlalchemy import Column, String, Float, DateTime, ForeignKey, JSON
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime
import uuid

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class Tenant(Base):
    """Billing organisation owning users"""
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(200))
    subscription_status = Column(String(20), default="inactive")  # active / inactive / ...
    created_at = Column(DateTime, default=datetime.utcnow)

    users = relationship("User", back_populates="tenant")


class User(Base):
    """Staff member allowed to submit receipts over WhatsApp"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(200))
    phone_number = Column(String(32), unique=True, index=True, nullable=False)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    tenant = relationship("Tenant", back_populates="users")


class Transaction(Base):
    """Receipt extracted from a WhatsApp image"""
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    amount = Column(Float, nullable=False, default=0)
    merchant = Column(String(200))
    status = Column(String(20), default="Pending")
    image_url = Column(String(500))
    category = Column(String(100))
    # "metadata" is reserved on declarative classes
    extracted_data = Column("metadata", JSON)
    created_at = Column(DateTime, default=datetime.utcnow)
