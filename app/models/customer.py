# app/models/customer.py
"""
Customer model - the audience store segments are evaluated against.

Customers are soft-deleted (is_active = false) and always scoped by owner.
"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Float, JSON, Index, func
from app.db.base_class import Base


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String, primary_key=True, default=lambda: f"cust_{uuid.uuid4().hex[:12]}")
    owner_id = Column(String, nullable=False, index=True)

    # Identity
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(50), nullable=True)

    # Address
    street = Column(String(255), nullable=True)
    city = Column(String(120), nullable=True)
    state = Column(String(120), nullable=True)
    zip_code = Column(String(20), nullable=True)
    country = Column(String(120), nullable=True, default="India")

    # Demographics
    age = Column(Integer, nullable=True)
    gender = Column(String(30), nullable=True)
    occupation = Column(String(120), nullable=True)

    # Purchase stats
    total_spent = Column(Float, nullable=False, default=0)
    order_count = Column(Integer, nullable=False, default=0)
    average_order_value = Column(Float, nullable=True)
    first_purchase = Column(DateTime(timezone=True), nullable=True)
    last_purchase = Column(DateTime(timezone=True), nullable=True)

    tags = Column(JSON, nullable=True, default=list)
    is_active = Column(Boolean, nullable=False, default=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (Index("ix_customers_owner_city", "owner_id", "city"),)
