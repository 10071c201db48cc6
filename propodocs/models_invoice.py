"""
Invoice model for invoices derived from completed contracts
"""

from sqlalchemy import JSON, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


class Invoice(Base):
    """Invoice projected from a contract's deliverables"""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # One invoice per contract; repeated derivation returns the existing row
    contract_id = Column(Integer, ForeignKey("contracts.id"), unique=True, nullable=False)

    invoice_number = Column(String(50), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)

    # Client snapshot copied from the contract
    client_name = Column(String(200), nullable=False, default="")
    client_email = Column(String(254), nullable=True)
    client_company = Column(String(200), nullable=True)
    client_address = Column(String(500), nullable=True)

    # Pricing
    line_items = Column(JSON, nullable=False, default=list)  # [{description, quantity, unit_price, amount, price_type}]
    subtotal = Column(Float, nullable=False, default=0)
    tax_rate = Column(Float, default=0)
    tax_amount = Column(Float, default=0)
    total = Column(Float, nullable=False, default=0)
    currency = Column(String(10), default="USD")

    due_date = Column(Date, nullable=True)
    status = Column(String(50), default="draft")  # draft, sent, paid, overdue, cancelled
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=False), server_default=func.now())
