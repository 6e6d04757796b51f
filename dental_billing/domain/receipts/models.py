"""
Receipt Domain Models

A receipt is issued at most once per treatment and freezes the billed
amounts. Only paid_amount, balance_due and status change afterwards, and
only through payments.
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Text, Numeric, Enum, CheckConstraint
)
from sqlalchemy.orm import relationship
from dental_billing.infrastructure.database import Base
from dental_billing.domain.treatments.models import PaymentMethod, gen_uuid
import enum


class ReceiptStatus(str, enum.Enum):
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class Receipt(Base):
    """Receipt model"""
    __tablename__ = "receipts"
    __table_args__ = (
        CheckConstraint("paid_amount >= 0", name="ck_receipts_paid_amount_non_negative"),
        CheckConstraint("balance_due >= 0", name="ck_receipts_balance_due_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=gen_uuid)

    # One receipt per treatment, enforced by the store
    treatment_id = Column(
        String(36), ForeignKey("treatments.id"), nullable=False, unique=True
    )
    issued_by_id = Column(String(36), nullable=False)
    receipt_number = Column(String(40), nullable=False, unique=True, index=True)

    # Billed amounts
    subtotal = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    discount_code_applied = Column(String(50))
    tax = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    tax_rate = Column(Numeric(5, 4), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)

    # Payment tracking
    paid_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    balance_due = Column(Numeric(10, 2), nullable=False)
    status = Column(Enum(ReceiptStatus), nullable=False, default=ReceiptStatus.PARTIAL, index=True)
    payment_method = Column(Enum(PaymentMethod))
    payment_date = Column(DateTime)
    transaction_id = Column(String(100))

    qr_code = Column(Text)
    email_address = Column(String(255))

    # Set in Python so "receipts issued today" counts see uncommitted rows consistently
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    treatment = relationship("Treatment", back_populates="receipt")
