"""
Treatment Ledger Domain Models

Implements the database models for:
- Treatments (one billable clinical session)
- Treatment items (one procedure applied to one or more teeth)
"""

from decimal import Decimal
from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Integer, Text, Numeric, Enum, JSON,
    CheckConstraint
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from dental_billing.infrastructure.database import Base
import uuid
import enum


def gen_uuid():
    return str(uuid.uuid4())


class PaymentStatus(str, enum.Enum):
    """Payment state shared by treatments"""
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


TERMINAL_PAYMENT_STATUSES = frozenset({PaymentStatus.REFUNDED, PaymentStatus.CANCELLED})


class PaymentMethod(str, enum.Enum):
    """How a payment was made"""
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    INSURANCE = "INSURANCE"
    OTHER = "OTHER"


class TreatmentItemStatus(str, enum.Enum):
    """Clinical progress of a treatment item"""
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


def derive_payment_status(paid_amount: Decimal, total: Decimal) -> PaymentStatus:
    """Payment status as a function of what was paid against what is owed.

    Nothing paid is always PENDING, even when nothing is owed yet.
    """
    if paid_amount <= 0:
        return PaymentStatus.PENDING
    if paid_amount >= total:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


class Treatment(Base):
    """Treatment model - one clinical billing session for one patient"""
    __tablename__ = "treatments"
    __table_args__ = (
        CheckConstraint("total_cost >= 0", name="ck_treatments_total_cost_non_negative"),
        CheckConstraint("paid_amount >= 0", name="ck_treatments_paid_amount_non_negative"),
        CheckConstraint("discount >= 0", name="ck_treatments_discount_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=gen_uuid)

    # Patient and provider, owned by the directory service
    patient_id = Column(String(36), nullable=False, index=True)
    dentist_id = Column(String(36), nullable=False, index=True)

    # Clinical summary
    chief_complaint = Column(Text, nullable=False)
    diagnosis = Column(Text, nullable=False)
    treatment_plan = Column(Text, nullable=False)
    notes = Column(Text)
    treatment_date = Column(DateTime, nullable=False, default=func.now(), index=True)

    # Money (total_cost and payment_status are derived, see recalculate_treatment_cost)
    total_cost = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    paid_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    discount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    payment_status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    payment_method = Column(Enum(PaymentMethod))

    # Audit
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Child relationships
    items = relationship(
        "TreatmentItem",
        back_populates="treatment",
        cascade="all, delete-orphan",
        order_by="TreatmentItem.created_at"
    )
    receipt = relationship("Receipt", back_populates="treatment", uselist=False)


class TreatmentItem(Base):
    """One procedure applied to a set of teeth within a treatment"""
    __tablename__ = "treatment_items"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_treatment_items_quantity_positive"),
    )

    id = Column(String(36), primary_key=True, default=gen_uuid)
    treatment_id = Column(
        String(36), ForeignKey("treatments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    procedure_id = Column(String(36), nullable=False)

    # Teeth use universal numbering 1-32; surfaces are tags such as "O", "M", "D"
    tooth_numbers = Column(JSON, nullable=False)
    tooth_surfaces = Column(JSON, nullable=False, default=list)
    quantity = Column(Integer, nullable=False, default=1)

    # unit_cost is the catalog price at the moment the item was added
    unit_cost = Column(Numeric(10, 2), nullable=False)
    total_cost = Column(Numeric(10, 2), nullable=False)

    status = Column(Enum(TreatmentItemStatus), nullable=False, default=TreatmentItemStatus.PLANNED)
    notes = Column(Text)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    treatment = relationship("Treatment", back_populates="items")
