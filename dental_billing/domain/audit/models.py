from sqlalchemy import Column, String, DateTime, JSON, Enum, Index
from sqlalchemy.sql import func
from dental_billing.infrastructure.database import Base
import uuid
import enum


class AuditAction(str, enum.Enum):
    """Audit action types"""
    CREATE_TREATMENT = "CREATE_TREATMENT"
    ADD_PROCEDURE_TO_TREATMENT = "ADD_PROCEDURE_TO_TREATMENT"
    DELETE_TREATMENT_ITEM = "DELETE_TREATMENT_ITEM"
    UPDATE_TREATMENT_ITEM_STATUS = "UPDATE_TREATMENT_ITEM_STATUS"
    UPDATE_TREATMENT_DISCOUNT = "UPDATE_TREATMENT_DISCOUNT"
    UPDATE_TREATMENT_PAYMENT = "UPDATE_TREATMENT_PAYMENT"
    RECEIPT_CREATED = "RECEIPT_CREATED"
    PAYMENT_PROCESSED = "PAYMENT_PROCESSED"
    COMPLETE_TREATMENT = "COMPLETE_TREATMENT"


class AuditResource(str, enum.Enum):
    """Audit resource types"""
    TREATMENT = "Treatment"
    TREATMENT_ITEM = "TreatmentItem"
    RECEIPT = "Receipt"


class AuditLog(Base):
    """Audit trail of billing state changes"""
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Event details
    action = Column(Enum(AuditAction), nullable=False, index=True)
    entity_type = Column(Enum(AuditResource), nullable=False)
    entity_id = Column(String(36), nullable=True)

    # Who did it, when known
    user_id = Column(String(36), nullable=True, index=True)

    # Data changes
    old_data = Column(JSON, nullable=True)
    new_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime, default=func.now(), nullable=False, index=True)
