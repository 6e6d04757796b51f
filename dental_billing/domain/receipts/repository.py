"""
Receipt Repository Layer

Flushes only; services own the transaction.
"""

from typing import Optional, List
from datetime import datetime

from dental_billing.domain.receipts.models import Receipt, ReceiptStatus
from dental_billing.domain.treatments.models import Treatment


class ReceiptRepository:
    """Repository for receipt data access operations"""

    def __init__(self, db):
        self.db = db

    def create(self, receipt_data: dict) -> Receipt:
        """Create a new receipt; IntegrityError propagates to the caller"""
        receipt = Receipt(**receipt_data)
        self.db.add(receipt)
        self.db.flush()
        return receipt

    def get_by_id(self, receipt_id: str, for_update: bool = False) -> Optional[Receipt]:
        query = self.db.query(Receipt).filter(Receipt.id == receipt_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_by_treatment(self, treatment_id: str) -> Optional[Receipt]:
        return self.db.query(Receipt).filter(Receipt.treatment_id == treatment_id).first()

    def exists_for_treatment(self, treatment_id: str) -> bool:
        return self.db.query(
            self.db.query(Receipt.id).filter(Receipt.treatment_id == treatment_id).exists()
        ).scalar()

    def get_by_number(self, receipt_number: str) -> Optional[Receipt]:
        return self.db.query(Receipt).filter(Receipt.receipt_number == receipt_number).first()

    def count_created_between(self, start: datetime, end: datetime) -> int:
        """Receipts created in [start, end)"""
        return self.db.query(Receipt).filter(
            Receipt.created_at >= start,
            Receipt.created_at < end
        ).count()

    def _filtered(
        self,
        patient_id: Optional[str] = None,
        dentist_id: Optional[str] = None,
        status: Optional[ReceiptStatus] = None
    ):
        query = self.db.query(Receipt)

        if patient_id or dentist_id:
            query = query.join(Treatment, Receipt.treatment_id == Treatment.id)
            if patient_id:
                query = query.filter(Treatment.patient_id == patient_id)
            if dentist_id:
                query = query.filter(Treatment.dentist_id == dentist_id)
        if status:
            query = query.filter(Receipt.status == status)

        return query

    def get_all(self, skip: int = 0, limit: int = 50, **filters) -> List[Receipt]:
        """Receipts with filtering, newest first"""
        return self._filtered(**filters).order_by(
            Receipt.created_at.desc()
        ).offset(skip).limit(limit).all()

    def count(self, **filters) -> int:
        return self._filtered(**filters).count()
