"""
Treatment Repository Layer

Data access for treatments and treatment items. Methods flush but never
commit; the calling service owns the transaction.
"""

from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from sqlalchemy import func
from sqlalchemy.orm import selectinload

from dental_billing.domain.treatments.models import (
    Treatment, TreatmentItem, TreatmentItemStatus, PaymentStatus
)


class TreatmentRepository:
    """Repository for treatment data access operations"""

    def __init__(self, db):
        self.db = db

    def create(self, treatment_data: dict) -> Treatment:
        """Create a new treatment"""
        treatment = Treatment(**treatment_data)
        self.db.add(treatment)
        self.db.flush()
        return treatment

    def get_by_id(self, treatment_id: str, for_update: bool = False) -> Optional[Treatment]:
        """Get treatment by ID; a locked load also refreshes the cached instance"""
        query = self.db.query(Treatment).filter(Treatment.id == treatment_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_with_items(self, treatment_id: str) -> Optional[Treatment]:
        """Get treatment with its items loaded"""
        return self.db.query(Treatment).options(
            selectinload(Treatment.items)
        ).filter(Treatment.id == treatment_id).first()

    def _filtered(
        self,
        patient_id: Optional[str] = None,
        dentist_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        payment_status: Optional[PaymentStatus] = None
    ):
        query = self.db.query(Treatment)

        if patient_id:
            query = query.filter(Treatment.patient_id == patient_id)
        if dentist_id:
            query = query.filter(Treatment.dentist_id == dentist_id)
        if start_date:
            query = query.filter(Treatment.treatment_date >= start_date)
        if end_date:
            query = query.filter(Treatment.treatment_date <= end_date)
        if payment_status:
            query = query.filter(Treatment.payment_status == payment_status)

        return query

    def get_all(
        self,
        skip: int = 0,
        limit: int = 20,
        **filters
    ) -> List[Treatment]:
        """Get treatments with filtering, newest first"""
        return self._filtered(**filters).options(
            selectinload(Treatment.items),
            selectinload(Treatment.receipt)
        ).order_by(Treatment.treatment_date.desc()).offset(skip).limit(limit).all()

    def count(self, **filters) -> int:
        """Count treatments with filters"""
        return self._filtered(**filters).count()

    def get_money_rows(self, **filters) -> List[tuple]:
        """(total_cost, paid_amount, discount, payment_status) for every matching treatment"""
        return self._filtered(**filters).with_entities(
            Treatment.total_cost,
            Treatment.paid_amount,
            Treatment.discount,
            Treatment.payment_status
        ).all()

    def get_patient_treatments(self, patient_id: str) -> List[Treatment]:
        """All treatments for a patient with items, newest first"""
        return self.db.query(Treatment).options(
            selectinload(Treatment.items)
        ).filter(
            Treatment.patient_id == patient_id
        ).order_by(Treatment.treatment_date.desc()).all()


class TreatmentItemRepository:
    """Repository for treatment item data access operations"""

    def __init__(self, db):
        self.db = db

    def create(self, item_data: dict) -> TreatmentItem:
        """Create a new treatment item"""
        item = TreatmentItem(**item_data)
        self.db.add(item)
        self.db.flush()
        return item

    def get_by_id(self, item_id: str) -> Optional[TreatmentItem]:
        """Get treatment item by ID"""
        return self.db.query(TreatmentItem).filter(TreatmentItem.id == item_id).first()

    def sum_total_cost(self, treatment_id: str) -> Decimal:
        """Sum of item totals for a treatment"""
        total = self.db.query(
            func.coalesce(func.sum(TreatmentItem.total_cost), 0)
        ).filter(TreatmentItem.treatment_id == treatment_id).scalar()
        return Decimal(str(total))

    def update_status(self, item: TreatmentItem, status: TreatmentItemStatus) -> TreatmentItem:
        """Update item status"""
        item.status = status
        self.db.flush()
        return item

    def complete_open_items(self, treatment_id: str) -> int:
        """Mark every planned or in-progress item COMPLETED; returns how many changed"""
        items = self.db.query(TreatmentItem).filter(
            TreatmentItem.treatment_id == treatment_id,
            TreatmentItem.status.in_([TreatmentItemStatus.PLANNED, TreatmentItemStatus.IN_PROGRESS])
        ).all()
        for item in items:
            item.status = TreatmentItemStatus.COMPLETED
        self.db.flush()
        return len(items)

    def delete(self, item: TreatmentItem) -> None:
        """Delete item"""
        self.db.delete(item)
        self.db.flush()
