"""
Treatment Ledger Service Layer

Business logic for treatments and their procedure line items: creation,
adding procedures to teeth, removing items, and keeping the cached
total_cost / payment_status in step with the items.
"""

from typing import Optional, List, Dict, Any, Sequence
from datetime import datetime
import logging

from dental_billing.core.exceptions import (
    ValidationError, NotFoundError, ConflictError, InactiveEntityError, AuthorizationError
)
from dental_billing.core.money import Number, ZERO, to_money
from dental_billing.domain.audit.models import AuditAction, AuditResource
from dental_billing.domain.audit.service import AuditSink, NullAuditSink
from dental_billing.domain.treatments.models import (
    Treatment, TreatmentItem, TreatmentItemStatus,
    PaymentStatus, PaymentMethod, TERMINAL_PAYMENT_STATUSES, derive_payment_status
)
from dental_billing.domain.treatments.repository import (
    TreatmentRepository, TreatmentItemRepository
)
from dental_billing.infrastructure.catalog import ProcedureCatalog
from dental_billing.infrastructure.database import unit_of_work
from dental_billing.infrastructure.directory import PatientDirectory, CLINICAL_ROLES

logger = logging.getLogger(__name__)

MIN_TOOTH_NUMBER = 1
MAX_TOOTH_NUMBER = 32


def validate_tooth_numbers(tooth_numbers: Sequence[int]) -> List[int]:
    """Universal numbering: a non-empty set of integers between 1 and 32"""
    if not tooth_numbers:
        raise ValidationError(
            "At least one tooth number is required",
            details={"field": "tooth_numbers"}
        )

    invalid = [
        t for t in tooth_numbers
        if isinstance(t, bool) or not isinstance(t, int)
        or t < MIN_TOOTH_NUMBER or t > MAX_TOOTH_NUMBER
    ]
    if invalid:
        raise ValidationError(
            f"Invalid tooth numbers: {', '.join(str(t) for t in invalid)}",
            details={"field": "tooth_numbers", "invalid": [str(t) for t in invalid]}
        )

    if len(set(tooth_numbers)) != len(tooth_numbers):
        raise ValidationError(
            "Tooth numbers must not repeat",
            details={"field": "tooth_numbers"}
        )

    return list(tooth_numbers)


def treatment_snapshot(treatment: Treatment) -> Dict[str, Any]:
    return {
        "patient_id": treatment.patient_id,
        "dentist_id": treatment.dentist_id,
        "total_cost": treatment.total_cost,
        "paid_amount": treatment.paid_amount,
        "discount": treatment.discount,
        "payment_status": treatment.payment_status,
    }


class TreatmentService:
    """Service layer for the treatment ledger"""

    def __init__(
        self,
        db,
        directory: PatientDirectory,
        catalog: ProcedureCatalog,
        audit: Optional[AuditSink] = None
    ):
        self.db = db
        self.directory = directory
        self.catalog = catalog
        self.audit = audit or NullAuditSink()
        self.treatment_repo = TreatmentRepository(db)
        self.item_repo = TreatmentItemRepository(db)

    # ==================== Treatments ====================

    def create_treatment(
        self,
        patient_id: str,
        dentist_id: str,
        chief_complaint: str,
        diagnosis: str,
        treatment_plan: str,
        notes: Optional[str] = None,
        treatment_date: Optional[datetime] = None,
        discount: Number = 0,
        payment_method: Optional[PaymentMethod] = None,
        performed_by: Optional[str] = None
    ) -> Treatment:
        """Open a treatment for a patient with no cost and nothing paid"""
        for field, value in (
            ("chief_complaint", chief_complaint),
            ("diagnosis", diagnosis),
            ("treatment_plan", treatment_plan),
        ):
            if not value or not value.strip():
                raise ValidationError(f"{field} is required", details={"field": field})

        discount = to_money(discount)
        if discount < 0:
            raise ValidationError("Discount cannot be negative", details={"field": "discount"})

        patient = self.directory.get_patient(patient_id)
        if not patient:
            raise NotFoundError("Patient not found", details={"patient_id": patient_id})
        if not patient.is_active:
            raise InactiveEntityError("Patient account is inactive", details={"patient_id": patient_id})

        dentist = self.directory.get_dentist(dentist_id)
        if not dentist:
            raise NotFoundError("Dentist not found", details={"dentist_id": dentist_id})
        if not dentist.is_active:
            raise InactiveEntityError("Dentist account is inactive", details={"dentist_id": dentist_id})
        if dentist.role not in CLINICAL_ROLES:
            raise AuthorizationError(
                "User does not have dentist privileges",
                details={"dentist_id": dentist_id, "role": dentist.role.value}
            )

        with unit_of_work(self.db):
            treatment = self.treatment_repo.create({
                "patient_id": patient_id,
                "dentist_id": dentist_id,
                "chief_complaint": chief_complaint,
                "diagnosis": diagnosis,
                "treatment_plan": treatment_plan,
                "notes": notes,
                "treatment_date": treatment_date or datetime.utcnow(),
                "total_cost": ZERO,
                "paid_amount": ZERO,
                "discount": discount,
                "payment_status": PaymentStatus.PENDING,
                "payment_method": payment_method,
            })

        logger.info(f"Created treatment {treatment.id} for patient {patient_id}")
        self.audit.record(
            AuditAction.CREATE_TREATMENT,
            AuditResource.TREATMENT,
            treatment.id,
            new_data=treatment_snapshot(treatment),
            user_id=performed_by or dentist_id
        )
        return treatment

    def get_treatment(self, treatment_id: str) -> Treatment:
        """Get treatment with items"""
        treatment = self.treatment_repo.get_with_items(treatment_id)
        if not treatment:
            raise NotFoundError("Treatment not found", details={"treatment_id": treatment_id})
        return treatment

    def apply_treatment_discount(
        self,
        treatment_id: str,
        discount: Number,
        user_id: Optional[str] = None
    ) -> Treatment:
        """Replace the manual discount and recompute the treatment"""
        discount = to_money(discount)
        if discount < 0:
            raise ValidationError("Discount cannot be negative", details={"field": "discount"})

        with unit_of_work(self.db):
            treatment = self._load_for_update(treatment_id)
            old_data = treatment_snapshot(treatment)
            treatment.discount = discount
            self._recalculate(treatment)

        self.audit.record(
            AuditAction.UPDATE_TREATMENT_DISCOUNT,
            AuditResource.TREATMENT,
            treatment.id,
            old_data=old_data,
            new_data=treatment_snapshot(treatment),
            user_id=user_id
        )
        return treatment

    # ==================== Items ====================

    def add_procedure_to_tooth(
        self,
        treatment_id: str,
        procedure_id: str,
        tooth_numbers: Sequence[int],
        tooth_surfaces: Optional[Sequence[str]] = None,
        quantity: int = 1,
        notes: Optional[str] = None,
        status: TreatmentItemStatus = TreatmentItemStatus.PLANNED,
        user_id: Optional[str] = None
    ) -> TreatmentItem:
        """Price a procedure on the given teeth and add it to the treatment"""
        tooth_numbers = validate_tooth_numbers(tooth_numbers)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError("Quantity must be at least 1", details={"field": "quantity"})
        status = self._coerce_item_status(status)

        with unit_of_work(self.db):
            treatment = self._load_for_update(treatment_id)

            procedure = self.catalog.get_procedure(procedure_id)
            if not procedure:
                raise NotFoundError("Procedure not found", details={"procedure_id": procedure_id})
            if not procedure.is_active:
                raise InactiveEntityError("Procedure is not active", details={"procedure_id": procedure_id})

            # Multiplied by tooth count for every procedure, whatever per_tooth says
            unit_cost = to_money(procedure.default_cost)
            total_cost = to_money(unit_cost * quantity * len(tooth_numbers))

            item = self.item_repo.create({
                "treatment_id": treatment.id,
                "procedure_id": procedure_id,
                "tooth_numbers": tooth_numbers,
                "tooth_surfaces": list(tooth_surfaces or []),
                "quantity": quantity,
                "unit_cost": unit_cost,
                "total_cost": total_cost,
                "status": status,
                "notes": notes,
            })
            self._recalculate(treatment)

        logger.info(
            f"Added procedure {procedure_id} on teeth {tooth_numbers} to treatment {treatment_id}: {total_cost}"
        )
        self.audit.record(
            AuditAction.ADD_PROCEDURE_TO_TREATMENT,
            AuditResource.TREATMENT_ITEM,
            item.id,
            new_data={
                "treatment_id": treatment_id,
                "procedure": procedure.name,
                "teeth": tooth_numbers,
                "cost": total_cost,
            },
            user_id=user_id
        )
        return item

    def delete_treatment_item(self, item_id: str, user_id: Optional[str] = None) -> Treatment:
        """Remove an item and return the recomputed treatment"""
        with unit_of_work(self.db):
            item = self.item_repo.get_by_id(item_id)
            if not item:
                raise NotFoundError("Treatment item not found", details={"item_id": item_id})

            old_data = {"treatment_id": item.treatment_id, "total_cost": item.total_cost}
            treatment = self._load_for_update(item.treatment_id)
            self.item_repo.delete(item)
            self._recalculate(treatment)

        self.audit.record(
            AuditAction.DELETE_TREATMENT_ITEM,
            AuditResource.TREATMENT_ITEM,
            item_id,
            old_data=old_data,
            user_id=user_id
        )
        return treatment

    def update_treatment_item_status(
        self,
        item_id: str,
        status: TreatmentItemStatus,
        user_id: Optional[str] = None
    ) -> TreatmentItem:
        """Change clinical status only; costs are untouched"""
        status = self._coerce_item_status(status)

        with unit_of_work(self.db):
            item = self.item_repo.get_by_id(item_id)
            if not item:
                raise NotFoundError("Treatment item not found", details={"item_id": item_id})
            old_status = item.status
            self.item_repo.update_status(item, status)

        self.audit.record(
            AuditAction.UPDATE_TREATMENT_ITEM_STATUS,
            AuditResource.TREATMENT_ITEM,
            item_id,
            old_data={"status": old_status},
            new_data={"status": status},
            user_id=user_id
        )
        return item

    def complete_treatment(self, treatment_id: str, user_id: Optional[str] = None) -> Treatment:
        """Close out a fully paid treatment by completing its open items.

        Cancelled items stay cancelled. A treatment that is not PAID raises
        ConflictError and nothing changes.
        """
        with unit_of_work(self.db):
            treatment = self._load_for_update(treatment_id)
            if treatment.payment_status != PaymentStatus.PAID:
                raise ConflictError(
                    "Treatment must be fully paid before it can be completed",
                    details={"treatment_id": treatment_id, "payment_status": treatment.payment_status.value}
                )

            completed = self.item_repo.complete_open_items(treatment.id)
            self.db.expire(treatment, ["items"])

        logger.info(f"Completed treatment {treatment_id}: {completed} items closed")
        self.audit.record(
            AuditAction.COMPLETE_TREATMENT,
            AuditResource.TREATMENT,
            treatment_id,
            new_data={
                "payment_status": treatment.payment_status,
                "paid_amount": treatment.paid_amount,
                "completed_items": completed,
            },
            user_id=user_id
        )
        return treatment

    # ==================== Cost ====================

    def recalculate_treatment_cost(self, treatment_id: str) -> Treatment:
        """Recompute total_cost and payment_status from the stored items"""
        with unit_of_work(self.db):
            treatment = self._load_for_update(treatment_id)
            self._recalculate(treatment)
        return treatment

    def _recalculate(self, treatment: Treatment) -> None:
        # The only place total_cost is derived; callers hold the transaction.
        items_total = to_money(self.item_repo.sum_total_cost(treatment.id))
        total_cost = max(ZERO, items_total - to_money(treatment.discount))
        treatment.total_cost = total_cost

        # Once issued, the receipt total is what the patient owes
        self.db.expire(treatment, ["receipt"])
        receipt = treatment.receipt
        amount_owed = to_money(receipt.total_amount) if receipt else total_cost

        if treatment.payment_status not in TERMINAL_PAYMENT_STATUSES:
            treatment.payment_status = derive_payment_status(to_money(treatment.paid_amount), amount_owed)

        self.db.flush()
        self.db.expire(treatment, ["items"])

    def _load_for_update(self, treatment_id: str) -> Treatment:
        treatment = self.treatment_repo.get_by_id(treatment_id, for_update=True)
        if not treatment:
            raise NotFoundError("Treatment not found", details={"treatment_id": treatment_id})
        return treatment

    @staticmethod
    def _coerce_item_status(status) -> TreatmentItemStatus:
        try:
            return TreatmentItemStatus(status)
        except ValueError:
            raise ValidationError(
                f"Invalid treatment item status: {status}",
                details={"field": "status"}
            )

    # ==================== Reporting ====================

    def get_treatment_history(
        self,
        patient_id: Optional[str] = None,
        dentist_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        payment_status: Optional[PaymentStatus] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Dict[str, Any]:
        """Treatments matching the filters plus aggregate money stats"""
        filters = {
            "patient_id": patient_id,
            "dentist_id": dentist_id,
            "start_date": start_date,
            "end_date": end_date,
            "payment_status": payment_status,
        }

        treatments = self.treatment_repo.get_all(skip=offset, limit=limit, **filters)
        total_count = self.treatment_repo.count(**filters)

        return {
            "treatments": treatments,
            "total_count": total_count,
            "stats": self._calculate_stats(self.treatment_repo.get_money_rows(**filters)),
            "pagination": {
                "offset": offset,
                "limit": limit,
                "has_more": total_count > offset + limit,
            },
        }

    @staticmethod
    def _calculate_stats(rows) -> Dict[str, Any]:
        breakdown = {status.value.lower(): 0 for status in PaymentStatus}
        revenue = outstanding = discounts = ZERO

        for total_cost, paid_amount, discount, status in rows:
            revenue += to_money(paid_amount)
            outstanding += to_money(total_cost) - to_money(paid_amount)
            discounts += to_money(discount)
            breakdown[PaymentStatus(status).value.lower()] += 1

        return {
            "total_treatments": len(rows),
            "total_revenue": revenue,
            "total_outstanding": outstanding,
            "total_discounts": discounts,
            "payment_status_breakdown": breakdown,
        }

    def get_tooth_chart_data(self, patient_id: str) -> List[Dict[str, Any]]:
        """Procedures per tooth across all of a patient's treatments"""
        teeth: Dict[int, Dict[str, Any]] = {}

        for treatment in self.treatment_repo.get_patient_treatments(patient_id):
            for item in treatment.items:
                procedure = self.catalog.get_procedure(item.procedure_id)
                for tooth_number in item.tooth_numbers:
                    entry = teeth.setdefault(tooth_number, {"tooth_number": tooth_number, "procedures": []})
                    entry["procedures"].append({
                        "id": item.id,
                        "procedure_id": item.procedure_id,
                        "name": procedure.name if procedure else None,
                        "category": procedure.category.value if procedure else None,
                        "date": treatment.treatment_date,
                        "status": item.status,
                        "surfaces": item.tooth_surfaces or [],
                    })

        return [teeth[n] for n in sorted(teeth)]
