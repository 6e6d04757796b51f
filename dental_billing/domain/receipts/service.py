"""
Receipt and Payment Service Layer

ReceiptService issues the single receipt of a treatment. PaymentService
applies payments, keeping the receipt and its treatment in step.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, Dict, Any
import logging

from sqlalchemy.exc import IntegrityError, OperationalError

from dental_billing.core.config import settings
from dental_billing.core.exceptions import (
    ValidationError, NotFoundError, ConflictError, ExternalServiceError, handle_database_error
)
from dental_billing.core.money import Number, ZERO, to_money, to_rate
from dental_billing.domain.audit.models import AuditAction, AuditResource
from dental_billing.domain.audit.service import AuditSink, NullAuditSink
from dental_billing.domain.discounts.registry import DiscountRegistry
from dental_billing.domain.receipts.models import Receipt, ReceiptStatus
from dental_billing.domain.receipts.repository import ReceiptRepository
from dental_billing.domain.treatments.models import (
    PaymentMethod, TERMINAL_PAYMENT_STATUSES, derive_payment_status
)
from dental_billing.domain.treatments.repository import (
    TreatmentRepository, TreatmentItemRepository
)
from dental_billing.infrastructure.database import unit_of_work
from dental_billing.infrastructure.directory import PatientDirectory
from dental_billing.services.qr_service import QRCodeGenerator, QRServerGenerator, build_receipt_qr_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReceiptTotals:
    subtotal: Decimal
    discount: Decimal
    discount_code_applied: Optional[str]
    discount_code_value: Decimal
    tax: Decimal
    total_amount: Decimal
    balance_due: Decimal


def receipt_status_for(balance_due: Decimal) -> ReceiptStatus:
    return ReceiptStatus.PAID if balance_due == 0 else ReceiptStatus.PARTIAL


def coerce_payment_method(method) -> Optional[PaymentMethod]:
    if method is None:
        return None
    try:
        return PaymentMethod(method)
    except ValueError:
        raise ValidationError(f"Invalid payment method: {method}", details={"field": "payment_method"})


class ReceiptService:
    """Service layer for receipt issuance"""

    def __init__(
        self,
        db,
        discounts: DiscountRegistry,
        qr_generator: Optional[QRCodeGenerator] = None,
        audit: Optional[AuditSink] = None,
        directory: Optional[PatientDirectory] = None
    ):
        self.db = db
        self.discounts = discounts
        self.qr_generator = qr_generator or QRServerGenerator()
        self.audit = audit or NullAuditSink()
        self.directory = directory
        self.receipt_repo = ReceiptRepository(db)
        self.treatment_repo = TreatmentRepository(db)
        self.item_repo = TreatmentItemRepository(db)

    def calculate_totals(
        self,
        treatment_total_cost: Number,
        treatment_discount: Number = 0,
        custom_discount: Number = 0,
        discount_code: Optional[str] = None,
        tax_rate: Optional[Number] = None
    ) -> ReceiptTotals:
        """Discounts come off the subtotal, tax goes on what remains.

        An unusable discount code is logged and ignored.
        """
        rate = to_rate(settings.DEFAULT_TAX_RATE if tax_rate is None else tax_rate)
        if rate < 0:
            raise ValidationError("Tax rate cannot be negative", details={"field": "tax_rate"})

        custom_discount = to_money(custom_discount)
        if custom_discount < 0:
            raise ValidationError("Discount cannot be negative", details={"field": "custom_discount"})

        subtotal = to_money(treatment_total_cost)
        discount = to_money(treatment_discount) + custom_discount

        code_applied = None
        code_value = ZERO
        if discount_code:
            try:
                applied = self.discounts.validate(discount_code, subtotal)
            except ValidationError as e:
                logger.warning(f"Discount code {discount_code!r} not applied: {e.message}")
            else:
                code_applied = applied.code
                code_value = applied.amount
                discount += code_value

        discounted = max(ZERO, subtotal - discount)
        tax = to_money(discounted * rate)
        total_amount = to_money(discounted + tax)

        return ReceiptTotals(
            subtotal=subtotal,
            discount=to_money(discount),
            discount_code_applied=code_applied,
            discount_code_value=code_value,
            tax=tax,
            total_amount=total_amount,
            balance_due=total_amount,
        )

    def generate_receipt_number(self, now: Optional[datetime] = None) -> str:
        """{PREFIX}-{YYMM}-{seq}, seq counting today's receipts"""
        now = now or datetime.utcnow()
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        issued_today = self.receipt_repo.count_created_between(day_start, day_start + timedelta(days=1))
        return f"{settings.RECEIPT_PREFIX}-{now:%y%m}-{issued_today + 1:03d}"

    def generate_receipt(
        self,
        treatment_id: str,
        issued_by_id: str,
        payment_method: Optional[PaymentMethod] = None,
        payment_date: Optional[datetime] = None,
        transaction_id: Optional[str] = None,
        email_address: Optional[str] = None,
        custom_discount: Number = 0,
        discount_code: Optional[str] = None,
        tax_rate: Optional[Number] = None
    ) -> Receipt:
        """Issue the receipt for a treatment and update the treatment's status.

        The QR payload and the patient's email are resolved before the
        treatment row is locked; both may reach out to other services.
        """
        payment_method = coerce_payment_method(payment_method)

        treatment = self.treatment_repo.get_by_id(treatment_id)
        if not treatment:
            raise NotFoundError("Treatment not found", details={"treatment_id": treatment_id})
        qr_code = self.qr_generator.generate(build_receipt_qr_text(treatment.patient_id))
        email_address = email_address or self._patient_email(treatment.patient_id)

        with unit_of_work(self.db):
            treatment = self.treatment_repo.get_by_id(treatment_id, for_update=True)
            if not treatment:
                raise NotFoundError("Treatment not found", details={"treatment_id": treatment_id})

            if self.receipt_repo.get_by_treatment(treatment_id):
                raise ConflictError(
                    "Receipt already exists for this treatment",
                    details={"treatment_id": treatment_id}
                )

            # Gross item sum; the treatment discount is passed separately
            totals = self.calculate_totals(
                self.item_repo.sum_total_cost(treatment.id),
                treatment_discount=treatment.discount,
                custom_discount=custom_discount,
                discount_code=discount_code,
                tax_rate=tax_rate
            )

            paid_amount = to_money(treatment.paid_amount)
            balance_due = max(ZERO, totals.total_amount - paid_amount)

            receipt = self._insert_receipt(treatment_id, {
                "treatment_id": treatment_id,
                "issued_by_id": issued_by_id,
                "subtotal": totals.subtotal,
                "discount": totals.discount,
                "discount_code_applied": totals.discount_code_applied,
                "tax": totals.tax,
                "tax_rate": to_rate(settings.DEFAULT_TAX_RATE if tax_rate is None else tax_rate),
                "total_amount": totals.total_amount,
                "paid_amount": paid_amount,
                "balance_due": balance_due,
                "status": receipt_status_for(balance_due),
                "payment_method": payment_method,
                "payment_date": payment_date,
                "transaction_id": transaction_id,
                "qr_code": qr_code,
                "email_address": email_address,
            })

            if payment_method:
                treatment.payment_method = payment_method
            if treatment.payment_status not in TERMINAL_PAYMENT_STATUSES:
                treatment.payment_status = derive_payment_status(paid_amount, totals.total_amount)
            self.db.flush()
            self.db.expire(treatment, ["receipt"])

        logger.info(f"Issued receipt {receipt.receipt_number} for treatment {treatment_id}: {receipt.total_amount}")
        self.audit.record(
            AuditAction.RECEIPT_CREATED,
            AuditResource.RECEIPT,
            receipt.id,
            new_data={
                "treatment_id": treatment_id,
                "receipt_number": receipt.receipt_number,
                "total_amount": receipt.total_amount,
                "discount_code": receipt.discount_code_applied,
            },
            user_id=issued_by_id
        )
        return receipt

    def _patient_email(self, patient_id: str) -> Optional[str]:
        if self.directory is None:
            return None
        try:
            patient = self.directory.get_patient(patient_id)
        except ExternalServiceError as e:
            logger.warning(f"No email on receipt for patient {patient_id}: {e.message}")
            return None
        return patient.email if patient else None

    def _insert_receipt(self, treatment_id: str, receipt_data: Dict[str, Any]) -> Receipt:
        receipt_number = self.generate_receipt_number()

        for attempt in range(2):
            try:
                with self.db.begin_nested():
                    return self.receipt_repo.create({**receipt_data, "receipt_number": receipt_number})
            except OperationalError as e:
                raise handle_database_error(e, "receipt insert")
            except IntegrityError as e:
                if self.receipt_repo.exists_for_treatment(treatment_id):
                    raise ConflictError(
                        "Receipt already exists for this treatment",
                        details={"treatment_id": treatment_id}
                    )
                if not self.receipt_repo.get_by_number(receipt_number):
                    raise handle_database_error(e, "receipt insert")
                if attempt:
                    raise ConflictError(
                        "Could not allocate a unique receipt number",
                        details={"receipt_number": receipt_number}
                    )

                logger.warning(f"Receipt number {receipt_number} already taken, retrying with suffix")
                receipt_number = f"{receipt_number}-{int(datetime.utcnow().timestamp() * 1000) % 10000:04d}"

    def get_receipt(self, receipt_id: str) -> Receipt:
        receipt = self.receipt_repo.get_by_id(receipt_id)
        if not receipt:
            raise NotFoundError("Receipt not found", details={"receipt_id": receipt_id})
        return receipt

    def get_receipt_by_treatment(self, treatment_id: str) -> Receipt:
        receipt = self.receipt_repo.get_by_treatment(treatment_id)
        if not receipt:
            raise NotFoundError("Receipt not found for treatment", details={"treatment_id": treatment_id})
        return receipt

    def list_receipts(
        self,
        patient_id: Optional[str] = None,
        dentist_id: Optional[str] = None,
        status: Optional[ReceiptStatus] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Dict[str, Any]:
        filters = {"patient_id": patient_id, "dentist_id": dentist_id, "status": status}
        total_count = self.receipt_repo.count(**filters)
        return {
            "receipts": self.receipt_repo.get_all(skip=offset, limit=limit, **filters),
            "total_count": total_count,
            "pagination": {
                "offset": offset,
                "limit": limit,
                "has_more": total_count > offset + limit,
            },
        }


class PaymentService:
    """Service layer for payment reconciliation"""

    def __init__(self, db, audit: Optional[AuditSink] = None):
        self.db = db
        self.audit = audit or NullAuditSink()
        self.receipt_repo = ReceiptRepository(db)
        self.treatment_repo = TreatmentRepository(db)

    def process_payment(
        self,
        receipt_id: str,
        payment_method: PaymentMethod,
        paid_amount: Number,
        transaction_id: Optional[str] = None,
        payment_date: Optional[datetime] = None,
        user_id: Optional[str] = None
    ) -> Receipt:
        """Apply a payment against a receipt's balance and mirror it on the treatment"""
        amount = to_money(paid_amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than 0", details={"field": "paid_amount"})
        payment_method = coerce_payment_method(payment_method)

        with unit_of_work(self.db):
            receipt = self.receipt_repo.get_by_id(receipt_id, for_update=True)
            if not receipt:
                raise NotFoundError("Receipt not found", details={"receipt_id": receipt_id})

            balance_due = to_money(receipt.balance_due)
            if amount > balance_due:
                raise ConflictError(
                    "Payment amount exceeds balance due",
                    details={"paid_amount": str(amount), "balance_due": str(balance_due)}
                )

            old_data = {
                "paid_amount": receipt.paid_amount,
                "balance_due": receipt.balance_due,
                "status": receipt.status,
            }

            receipt.paid_amount = to_money(receipt.paid_amount) + amount
            receipt.balance_due = max(ZERO, to_money(receipt.total_amount) - receipt.paid_amount)
            receipt.status = receipt_status_for(receipt.balance_due)
            receipt.payment_method = payment_method
            receipt.payment_date = payment_date or datetime.utcnow()
            receipt.transaction_id = transaction_id

            treatment = self.treatment_repo.get_by_id(receipt.treatment_id, for_update=True)
            treatment.paid_amount = to_money(treatment.paid_amount) + amount
            treatment.payment_method = payment_method
            if treatment.payment_status not in TERMINAL_PAYMENT_STATUSES:
                treatment.payment_status = derive_payment_status(
                    treatment.paid_amount, to_money(receipt.total_amount)
                )
            self.db.flush()

        logger.info(f"Payment of {amount} applied to receipt {receipt.receipt_number}, balance {receipt.balance_due}")
        self.audit.record(
            AuditAction.PAYMENT_PROCESSED,
            AuditResource.RECEIPT,
            receipt.id,
            old_data=old_data,
            new_data={
                "paid_amount": receipt.paid_amount,
                "balance_due": receipt.balance_due,
                "status": receipt.status,
                "payment_method": payment_method,
                "transaction_id": transaction_id,
            },
            user_id=user_id
        )
        return receipt

    def update_treatment_payment(
        self,
        treatment_id: str,
        paid_amount: Number,
        payment_method: PaymentMethod,
        transaction_id: Optional[str] = None,
        user_id: Optional[str] = None
    ):
        """Record a deposit on a treatment that has no receipt yet"""
        amount = to_money(paid_amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than 0", details={"field": "paid_amount"})
        payment_method = coerce_payment_method(payment_method)

        with unit_of_work(self.db):
            treatment = self.treatment_repo.get_by_id(treatment_id, for_update=True)
            if not treatment:
                raise NotFoundError("Treatment not found", details={"treatment_id": treatment_id})

            if self.receipt_repo.exists_for_treatment(treatment_id):
                raise ConflictError(
                    "Treatment already has a receipt; apply payments to the receipt",
                    details={"treatment_id": treatment_id}
                )

            outstanding = to_money(treatment.total_cost) - to_money(treatment.paid_amount)
            if amount > outstanding:
                raise ConflictError(
                    "Payment amount exceeds outstanding treatment cost",
                    details={"paid_amount": str(amount), "outstanding": str(outstanding)}
                )

            old_data = {"paid_amount": treatment.paid_amount, "payment_status": treatment.payment_status}
            treatment.paid_amount = to_money(treatment.paid_amount) + amount
            treatment.payment_method = payment_method
            if treatment.payment_status not in TERMINAL_PAYMENT_STATUSES:
                treatment.payment_status = derive_payment_status(
                    treatment.paid_amount, to_money(treatment.total_cost)
                )
            self.db.flush()

        self.audit.record(
            AuditAction.UPDATE_TREATMENT_PAYMENT,
            AuditResource.TREATMENT,
            treatment_id,
            old_data=old_data,
            new_data={
                "paid_amount": treatment.paid_amount,
                "payment_status": treatment.payment_status,
                "payment_method": payment_method,
                "transaction_id": transaction_id,
            },
            user_id=user_id
        )
        return treatment
