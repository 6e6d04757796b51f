import re
import threading
import pytest
from datetime import datetime
from decimal import Decimal

from dental_billing.core.exceptions import (
    ConflictError, DatabaseError, ExternalServiceError, NotFoundError, ValidationError
)
from dental_billing.domain.audit.models import AuditAction
from dental_billing.domain.receipts.models import Receipt, ReceiptStatus
from dental_billing.domain.receipts.service import ReceiptService
from dental_billing.domain.treatments.models import PaymentMethod, PaymentStatus
from dental_billing.infrastructure.database import unit_of_work

from tests.conftest import PATIENT_ID, DENTIST_ID, PROCEDURE_ID

pytestmark = pytest.mark.receipts


def _new_priced_treatment(treatment_service, patient_id=PATIENT_ID, teeth=(3, 14)):
    treatment = treatment_service.create_treatment(
        patient_id=patient_id,
        dentist_id=DENTIST_ID,
        chief_complaint="Broken filling",
        diagnosis="Secondary caries",
        treatment_plan="Replace restoration"
    )
    treatment_service.add_procedure_to_tooth(treatment.id, PROCEDURE_ID, tooth_numbers=list(teeth))
    return treatment


# ==================== Totals ====================

@pytest.mark.unit
def test_totals_with_tax_only(receipt_service):
    totals = receipt_service.calculate_totals(Decimal("200"), tax_rate=Decimal("0.08"))

    assert totals.subtotal == Decimal("200.00")
    assert totals.discount == Decimal("0.00")
    assert totals.tax == Decimal("16.00")
    assert totals.total_amount == Decimal("216.00")
    assert totals.balance_due == Decimal("216.00")
    assert totals.discount_code_applied is None


@pytest.mark.unit
@pytest.mark.discounts
def test_totals_with_discount_code(receipt_service):
    totals = receipt_service.calculate_totals(Decimal("200"), discount_code="UTMBEST", tax_rate=Decimal("0.08"))

    assert totals.discount_code_applied == "UTMBEST"
    assert totals.discount_code_value == Decimal("40.00")
    assert totals.discount == Decimal("40.00")
    assert totals.tax == Decimal("12.80")
    assert totals.total_amount == Decimal("172.80")


@pytest.mark.unit
@pytest.mark.discounts
@pytest.mark.parametrize("code", ["NOPE", "SPRING10"])
def test_unusable_discount_code_is_skipped(receipt_service, code):
    totals = receipt_service.calculate_totals(Decimal("200"), discount_code=code, tax_rate=Decimal("0.08"))

    assert totals.discount_code_applied is None
    assert totals.discount_code_value == Decimal("0")
    assert totals.total_amount == Decimal("216.00")


@pytest.mark.unit
def test_totals_stack_discounts(receipt_service):
    totals = receipt_service.calculate_totals(
        Decimal("200"),
        treatment_discount=Decimal("10"),
        custom_discount=Decimal("5.50"),
        discount_code="utmbest",
        tax_rate=Decimal("0.08")
    )

    assert totals.discount == Decimal("55.50")
    assert totals.tax == Decimal("11.56")
    assert totals.total_amount == Decimal("156.06")


@pytest.mark.unit
def test_totals_floor_at_zero(receipt_service):
    totals = receipt_service.calculate_totals(Decimal("50"), custom_discount=Decimal("80"), tax_rate=Decimal("0.08"))

    assert totals.tax == Decimal("0.00")
    assert totals.total_amount == Decimal("0.00")


@pytest.mark.unit
def test_totals_round_half_up(receipt_service):
    totals = receipt_service.calculate_totals(10.10, tax_rate=0.05)
    # 0.505 rounds up, not to even
    assert totals.tax == Decimal("0.51")
    assert totals.total_amount == Decimal("10.61")


@pytest.mark.unit
def test_totals_default_tax_rate(receipt_service):
    totals = receipt_service.calculate_totals(Decimal("100"))
    assert totals.tax == Decimal("8.00")


@pytest.mark.unit
@pytest.mark.parametrize("kwargs", [{"tax_rate": Decimal("-0.01")}, {"custom_discount": Decimal("-1")}])
def test_totals_reject_negative_inputs(receipt_service, kwargs):
    with pytest.raises(ValidationError):
        receipt_service.calculate_totals(Decimal("100"), **kwargs)


# ==================== Receipt numbers ====================

@pytest.mark.unit
def test_receipt_number_format(receipt_service):
    number = receipt_service.generate_receipt_number(datetime(2026, 3, 9, 15, 30))
    assert number == "RCP-2603-001"


def test_receipt_numbers_count_todays_receipts(receipt_service, treatment_service):
    first = receipt_service.generate_receipt(_new_priced_treatment(treatment_service).id, DENTIST_ID)
    second = receipt_service.generate_receipt(_new_priced_treatment(treatment_service).id, DENTIST_ID)

    prefix = f"RCP-{datetime.utcnow():%y%m}"
    assert first.receipt_number == f"{prefix}-001"
    assert second.receipt_number == f"{prefix}-002"


def test_receipt_number_collision_retries_with_suffix(receipt_service, treatment_service, receipt, monkeypatch):
    monkeypatch.setattr(receipt_service, "generate_receipt_number", lambda now=None: receipt.receipt_number)

    other = receipt_service.generate_receipt(_new_priced_treatment(treatment_service).id, DENTIST_ID)

    assert re.fullmatch(re.escape(receipt.receipt_number) + r"-\d{4}", other.receipt_number)


# ==================== Issuing ====================

@pytest.mark.integration
def test_generate_receipt_scenario(receipt, priced_treatment, qr_generator, audit, db):
    assert receipt.subtotal == Decimal("200.00")
    assert receipt.discount == Decimal("0.00")
    assert receipt.tax == Decimal("16.00")
    assert receipt.total_amount == Decimal("216.00")
    assert receipt.paid_amount == Decimal("0.00")
    assert receipt.balance_due == Decimal("216.00")
    assert receipt.status == ReceiptStatus.PARTIAL
    assert receipt.issued_by_id == DENTIST_ID

    assert qr_generator.requests == [f"http://localhost:3000/appointments/book?patient={PATIENT_ID}"]
    assert receipt.qr_code == f"qr:{qr_generator.requests[0]}"

    db.refresh(priced_treatment)
    assert priced_treatment.payment_status == PaymentStatus.PENDING
    assert audit.actions()[-1] == AuditAction.RECEIPT_CREATED


@pytest.mark.discounts
def test_generate_receipt_with_discount_code(receipt_service, priced_treatment):
    receipt = receipt_service.generate_receipt(
        priced_treatment.id, DENTIST_ID, discount_code=" utmbest ", tax_rate=Decimal("0.08")
    )

    assert receipt.discount_code_applied == "UTMBEST"
    assert receipt.discount == Decimal("40.00")
    assert receipt.tax == Decimal("12.80")
    assert receipt.total_amount == Decimal("172.80")


def test_treatment_discount_is_not_applied_twice(receipt_service, treatment_service, priced_treatment):
    treatment_service.apply_treatment_discount(priced_treatment.id, Decimal("20"))

    receipt = receipt_service.generate_receipt(priced_treatment.id, DENTIST_ID, tax_rate=Decimal("0.08"))

    assert receipt.subtotal == Decimal("200.00")
    assert receipt.discount == Decimal("20.00")
    assert receipt.total_amount == Decimal("194.40")


def test_generate_receipt_records_payment_method(receipt_service, priced_treatment, db):
    receipt_service.generate_receipt(
        priced_treatment.id, DENTIST_ID,
        payment_method=PaymentMethod.CREDIT_CARD,
        email_address="patient@example.com"
    )

    db.refresh(priced_treatment)
    assert priced_treatment.payment_method == PaymentMethod.CREDIT_CARD
    assert priced_treatment.receipt.email_address == "patient@example.com"


def test_receipt_starts_from_deposit(receipt_service, payment_service, priced_treatment, db):
    payment_service.update_treatment_payment(priced_treatment.id, Decimal("50"), PaymentMethod.CASH)

    receipt = receipt_service.generate_receipt(priced_treatment.id, DENTIST_ID, tax_rate=Decimal("0.08"))

    assert receipt.paid_amount == Decimal("50.00")
    assert receipt.balance_due == Decimal("166.00")
    assert receipt.status == ReceiptStatus.PARTIAL
    db.refresh(priced_treatment)
    assert priced_treatment.payment_status == PaymentStatus.PARTIAL


def test_generate_receipt_missing_treatment(receipt_service):
    with pytest.raises(NotFoundError):
        receipt_service.generate_receipt("missing", DENTIST_ID)


def test_generate_receipt_rejects_unknown_payment_method(receipt_service, priced_treatment):
    with pytest.raises(ValidationError):
        receipt_service.generate_receipt(priced_treatment.id, DENTIST_ID, payment_method="CHEQUE")


def test_second_receipt_conflicts(receipt_service, receipt, db):
    with pytest.raises(ConflictError):
        receipt_service.generate_receipt(receipt.treatment_id, DENTIST_ID)

    assert db.query(Receipt).count() == 1


def test_second_receipt_conflicts_on_unique_constraint(receipt_service, receipt, db, monkeypatch):
    # Simulate a racing request that passed the existence check
    monkeypatch.setattr(receipt_service.receipt_repo, "get_by_treatment", lambda treatment_id: None)

    with pytest.raises(ConflictError):
        receipt_service.generate_receipt(receipt.treatment_id, DENTIST_ID)

    db.rollback()
    assert db.query(Receipt).count() == 1


@pytest.mark.integration
def test_concurrent_receipts_issue_exactly_one(
    db, session_factory, discounts, qr_generator, audit, directory, priced_treatment
):
    # the fixture session must not hold a read transaction open
    db.commit()
    barrier = threading.Barrier(2)
    outcomes = []

    def issue():
        session = session_factory()
        service = ReceiptService(session, discounts, qr_generator, audit, directory)
        try:
            barrier.wait()
            service.generate_receipt(priced_treatment.id, DENTIST_ID)
            outcomes.append("issued")
        except ConflictError:
            outcomes.append("conflict")
        except Exception as e:
            outcomes.append(f"{type(e).__name__}: {e}")
        finally:
            session.close()

    threads = [threading.Thread(target=issue) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert sorted(outcomes) == ["conflict", "issued"]
    assert db.query(Receipt).filter(Receipt.treatment_id == priced_treatment.id).count() == 1


def test_qr_payload_is_built_before_the_write_lock(db, session_factory, discounts, audit, priced_treatment):
    class WriteLockCheckingQR:
        """Tries to take the database write lock from another session"""

        def __init__(self):
            self.lock_was_free = None

        def generate(self, text):
            other = session_factory()
            try:
                with unit_of_work(other):
                    pass
                self.lock_was_free = True
            except DatabaseError:
                self.lock_was_free = False
            finally:
                other.close()
            return "qr"

    qr = WriteLockCheckingQR()
    receipt = ReceiptService(db, discounts, qr, audit).generate_receipt(priced_treatment.id, DENTIST_ID)

    assert qr.lock_was_free is True
    assert receipt.qr_code == "qr"


# ==================== Email ====================

def test_receipt_email_defaults_to_patient_email(receipt):
    assert receipt.email_address == "patient@example.com"


def test_explicit_receipt_email_wins(receipt_service, priced_treatment):
    receipt = receipt_service.generate_receipt(
        priced_treatment.id, DENTIST_ID, email_address="billing@example.com"
    )

    assert receipt.email_address == "billing@example.com"


def test_receipt_email_without_directory(db, discounts, qr_generator, audit, priced_treatment):
    receipt = ReceiptService(db, discounts, qr_generator, audit).generate_receipt(priced_treatment.id, DENTIST_ID)

    assert receipt.email_address is None


def test_directory_outage_does_not_block_receipt(db, discounts, qr_generator, audit, priced_treatment):
    class OfflineDirectory:
        def get_patient(self, patient_id):
            raise ExternalServiceError("External service directory unavailable")

        def get_dentist(self, dentist_id):
            raise ExternalServiceError("External service directory unavailable")

    service = ReceiptService(db, discounts, qr_generator, audit, OfflineDirectory())
    receipt = service.generate_receipt(priced_treatment.id, DENTIST_ID)

    assert receipt.email_address is None
    assert receipt.total_amount == Decimal("216.00")


# ==================== Lookup ====================

def test_get_receipt(receipt_service, receipt):
    assert receipt_service.get_receipt(receipt.id).receipt_number == receipt.receipt_number
    assert receipt_service.get_receipt_by_treatment(receipt.treatment_id).id == receipt.id


def test_get_receipt_missing(receipt_service, treatment):
    with pytest.raises(NotFoundError):
        receipt_service.get_receipt("missing")
    with pytest.raises(NotFoundError):
        receipt_service.get_receipt_by_treatment(treatment.id)


def test_list_receipts_filters(receipt_service, treatment_service, payment_service):
    mine = receipt_service.generate_receipt(_new_priced_treatment(treatment_service).id, DENTIST_ID)
    theirs = receipt_service.generate_receipt(
        _new_priced_treatment(treatment_service, patient_id="patient-2", teeth=(1,)).id, DENTIST_ID
    )
    payment_service.process_payment(theirs.id, PaymentMethod.CASH, theirs.balance_due)

    by_patient = receipt_service.list_receipts(patient_id=PATIENT_ID)
    assert [r.id for r in by_patient["receipts"]] == [mine.id]
    assert by_patient["total_count"] == 1

    paid = receipt_service.list_receipts(status=ReceiptStatus.PAID)
    assert [r.id for r in paid["receipts"]] == [theirs.id]

    everything = receipt_service.list_receipts(dentist_id=DENTIST_ID, limit=1)
    assert everything["total_count"] == 2
    assert everything["pagination"]["has_more"] is True
