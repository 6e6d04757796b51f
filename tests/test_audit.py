import pytest
from datetime import datetime
from decimal import Decimal

from dental_billing.domain.audit.models import AuditLog, AuditAction, AuditResource
from dental_billing.domain.audit.service import DatabaseAuditSink, to_jsonable
from dental_billing.domain.treatments.models import PaymentStatus
from dental_billing.domain.treatments.service import TreatmentService

from tests.conftest import PATIENT_ID, DENTIST_ID, PROCEDURE_ID


@pytest.mark.unit
def test_to_jsonable_converts_nested_values():
    data = {
        "amount": Decimal("12.50"),
        "status": PaymentStatus.PAID,
        "when": datetime(2026, 1, 2, 3, 4, 5),
        "teeth": (3, 14),
    }

    assert to_jsonable(data) == {
        "amount": "12.50",
        "status": "PAID",
        "when": "2026-01-02T03:04:05",
        "teeth": [3, 14],
    }


def test_database_sink_writes_row(session_factory):
    sink = DatabaseAuditSink(session_factory)

    sink.record(
        AuditAction.PAYMENT_PROCESSED,
        AuditResource.RECEIPT,
        "receipt-1",
        old_data={"balance_due": Decimal("216.00")},
        new_data={"balance_due": Decimal("0.00")},
        user_id="clerk-1"
    )

    with session_factory() as session:
        row = session.query(AuditLog).one()
        assert row.action == AuditAction.PAYMENT_PROCESSED
        assert row.entity_type == AuditResource.RECEIPT
        assert row.new_data == {"balance_due": "0.00"}
        assert row.user_id == "clerk-1"


def test_database_sink_swallows_failures():
    def broken_factory():
        raise RuntimeError("audit store offline")

    DatabaseAuditSink(broken_factory).record(AuditAction.CREATE_TREATMENT, AuditResource.TREATMENT, "t-1")


@pytest.mark.integration
def test_audit_failure_does_not_undo_the_change(db, directory, catalog, session_factory):
    class ExplodingFactory:
        def __call__(self):
            raise RuntimeError("audit store offline")

    service = TreatmentService(db, directory, catalog, DatabaseAuditSink(ExplodingFactory()))
    treatment = service.create_treatment(
        patient_id=PATIENT_ID,
        dentist_id=DENTIST_ID,
        chief_complaint="Checkup",
        diagnosis="Healthy",
        treatment_plan="Cleaning"
    )
    service.add_procedure_to_tooth(treatment.id, PROCEDURE_ID, tooth_numbers=[2])

    with session_factory() as session:
        assert session.query(AuditLog).count() == 0
        stored = service.get_treatment(treatment.id)
        assert stored.total_cost == Decimal("100.00")


@pytest.mark.integration
def test_ledger_operations_are_audited_to_database(db, directory, catalog, session_factory):
    service = TreatmentService(db, directory, catalog, DatabaseAuditSink(session_factory))
    treatment = service.create_treatment(
        patient_id=PATIENT_ID,
        dentist_id=DENTIST_ID,
        chief_complaint="Checkup",
        diagnosis="Healthy",
        treatment_plan="Cleaning"
    )
    service.add_procedure_to_tooth(treatment.id, PROCEDURE_ID, tooth_numbers=[2])

    with session_factory() as session:
        actions = [row.action for row in session.query(AuditLog).order_by(AuditLog.timestamp)]
        assert set(actions) == {AuditAction.CREATE_TREATMENT, AuditAction.ADD_PROCEDURE_TO_TREATMENT}
        created = session.query(AuditLog).filter(AuditLog.entity_id == treatment.id).one()
        assert created.new_data["total_cost"] == "0.00"
