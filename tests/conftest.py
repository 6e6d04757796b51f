import pytest
from decimal import Decimal
from typing import Generator, List

from sqlalchemy.orm import Session

from dental_billing.domain.discounts.registry import DiscountRegistry
from dental_billing.domain.receipts.service import ReceiptService, PaymentService
from dental_billing.domain.treatments.service import TreatmentService
from dental_billing.infrastructure.catalog import (
    InMemoryProcedureCatalog, ProcedureRecord, ProcedureCategory, DEFAULT_PROCEDURES
)
from dental_billing.infrastructure.database import build_engine, build_session_factory, init_db
from dental_billing.infrastructure.directory import (
    InMemoryDirectory, PatientRecord, DentistRecord, StaffRole
)


PATIENT_ID = "patient-1"
INACTIVE_PATIENT_ID = "patient-inactive"
DENTIST_ID = "dentist-1"
ADMIN_ID = "admin-1"
ASSISTANT_ID = "assistant-1"
INACTIVE_DENTIST_ID = "dentist-inactive"

# 100.00 per tooth, used by the worked billing scenarios
PROCEDURE_ID = "proc-test"
RETIRED_PROCEDURE_ID = "proc-retired"


class RecordingAuditSink:
    """Keeps audit records in memory"""

    def __init__(self):
        self.records: List[dict] = []

    def record(self, action, entity_type, entity_id, old_data=None, new_data=None, user_id=None):
        self.records.append({
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "old_data": old_data,
            "new_data": new_data,
            "user_id": user_id,
        })

    def actions(self):
        return [r["action"] for r in self.records]


class StubQRGenerator:
    def __init__(self):
        self.requests: List[str] = []

    def generate(self, text: str) -> str:
        self.requests.append(text)
        return f"qr:{text}"


@pytest.fixture(scope="function")
def engine(tmp_path):
    """File-backed SQLite database per test"""
    engine = build_engine(f"sqlite:///{tmp_path / 'billing.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def directory() -> InMemoryDirectory:
    return InMemoryDirectory(
        patients=[
            PatientRecord(id=PATIENT_ID, email="patient@example.com"),
            PatientRecord(id="patient-2"),
            PatientRecord(id=INACTIVE_PATIENT_ID, is_active=False),
        ],
        dentists=[
            DentistRecord(id=DENTIST_ID),
            DentistRecord(id=ADMIN_ID, role=StaffRole.ADMIN),
            DentistRecord(id=ASSISTANT_ID, role=StaffRole.ASSISTANT),
            DentistRecord(id=INACTIVE_DENTIST_ID, is_active=False),
        ]
    )


@pytest.fixture(scope="function")
def catalog() -> InMemoryProcedureCatalog:
    catalog = InMemoryProcedureCatalog(DEFAULT_PROCEDURES)
    catalog.add(ProcedureRecord(
        id=PROCEDURE_ID,
        code="T0100",
        name="Test Restoration",
        default_cost=Decimal("100.00"),
        category=ProcedureCategory.RESTORATIVE,
        per_tooth=True,
    ))
    catalog.add(ProcedureRecord(
        id=RETIRED_PROCEDURE_ID,
        code="T0200",
        name="Retired Procedure",
        default_cost=Decimal("75.00"),
        is_active=False,
    ))
    return catalog


@pytest.fixture(scope="function")
def discounts() -> DiscountRegistry:
    return DiscountRegistry.from_mapping({
        "UTMBEST": {"percentage": "0.20", "description": "UTM Best Student Discount", "is_active": True},
        "SPRING10": {"percentage": "0.10", "description": "Spring promotion", "is_active": False},
    })


@pytest.fixture(scope="function")
def audit() -> RecordingAuditSink:
    return RecordingAuditSink()


@pytest.fixture(scope="function")
def qr_generator() -> StubQRGenerator:
    return StubQRGenerator()


@pytest.fixture(scope="function")
def treatment_service(db, directory, catalog, audit) -> TreatmentService:
    return TreatmentService(db, directory, catalog, audit)


@pytest.fixture(scope="function")
def receipt_service(db, discounts, qr_generator, audit, directory) -> ReceiptService:
    return ReceiptService(db, discounts, qr_generator, audit, directory)


@pytest.fixture(scope="function")
def payment_service(db, audit) -> PaymentService:
    return PaymentService(db, audit)


@pytest.fixture(scope="function")
def treatment(treatment_service):
    """An empty treatment for the default patient and dentist"""
    return treatment_service.create_treatment(
        patient_id=PATIENT_ID,
        dentist_id=DENTIST_ID,
        chief_complaint="Pain on chewing, upper right",
        diagnosis="Occlusal caries on 3 and 14",
        treatment_plan="Composite restorations"
    )


@pytest.fixture(scope="function")
def priced_treatment(treatment_service, treatment):
    """Treatment with one 100.00 procedure on two teeth (200.00)"""
    treatment_service.add_procedure_to_tooth(
        treatment.id, PROCEDURE_ID, tooth_numbers=[3, 14], tooth_surfaces=["O"]
    )
    return treatment_service.get_treatment(treatment.id)


@pytest.fixture(scope="function")
def receipt(receipt_service, priced_treatment):
    """Receipt at the default 8% tax: 216.00 due"""
    return receipt_service.generate_receipt(
        priced_treatment.id, issued_by_id=DENTIST_ID, tax_rate=Decimal("0.08")
    )


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "treatments: mark test as treatment ledger related"
    )
    config.addinivalue_line(
        "markers", "receipts: mark test as receipt issuing related"
    )
    config.addinivalue_line(
        "markers", "payments: mark test as payment reconciliation related"
    )
    config.addinivalue_line(
        "markers", "discounts: mark test as discount code related"
    )
