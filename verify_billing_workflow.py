"""Walk one treatment from first procedure to a settled receipt against the configured database."""
import traceback
import uuid
from decimal import Decimal

from dental_billing.domain.audit.service import DatabaseAuditSink
from dental_billing.domain.discounts.registry import DiscountRegistry
from dental_billing.domain.receipts.service import ReceiptService, PaymentService
from dental_billing.domain.treatments.models import PaymentMethod, TreatmentItemStatus
from dental_billing.domain.treatments.service import TreatmentService
from dental_billing.infrastructure.catalog import default_catalog
from dental_billing.infrastructure.database import SessionLocal, init_db
from dental_billing.infrastructure.directory import InMemoryDirectory, PatientRecord, DentistRecord
from dental_billing.services.qr_service import QRServerGenerator


def run_workflow():
    print("Initializing database...")
    init_db()

    db = SessionLocal()
    audit = DatabaseAuditSink(SessionLocal)

    try:
        print("\n--- 1. Setup Data ---")
        patient = PatientRecord(id=str(uuid.uuid4()), email="jane.doe@example.com")
        dentist = DentistRecord(id=str(uuid.uuid4()))
        directory = InMemoryDirectory()
        directory.add_patient(patient)
        directory.add_dentist(dentist)
        print(f"Patient: {patient.id}")
        print(f"Dentist: {dentist.id}")

        print("\n--- 2. Open Treatment ---")
        treatment_service = TreatmentService(db, directory, default_catalog(), audit)
        treatment = treatment_service.create_treatment(
            patient_id=patient.id,
            dentist_id=dentist.id,
            chief_complaint="Pain when biting, lower left",
            diagnosis="Deep caries on 19, cracked cusp on 20",
            treatment_plan="Root canal on 19, composite on 20"
        )
        print(f"Treatment {treatment.id} opened")

        print("\n--- 3. Add Procedures ---")
        root_canal = treatment_service.add_procedure_to_tooth(treatment.id, "proc-014", tooth_numbers=[19])
        filling = treatment_service.add_procedure_to_tooth(
            treatment.id, "proc-009", tooth_numbers=[20], tooth_surfaces=["M", "O"]
        )
        treatment_service.update_treatment_item_status(root_canal.id, TreatmentItemStatus.COMPLETED)
        treatment = treatment_service.get_treatment(treatment.id)
        print(f"Root canal: {root_canal.total_cost}, composite: {filling.total_cost}")
        print(f"Treatment total: {treatment.total_cost} ({treatment.payment_status.value})")

        print("\n--- 4. Issue Receipt ---")
        receipt_service = ReceiptService(db, DiscountRegistry.from_settings(), QRServerGenerator(), audit, directory)
        receipt = receipt_service.generate_receipt(
            treatment.id,
            issued_by_id=dentist.id,
            discount_code="UTMBEST"
        )
        print(f"Receipt {receipt.receipt_number}: subtotal {receipt.subtotal}, "
              f"discount {receipt.discount}, tax {receipt.tax}, total {receipt.total_amount}")
        print(f"Receipt emailed to {receipt.email_address}")

        print("\n--- 5. Take Payments ---")
        payment_service = PaymentService(db, audit)
        receipt = payment_service.process_payment(receipt.id, PaymentMethod.CASH, Decimal("500.00"))
        print(f"After deposit: paid {receipt.paid_amount}, balance {receipt.balance_due} ({receipt.status.value})")
        receipt = payment_service.process_payment(receipt.id, PaymentMethod.CREDIT_CARD, receipt.balance_due)
        print(f"After card payment: balance {receipt.balance_due} ({receipt.status.value})")

        db.expire_all()
        treatment = treatment_service.get_treatment(treatment.id)
        print(f"Treatment payment status: {treatment.payment_status.value}")

        print("\n--- 6. Complete Treatment ---")
        treatment = treatment_service.complete_treatment(treatment.id, user_id=dentist.id)
        print(f"Item statuses: {[item.status.value for item in treatment.items]}")

        print("\n✅ WORKFLOW COMPLETED SUCCESSFULLY!")

    except Exception as e:
        print(f"\n❌ WORKFLOW FAILED: {str(e)}")
        traceback.print_exc()
    finally:
        db.close()


if __name__ == "__main__":
    run_workflow()
