from fastapi import Depends, Request
from sqlalchemy.orm import Session

from dental_billing.domain.receipts.service import ReceiptService, PaymentService
from dental_billing.domain.treatments.service import TreatmentService
from dental_billing.infrastructure.database import get_db

# Collaborators (directory, catalog, discounts, qr, audit) live on app.state
# so deployments and tests can swap them without touching the routes.


def get_treatment_service(request: Request, db: Session = Depends(get_db)) -> TreatmentService:
    state = request.app.state
    return TreatmentService(db, state.directory, state.catalog, state.audit)


def get_receipt_service(request: Request, db: Session = Depends(get_db)) -> ReceiptService:
    state = request.app.state
    return ReceiptService(db, state.discounts, state.qr_generator, state.audit, state.directory)


def get_payment_service(request: Request, db: Session = Depends(get_db)) -> PaymentService:
    return PaymentService(db, request.app.state.audit)


def get_discount_registry(request: Request):
    return request.app.state.discounts
