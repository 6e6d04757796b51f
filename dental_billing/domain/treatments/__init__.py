# Treatment ledger domain module
from dental_billing.domain.treatments.models import (
    Treatment,
    TreatmentItem,
    TreatmentItemStatus,
    PaymentStatus,
    PaymentMethod,
    derive_payment_status,
)
from dental_billing.domain.treatments.service import TreatmentService

__all__ = [
    "Treatment",
    "TreatmentItem",
    "TreatmentItemStatus",
    "PaymentStatus",
    "PaymentMethod",
    "derive_payment_status",
    "TreatmentService",
]
