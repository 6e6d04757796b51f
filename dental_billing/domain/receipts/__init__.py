# Receipt issuing and payment reconciliation
from dental_billing.domain.receipts.models import Receipt, ReceiptStatus
from dental_billing.domain.receipts.service import (
    ReceiptService,
    ReceiptTotals,
    PaymentService,
)

__all__ = [
    "Receipt",
    "ReceiptStatus",
    "ReceiptService",
    "ReceiptTotals",
    "PaymentService",
]
