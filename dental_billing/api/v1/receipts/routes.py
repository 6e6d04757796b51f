"""
Receipt API Routes

Receipt issuance, lookup, payments and discount codes.
"""

from fastapi import APIRouter, Depends, status, Query
from typing import List, Optional

from dental_billing.api.deps import get_receipt_service, get_payment_service, get_discount_registry
from dental_billing.domain.discounts.registry import DiscountRegistry
from dental_billing.domain.receipts.models import ReceiptStatus
from dental_billing.domain.receipts.service import ReceiptService, PaymentService
from dental_billing.api.v1.receipts.schemas import (
    ReceiptCreate, ReceiptResponse, ReceiptListResponse,
    TotalsRequest, TotalsResponse, PaymentCreate,
    DiscountCodeResponse, DiscountValidateRequest, DiscountValidateResponse
)

router = APIRouter()
discount_router = APIRouter()


# ==================== Receipt Endpoints ====================

@router.post("", response_model=ReceiptResponse, status_code=status.HTTP_201_CREATED)
def generate_receipt(
    receipt_data: ReceiptCreate,
    service: ReceiptService = Depends(get_receipt_service)
):
    """Issue the receipt for a treatment"""
    return service.generate_receipt(**receipt_data.model_dump())


@router.get("", response_model=ReceiptListResponse)
def list_receipts(
    patient_id: Optional[str] = None,
    dentist_id: Optional[str] = None,
    status_filter: Optional[ReceiptStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: ReceiptService = Depends(get_receipt_service)
):
    return service.list_receipts(
        patient_id=patient_id,
        dentist_id=dentist_id,
        status=status_filter,
        limit=limit,
        offset=offset
    )


@router.post("/calculate", response_model=TotalsResponse)
def calculate_totals(
    totals_data: TotalsRequest,
    service: ReceiptService = Depends(get_receipt_service)
):
    """Preview receipt totals without issuing anything"""
    return service.calculate_totals(**totals_data.model_dump())


@router.get("/treatment/{treatment_id}", response_model=ReceiptResponse)
def get_receipt_by_treatment(
    treatment_id: str,
    service: ReceiptService = Depends(get_receipt_service)
):
    return service.get_receipt_by_treatment(treatment_id)


@router.get("/{receipt_id}", response_model=ReceiptResponse)
def get_receipt(
    receipt_id: str,
    service: ReceiptService = Depends(get_receipt_service)
):
    """Get receipt by ID"""
    return service.get_receipt(receipt_id)


@router.post("/{receipt_id}/payments", response_model=ReceiptResponse)
def process_payment(
    receipt_id: str,
    payment_data: PaymentCreate,
    service: PaymentService = Depends(get_payment_service)
):
    """Apply a payment against the receipt balance"""
    return service.process_payment(receipt_id, **payment_data.model_dump())


# ==================== Discount Code Endpoints ====================

@discount_router.get("", response_model=List[DiscountCodeResponse])
def list_discount_codes(registry: DiscountRegistry = Depends(get_discount_registry)):
    """Active discount codes"""
    return registry.available_codes()


@discount_router.post("/validate", response_model=DiscountValidateResponse)
def validate_discount_code(
    request_data: DiscountValidateRequest,
    registry: DiscountRegistry = Depends(get_discount_registry)
):
    applied = registry.validate_public(request_data.code, request_data.subtotal)
    if not applied:
        return DiscountValidateResponse(valid=False)
    return DiscountValidateResponse(
        valid=True,
        code=applied.code,
        percentage=applied.percentage,
        amount=applied.amount,
        description=applied.description
    )
