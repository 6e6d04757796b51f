"""
Treatment API Routes

Endpoints for treatments, their procedure items, history and tooth chart.
"""

from fastapi import APIRouter, Depends, status, Query
from typing import List, Optional
from datetime import datetime

from dental_billing.api.deps import get_treatment_service, get_payment_service
from dental_billing.domain.receipts.service import PaymentService
from dental_billing.domain.treatments.models import PaymentStatus
from dental_billing.domain.treatments.service import TreatmentService
from dental_billing.api.v1.treatments.schemas import (
    TreatmentCreate, TreatmentResponse, TreatmentDiscountUpdate, TreatmentPaymentUpdate,
    TreatmentItemCreate, TreatmentItemStatusUpdate, TreatmentItemResponse,
    TreatmentHistoryResponse, ToothChartEntry
)

router = APIRouter()


# ==================== Treatment Endpoints ====================

@router.post("", response_model=TreatmentResponse, status_code=status.HTTP_201_CREATED)
def create_treatment(
    treatment_data: TreatmentCreate,
    service: TreatmentService = Depends(get_treatment_service)
):
    """Create a new treatment"""
    return service.create_treatment(**treatment_data.model_dump())


@router.get("", response_model=TreatmentHistoryResponse)
def get_treatment_history(
    patient_id: Optional[str] = None,
    dentist_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    payment_status: Optional[PaymentStatus] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: TreatmentService = Depends(get_treatment_service)
):
    """List treatments with filters, pagination and money stats"""
    return service.get_treatment_history(
        patient_id=patient_id,
        dentist_id=dentist_id,
        start_date=start_date,
        end_date=end_date,
        payment_status=payment_status,
        limit=limit,
        offset=offset
    )


@router.get("/tooth-chart/{patient_id}", response_model=List[ToothChartEntry])
def get_tooth_chart(
    patient_id: str,
    service: TreatmentService = Depends(get_treatment_service)
):
    """Procedures per tooth for a patient"""
    return service.get_tooth_chart_data(patient_id)


@router.get("/{treatment_id}", response_model=TreatmentResponse)
def get_treatment(
    treatment_id: str,
    service: TreatmentService = Depends(get_treatment_service)
):
    """Get treatment by ID"""
    return service.get_treatment(treatment_id)


@router.put("/{treatment_id}/discount", response_model=TreatmentResponse)
def apply_treatment_discount(
    treatment_id: str,
    discount_data: TreatmentDiscountUpdate,
    service: TreatmentService = Depends(get_treatment_service)
):
    """Set the manual discount and recompute the treatment"""
    return service.apply_treatment_discount(treatment_id, discount_data.discount, discount_data.user_id)


@router.post("/{treatment_id}/recalculate", response_model=TreatmentResponse)
def recalculate_treatment_cost(
    treatment_id: str,
    service: TreatmentService = Depends(get_treatment_service)
):
    return service.recalculate_treatment_cost(treatment_id)


@router.put("/{treatment_id}/complete", response_model=TreatmentResponse)
def complete_treatment(
    treatment_id: str,
    user_id: Optional[str] = None,
    service: TreatmentService = Depends(get_treatment_service)
):
    """Complete the open items of a fully paid treatment"""
    return service.complete_treatment(treatment_id, user_id)


@router.post("/{treatment_id}/payments", response_model=TreatmentResponse)
def update_treatment_payment(
    treatment_id: str,
    payment_data: TreatmentPaymentUpdate,
    service: PaymentService = Depends(get_payment_service)
):
    """Record a deposit on a treatment that has no receipt yet"""
    return service.update_treatment_payment(treatment_id, **payment_data.model_dump())


# ==================== Item Endpoints ====================

@router.post(
    "/{treatment_id}/items",
    response_model=TreatmentItemResponse,
    status_code=status.HTTP_201_CREATED
)
def add_procedure_to_tooth(
    treatment_id: str,
    item_data: TreatmentItemCreate,
    service: TreatmentService = Depends(get_treatment_service)
):
    """Add a procedure on one or more teeth"""
    return service.add_procedure_to_tooth(treatment_id, **item_data.model_dump())


@router.patch("/items/{item_id}/status", response_model=TreatmentItemResponse)
def update_treatment_item_status(
    item_id: str,
    status_data: TreatmentItemStatusUpdate,
    service: TreatmentService = Depends(get_treatment_service)
):
    return service.update_treatment_item_status(item_id, status_data.status, status_data.user_id)


@router.delete("/items/{item_id}", response_model=TreatmentResponse)
def delete_treatment_item(
    item_id: str,
    user_id: Optional[str] = None,
    service: TreatmentService = Depends(get_treatment_service)
):
    """Remove an item; returns the recomputed treatment"""
    return service.delete_treatment_item(item_id, user_id)
