"""
Treatment API Schemas

Pydantic models for treatment ledger requests and responses.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal

from dental_billing.domain.treatments.models import (
    PaymentStatus, PaymentMethod, TreatmentItemStatus
)


# ==================== Treatment Schemas ====================

class TreatmentCreate(BaseModel):
    """Schema for creating treatment"""
    patient_id: str
    dentist_id: str
    chief_complaint: str = Field(..., min_length=1, max_length=2000)
    diagnosis: str = Field(..., min_length=1, max_length=2000)
    treatment_plan: str = Field(..., min_length=1)
    notes: Optional[str] = None
    treatment_date: Optional[datetime] = None
    discount: Decimal = Field(Decimal("0"), ge=0)
    payment_method: Optional[PaymentMethod] = None
    performed_by: Optional[str] = None


class TreatmentDiscountUpdate(BaseModel):
    discount: Decimal = Field(..., ge=0)
    user_id: Optional[str] = None


class TreatmentPaymentUpdate(BaseModel):
    """Deposit recorded before a receipt exists"""
    paid_amount: Decimal
    payment_method: PaymentMethod
    transaction_id: Optional[str] = None
    user_id: Optional[str] = None


# ==================== Item Schemas ====================

class TreatmentItemCreate(BaseModel):
    """Schema for adding a procedure to teeth"""
    procedure_id: str
    tooth_numbers: List[int]
    tooth_surfaces: List[str] = []
    quantity: int = 1
    notes: Optional[str] = None
    status: TreatmentItemStatus = TreatmentItemStatus.PLANNED
    user_id: Optional[str] = None


class TreatmentItemStatusUpdate(BaseModel):
    status: TreatmentItemStatus
    user_id: Optional[str] = None


class TreatmentItemResponse(BaseModel):
    id: str
    treatment_id: str
    procedure_id: str
    tooth_numbers: List[int]
    tooth_surfaces: List[str]
    quantity: int
    unit_cost: Decimal
    total_cost: Decimal
    status: TreatmentItemStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TreatmentResponse(BaseModel):
    """Schema for treatment response"""
    id: str
    patient_id: str
    dentist_id: str
    chief_complaint: str
    diagnosis: str
    treatment_plan: str
    notes: Optional[str] = None
    treatment_date: datetime
    total_cost: Decimal
    paid_amount: Decimal
    discount: Decimal
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    items: List[TreatmentItemResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== Reporting Schemas ====================

class TreatmentStats(BaseModel):
    total_treatments: int
    total_revenue: Decimal
    total_outstanding: Decimal
    total_discounts: Decimal
    payment_status_breakdown: Dict[str, int]


class Pagination(BaseModel):
    offset: int
    limit: int
    has_more: bool


class TreatmentHistoryResponse(BaseModel):
    treatments: List[TreatmentResponse]
    total_count: int
    stats: TreatmentStats
    pagination: Pagination


class ToothProcedure(BaseModel):
    id: str
    procedure_id: str
    name: Optional[str] = None
    category: Optional[str] = None
    date: datetime
    status: TreatmentItemStatus
    surfaces: List[str]


class ToothChartEntry(BaseModel):
    tooth_number: int
    procedures: List[ToothProcedure]
