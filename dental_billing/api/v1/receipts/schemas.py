"""
Receipt API Schemas
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from dental_billing.domain.receipts.models import ReceiptStatus
from dental_billing.domain.treatments.models import PaymentMethod


# ==================== Receipt Schemas ====================

class ReceiptCreate(BaseModel):
    """Schema for issuing the receipt of a treatment"""
    treatment_id: str
    issued_by_id: str
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    transaction_id: Optional[str] = None
    email_address: Optional[str] = None
    custom_discount: Decimal = Field(Decimal("0"), ge=0)
    discount_code: Optional[str] = None
    tax_rate: Optional[Decimal] = Field(None, ge=0)


class ReceiptResponse(BaseModel):
    id: str
    treatment_id: str
    issued_by_id: str
    receipt_number: str
    subtotal: Decimal
    discount: Decimal
    discount_code_applied: Optional[str] = None
    tax: Decimal
    tax_rate: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    balance_due: Decimal
    status: ReceiptStatus
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    transaction_id: Optional[str] = None
    qr_code: Optional[str] = None
    email_address: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    offset: int
    limit: int
    has_more: bool


class ReceiptListResponse(BaseModel):
    receipts: List[ReceiptResponse]
    total_count: int
    pagination: Pagination


class TotalsRequest(BaseModel):
    """Preview of receipt arithmetic"""
    treatment_total_cost: Decimal = Field(..., ge=0)
    treatment_discount: Decimal = Field(Decimal("0"), ge=0)
    custom_discount: Decimal = Field(Decimal("0"), ge=0)
    discount_code: Optional[str] = None
    tax_rate: Optional[Decimal] = Field(None, ge=0)


class TotalsResponse(BaseModel):
    subtotal: Decimal
    discount: Decimal
    discount_code_applied: Optional[str] = None
    discount_code_value: Decimal
    tax: Decimal
    total_amount: Decimal
    balance_due: Decimal

    class Config:
        from_attributes = True


# ==================== Payment Schemas ====================

class PaymentCreate(BaseModel):
    payment_method: PaymentMethod
    paid_amount: Decimal
    transaction_id: Optional[str] = None
    payment_date: Optional[datetime] = None
    user_id: Optional[str] = None


# ==================== Discount Schemas ====================

class DiscountCodeResponse(BaseModel):
    code: str
    description: str
    percentage: Decimal
    discount_text: str


class DiscountValidateRequest(BaseModel):
    code: str
    subtotal: Decimal = Field(..., ge=0)


class DiscountValidateResponse(BaseModel):
    valid: bool
    code: Optional[str] = None
    percentage: Optional[Decimal] = None
    amount: Optional[Decimal] = None
    description: Optional[str] = None
