"""Pydantic schemas for payment entities."""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from invoicing.utils.money import MAX_AMOUNT


class PaymentCreate(BaseModel):
    """Schema for recording a payment against an invoice.

    Fields are optional at the schema level; the payment service rejects
    missing values with a business-language message.
    """

    invoice_no: Optional[str] = Field(None, description="Invoice number to pay")
    amount: Optional[Decimal] = Field(None, le=MAX_AMOUNT, description="Amount received")
    method: Optional[str] = Field(None, description="Payment mode (Cash, UPI, Bank Transfer, ...)")
    reference: Optional[str] = Field(None, description="Transaction reference or note")
    received_at: Optional[datetime] = Field(None, description="When the money was received (defaults to now)")


class PaymentUpdate(BaseModel):
    """Schema for editing an existing payment."""

    amount: Optional[Decimal] = Field(None, le=MAX_AMOUNT)
    method: Optional[str] = None
    reference: Optional[str] = None


class InitialPayment(BaseModel):
    """Payment captured together with a new invoice."""

    amount: Decimal = Field(..., le=MAX_AMOUNT, description="Amount received")
    round_off: Decimal = Field(default=Decimal("0"), le=MAX_AMOUNT, description="Absorbed rounding adjustment")
    method: Optional[str] = Field(None, description="Payment mode; falls back to the invoice payment method or Cash")
    reference: Optional[str] = Field(None, description="Note or reference")


class PaymentResponse(BaseModel):
    """Schema for payment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_id: UUID
    amount: Decimal
    round_off: Decimal
    method: str
    reference: Optional[str] = None
    received_at: datetime
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class PaymentRecord(BaseModel):
    """Flattened payment row for the payment records listing."""

    id: UUID
    invoice_id: UUID
    invoice_no: str
    payment_date: datetime
    paid_amount: Decimal
    remaining_balance: Decimal
    payment_method: str
    reference: str
    added_by: Optional[UUID] = None
    invoice_total: Decimal
    invoice_status: str


class PaymentList(BaseModel):
    """Schema for a list of payments."""

    items: List[PaymentResponse]
    total: int


class PaymentDeleted(BaseModel):
    message: str = "Payment deleted successfully"
    payment_id: UUID
    invoice_id: UUID


