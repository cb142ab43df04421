"""Pydantic schemas for Invoice model."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from invoicing.models.invoice import InvoiceStatus
from invoicing.schemas.payment import InitialPayment, PaymentResponse
from invoicing.utils.money import MAX_AMOUNT, sum_amounts

# Numbers arrive from an editable table and may be blank or textual
LooseNumber = Union[int, float, Decimal, str, None]


class InvoiceItemInput(BaseModel):
    """Raw line item as submitted by the invoice editor."""

    product_id: UUID | None = Field(default=None, description="Catalogue product this line sells")
    title: str | None = Field(default=None, description="Line title")
    product_title: str | None = Field(default=None, description="Product title used when title is blank")
    description: str | None = None
    qty: LooseNumber = Field(default=None, description="Quantity (lines with quantity 0 are dropped)")
    price: LooseNumber = Field(default=None, description="Unit price")
    gst: LooseNumber = Field(default=None, description="GST percentage")
    discount_pct: LooseNumber = Field(default=None, description="Discount percentage")
    hsn_code: str | None = None


class InvoiceCreate(BaseModel):
    """Schema for creating a new invoice.

    ``received_amount`` is accepted from older clients and converted into a
    single payment when ``payments`` is empty.
    """

    invoice_no: str | None = Field(default=None, description="Invoice number (replaced by a draft token for drafts)")
    buyer_id: UUID | None = Field(default=None, description="Buyer the invoice is issued to")
    status: str | None = Field(default=None, description="'Draft' to save as draft; anything else saves as final")
    items: list[InvoiceItemInput] = Field(default_factory=list)
    service_charge: Decimal = Field(default=Decimal("0"), le=MAX_AMOUNT, description="Flat charge added to the total")
    payment_method: str | None = None
    signature: str | None = None
    notes: str | None = None
    extra_charges: Any = None
    invoice_date: datetime | None = None
    payments: list[InitialPayment] = Field(default_factory=list)
    received_amount: Decimal = Field(default=Decimal("0"), le=MAX_AMOUNT, description="Legacy single received amount")

    @property
    def is_draft(self) -> bool:
        return self.status == InvoiceStatus.DRAFT.value


class InvoiceUpdate(BaseModel):
    """Schema for patching an invoice. Status is accepted only if unchanged."""

    buyer_id: UUID | None = None
    supplier_id: UUID | None = None
    status: str | None = None
    items: list[InvoiceItemInput] | None = None
    service_charge: Decimal | None = Field(default=None, le=MAX_AMOUNT)
    payment_method: str | None = None
    signature: str | None = None
    notes: str | None = None
    extra_charges: Any = None


class InvoiceItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID | None
    title: str
    description: str | None
    qty: int
    price: Decimal
    gst: Decimal
    discount_pct: Decimal
    hsn_code: str | None
    amount: Decimal


class PartySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str


class Invoice(BaseModel):
    """Schema for returning invoice data."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_no: str
    status: InvoiceStatus
    buyer_id: UUID
    supplier_id: UUID | None
    total: Decimal
    balance: Decimal
    service_charge: Decimal
    payment_method: str | None
    signature: str | None
    notes: str | None
    extra_charges: Any = None
    invoice_date: datetime
    created_at: datetime
    updated_at: datetime
    buyer: PartySummary | None = None
    supplier: PartySummary | None = None
    items: list[InvoiceItemResponse] = Field(default_factory=list)
    payments: list[PaymentResponse] = Field(default_factory=list)

    @computed_field
    @property
    def received_amount(self) -> Decimal:
        return sum_amounts(p.amount for p in self.payments)


class InvoiceList(BaseModel):
    """Schema for paginated invoice list."""

    items: list[Invoice]
    total: int
    page: int
    page_size: int


class InvoiceSummary(BaseModel):
    """Aggregate figures for the invoices matching a filter."""

    total_sales: Decimal
    total_received: Decimal
    total_balance: Decimal
    count: int


class NextInvoiceNumber(BaseModel):
    invoice_no: str
