"""Pydantic schemas for API request/response validation."""

from invoicing.schemas.error import (
    ErrorCode,
    ErrorDetail,
    ErrorResponse,
)
from invoicing.schemas.invoice import (
    Invoice,
    InvoiceCreate,
    InvoiceItemInput,
    InvoiceList,
    InvoiceSummary,
    InvoiceUpdate,
    NextInvoiceNumber,
)
from invoicing.schemas.payment import (
    InitialPayment,
    PaymentCreate,
    PaymentDeleted,
    PaymentList,
    PaymentRecord,
    PaymentResponse,
    PaymentUpdate,
)

__all__ = [
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "Invoice",
    "InvoiceCreate",
    "InvoiceItemInput",
    "InvoiceList",
    "InvoiceSummary",
    "InvoiceUpdate",
    "NextInvoiceNumber",
    "InitialPayment",
    "PaymentCreate",
    "PaymentDeleted",
    "PaymentList",
    "PaymentRecord",
    "PaymentResponse",
    "PaymentUpdate",
]
