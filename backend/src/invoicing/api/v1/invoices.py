"""Invoice API endpoints."""
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.api.deps import get_actor_id, get_current_user, get_db
from invoicing.exceptions import InvoiceNotFoundError
from invoicing.models.invoice import InvoiceStatus
from invoicing.schemas.invoice import (
    Invoice,
    InvoiceCreate,
    InvoiceList,
    InvoiceSummary,
    InvoiceUpdate,
    NextInvoiceNumber,
)
from invoicing.services.invoice_service import InvoiceService

router = APIRouter(prefix="/invoices", tags=["Invoices"])


@router.get("", response_model=InvoiceList)
async def list_invoices(
    status_filter: InvoiceStatus | None = Query(default=None, alias="status", description="Filter by status"),
    payment_method: list[str] | None = Query(default=None, description="Filter by payment method (repeatable)"),
    buyer_id: UUID | None = Query(default=None, description="Filter by buyer ID"),
    buyer_name: str | None = Query(default=None, description="Case-insensitive buyer name search"),
    date_from: date | None = Query(default=None, description="Invoices dated on or after"),
    date_to: date | None = Query(default=None, description="Invoices dated on or before"),
    sort_by: str = Query(default="created_at", pattern="^(created_at|invoice_no|total|invoice_date)$"),
    sort_order: str = Query(default="desc", pattern="^(asc|desc)$"),
    page: int = Query(default=1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(default=100, ge=1, le=1000, description="Items per page (max 1000)"),
    db: AsyncSession = Depends(get_db),
) -> InvoiceList:
    """
    List invoices with pagination and filtering.

    Filter invoices by:
    - **status**: Draft, Unpaid, Partial, Paid or Cancelled
    - **payment_method**: One or more payment methods
    - **buyer_id** / **buyer_name**: Buyer
    - **date_from** / **date_to**: Invoice date range

    Returns invoices ordered by creation date (newest first) unless sorted otherwise.
    """
    service = InvoiceService(db)
    invoices, total = await service.list_invoices(
        status=status_filter,
        payment_methods=payment_method,
        buyer_id=buyer_id,
        buyer_name=buyer_name,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=page_size,
    )

    return InvoiceList(items=invoices, total=total, page=page, page_size=page_size)


@router.get("/summary", response_model=InvoiceSummary)
async def get_invoice_summary(
    status_filter: InvoiceStatus | None = Query(default=None, alias="status"),
    payment_method: list[str] | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> InvoiceSummary:
    """Total sales, received amount and outstanding balance of the matching invoices."""
    service = InvoiceService(db)
    summary = await service.get_summary(status=status_filter, payment_methods=payment_method)
    return InvoiceSummary(**summary)


@router.get("/next-number", response_model=NextInvoiceNumber)
async def get_next_invoice_number(db: AsyncSession = Depends(get_db)) -> NextInvoiceNumber:
    """
    Preview the next sequential invoice number.

    The number is not reserved; a concurrent create or finalize may take it first.
    """
    service = InvoiceService(db)
    return NextInvoiceNumber(invoice_no=await service.generate_invoice_number())


@router.get("/{invoice_no}", response_model=Invoice)
async def get_invoice(
    invoice_no: str,
    db: AsyncSession = Depends(get_db),
) -> Invoice:
    """
    Get invoice by number with buyer, supplier, items and payments.

    **Status Meanings**:
    - **Draft**: Saved but not issued; accepts no payments
    - **Unpaid**: Issued, nothing received
    - **Partial**: Part of the total received
    - **Paid**: Fully received
    - **Cancelled**: Frozen; no payments or edits
    """
    service = InvoiceService(db)
    invoice = await service.get_invoice_by_number(invoice_no)

    if not invoice:
        raise InvoiceNotFoundError()

    return invoice


@router.post("", response_model=Invoice, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    invoice_data: InvoiceCreate,
    actor_id: UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> Invoice:
    """
    Create an invoice.

    - Send **status** = `Draft` to save a draft; it gets a temporary number
    - Otherwise **invoice_no** and **buyer_id** are required and the invoice starts Unpaid
    - Lines with quantity 0 or without a title/product are dropped
    - **payments** (or legacy **received_amount**) are recorded as initial payments

    Status and balance are always derived from payments; any status other
    than `Draft` in the request is ignored.
    """
    service = InvoiceService(db)
    return await service.create(invoice_data, actor_id)


@router.patch("/{invoice_no}", response_model=Invoice, dependencies=[Depends(get_current_user)])
async def update_invoice(
    invoice_no: str,
    invoice_data: InvoiceUpdate,
    db: AsyncSession = Depends(get_db),
) -> Invoice:
    """
    Update an invoice.

    Sending **items** replaces every line. The total is recomputed when items
    or the service charge change and may not drop below the amount already
    received. Status cannot be changed through this endpoint.
    """
    service = InvoiceService(db)
    return await service.update(invoice_no, invoice_data)


@router.post("/{invoice_no}/finalize", response_model=Invoice, dependencies=[Depends(get_current_user)])
async def finalize_invoice(
    invoice_no: str,
    db: AsyncSession = Depends(get_db),
) -> Invoice:
    """
    Finalize a draft invoice.

    Assigns the next sequential invoice number and makes the invoice payable.
    Only **Draft** invoices can be finalized.
    """
    service = InvoiceService(db)
    return await service.finalize(invoice_no)
