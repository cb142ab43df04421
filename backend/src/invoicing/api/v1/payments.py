"""Payment endpoints for recording and managing invoice payments."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.api.deps import get_actor_id, get_current_user, get_db
from invoicing.schemas.payment import (
    PaymentCreate,
    PaymentDeleted,
    PaymentList,
    PaymentRecord,
    PaymentResponse,
    PaymentUpdate,
)
from invoicing.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("/records", response_model=dict)
async def list_payment_records(
    method: Optional[str] = Query(None, description="Filter by payment method"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(100, ge=1, le=1000, description="Results per page"),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """
    List every payment with its invoice number, total and remaining balance.

    Newest payments first.
    """
    service = PaymentService(db)
    records, total = await service.list_records(method=method, page=page, page_size=page_size)

    return {
        "items": [PaymentRecord(**record) for record in records],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.get("/invoice/{invoice_no}", response_model=PaymentList)
async def list_invoice_payments(
    invoice_no: str,
    db: AsyncSession = Depends(get_db),
) -> PaymentList:
    """Payments recorded against one invoice, newest first."""
    service = PaymentService(db)
    payments = await service.list_for_invoice(invoice_no)
    return PaymentList(items=payments, total=len(payments))


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    payment_data: PaymentCreate,
    actor_id: UUID = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
) -> PaymentResponse:
    """
    Record a payment against an invoice.

    - **invoice_no**, **amount** and **method** are required
    - Draft and Cancelled invoices do not accept payments
    - The amount may not exceed the remaining balance, except that a
      whole-number payment up to the round-off threshold above it is
      recorded at the balance with the difference kept as round-off

    The invoice status (Unpaid / Partial / Paid) is updated automatically.
    """
    service = PaymentService(db)
    return await service.create(payment_data, actor_id)


@router.put("/{payment_id}", response_model=PaymentResponse, dependencies=[Depends(get_current_user)])
async def update_payment(
    payment_id: UUID,
    payment_data: PaymentUpdate,
    db: AsyncSession = Depends(get_db),
) -> PaymentResponse:
    """
    Edit a payment's amount, method or reference.

    The new amount is checked against the balance left by the invoice's other payments.
    """
    service = PaymentService(db)
    return await service.update(payment_id, payment_data)


@router.delete("/{payment_id}", response_model=PaymentDeleted, dependencies=[Depends(get_current_user)])
async def delete_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> PaymentDeleted:
    """Delete a payment; the invoice status is recalculated."""
    service = PaymentService(db)
    return PaymentDeleted(**await service.remove(payment_id))
