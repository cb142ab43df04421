"""Payment service for recording, editing and removing invoice payments."""
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from invoicing.config import settings
from invoicing.database import transaction
from invoicing.exceptions import BusinessRuleError, InvoiceNotFoundError, PaymentNotFoundError
from invoicing.metrics import payment_amount_total, payments_recorded_total, payments_rejected_total
from invoicing.models.invoice import Invoice
from invoicing.models.payment import Payment
from invoicing.schemas.payment import PaymentCreate, PaymentUpdate
from invoicing.services.event_service import EventPublisher, PaymentCreated, PaymentDeleted, PaymentUpdated
from invoicing.services.invoice_status_service import InvoiceStatusService, received_amount_of
from invoicing.utils.money import ZERO, calculate_round_off, format_money, round_two_decimals

logger = structlog.get_logger(__name__)


class PaymentService:
    """Service for payment mutations and listings."""

    def __init__(self, db: AsyncSession, publisher: Optional[EventPublisher] = None):
        """Initialize payment service."""
        self.db = db
        self.status_service = InvoiceStatusService(db, publisher)

    @property
    def publisher(self) -> EventPublisher:
        return self.status_service.publisher

    async def _load_invoice(self, invoice_id: UUID) -> Invoice:
        """Invoice with its payments, locked for the rest of the transaction when configured."""
        query = (
            select(Invoice)
            .options(selectinload(Invoice.payments))
            .where(Invoice.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        if settings.lock_invoice_rows:
            query = query.with_for_update()
        result = await self.db.execute(query)
        invoice = result.scalar_one_or_none()
        if invoice is None:
            raise InvoiceNotFoundError()
        return invoice

    async def get_payment(self, payment_id: UUID) -> Optional[Payment]:
        """
        Get payment by ID with its invoice and the invoice's other payments.

        Args:
            payment_id: Payment UUID

        Returns:
            Payment if found, None otherwise
        """
        result = await self.db.execute(
            select(Payment)
            .options(selectinload(Payment.invoice).selectinload(Invoice.payments))
            .where(Payment.id == payment_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def _reject(self, reason: str, message: str, **context: Any) -> BusinessRuleError:
        payments_rejected_total.labels(reason=reason).inc()
        logger.warning("payment_rejected", reason=reason, message=message, **context)
        return BusinessRuleError(message)

    async def create(self, dto: PaymentCreate, actor_id: Optional[UUID]) -> Payment:
        """
        Record a payment against a live invoice.

        A whole-number payment that overshoots the remaining balance by no
        more than the round-off threshold is stored at the remaining balance
        with the difference kept as round-off.

        Args:
            dto: Invoice number, amount, method and optional reference
            actor_id: Authenticated user recording the payment

        Returns:
            Created payment

        Raises:
            BusinessRuleError: Missing fields, non-positive amount, invoice not
                payable, or amount above the remaining balance
            InvoiceNotFoundError: Unknown invoice number
        """
        if not dto.invoice_no or dto.amount is None or not dto.method:
            raise self._reject("missing_fields", "Missing required fields")

        requested = round_two_decimals(dto.amount)
        if requested <= ZERO:
            raise self._reject("invalid_amount", "Amount must be greater than 0", invoice_no=dto.invoice_no)

        invoice_id = await self.db.scalar(select(Invoice.id).where(Invoice.invoice_no == dto.invoice_no))
        if invoice_id is None:
            raise InvoiceNotFoundError()

        eligibility = await self.status_service.can_receive_payment(invoice_id)
        if not eligibility.allowed:
            raise self._reject("not_allowed", eligibility.reason, invoice_no=dto.invoice_no)

        async with transaction(self.db):
            invoice = await self._load_invoice(invoice_id)
            received = received_amount_of(invoice)
            remaining = round_two_decimals(round_two_decimals(invoice.total) - received)

            adjusted = calculate_round_off(requested, remaining)
            if adjusted.amount > remaining:
                raise self._reject(
                    "exceeds_balance",
                    f"Payment amount exceeds remaining balance ({format_money(remaining)})",
                    invoice_no=invoice.invoice_no,
                    requested=format_money(requested),
                )

            payment = Payment(
                invoice_id=invoice.id,
                amount=adjusted.amount,
                round_off=adjusted.round_off,
                method=dto.method,
                reference=dto.reference,
                received_at=dto.received_at or datetime.utcnow(),
                created_by=actor_id,
            )
            self.db.add(payment)
            await self.db.flush()

            await self.status_service.recalculate(invoice.id)

        await self.status_service.notify(invoice_id)
        await self.publisher.publish(
            PaymentCreated(
                payment_id=payment.id,
                invoice_id=invoice_id,
                invoice_no=dto.invoice_no,
                amount=payment.amount,
                round_off=payment.round_off,
                method=payment.method,
            )
        )

        payments_recorded_total.labels(operation="create").inc()
        payment_amount_total.labels(method=payment.method).inc(float(payment.amount))
        logger.info(
            "payment_recorded",
            payment_id=str(payment.id),
            invoice_no=dto.invoice_no,
            amount=format_money(payment.amount),
            round_off=format_money(payment.round_off) if adjusted.applied else None,
            method=payment.method,
        )

        return payment

    async def update(self, payment_id: UUID, dto: PaymentUpdate) -> Payment:
        """
        Edit a payment's amount, method or reference.

        The new amount is checked against the balance left by the invoice's
        other payments, so re-saving an unchanged payment always succeeds.

        Raises:
            PaymentNotFoundError: Unknown payment
            BusinessRuleError: Non-positive amount or amount above the remaining balance
        """
        payment = await self.get_payment(payment_id)
        if not payment:
            raise PaymentNotFoundError()

        new_amount: Optional[Decimal] = None
        if dto.amount is not None:
            new_amount = round_two_decimals(dto.amount)
            if new_amount <= ZERO:
                raise self._reject("invalid_amount", "Amount must be greater than 0", payment_id=str(payment_id))

        invoice_id = payment.invoice_id

        async with transaction(self.db):
            if new_amount is not None:
                invoice = await self._load_invoice(invoice_id)
                others = received_amount_of(invoice, exclude_payment_id=payment.id)
                remaining = round_two_decimals(round_two_decimals(invoice.total) - others)
                if new_amount > remaining:
                    raise self._reject(
                        "exceeds_balance",
                        f"Payment amount exceeds remaining balance ({format_money(remaining)})",
                        payment_id=str(payment_id),
                        requested=format_money(new_amount),
                    )
                payment.amount = new_amount

            if dto.method:
                payment.method = dto.method
            if dto.reference is not None:
                payment.reference = dto.reference

            await self.db.flush()
            await self.status_service.recalculate(invoice_id)

        await self.status_service.notify(invoice_id)
        await self.publisher.publish(
            PaymentUpdated(payment_id=payment.id, invoice_id=invoice_id, amount=payment.amount, method=payment.method)
        )

        payments_recorded_total.labels(operation="update").inc()
        logger.info(
            "payment_updated",
            payment_id=str(payment.id),
            invoice_id=str(invoice_id),
            amount=format_money(payment.amount),
            method=payment.method,
        )

        return payment

    async def remove(self, payment_id: UUID) -> dict[str, Any]:
        """
        Delete a payment and re-derive its invoice's status.

        Never blocked by business rules: removing money only moves the
        balance away from zero.

        Returns:
            Confirmation with the payment and invoice ids

        Raises:
            PaymentNotFoundError: Unknown payment
        """
        payment = await self.get_payment(payment_id)
        if not payment:
            raise PaymentNotFoundError()

        invoice_id = payment.invoice_id

        async with transaction(self.db):
            await self.db.delete(payment)
            await self.status_service.recalculate(invoice_id)

        await self.status_service.notify(invoice_id)
        await self.publisher.publish(PaymentDeleted(payment_id=payment_id, invoice_id=invoice_id))

        payments_recorded_total.labels(operation="delete").inc()
        logger.info("payment_deleted", payment_id=str(payment_id), invoice_id=str(invoice_id))

        return {"message": "Payment deleted successfully", "payment_id": payment_id, "invoice_id": invoice_id}

    async def list_for_invoice(self, invoice_no: str) -> List[Payment]:
        """
        Payments of one invoice, newest first.

        Raises:
            InvoiceNotFoundError: Unknown invoice number
        """
        invoice_id = await self.db.scalar(select(Invoice.id).where(Invoice.invoice_no == invoice_no))
        if invoice_id is None:
            raise InvoiceNotFoundError()

        result = await self.db.execute(
            select(Payment)
            .where(Payment.invoice_id == invoice_id)
            .order_by(Payment.received_at.desc(), Payment.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_records(
        self,
        method: Optional[str] = None,
        page: int = 1,
        page_size: int = 100,
    ) -> tuple[List[dict[str, Any]], int]:
        """
        Flattened payment rows across all invoices, newest first.

        Args:
            method: Filter by payment method
            page: Page number
            page_size: Results per page

        Returns:
            Tuple of (records, total_count)
        """
        query = select(Payment)
        if method:
            query = query.where(Payment.method == method)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))

        query = (
            query.options(selectinload(Payment.invoice))
            .execution_options(populate_existing=True)
            .order_by(Payment.received_at.desc(), Payment.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.db.execute(query)

        records = [
            {
                "id": payment.id,
                "invoice_id": payment.invoice_id,
                "invoice_no": payment.invoice.invoice_no,
                "payment_date": payment.received_at,
                "paid_amount": round_two_decimals(payment.amount),
                "remaining_balance": round_two_decimals(payment.invoice.balance),
                "payment_method": payment.method,
                "reference": payment.reference or "",
                "added_by": payment.created_by,
                "invoice_total": round_two_decimals(payment.invoice.total),
                "invoice_status": payment.invoice.status.value,
            }
            for payment in result.scalars().all()
        ]

        return records, total or 0
