"""Invoice status engine.

The only writer of ``Invoice.status`` and ``Invoice.balance``. Every invoice
or payment mutation ends by calling ``recalculate`` inside its transaction and
``notify`` once after the transaction has committed.

Status rules:
- Draft: balance is kept in sync, status is never changed here
- Cancelled: frozen, nothing is recomputed or written
- Unpaid: nothing received yet
- Partial: something received and more than the tolerance still due
- Paid: balance within the tolerance; balance is then stored as exactly 0
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from invoicing.config import settings
from invoicing.metrics import invoice_status_transitions_total
from invoicing.models.invoice import Invoice, InvoiceStatus
from invoicing.services.event_service import EventPublisher, InvoiceUpdated, event_publisher
from invoicing.utils.money import ZERO, format_money, round_two_decimals, sum_amounts

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class InvoiceStatusResult:
    """Status, balance and received amount of an invoice."""

    status: InvoiceStatus
    balance: Decimal
    received_amount: Decimal


@dataclass(frozen=True)
class PaymentEligibility:
    allowed: bool
    reason: str | None = None


@dataclass(frozen=True)
class TotalUpdateValidation:
    valid: bool
    error: str | None = None
    received_amount: Decimal | None = None


def derive_status(total: Any, received_amount: Any, tolerance: Any = None) -> tuple[InvoiceStatus, Decimal]:
    """
    Derive the payment status and stored balance of a live invoice.

    Args:
        total: Invoice total
        received_amount: Sum of payments
        tolerance: Balances at or below this count as paid (defaults to settings)

    Returns:
        Tuple of (status, balance)
    """
    tolerance = settings.paid_tolerance if tolerance is None else Decimal(str(tolerance))
    received = round_two_decimals(received_amount)
    balance = round_two_decimals(round_two_decimals(total) - received)

    if received == ZERO:
        return InvoiceStatus.UNPAID, balance
    if balance > tolerance:
        return InvoiceStatus.PARTIAL, balance
    return InvoiceStatus.PAID, round_two_decimals(ZERO)


def received_amount_of(invoice: Invoice, exclude_payment_id: UUID | None = None) -> Decimal:
    """Rounded sum of the invoice's payments, optionally leaving one out."""
    return sum_amounts(p.amount for p in invoice.payments if p.id != exclude_payment_id)


class InvoiceStatusService:
    """Single source of truth for invoice status and balance."""

    def __init__(self, db: AsyncSession, publisher: EventPublisher | None = None):
        """Initialize status service with database session and event publisher."""
        self.db = db
        self.publisher = publisher or event_publisher

    async def _load_invoice(self, invoice_id: UUID, lock: bool = False) -> Invoice | None:
        query = (
            select(Invoice)
            .options(selectinload(Invoice.payments))
            .where(Invoice.id == invoice_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def recalculate(self, invoice_id: UUID) -> InvoiceStatusResult:
        """
        Recompute and persist status and balance from the invoice's payments.

        Runs inside the caller's transaction: pending changes are flushed
        first and the result is flushed but not committed. Never publishes.

        Args:
            invoice_id: Invoice UUID

        Returns:
            The status, balance and received amount now stored

        Raises:
            LookupError: If the invoice does not exist (caller passed a bad id)
        """
        await self.db.flush()

        invoice = await self._load_invoice(invoice_id)
        if invoice is None:
            raise LookupError(f"Invoice {invoice_id} not found")

        if invoice.status == InvoiceStatus.CANCELLED:
            return InvoiceStatusResult(
                status=invoice.status,
                balance=round_two_decimals(invoice.balance),
                received_amount=received_amount_of(invoice),
            )

        received = received_amount_of(invoice)

        if invoice.status == InvoiceStatus.DRAFT:
            balance = round_two_decimals(round_two_decimals(invoice.total) - received)
            invoice.balance = balance
            await self.db.flush()
            return InvoiceStatusResult(status=InvoiceStatus.DRAFT, balance=balance, received_amount=received)

        previous = invoice.status
        status, balance = derive_status(invoice.total, received)

        invoice.status = status
        invoice.balance = balance
        await self.db.flush()

        if previous != status:
            invoice_status_transitions_total.labels(from_status=previous.value, to_status=status.value).inc()

        logger.info(
            "invoice_status_recalculated",
            invoice_id=str(invoice.id),
            invoice_no=invoice.invoice_no,
            previous_status=previous.value,
            status=status.value,
            balance=format_money(balance),
            received=format_money(received),
        )

        return InvoiceStatusResult(status=status, balance=balance, received_amount=received)

    async def notify(self, invoice_id: UUID) -> InvoiceStatusResult:
        """
        Publish the committed status of an invoice.

        Called by the orchestrating service exactly once, after its
        transaction has committed. Reads the stored state and never writes.

        Raises:
            LookupError: If the invoice does not exist
        """
        invoice = await self._load_invoice(invoice_id)
        if invoice is None:
            raise LookupError(f"Invoice {invoice_id} not found")

        result = InvoiceStatusResult(
            status=invoice.status,
            balance=round_two_decimals(invoice.balance),
            received_amount=received_amount_of(invoice),
        )

        await self.publisher.publish(
            InvoiceUpdated(
                invoice_id=invoice.id,
                invoice_no=invoice.invoice_no,
                status=result.status.value,
                balance=result.balance,
                received_amount=result.received_amount,
            )
        )
        return result

    async def can_receive_payment(self, invoice_id: UUID) -> PaymentEligibility:
        """
        Check whether a new payment may be recorded against an invoice.

        Args:
            invoice_id: Invoice UUID

        Returns:
            PaymentEligibility with the blocking reason when not allowed
        """
        result = await self.db.execute(select(Invoice.status).where(Invoice.id == invoice_id))
        status = result.scalar_one_or_none()

        if status is None:
            return PaymentEligibility(allowed=False, reason="Invoice not found")

        if status == InvoiceStatus.DRAFT:
            return PaymentEligibility(
                allowed=False,
                reason="Cannot add payment to draft invoice. Please save the invoice first.",
            )

        if status == InvoiceStatus.CANCELLED:
            return PaymentEligibility(
                allowed=False,
                reason="Cannot add payment to cancelled invoice. Please restore the invoice first.",
            )

        return PaymentEligibility(allowed=True)

    async def validate_total_update(self, invoice_id: UUID, new_total: Any) -> TotalUpdateValidation:
        """
        Reject a total lower than what has already been received.

        Args:
            invoice_id: Invoice UUID
            new_total: Proposed total

        Returns:
            TotalUpdateValidation carrying the received amount
        """
        invoice = await self._load_invoice(invoice_id)
        if invoice is None:
            return TotalUpdateValidation(valid=False, error="Invoice not found")

        return check_total_update(round_two_decimals(new_total), received_amount_of(invoice))

    async def validate_invoice_update(
        self,
        invoice_id: UUID,
        status: InvoiceStatus | str | None = None,
        total: Any = None,
    ) -> TotalUpdateValidation:
        """
        Validate a proposed invoice update against the status rules.

        Cancelled invoices cannot be updated, status cannot be set by hand and
        the total cannot drop below the received amount.
        """
        invoice = await self._load_invoice(invoice_id)
        if invoice is None:
            return TotalUpdateValidation(valid=False, error="Invoice not found")

        error = check_update_allowed(invoice, status)
        if error:
            return TotalUpdateValidation(valid=False, error=error)

        if total is not None and round_two_decimals(total) != round_two_decimals(invoice.total):
            return check_total_update(round_two_decimals(total), received_amount_of(invoice))

        return TotalUpdateValidation(valid=True, received_amount=received_amount_of(invoice))

    async def recalculate_all(self) -> dict[str, int]:
        """
        Repair status and balance of every non-cancelled invoice.

        Returns:
            Counts of processed, updated and unchanged invoices
        """
        result = await self.db.execute(
            select(Invoice.id, Invoice.status, Invoice.balance).where(Invoice.status != InvoiceStatus.CANCELLED)
        )
        rows = result.all()

        updated = 0
        for invoice_id, status, balance in rows:
            outcome = await self.recalculate(invoice_id)
            if outcome.status != status or outcome.balance != round_two_decimals(balance):
                updated += 1

        logger.info("invoice_statuses_repaired", processed=len(rows), updated=updated)
        return {"processed": len(rows), "updated": updated, "unchanged": len(rows) - updated}


def check_update_allowed(invoice: Invoice, status: InvoiceStatus | str | None) -> str | None:
    """Return the reason an invoice may not be updated, or None."""
    if invoice.status == InvoiceStatus.CANCELLED:
        return "Cannot update cancelled invoice. Please restore it first."

    if status:
        requested = status.value if isinstance(status, InvoiceStatus) else str(status)
        if requested != invoice.status.value:
            return "Status cannot be changed manually. It is automatically calculated based on payments."

    return None


def check_total_update(new_total: Decimal, received_amount: Decimal) -> TotalUpdateValidation:
    """Compare a proposed total with the received amount."""
    if new_total < received_amount:
        return TotalUpdateValidation(
            valid=False,
            error=(
                f"Cannot reduce invoice total to {format_money(new_total)} as "
                f"{format_money(received_amount)} has already been paid."
            ),
            received_amount=received_amount,
        )
    return TotalUpdateValidation(valid=True, received_amount=received_amount)
