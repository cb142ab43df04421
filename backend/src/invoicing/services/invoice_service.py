"""Invoice service for business logic."""
import secrets
import string
import time
from datetime import date, datetime, time as dt_time
from decimal import Decimal
from typing import Any, Iterable, Sequence
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from invoicing.config import InvoiceNumberPolicy, settings
from invoicing.database import transaction
from invoicing.exceptions import (
    BusinessRuleError,
    DuplicateInvoiceNumberError,
    InvoiceNotFoundError,
    NotFoundError,
)
from invoicing.metrics import invoice_number_conflicts_total, invoices_created_total, invoices_finalized_total
from invoicing.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from invoicing.models.party import Buyer, Product
from invoicing.models.payment import Payment
from invoicing.schemas.invoice import InvoiceCreate, InvoiceUpdate
from invoicing.schemas.payment import InitialPayment
from invoicing.services.event_service import EventPublisher
from invoicing.services.invoice_calculator import calculate_total, normalize_items
from invoicing.services.invoice_status_service import (
    InvoiceStatusService,
    check_total_update,
    check_update_allowed,
    received_amount_of,
)
from invoicing.utils.money import ZERO, check_range, format_money, round_two_decimals, sum_amounts

logger = structlog.get_logger(__name__)

SORTABLE_COLUMNS = {
    "created_at": Invoice.created_at,
    "invoice_no": Invoice.invoice_no,
    "total": Invoice.total,
    "invoice_date": Invoice.invoice_date,
}

_DRAFT_ALPHABET = string.ascii_lowercase + string.digits


def generate_draft_number(now_ms: int | None = None) -> str:
    """
    Temporary number for a draft: ``DRAFT-<epoch millis>-<9 random chars>``.

    Replaced by a sequential number when the draft is finalized.
    """
    now_ms = int(time.time() * 1000) if now_ms is None else now_ms
    suffix = "".join(secrets.choice(_DRAFT_ALPHABET) for _ in range(9))
    return f"{settings.draft_number_prefix}-{now_ms}-{suffix}"


def normalize_initial_payments(data: InvoiceCreate, invoice_no: str) -> list[InitialPayment]:
    """
    Map both accepted request shapes onto one list of initial payments.

    Newer clients send ``payments``; older ones send a single
    ``received_amount``. The legacy amount is used only when no explicit
    payments were given. ``invoice_no`` is the number the invoice is saved
    under, which for drafts is the generated token.
    """
    if data.payments:
        return list(data.payments)

    if data.received_amount and data.received_amount != ZERO:
        return [
            InitialPayment(
                amount=data.received_amount,
                round_off=ZERO,
                method=data.payment_method or "Cash",
                reference=f"Initial payment for {invoice_no}",
            )
        ]

    return []


class InvoiceService:
    """Service layer for invoice operations."""

    def __init__(self, db: AsyncSession, publisher: EventPublisher | None = None):
        """Initialize invoice service with database session."""
        self.db = db
        self.status_service = InvoiceStatusService(db, publisher)

    @staticmethod
    def _with_relations(query):
        return query.options(
            selectinload(Invoice.buyer),
            selectinload(Invoice.supplier),
            selectinload(Invoice.items).selectinload(InvoiceItem.product),
            selectinload(Invoice.payments),
        ).execution_options(populate_existing=True)

    async def generate_invoice_number(self, now: datetime | None = None) -> str:
        """
        Generate the next sequential invoice number.

        Format: INV-{YYYYMM}-{NNNN} (e.g., INV-202610-0001). The counter
        continues from the highest number already issued this month.

        Not atomic: two concurrent callers can compute the same number.
        The unique constraint on ``invoice_no`` is the final authority.

        Returns:
            Invoice number string
        """
        now = now or datetime.utcnow()
        prefix = f"{settings.invoice_number_prefix}-{now:%Y%m}-"

        result = await self.db.execute(
            select(Invoice.invoice_no)
            .where(Invoice.invoice_no.startswith(prefix))
            .order_by(func.length(Invoice.invoice_no).desc(), Invoice.invoice_no.desc())
            .limit(1)
        )
        last = result.scalar_one_or_none()

        counter = 1
        if last:
            sequence = last[len(prefix):].split("-")[0]
            if sequence.isdigit():
                counter = int(sequence) + 1

        return f"{prefix}{counter:04d}"

    async def get_invoice(self, invoice_id: UUID) -> Invoice | None:
        """
        Get invoice by ID with buyer, supplier, items and payments.

        Args:
            invoice_id: Invoice UUID

        Returns:
            Invoice or None if not found
        """
        result = await self.db.execute(self._with_relations(select(Invoice)).where(Invoice.id == invoice_id))
        return result.scalar_one_or_none()

    async def get_invoice_by_number(self, invoice_no: str) -> Invoice | None:
        """Get invoice by its display number with all relations."""
        result = await self.db.execute(self._with_relations(select(Invoice)).where(Invoice.invoice_no == invoice_no))
        return result.scalar_one_or_none()

    async def list_invoices(
        self,
        status: InvoiceStatus | None = None,
        payment_methods: Sequence[str] | None = None,
        buyer_id: UUID | None = None,
        buyer_name: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        page_size: int = 100,
    ) -> tuple[list[Invoice], int]:
        """
        List invoices with pagination and filtering.

        Args:
            status: Filter by status
            payment_methods: Keep invoices whose payment method is one of these
            buyer_id: Filter by buyer
            buyer_name: Case-insensitive substring of the buyer name
            date_from: Earliest invoice date (inclusive, whole day)
            date_to: Latest invoice date (inclusive, whole day)
            sort_by: created_at, invoice_no, total or invoice_date
            sort_order: asc or desc
            page: Page number (1-indexed)
            page_size: Items per page

        Returns:
            Tuple of (invoices, total_count)
        """
        query = select(Invoice)

        if status:
            query = query.where(Invoice.status == status)
        if payment_methods:
            query = query.where(Invoice.payment_method.in_(list(payment_methods)))
        if buyer_id:
            query = query.where(Invoice.buyer_id == buyer_id)
        if buyer_name:
            query = query.join(Invoice.buyer).where(Buyer.name.ilike(f"%{buyer_name}%"))
        if date_from:
            query = query.where(Invoice.invoice_date >= datetime.combine(date_from, dt_time.min))
        if date_to:
            query = query.where(Invoice.invoice_date <= datetime.combine(date_to, dt_time.max))

        # Get total count
        count_query = select(func.count()).select_from(query.subquery())
        total = await self.db.scalar(count_query)

        column = SORTABLE_COLUMNS.get(sort_by, Invoice.created_at)
        query = query.order_by(column.asc() if sort_order == "asc" else column.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)

        result = await self.db.execute(self._with_relations(query))
        invoices = result.scalars().all()

        return list(invoices), total or 0

    async def get_summary(
        self,
        status: InvoiceStatus | None = None,
        payment_methods: Sequence[str] | None = None,
    ) -> dict[str, Any]:
        """
        Sales, received and outstanding totals for the matching invoices.

        Returns:
            Dict with total_sales, total_received, total_balance and count
        """
        query = select(Invoice).options(selectinload(Invoice.payments))
        if status:
            query = query.where(Invoice.status == status)
        if payment_methods:
            query = query.where(Invoice.payment_method.in_(list(payment_methods)))

        result = await self.db.execute(query)
        invoices = result.scalars().all()

        total_sales = sum_amounts(inv.total for inv in invoices)
        total_received = sum_amounts(received_amount_of(inv) for inv in invoices)

        return {
            "total_sales": total_sales,
            "total_received": total_received,
            "total_balance": round_two_decimals(total_sales - total_received),
            "count": len(invoices),
        }

    async def derive_supplier_id(self, raw_items: Iterable[Any]) -> UUID | None:
        """
        Supplier implied by the invoice lines: the first product-linked line wins.

        The invoice form never asks for a supplier, so it is taken from the
        product on the first line that references one. Lines pointing at
        other suppliers are ignored.

        Returns:
            The supplier of that product, or None when no line has a product
        """
        first = next((item for item in raw_items if getattr(item, "product_id", None)), None)
        if first is None:
            return None

        result = await self.db.execute(select(Product.supplier_id).where(Product.id == first.product_id))
        return result.scalar_one_or_none()

    async def _ensure_buyer(self, buyer_id: UUID) -> None:
        exists = await self.db.scalar(select(func.count()).select_from(Buyer).where(Buyer.id == buyer_id))
        if not exists:
            raise NotFoundError("Buyer not found")

    async def _invoice_no_taken(self, invoice_no: str) -> bool:
        count = await self.db.scalar(
            select(func.count()).select_from(Invoice).where(Invoice.invoice_no == invoice_no)
        )
        return bool(count)

    async def create(self, data: InvoiceCreate, actor_id: UUID | None) -> Invoice:
        """
        Create an invoice with its items and any initial payments.

        Draft invoices get a temporary number; final ones keep the number
        supplied by the caller and start Unpaid. Status and balance are
        derived inside the transaction and published once it has committed.

        Args:
            data: Invoice creation payload
            actor_id: Authenticated user recording the initial payments

        Returns:
            Created invoice with buyer, supplier, items and payments loaded

        Raises:
            BusinessRuleError: Missing invoice number or buyer, invalid initial payments
            DuplicateInvoiceNumberError: Invoice number already in use
            NotFoundError: Buyer does not exist
        """
        invoice_no = (data.invoice_no or "").strip()
        if (not invoice_no and not data.is_draft) or not data.buyer_id:
            raise BusinessRuleError("Invoice number and buyer are required")

        await self._ensure_buyer(data.buyer_id)

        normalized = normalize_items(data.items)
        total = calculate_total(normalized, data.service_charge)
        supplier_id = await self.derive_supplier_id(data.items)

        if data.is_draft:
            status = InvoiceStatus.DRAFT
            invoice_no = generate_draft_number()
        else:
            status = InvoiceStatus.UNPAID
            if await self._invoice_no_taken(invoice_no):
                raise DuplicateInvoiceNumberError(f"Invoice number {invoice_no} already exists")

        initial_payments = normalize_initial_payments(data, invoice_no)
        self._check_initial_payments(initial_payments, total)

        try:
            async with transaction(self.db):
                invoice = Invoice(
                    invoice_no=invoice_no,
                    buyer_id=data.buyer_id,
                    supplier_id=supplier_id,
                    status=status,
                    total=total,
                    balance=total,
                    service_charge=round_two_decimals(data.service_charge),
                    payment_method=data.payment_method,
                    signature=data.signature,
                    notes=data.notes,
                    extra_charges=data.extra_charges,
                    invoice_date=data.invoice_date or datetime.utcnow(),
                    items=[InvoiceItem(**item.as_row()) for item in normalized],
                )
                self.db.add(invoice)
                await self.db.flush()

                for payment in initial_payments:
                    self.db.add(
                        Payment(
                            invoice_id=invoice.id,
                            amount=round_two_decimals(payment.amount),
                            round_off=round_two_decimals(payment.round_off),
                            method=payment.method or data.payment_method or "Cash",
                            reference=payment.reference or f"Payment for {invoice_no}",
                            created_by=actor_id,
                        )
                    )

                await self.status_service.recalculate(invoice.id)
        except IntegrityError as exc:
            if await self._invoice_no_taken(invoice_no):
                raise DuplicateInvoiceNumberError(f"Invoice number {invoice_no} already exists") from exc
            raise

        await self.status_service.notify(invoice.id)

        invoices_created_total.labels(initial_status=status.value).inc()
        logger.info(
            "invoice_created",
            invoice_id=str(invoice.id),
            invoice_no=invoice_no,
            status=status.value,
            total=format_money(total),
            items=len(normalized),
            initial_payments=len(initial_payments),
            supplier_id=str(supplier_id) if supplier_id else None,
        )

        return await self.get_invoice(invoice.id)

    @staticmethod
    def _check_initial_payments(payments: list[InitialPayment], total: Decimal) -> None:
        for payment in payments:
            if round_two_decimals(payment.amount) <= ZERO:
                raise BusinessRuleError("Amount must be greater than 0")

        received = sum_amounts(p.amount for p in payments)
        if received > total:
            raise BusinessRuleError(
                f"Payments ({format_money(received)}) exceed the invoice total ({format_money(total)})"
            )

    async def update(self, invoice_no: str, patch: InvoiceUpdate) -> Invoice:
        """
        Update an invoice's items and descriptive fields.

        Status is never taken from the caller. When the item set or service
        charge changes the total is recomputed, checked against what has
        already been received and the status is re-derived.

        Args:
            invoice_no: Current invoice number
            patch: Fields to change

        Returns:
            Updated invoice with relations loaded

        Raises:
            InvoiceNotFoundError: Unknown invoice number
            BusinessRuleError: Cancelled invoice, status change, or total below received
        """
        existing = await self.get_invoice_by_number(invoice_no)
        if not existing:
            raise InvoiceNotFoundError()

        error = check_update_allowed(existing, patch.status)
        if error:
            raise BusinessRuleError(error)

        if patch.buyer_id and patch.buyer_id != existing.buyer_id:
            await self._ensure_buyer(patch.buyer_id)

        service_charge = existing.service_charge if patch.service_charge is None else patch.service_charge

        normalized = None
        new_total = None
        if patch.items is not None:
            normalized = normalize_items(patch.items)
            new_total = calculate_total(normalized, service_charge)
        elif patch.service_charge is not None:
            subtotal = sum((item.amount for item in existing.items), ZERO)
            new_total = check_range(
                round_two_decimals(subtotal + round_two_decimals(service_charge)), label="Invoice total"
            )

        total_changed = new_total is not None and new_total != round_two_decimals(existing.total)
        if total_changed:
            validation = check_total_update(new_total, received_amount_of(existing))
            if not validation.valid:
                logger.warning(
                    "invoice_total_reduction_rejected",
                    invoice_no=invoice_no,
                    new_total=format_money(new_total),
                    received=format_money(validation.received_amount),
                )
                raise BusinessRuleError(validation.error)

        async with transaction(self.db):
            if normalized is not None:
                existing.items = [InvoiceItem(**item.as_row()) for item in normalized]

            if patch.buyer_id:
                existing.buyer_id = patch.buyer_id
            if patch.supplier_id:
                existing.supplier_id = patch.supplier_id
            if patch.payment_method:
                existing.payment_method = patch.payment_method
            if patch.signature is not None:
                existing.signature = patch.signature
            if patch.notes is not None:
                existing.notes = patch.notes
            if patch.extra_charges is not None:
                existing.extra_charges = patch.extra_charges
            if patch.service_charge is not None:
                existing.service_charge = round_two_decimals(patch.service_charge)
            if new_total is not None:
                existing.total = new_total

            await self.db.flush()

            if total_changed:
                await self.status_service.recalculate(existing.id)

        if total_changed:
            await self.status_service.notify(existing.id)

        logger.info(
            "invoice_updated",
            invoice_id=str(existing.id),
            invoice_no=invoice_no,
            items_replaced=normalized is not None,
            total_changed=total_changed,
        )

        return await self.get_invoice(existing.id)

    async def finalize(self, invoice_no: str) -> Invoice:
        """
        Turn a draft into a live invoice with the next sequential number.

        Items, payments and total are left untouched; the status becomes
        Unpaid (or whatever the draft's payments imply).

        Raises:
            InvoiceNotFoundError: Unknown invoice number
            BusinessRuleError: Invoice is not a draft
            DuplicateInvoiceNumberError: No free number could be assigned
        """
        existing = await self.get_invoice_by_number(invoice_no)
        if not existing:
            raise InvoiceNotFoundError()
        if existing.status != InvoiceStatus.DRAFT:
            raise BusinessRuleError("Only draft invoices can be finalized")

        invoice_id = existing.id
        attempts = (
            settings.invoice_number_max_attempts
            if settings.invoice_number_policy == InvoiceNumberPolicy.RETRY_ON_CONFLICT
            else 1
        )

        for attempt in range(1, attempts + 1):
            new_invoice_no = await self.generate_invoice_number()
            try:
                async with transaction(self.db):
                    invoice = await self.db.get(Invoice, invoice_id, populate_existing=True)
                    invoice.invoice_no = new_invoice_no
                    invoice.status = InvoiceStatus.UNPAID
                    await self.db.flush()
                    await self.status_service.recalculate(invoice_id)
                break
            except IntegrityError as exc:
                invoice_number_conflicts_total.inc()
                logger.warning(
                    "invoice_number_conflict",
                    invoice_id=str(invoice_id),
                    invoice_no=new_invoice_no,
                    attempt=attempt,
                    policy=settings.invoice_number_policy.value,
                )
                if attempt == attempts:
                    raise DuplicateInvoiceNumberError(
                        f"Invoice number {new_invoice_no} is already taken. Please try again."
                    ) from exc

        await self.status_service.notify(invoice_id)

        invoices_finalized_total.inc()
        logger.info("invoice_finalized", invoice_id=str(invoice_id), draft_no=invoice_no, invoice_no=new_invoice_no)

        return await self.get_invoice(invoice_id)
