"""Integration tests for the invoice status engine."""
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from invoicing.models.invoice import Invoice, InvoiceStatus
from invoicing.models.payment import Payment
from invoicing.schemas.invoice import InvoiceCreate
from invoicing.services.invoice_service import InvoiceService
from invoicing.services.invoice_status_service import InvoiceStatusService
from tests.utils.factories import InvoiceFactory


async def _create_invoice(db: AsyncSession, buyer, publisher, actor_id, **overrides) -> Invoice:
    service = InvoiceService(db, publisher)
    return await service.create(InvoiceCreate(**InvoiceFactory.create({"buyer_id": buyer.id, **overrides})), actor_id)


async def _add_payment_directly(db: AsyncSession, invoice_id, amount: str) -> None:
    """Insert a payment without going through the payment service (data fix)."""
    db.add(Payment(invoice_id=invoice_id, amount=Decimal(amount), round_off=Decimal("0"), method="Cash"))
    await db.flush()


@pytest.mark.asyncio
async def test_recalculate_moves_unpaid_to_partial_and_paid(db_session, test_buyer, publisher, actor_id) -> None:
    invoice = await _create_invoice(db_session, test_buyer, publisher, actor_id)
    status_service = InvoiceStatusService(db_session, publisher)

    await _add_payment_directly(db_session, invoice.id, "100")
    partial = await status_service.recalculate(invoice.id)

    assert partial.status == InvoiceStatus.PARTIAL
    assert partial.balance == Decimal("18.00")
    assert partial.received_amount == Decimal("100.00")

    await _add_payment_directly(db_session, invoice.id, "18")
    paid = await status_service.recalculate(invoice.id)

    assert paid.status == InvoiceStatus.PAID
    assert paid.balance == Decimal("0.00")


@pytest.mark.asyncio
async def test_recalculate_does_not_publish(db_session, test_buyer, publisher, actor_id) -> None:
    invoice = await _create_invoice(db_session, test_buyer, publisher, actor_id)
    publisher.events.clear()

    await InvoiceStatusService(db_session, publisher).recalculate(invoice.id)

    assert publisher.events == []


@pytest.mark.asyncio
async def test_notify_publishes_committed_state(db_session, test_buyer, publisher, actor_id) -> None:
    invoice = await _create_invoice(db_session, test_buyer, publisher, actor_id)
    publisher.events.clear()

    result = await InvoiceStatusService(db_session, publisher).notify(invoice.id)

    assert result.status == InvoiceStatus.UNPAID
    [event] = publisher.events
    assert event.event_type == "invoice.updated"
    assert event.invoice_id == invoice.id
    assert event.status == "Unpaid"
    assert event.balance == Decimal("118.00")


@pytest.mark.asyncio
async def test_cancelled_invoice_is_frozen(db_session, test_buyer, publisher, actor_id) -> None:
    invoice = await _create_invoice(db_session, test_buyer, publisher, actor_id)
    invoice.status = InvoiceStatus.CANCELLED
    await db_session.commit()

    status_service = InvoiceStatusService(db_session, publisher)
    await _add_payment_directly(db_session, invoice.id, "50")

    first = await status_service.recalculate(invoice.id)
    second = await status_service.recalculate(invoice.id)

    assert first.status == second.status == InvoiceStatus.CANCELLED
    assert first.balance == second.balance == Decimal("118.00")


@pytest.mark.asyncio
async def test_draft_status_never_changes_but_balance_follows_payments(
    db_session, test_buyer, publisher, actor_id
) -> None:
    """Scenario: draft invoice with a payment added directly keeps its status."""
    invoice = await _create_invoice(db_session, test_buyer, publisher, actor_id, status="Draft")
    assert invoice.invoice_no.startswith("DRAFT-")
    assert invoice.status == InvoiceStatus.DRAFT

    status_service = InvoiceStatusService(db_session, publisher)
    await _add_payment_directly(db_session, invoice.id, "118")

    result = await status_service.recalculate(invoice.id)

    assert result.status == InvoiceStatus.DRAFT
    assert result.balance == Decimal("0.00")

    await _add_payment_directly(db_session, invoice.id, "0.01")
    again = await status_service.recalculate(invoice.id)
    assert again.status == InvoiceStatus.DRAFT
    assert again.balance == Decimal("-0.01")


@pytest.mark.asyncio
async def test_recalculate_unknown_invoice_raises(db_session) -> None:
    with pytest.raises(LookupError):
        await InvoiceStatusService(db_session).recalculate(uuid4())


@pytest.mark.asyncio
async def test_can_receive_payment(db_session, test_buyer, publisher, actor_id) -> None:
    status_service = InvoiceStatusService(db_session, publisher)
    live = await _create_invoice(db_session, test_buyer, publisher, actor_id)
    draft = await _create_invoice(db_session, test_buyer, publisher, actor_id, status="Draft")
    cancelled = await _create_invoice(db_session, test_buyer, publisher, actor_id)
    cancelled.status = InvoiceStatus.CANCELLED
    await db_session.commit()

    assert (await status_service.can_receive_payment(live.id)).allowed is True

    draft_check = await status_service.can_receive_payment(draft.id)
    assert draft_check.allowed is False
    assert draft_check.reason == "Cannot add payment to draft invoice. Please save the invoice first."

    cancelled_check = await status_service.can_receive_payment(cancelled.id)
    assert cancelled_check.reason == "Cannot add payment to cancelled invoice. Please restore the invoice first."

    missing = await status_service.can_receive_payment(uuid4())
    assert missing.allowed is False
    assert missing.reason == "Invoice not found"


@pytest.mark.asyncio
async def test_validate_total_and_invoice_update(db_session, test_buyer, publisher, actor_id) -> None:
    invoice = await _create_invoice(db_session, test_buyer, publisher, actor_id)
    await _add_payment_directly(db_session, invoice.id, "100")
    await db_session.commit()
    status_service = InvoiceStatusService(db_session, publisher)

    too_low = await status_service.validate_total_update(invoice.id, Decimal("50"))
    assert too_low.valid is False
    assert "₹100.00 has already been paid" in too_low.error

    assert (await status_service.validate_total_update(invoice.id, Decimal("150"))).valid is True

    manual = await status_service.validate_invoice_update(invoice.id, status="Paid")
    assert manual.valid is False
    assert manual.error.startswith("Status cannot be changed manually")

    assert (await status_service.validate_invoice_update(invoice.id, total=Decimal("118"))).valid is True


@pytest.mark.asyncio
async def test_recalculate_all_repairs_stale_rows(db_session, test_buyer, publisher, actor_id) -> None:
    healthy = await _create_invoice(db_session, test_buyer, publisher, actor_id)
    stale = await _create_invoice(db_session, test_buyer, publisher, actor_id)
    db_session.add(Payment(invoice_id=stale.id, amount=Decimal("118"), round_off=Decimal("0"), method="UPI"))
    await db_session.commit()

    counts = await InvoiceStatusService(db_session, publisher).recalculate_all()
    await db_session.commit()

    assert counts == {"processed": 2, "updated": 1, "unchanged": 1}
    repaired = await InvoiceService(db_session).get_invoice(stale.id)
    assert repaired.status == InvoiceStatus.PAID
    assert repaired.balance == Decimal("0.00")
    untouched = await InvoiceService(db_session).get_invoice(healthy.id)
    assert untouched.status == InvoiceStatus.UNPAID
