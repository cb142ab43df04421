"""Unit tests for the in-process event publisher."""
from decimal import Decimal
from uuid import uuid4

import pytest

from invoicing.services.event_service import EventPublisher, InvoiceUpdated, PaymentDeleted


def _invoice_updated() -> InvoiceUpdated:
    return InvoiceUpdated(
        invoice_id=uuid4(),
        invoice_no="INV-202610-0001",
        status="Partial",
        balance=Decimal("136.00"),
        received_amount=Decimal("100.00"),
    )


@pytest.mark.asyncio
async def test_sync_and_async_subscribers_receive_event() -> None:
    publisher = EventPublisher()
    received = []

    async def on_async(event):
        received.append(("async", event.event_type))

    publisher.subscribe("invoice.updated", lambda event: received.append(("sync", event.event_type)))
    publisher.subscribe("invoice.updated", on_async)

    await publisher.publish(_invoice_updated())

    assert received == [("sync", "invoice.updated"), ("async", "invoice.updated")]


@pytest.mark.asyncio
async def test_wildcard_and_type_filtering() -> None:
    publisher = EventPublisher()
    everything, invoices_only = [], []
    publisher.subscribe("*", everything.append)
    publisher.subscribe("invoice.updated", invoices_only.append)

    await publisher.publish(_invoice_updated())
    await publisher.publish(PaymentDeleted(payment_id=uuid4(), invoice_id=uuid4()))

    assert [e.event_type for e in everything] == ["invoice.updated", "payment.deleted"]
    assert [e.event_type for e in invoices_only] == ["invoice.updated"]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_stop_delivery() -> None:
    publisher = EventPublisher()
    delivered = []

    def broken(event):
        raise RuntimeError("listener down")

    publisher.subscribe("invoice.updated", broken)
    publisher.subscribe("invoice.updated", delivered.append)

    await publisher.publish(_invoice_updated())

    assert len(delivered) == 1


@pytest.mark.asyncio
async def test_unsubscribe() -> None:
    publisher = EventPublisher()
    delivered = []
    publisher.subscribe("invoice.updated", delivered.append)
    publisher.unsubscribe("invoice.updated", delivered.append)

    await publisher.publish(_invoice_updated())

    assert delivered == []


def test_payload_is_json_friendly() -> None:
    event = _invoice_updated()

    payload = event.to_payload()

    assert payload["type"] == "invoice.updated"
    assert payload["status"] == "Partial"
    assert payload["balance"] == "136.00"
    assert payload["invoice_id"] == str(event.invoice_id)
    assert isinstance(payload["occurred_at"], str)
