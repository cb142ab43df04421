"""Unit tests for the pure status derivation and update rules."""
from decimal import Decimal
from types import SimpleNamespace

import pytest

from invoicing.models.invoice import InvoiceStatus
from invoicing.services.invoice_status_service import check_total_update, check_update_allowed, derive_status


@pytest.mark.parametrize(
    "total, received, expected_status, expected_balance",
    [
        ("236.00", "0", InvoiceStatus.UNPAID, Decimal("236.00")),
        ("236.00", "100", InvoiceStatus.PARTIAL, Decimal("136.00")),
        ("236.00", "236", InvoiceStatus.PAID, Decimal("0.00")),
        ("236.00", "235.99", InvoiceStatus.PAID, Decimal("0.00")),
        ("236.00", "235.98", InvoiceStatus.PARTIAL, Decimal("0.02")),
        ("0", "0", InvoiceStatus.UNPAID, Decimal("0.00")),
    ],
)
def test_derive_status(total, received, expected_status, expected_balance) -> None:
    status, balance = derive_status(Decimal(total), Decimal(received))

    assert status == expected_status
    assert balance == expected_balance


def test_paid_balance_is_exactly_zero() -> None:
    """A balance inside the tolerance is stored as 0, never as 0.01."""
    _, balance = derive_status(Decimal("100.00"), Decimal("99.99"))

    assert balance == Decimal("0")
    assert str(balance) == "0.00"


def test_custom_tolerance() -> None:
    status, _ = derive_status(Decimal("100"), Decimal("99.50"), tolerance=Decimal("0.50"))

    assert status == InvoiceStatus.PAID


def test_update_blocked_for_cancelled_invoice() -> None:
    invoice = SimpleNamespace(status=InvoiceStatus.CANCELLED)

    assert check_update_allowed(invoice, None) == "Cannot update cancelled invoice. Please restore it first."


def test_manual_status_change_rejected() -> None:
    invoice = SimpleNamespace(status=InvoiceStatus.UNPAID)

    assert check_update_allowed(invoice, "Paid") == (
        "Status cannot be changed manually. It is automatically calculated based on payments."
    )
    assert check_update_allowed(invoice, "Unpaid") is None
    assert check_update_allowed(invoice, InvoiceStatus.UNPAID) is None
    assert check_update_allowed(invoice, None) is None


def test_total_cannot_drop_below_received() -> None:
    result = check_total_update(Decimal("50.00"), Decimal("100.00"))

    assert result.valid is False
    assert result.error == "Cannot reduce invoice total to ₹50.00 as ₹100.00 has already been paid."
    assert result.received_amount == Decimal("100.00")


def test_total_equal_to_received_is_allowed() -> None:
    assert check_total_update(Decimal("100.00"), Decimal("100.00")).valid is True
