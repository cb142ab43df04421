"""Line item normalization and invoice total calculation.

Pure functions shared by invoice creation and update. Raw item payloads come
straight from the UI's editable table, so empty placeholder rows are dropped
silently and loosely typed numbers are coerced rather than rejected.
"""
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping
from uuid import UUID

from invoicing.utils.money import MAX_AMOUNT, MAX_PERCENT, MAX_QTY, ZERO, check_range, round_two_decimals, to_decimal

HUNDRED = Decimal("100")
UNTITLED_ITEM = "Untitled Item"


@dataclass(frozen=True)
class NormalizedItem:
    """Line item ready to be persisted as an InvoiceItem row."""

    title: str
    qty: int
    price: Decimal
    gst: Decimal
    discount_pct: Decimal
    amount: Decimal
    position: int = 0
    description: str | None = None
    hsn_code: str | None = None
    product_id: UUID | None = None

    def as_row(self) -> dict[str, Any]:
        """Column values for an InvoiceItem."""
        return asdict(self)


def _field(item: Any, *names: str) -> Any:
    """Read the first present attribute/key among ``names``."""
    for name in names:
        if isinstance(item, Mapping):
            value = item.get(name)
        else:
            value = getattr(item, name, None)
        if value is not None:
            return value
    return None


def _coerce_uuid(value: Any) -> UUID | None:
    if value is None or value == "":
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _coerce_qty(value: Any) -> int:
    qty = int(to_decimal(value))
    return qty if qty >= 1 else 1


def line_amount(price: Any, qty: Any, discount_pct: Any = 0, gst: Any = 0) -> Decimal:
    """
    Amount of one line: price × qty × (1 − discount/100) × (1 + gst/100).

    Not rounded; rounding happens once on the invoice total.
    """
    return (
        to_decimal(price)
        * to_decimal(qty)
        * (1 - to_decimal(discount_pct) / HUNDRED)
        * (1 + to_decimal(gst) / HUNDRED)
    )


def is_billable(item: Any) -> bool:
    """A row counts when it names a title or product and has a positive quantity."""
    has_subject = bool(_field(item, "title", "product_title")) or bool(_field(item, "product_id"))
    return has_subject and to_decimal(_field(item, "qty", "quantity")) > ZERO


def normalize_items(raw_items: Iterable[Any] | None) -> list[NormalizedItem]:
    """
    Turn raw item payloads into persisted line values.

    Args:
        raw_items: Dicts or objects carrying title/product_id/qty/price/gst/discount_pct

    Returns:
        Normalized items in input order, with invalid rows dropped
    """
    normalized = []
    for item in raw_items or []:
        if not is_billable(item):
            continue

        qty = _coerce_qty(check_range(_field(item, "qty", "quantity"), MAX_QTY, "Quantity"))
        price = check_range(_field(item, "price"), MAX_AMOUNT, "Price")
        gst = check_range(_field(item, "gst"), MAX_PERCENT, "GST")
        discount_pct = check_range(_field(item, "discount_pct", "discount"), MAX_PERCENT, "Discount")

        normalized.append(
            NormalizedItem(
                title=_field(item, "title", "product_title") or UNTITLED_ITEM,
                description=_field(item, "description") or None,
                qty=qty,
                price=price,
                gst=gst,
                discount_pct=discount_pct,
                hsn_code=_field(item, "hsn_code") or None,
                product_id=_coerce_uuid(_field(item, "product_id")),
                amount=line_amount(price, qty, discount_pct, gst),
                position=len(normalized),
            )
        )
    return normalized


def calculate_total(items: Iterable[NormalizedItem], service_charge: Any = 0) -> Decimal:
    """
    Sum of line amounts plus the flat service charge, rounded to cents.

    Raises:
        AmountOutOfRangeError: The total does not fit a money column
    """
    subtotal = sum((item.amount for item in items), ZERO)
    return check_range(round_two_decimals(subtotal + to_decimal(service_charge)), label="Invoice total")
