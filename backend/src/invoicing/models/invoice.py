"""Invoice and invoice line models."""
from datetime import datetime
import enum

from sqlalchemy import JSON, Column, DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from invoicing.models.base import Base


class InvoiceStatus(enum.Enum):
    """Invoice lifecycle status.

    Only DRAFT and UNPAID are ever chosen by a caller (at creation or
    finalization). UNPAID, PARTIAL and PAID are derived from payments by the
    status engine. CANCELLED is set outside the core and is never recomputed.
    """

    DRAFT = "Draft"
    UNPAID = "Unpaid"
    PARTIAL = "Partial"
    PAID = "Paid"
    CANCELLED = "Cancelled"


class Invoice(Base):
    """
    Sale document issued to a buyer.

    The UUID primary key is the stable identity. ``invoice_no`` is the display
    number: a temporary ``DRAFT-...`` token while the invoice is a draft and a
    sequential ``INV-YYYYMM-NNNN`` number once finalized.
    """

    __tablename__ = "invoices"

    invoice_no = Column(String, nullable=False, unique=True, index=True)
    buyer_id = Column(Uuid(as_uuid=True), ForeignKey("buyers.id"), nullable=False, index=True)
    supplier_id = Column(Uuid(as_uuid=True), ForeignKey("suppliers.id"), nullable=True, index=True)
    status = Column(SQLEnum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT, index=True)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    service_charge = Column(Numeric(12, 2), nullable=False, default=0)
    payment_method = Column(String, nullable=True)  # legacy single-value hint
    signature = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    extra_charges = Column(JSON, nullable=True)
    invoice_date = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    buyer = relationship("Buyer", back_populates="invoices")
    supplier = relationship("Supplier", back_populates="invoices")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
    )
    payments = relationship(
        "Payment",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="Payment.received_at",
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Invoice(id={self.id}, invoice_no={self.invoice_no}, status={self.status.value}, total={self.total})>"


class InvoiceItem(Base):
    """
    One line of an invoice.

    Owned by its invoice and replaced wholesale when the item set changes.
    """

    __tablename__ = "invoice_items"

    invoice_id = Column(Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid(as_uuid=True), ForeignKey("products.id"), nullable=True, index=True)
    position = Column(Integer, nullable=False, default=0)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    qty = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    gst = Column(Numeric(5, 2), nullable=False, default=0)  # percent
    discount_pct = Column(Numeric(5, 2), nullable=False, default=0)
    hsn_code = Column(String, nullable=True)
    amount = Column(Numeric(14, 4), nullable=False, default=0)

    # Relationships
    invoice = relationship("Invoice", back_populates="items")
    product = relationship("Product")

    def __repr__(self) -> str:
        """String representation."""
        return f"<InvoiceItem(id={self.id}, title={self.title}, qty={self.qty}, amount={self.amount})>"
